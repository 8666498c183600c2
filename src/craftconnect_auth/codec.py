"""Token signing and verification using PyJWT.

This module provides TokenCodec, the only component that touches signing
secrets. It:
- Signs access and refresh claims under two distinct HMAC secrets
- Verifies signature, issuer, audience and expiry through PyJWT
- Maps PyJWT exceptions to domain-specific error types
- Offers a non-throwing, decode-only expiry peek for scheduling decisions

The codec is stateless apart from its immutable configuration, so a single
instance is shared by every request in the process.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import jwt

from .config import AuthConfig
from .errors import ExpiredToken, InvalidToken
from .models import (
    ACCESS_TOKEN_LIFETIME_SECONDS,
    REFRESH_TOKEN_LIFETIME_SECONDS,
    AccessClaims,
    Identity,
    RefreshClaims,
)
from .protocols import Claims

_REQUIRED_CLAIMS = ["exp", "iat", "iss", "aud"]


class TokenCodec:
    """Stateless signing and verification of access and refresh tokens.

    Architecture:
        - Access tokens carry {uid, email, username}, live 15 minutes and are
          signed with ``config.access_secret``.
        - Refresh tokens carry {uid} (plus ``ver`` when rotation is enabled),
          live 7 days and are signed with ``config.refresh_secret``.
        - Both embed the configured issuer and audience, which verification
          requires to match.

    Thread Safety:
        Safe to share across threads; the configuration is frozen.

    Example:
        ```python
        codec = TokenCodec(AuthConfig.from_env())

        token = codec.sign_access(Identity("u1", "a@b.c", "alice"))
        claims = codec.verify_access(token)
        assert claims.uid == "u1"
        ```

    Attributes:
        _cfg: Immutable signing/verification configuration.
        _clock: Source of "now" (seconds since epoch) used when signing.
    """

    def __init__(
        self,
        config: AuthConfig,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the codec.

        Args:
            config: Secrets, issuer, audience, algorithm and leeway.
            clock: Optional time source for ``iat``. Verification always uses
                PyJWT's own notion of now, so a skewed clock here produces
                tokens that are already expired (or not yet issued).
        """
        self._cfg = config
        self._clock = clock or time.time

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    def sign_access(self, identity: Identity) -> str:
        """Sign an access token for ``identity``."""
        payload = {
            "uid": identity.uid,
            "email": identity.email,
            "username": identity.username,
        }
        return self._sign(payload, self._cfg.access_secret, ACCESS_TOKEN_LIFETIME_SECONDS)

    def sign_refresh(self, uid: str, version: int | None = None) -> str:
        """Sign a refresh token for ``uid``.

        Args:
            uid: Subject identifier.
            version: Subject's current token version. Omitted from the payload
                when None, which yields the plain ``{uid, iat, exp}`` shape.
        """
        payload: dict[str, Any] = {"uid": uid}
        if version is not None:
            payload["ver"] = version
        return self._sign(payload, self._cfg.refresh_secret, REFRESH_TOKEN_LIFETIME_SECONDS)

    def _sign(self, payload: dict[str, Any], secret: str, lifetime: int) -> str:
        iat = int(self._clock())
        claims = {
            **payload,
            "iat": iat,
            "exp": iat + lifetime,
            "iss": self._cfg.issuer,
            "aud": self._cfg.audience,
        }
        return jwt.encode(claims, secret, algorithm=self._cfg.algorithm)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_access(self, token: str) -> AccessClaims:
        """Verify an access token and return its claims.

        Raises:
            ExpiredToken: If the exp claim has passed (accounting for leeway).
            InvalidToken: If the token is malformed, the signature does not
                match the access secret, iss/aud differ, or identity claims
                are missing.
        """
        decoded = self._decode(token, self._cfg.access_secret)

        uid = decoded.get("uid")
        email = decoded.get("email")
        username = decoded.get("username")
        if not isinstance(uid, str) or not uid:
            raise InvalidToken("Access token missing 'uid'")
        if not isinstance(email, str) or not isinstance(username, str):
            raise InvalidToken("Access token missing profile claims")

        return AccessClaims(
            uid=uid,
            email=email,
            username=username,
            iat=int(decoded["iat"]),
            exp=int(decoded["exp"]),
        )

    def verify_refresh(self, token: str) -> RefreshClaims:
        """Verify a refresh token and return its claims.

        Raises:
            ExpiredToken: If the exp claim has passed.
            InvalidToken: For any other verification failure, including a
                token signed with the access secret.
        """
        decoded = self._decode(token, self._cfg.refresh_secret)

        uid = decoded.get("uid")
        if not isinstance(uid, str) or not uid:
            raise InvalidToken("Refresh token missing 'uid'")

        version = decoded.get("ver")
        if version is not None and (isinstance(version, bool) or not isinstance(version, int)):
            raise InvalidToken("Refresh token 'ver' is not an integer")

        return RefreshClaims(
            uid=uid,
            iat=int(decoded["iat"]),
            exp=int(decoded["exp"]),
            version=version,
        )

    def _decode(self, token: str, secret: str) -> Claims:
        if not token or not isinstance(token, str):
            raise InvalidToken("Token is empty")

        # PyJWT enforces signature, exp, iss and aud; only HMAC is allowed so
        # an attacker cannot switch the algorithm.
        try:
            return jwt.decode(
                token,
                secret,
                algorithms=[self._cfg.algorithm],
                audience=self._cfg.audience,
                issuer=self._cfg.issuer,
                leeway=self._cfg.leeway,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError as e:
            raise ExpiredToken("Token has expired") from e
        except jwt.InvalidTokenError as e:
            raise InvalidToken(f"Token validation failed: {e}") from e

    # ------------------------------------------------------------------
    # Cheap checks
    # ------------------------------------------------------------------

    def is_expired(self, token: str | None) -> bool:
        """Best-effort expiry peek without signature verification.

        Never raises. Returns True on any decode failure or when ``exp`` is
        missing or not numeric. Must not be used for trust decisions.
        """
        return is_token_expired(token, now=self._clock())


def is_token_expired(token: str | None, *, now: float | None = None) -> bool:
    """Module-level variant of TokenCodec.is_expired for holders of no secret."""
    if not token:
        return True
    try:
        decoded = jwt.decode(token, options={"verify_signature": False})
    except Exception:
        return True

    exp = decoded.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return True

    current = time.time() if now is None else now
    return current >= exp
