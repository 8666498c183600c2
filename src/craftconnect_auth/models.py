"""Value types shared across the session core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final

ACCESS_TOKEN_LIFETIME_SECONDS: Final[int] = 15 * 60
"""Access tokens live for 15 minutes."""

REFRESH_TOKEN_LIFETIME_SECONDS: Final[int] = 7 * 24 * 60 * 60
"""Refresh tokens live for 7 days."""


@dataclass(frozen=True, slots=True)
class Identity:
    """A resolved user identity.

    Produced by the identity provider at login, by the profile store at
    refresh time, and by the request authenticator from verified claims.
    """

    uid: str
    email: str
    username: str

    def to_dict(self) -> dict[str, str]:
        return {"uid": self.uid, "email": self.email, "username": self.username}


@dataclass(frozen=True, slots=True)
class AccessClaims:
    """Verified payload of an access token."""

    uid: str
    email: str
    username: str
    iat: int
    exp: int

    @property
    def identity(self) -> Identity:
        return Identity(uid=self.uid, email=self.email, username=self.username)


@dataclass(frozen=True, slots=True)
class RefreshClaims:
    """Verified payload of a refresh token.

    Attributes:
        version: Token version embedded at issuance, or None when the token
            was minted without rotation enabled.
    """

    uid: str
    iat: int
    exp: int
    version: int | None = None


@dataclass(frozen=True, slots=True)
class TokenPair:
    """An access/refresh token pair and their lifetimes in milliseconds."""

    access_token: str
    refresh_token: str
    access_lifetime_ms: int = ACCESS_TOKEN_LIFETIME_SECONDS * 1000
    refresh_lifetime_ms: int = REFRESH_TOKEN_LIFETIME_SECONDS * 1000

    def to_dict(self) -> dict[str, Any]:
        """Wire form returned by the refresh endpoint."""
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.access_lifetime_ms,
            "refreshExpiresIn": self.refresh_lifetime_ms,
        }


@dataclass(frozen=True, slots=True)
class SessionOutcome:
    """Outcome of establishing (or tearing down) a session on both sides.

    The server side may fail while the client side succeeds; the client-held
    token stays usable, so the caller decides whether that is acceptable.
    """

    client_ok: bool
    server_ok: bool
    pair: TokenPair | None = None

    @property
    def complete(self) -> bool:
        return self.client_ok and self.server_ok
