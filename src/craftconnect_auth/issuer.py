"""Token pair issuance and refresh-time rotation."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .errors import InvalidToken, SubjectNotFound
from .logging import get_logger
from .models import TokenPair

if TYPE_CHECKING:
    from .codec import TokenCodec
    from .models import Identity, RefreshClaims
    from .protocols import ProfileStore, TokenVersionStore

log = get_logger(__name__)


class TokenIssuer:
    """Mints access/refresh pairs from a verified identity.

    Without a version store, issuing is a pure function of the identity and
    the clock. With one, refresh tokens embed the subject's current version
    and ``rotate`` makes each refresh token single-use.

    Usage:
        issuer = TokenIssuer(codec, versions=InMemoryTokenVersions())
        pair = issuer.issue_pair(identity)
        new_pair = issuer.rotate(pair.refresh_token, profiles)
    """

    def __init__(
        self,
        codec: TokenCodec,
        versions: TokenVersionStore | None = None,
    ) -> None:
        self._codec = codec
        self._versions = versions

    @property
    def codec(self) -> TokenCodec:
        return self._codec

    def issue_pair(self, identity: Identity) -> TokenPair:
        """Sign a fresh pair for ``identity``."""
        version = self._versions.current(identity.uid) if self._versions else None
        return self._issue(identity, version)

    def _issue(self, identity: Identity, version: int | None) -> TokenPair:
        return TokenPair(
            access_token=self._codec.sign_access(identity),
            refresh_token=self._codec.sign_refresh(identity.uid, version=version),
        )

    def rotate(self, refresh_token: str, profiles: ProfileStore) -> TokenPair:
        """Exchange a refresh token for a new pair carrying current profile data.

        Steps:
            1. Verify the refresh token (signature, iss/aud, expiry).
            2. Re-resolve email/username from the profile store.
            3. Consume its version when rotation is enabled.
            4. Mint a new pair.

        A profile lookup that fails leaves the token unconsumed, so the
        client can retry with it.

        Raises:
            InvalidToken: Verification failed or the token was already used.
            ExpiredToken: The refresh token expired.
            SubjectNotFound: The subject no longer has a profile.
        """
        claims = self._codec.verify_refresh(refresh_token)

        identity = profiles.get_profile(claims.uid)
        if identity is None:
            raise SubjectNotFound(f"No profile for uid {claims.uid!r}")

        version = self._consume(claims)
        return self._issue(identity, version)

    def _consume(self, claims: RefreshClaims) -> int | None:
        if self._versions is None:
            return None

        # Bump first: with Redis INCR this is the atomic step. A mismatch
        # means replay, and the bump has already revoked the whole chain.
        new_version = self._versions.bump(claims.uid)
        if claims.version is None or new_version != claims.version + 1:
            log.warning(
                "refresh_token_reuse",
                uid=claims.uid,
                presented=claims.version,
                current=new_version,
            )
            raise InvalidToken("Refresh token already used")
        return new_version
