"""Client-side session lifecycle.

SessionCoordinator drives what a signed-in client does around the token
stores: establish a session once the identity provider has confirmed the
user, restore it on start-up, keep it fresh, and tear it down on logout.

Both halves of a session (client storage and server cookies) are reported
separately through SessionOutcome; a failed server call is never swallowed.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

import httpx

from .errors import AuthError
from .logging import get_logger
from .models import SessionOutcome

if TYPE_CHECKING:
    from .client_store import ClientSessionStore
    from .issuer import TokenIssuer
    from .models import Identity
    from .protocols import AccessVerifier

# Refresh responses that mean the refresh token itself is dead.
_IRRECOVERABLE_STATUSES: Final[frozenset[int]] = frozenset({401, 403, 404})

log = get_logger(__name__)


class SessionCoordinator:
    """Establish, restore, refresh and end a client session.

    Attributes:
        session_active: True while the client holds a usable session. Flips
            False as soon as a refresh fails; there is no degraded state.
    """

    def __init__(
        self,
        store: ClientSessionStore,
        http_client: httpx.AsyncClient,
        *,
        issuer: TokenIssuer | None = None,
        verifier: AccessVerifier | None = None,
        session_url: str = "/auth/session",
        logout_url: str = "/auth/logout",
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Client token custody.
            http_client: Client used for the session and logout endpoints.
            issuer: Mints pairs in ``establish``; required only for that call.
            verifier: Verifies the stored token in ``restore``. Without one,
                restore trusts the stored expiry alone.
            session_url: Session-establishment endpoint.
            logout_url: Logout endpoint.
        """
        self._store = store
        self._http = http_client
        self._issuer = issuer
        self._verifier = verifier
        self._session_url = session_url
        self._logout_url = logout_url
        self.session_active = False

    @property
    def access_token(self) -> str | None:
        return self._store.get_access_token() if self.session_active else None

    async def establish(self, identity: Identity) -> SessionOutcome:
        """Mint a pair for ``identity`` and persist it on both sides.

        Raises:
            RuntimeError: If the coordinator was built without an issuer.
        """
        if self._issuer is None:
            raise RuntimeError("SessionCoordinator.establish needs a TokenIssuer")

        pair = self._issuer.issue_pair(identity)
        self._store.set_tokens(pair.access_token, pair.refresh_token, pair.access_lifetime_ms)
        self.session_active = True

        server_ok = await self._post(
            self._session_url,
            {"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
        )
        if not server_ok:
            log.warning("server_session_not_established", uid=identity.uid)

        return SessionOutcome(client_ok=True, server_ok=server_ok, pair=pair)

    def restore(self) -> bool:
        """Resume a session from storage on start-up.

        A stored token that is unexpired and verifies marks the session
        active. A stored token that fails verification is cleared.

        Returns:
            Whether the session is active afterwards.
        """
        token = self._store.get_access_token()
        if not token or self._store.is_access_token_expired():
            self.session_active = False
            return False

        if self._verifier is not None:
            try:
                self._verifier.verify_access(token)
            except AuthError:
                self._store.clear_tokens()
                self.session_active = False
                return False

        self.session_active = True
        return True

    async def refresh_session(self) -> bool:
        """Refresh now, flipping the session inactive on failure.

        Storage is cleared when the server refused the refresh token; after a
        network failure the tokens stay so a later attempt can still succeed.
        """
        if await self._store.refresh_tokens():
            self.session_active = True
            return True

        self.session_active = False
        if self._store.last_rejection_status in _IRRECOVERABLE_STATUSES:
            self._store.clear_tokens()
        return False

    async def check_and_refresh(self) -> None:
        """Periodic tick: refresh only an active session whose token expired."""
        if self.session_active and self._store.is_access_token_expired():
            await self.refresh_session()

    async def logout(self) -> SessionOutcome:
        """Clear client storage and ask the server to drop its cookies."""
        self._store.clear_tokens()
        self.session_active = False
        server_ok = await self._post(self._logout_url, None)
        return SessionOutcome(client_ok=True, server_ok=server_ok)

    async def _post(self, url: str, payload: dict[str, str] | None) -> bool:
        try:
            response = await self._http.post(url, json=payload)
        except httpx.HTTPError as e:
            log.warning("session_endpoint_unreachable", url=url, error=type(e).__name__)
            return False
        if not response.is_success:
            log.warning("session_endpoint_rejected", url=url, status=response.status_code)
            return False
        return True
