"""Client-side session custody and self-service renewal.

ClientSessionStore keeps the token pair in a small key-value storage (browser
local storage in the web client, a dict or file in Python clients)
and renews it against the refresh endpoint over httpx.

Refresh protocol:
    POST <refresh_url>  {"refreshToken": "..."}
    200 -> {"accessToken", "refreshToken", "expiresIn", "refreshExpiresIn"}

Concurrency:
    Concurrent callers that find the access token expired share one in-flight
    refresh (single-flight). Refresh tokens are single-use when the server
    rotates them, so two parallel refreshes would have one of them fail.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Final

import httpx

from .logging import get_logger
from .refresh_gate import RefreshGate

if TYPE_CHECKING:
    from .protocols import KeyValueStorage

_DEFAULT_TIMEOUT: Final[float] = 10.0
"""Upper bound for one refresh round trip, in seconds."""

log = get_logger(__name__)


class InMemoryStorage:
    """Dict-backed KeyValueStorage."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __len__(self) -> int:
        return len(self._data)


def _now_ms() -> float:
    return time.time() * 1000


class ClientSessionStore:
    """Client-held token pair with expiry bookkeeping and refresh.

    Stored values:
        cc_access_token   the access token
        cc_refresh_token  the refresh token
        cc_token_expiry   absolute access-token expiry, ms since epoch

    ``get_valid_access_token`` is the sanctioned way to obtain a token for an
    outbound call; reading the raw value skips the freshness guarantee.

    Example:
        ```python
        async with httpx.AsyncClient(base_url="https://shop.example") as http:
            store = ClientSessionStore(http_client=http)
            store.set_tokens(pair.access_token, pair.refresh_token, pair.access_lifetime_ms)
            headers = await store.auth_headers()
        ```

    Attributes:
        _storage: KeyValueStorage holding the three values.
        _refresh_url: Refresh endpoint (relative when the client has a base_url).
        _http: Shared httpx client, or None to open one per refresh.
        _timeout: Bound on one refresh round trip, seconds.
        _gate: Back-off after failed refreshes.
        _clock: Milliseconds since epoch.
        _inflight: The refresh currently running, shared by concurrent callers.
        last_rejection_status: HTTP status of the last refresh the server
            refused, None after a success or when the last failure never
            reached the server.
    """

    ACCESS_TOKEN_KEY: Final[str] = "cc_access_token"
    REFRESH_TOKEN_KEY: Final[str] = "cc_refresh_token"
    TOKEN_EXPIRY_KEY: Final[str] = "cc_token_expiry"

    def __init__(
        self,
        storage: KeyValueStorage | None = None,
        *,
        refresh_url: str = "/auth/refresh",
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        gate: RefreshGate | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            storage: KeyValueStorage implementation. Defaults to InMemoryStorage.
            refresh_url: Refresh endpoint URL.
            http_client: Shared async client; when None a short-lived client
                is opened for each refresh.
            timeout: Seconds before a refresh attempt counts as failed.
            gate: Back-off gate. Defaults to a 10 second RefreshGate.
            clock: Milliseconds since epoch. Defaults to wall-clock time.

        Raises:
            ValueError: If timeout is not positive, or refresh_url is relative
                and no http_client (with a base_url) is given.
        """
        if timeout <= 0:
            raise ValueError(f"timeout must be positive, got {timeout}")
        if http_client is None and not httpx.URL(refresh_url).is_absolute_url:
            raise ValueError(
                f"refresh_url {refresh_url!r} is relative; pass an absolute URL "
                "or an http_client with a base_url"
            )

        self._storage = storage if storage is not None else InMemoryStorage()
        self._refresh_url = refresh_url
        self._http = http_client
        self._timeout = timeout
        self._gate = gate or RefreshGate()
        self._clock = clock or _now_ms
        self._inflight: asyncio.Task[bool] | None = None
        self.last_rejection_status: int | None = None

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    def set_tokens(self, access: str, refresh: str, access_lifetime_ms: int) -> None:
        """Store both tokens and the absolute access expiry (now + lifetime)."""
        expiry = int(self._clock() + access_lifetime_ms)
        self._storage.set(self.ACCESS_TOKEN_KEY, access)
        self._storage.set(self.REFRESH_TOKEN_KEY, refresh)
        self._storage.set(self.TOKEN_EXPIRY_KEY, str(expiry))

    def get_access_token(self) -> str | None:
        return self._storage.get(self.ACCESS_TOKEN_KEY)

    def get_refresh_token(self) -> str | None:
        return self._storage.get(self.REFRESH_TOKEN_KEY)

    def is_access_token_expired(self) -> bool:
        """True when no expiry is stored, it is unreadable, or it has passed."""
        raw = self._storage.get(self.TOKEN_EXPIRY_KEY)
        if not raw:
            return True
        try:
            expiry = int(raw)
        except ValueError:
            return True
        return self._clock() >= expiry

    def clear_tokens(self) -> None:
        """Remove all three values. Idempotent."""
        for key in (self.ACCESS_TOKEN_KEY, self.REFRESH_TOKEN_KEY, self.TOKEN_EXPIRY_KEY):
            self._storage.remove(key)

    # ------------------------------------------------------------------
    # Renewal
    # ------------------------------------------------------------------

    async def get_valid_access_token(self) -> str | None:
        """Return a fresh access token, refreshing once if needed.

        Returns:
            The stored token when unexpired; otherwise the token obtained by a
            single refresh cycle, or None when that refresh fails.
        """
        token = self.get_access_token()
        if token and not self.is_access_token_expired():
            return token

        if await self.refresh_tokens():
            return self.get_access_token()
        return None

    async def refresh_tokens(self) -> bool:
        """Exchange the stored refresh token for a new pair.

        Concurrent calls join the refresh already in flight instead of
        starting their own.

        Returns:
            True when new values were stored. False on a missing refresh
            token, back-off, network error, timeout, non-2xx status or a
            malformed body; prior values are left in place in every case.
        """
        task = self._inflight
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh_once())
            self._inflight = task
            task.add_done_callback(self._clear_inflight)

        # shield: one cancelled caller must not cancel the refresh for the rest
        return await asyncio.shield(task)

    def _clear_inflight(self, task: asyncio.Task[bool]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _refresh_once(self) -> bool:
        refresh_token = self.get_refresh_token()
        if not refresh_token:
            return False

        if not self._gate.allow():
            return False

        try:
            response = await asyncio.wait_for(self._post(refresh_token), self._timeout)
        except (httpx.HTTPError, TimeoutError) as e:
            log.warning("token_refresh_unreachable", error=type(e).__name__)
            self.last_rejection_status = None
            self._gate.record_failure()
            return False

        if not response.is_success:
            log.warning("token_refresh_rejected", status=response.status_code)
            self.last_rejection_status = response.status_code
            self._gate.record_failure()
            return False

        pair = _parse_pair(response)
        if pair is None:
            log.warning("token_refresh_malformed_body", status=response.status_code)
            self._gate.record_failure()
            return False

        self.set_tokens(*pair)
        self.last_rejection_status = None
        self._gate.record_success()
        return True

    async def _post(self, refresh_token: str) -> httpx.Response:
        payload = {"refreshToken": refresh_token}
        if self._http is not None:
            return await self._http.post(self._refresh_url, json=payload)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(self._refresh_url, json=payload)

    async def auth_headers(self) -> dict[str, str]:
        """Headers for an outbound API call, with a bearer token when available."""
        headers = {"Content-Type": "application/json"}
        token = await self.get_valid_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers


def _parse_pair(response: httpx.Response) -> tuple[str, str, int] | None:
    """Pull (access, refresh, expiresIn) out of a refresh response, or None."""
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None

    access = data.get("accessToken")
    refresh = data.get("refreshToken")
    expires_in = data.get("expiresIn")
    if not isinstance(access, str) or not access:
        return None
    if not isinstance(refresh, str) or not refresh:
        return None
    if isinstance(expires_in, bool) or not isinstance(expires_in, int) or expires_in <= 0:
        return None
    return access, refresh, expires_in
