"""Server-side session custody in HTTP-only cookies.

Reads come from the current Flask request, writes go onto the Flask response
being built. Every operation that can fail returns None instead of raising:
these calls sit on request-handling paths, and "unauthenticated" is a normal
outcome there, not a 500.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import request

from .errors import AuthError
from .extractors import ACCESS_COOKIE, REFRESH_COOKIE
from .logging import get_logger
from .models import ACCESS_TOKEN_LIFETIME_SECONDS, REFRESH_TOKEN_LIFETIME_SECONDS

if TYPE_CHECKING:
    from flask import Response

    from .issuer import TokenIssuer
    from .models import AccessClaims, TokenPair
    from .protocols import ProfileStore

log = get_logger(__name__)


class ServerSessionStore:
    """Cookie-backed session record.

    Cookie attributes:
        HttpOnly, SameSite=Lax, Path=/, Secure when ``secure`` is True, and
        Max-Age equal to the token's lifetime in seconds.

    Attributes:
        _issuer: Mints replacement pairs on refresh.
        _profiles: Re-resolves email/username on refresh.
        _secure: Whether cookies carry the Secure attribute (production).
    """

    def __init__(
        self,
        issuer: TokenIssuer,
        profiles: ProfileStore,
        *,
        secure: bool,
    ) -> None:
        self._issuer = issuer
        self._profiles = profiles
        self._secure = secure

    def set_session_cookies(self, response: Response, access: str, refresh: str) -> None:
        """Write both session cookies onto ``response``."""
        self._set(response, ACCESS_COOKIE, access, ACCESS_TOKEN_LIFETIME_SECONDS)
        self._set(response, REFRESH_COOKIE, refresh, REFRESH_TOKEN_LIFETIME_SECONDS)

    def _set(self, response: Response, name: str, value: str, max_age: int) -> None:
        response.set_cookie(
            name,
            value,
            max_age=max_age,
            httponly=True,
            secure=self._secure,
            samesite="Lax",
            path="/",
        )

    def get_session_from_cookies(self) -> AccessClaims | None:
        """Verify the access cookie of the current request.

        Returns:
            The verified claims, or None when the cookie is absent or fails
            verification. Never raises.
        """
        token = request.cookies.get(ACCESS_COOKIE)
        if not token:
            return None
        try:
            return self._issuer.codec.verify_access(token)
        except AuthError:
            return None

    def clear_session_cookies(self, response: Response) -> None:
        """Expire both session cookies. Safe to call when none are set."""
        for name in (ACCESS_COOKIE, REFRESH_COOKIE):
            response.delete_cookie(
                name,
                path="/",
                secure=self._secure,
                httponly=True,
                samesite="Lax",
            )

    def refresh_access_token(self, response: Response) -> TokenPair | None:
        """Rotate the session held in the refresh cookie.

        Reads the refresh cookie, verifies it, re-resolves the profile, mints
        a new pair and writes it onto ``response``.

        Returns:
            The new pair, or None on any failure (missing cookie, invalid or
            reused token, unknown subject, unexpected error).
        """
        token = request.cookies.get(REFRESH_COOKIE)
        if not token:
            return None
        try:
            pair = self._issuer.rotate(token, self._profiles)
        except AuthError as e:
            log.info("cookie_refresh_rejected", reason=str(e))
            return None
        except Exception:
            log.exception("cookie_refresh_failed")
            return None

        self.set_session_cookies(response, pair.access_token, pair.refresh_token)
        return pair
