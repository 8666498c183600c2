"""Token extraction strategies from HTTP requests.

This module provides implementations of the Extractor protocol for retrieving
JWT tokens from different parts of an HTTP request.

Implementations:
- BearerExtractor: Extracts from Authorization: Bearer <token> header
- CookieExtractor: Extracts from HTTP cookies (browser default path)
- HeaderThenCookieExtractor: Header first, cookie fallback (used by the
  request authenticator)

Security Considerations:
- A programmatic client that sets the header must never be overridden by a
  stale cookie living in the same browser context, hence header precedence
- Cookie-based extraction relies on SameSite=Lax for CSRF mitigation
- Never extract tokens from URL query parameters (visible in logs/history)
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Final

from flask import request

from .errors import MissingToken

if TYPE_CHECKING:
    from .protocols import Extractor

ACCESS_COOKIE: Final[str] = "access_token"
REFRESH_COOKIE: Final[str] = "refresh_token"


class BearerExtractor:
    """Extracts JWT from Authorization header using Bearer scheme.

    Expects requests with header format:
        Authorization: Bearer <token>
    """

    def extract(self) -> str:
        """Extract JWT from Authorization: Bearer header.

        Returns:
            Raw JWT string (without "Bearer " prefix).

        Raises:
            MissingToken: If Authorization header is missing or doesn't use Bearer scheme.
        """
        auth_header = request.headers.get("Authorization", "").strip()

        if not auth_header:
            raise MissingToken("Missing Authorization header")

        parts = auth_header.split(" ", 1)

        if len(parts) != 2:
            raise MissingToken("Invalid Authorization header format (expected 'Bearer <token>')")

        scheme, token = parts

        if scheme.lower() != "bearer":
            raise MissingToken("Invalid authorization scheme (expected 'Bearer')")

        token = token.strip()
        if not token:
            raise MissingToken("Bearer token is empty")

        return token


class CookieExtractor:
    """Extracts JWT from an HTTP cookie.

    Attributes:
        _name: Name of the cookie containing the JWT.
    """

    def __init__(self, cookie_name: str = ACCESS_COOKIE) -> None:
        """Initialize cookie extractor.

        Args:
            cookie_name: Name of the cookie to read. Defaults to "access_token".

        Raises:
            ValueError: If cookie_name is empty.
        """
        if not cookie_name or not cookie_name.strip():
            raise ValueError("cookie_name cannot be empty")
        self._name = cookie_name

    def extract(self) -> str:
        """Extract JWT from specified cookie.

        Raises:
            MissingToken: If cookie is not present in request.
        """
        token = request.cookies.get(self._name)

        if not token:
            raise MissingToken(f"Missing cookie '{self._name}'")

        return token


class ChainExtractor:
    """Tries extractors in order and returns the first token found.

    Only MissingToken moves on to the next extractor; the chain raises
    MissingToken when every extractor came up empty.
    """

    def __init__(self, extractors: Sequence[Extractor]) -> None:
        if not extractors:
            raise ValueError("ChainExtractor needs at least one extractor")
        self._extractors = tuple(extractors)

    def extract(self) -> str:
        for extractor in self._extractors:
            try:
                return extractor.extract()
            except MissingToken:
                continue
        raise MissingToken("No token in request")


class HeaderThenCookieExtractor(ChainExtractor):
    """Authorization: Bearer header first, access cookie as fallback."""

    def __init__(self, cookie_name: str = ACCESS_COOKIE) -> None:
        super().__init__((BearerExtractor(), CookieExtractor(cookie_name)))
