"""Protocol definitions for the session core.

This module defines structural interfaces using Protocol (PEP 544) for:
- Access-token verification
- Token extraction from requests
- Client-side key-value storage
- Profile lookup
- Refresh-token version tracking

Using protocols allows for duck-typing and easier testing/mocking without
requiring explicit inheritance. Any class that implements the required methods
satisfies the protocol.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import AccessClaims, Identity

# ============================================================================
# Type Aliases
# ============================================================================

type Claims = Mapping[str, Any]
"""Represents a decoded JWT payload as an immutable mapping."""

type ViewFunc = Callable[..., Any]
"""Type alias for Flask view functions (callable that takes any args and returns any)."""


# ============================================================================
# Core Protocols
# ============================================================================


class AccessVerifier(Protocol):
    """Protocol for anything that can turn an access token into claims.

    TokenCodec is the production implementation; tests substitute stubs.
    """

    def verify_access(self, token: str) -> AccessClaims:
        """Verify an access token and return its claims.

        Raises:
            InvalidToken: Token is malformed, signature invalid, or claims invalid
            ExpiredToken: Token's exp claim has passed
        """
        ...


class Extractor(Protocol):
    """Protocol for extracting a raw token from the current Flask request."""

    def extract(self) -> str:
        """Extract the raw JWT string from the Flask request.

        Raises:
            MissingToken: Token not found or improperly formatted.
        """
        ...


class KeyValueStorage(Protocol):
    """Small string key-value interface backing the client session store.

    Mirrors the subset of browser storage the session needs, so the same
    store logic runs against an in-memory map in tests or a file/keyring
    backend in a desktop client.
    """

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None:
        """Remove a key. Must not raise when the key is absent."""
        ...


class ProfileStore(Protocol):
    """Read access to the user profile documents.

    The profile store is the authority for email/username at refresh time.
    """

    def get_profile(self, uid: str) -> Identity | None:
        """Return the current identity for ``uid`` or None if it does not exist."""
        ...


class TokenVersionStore(Protocol):
    """Per-subject refresh-token version counter used for rotation.

    A refresh token is accepted only while its embedded version equals the
    subject's current version; using it bumps the version, which invalidates
    every refresh token minted before.
    """

    def current(self, uid: str) -> int:
        """Return the current version for ``uid`` (0 if never bumped)."""
        ...

    def bump(self, uid: str) -> int:
        """Increment and return the version for ``uid``."""
        ...
