"""
CraftConnect dual-token session core.

High-level flow
---------------
1. The identity provider confirms a user; the app resolves `{uid, email, username}`.
2. `TokenIssuer.issue_pair(identity)` mints a 15-minute access token and a
   7-day refresh token, signed under two distinct secrets by `TokenCodec`.
3. `ClientSessionStore` keeps the pair client-side; `POST /auth/session`
   mirrors it into HTTP-only cookies via `ServerSessionStore`.
4. Each API call carries the access token (`Authorization: Bearer` or the
   `access_token` cookie); `AuthExtension.require()` verifies it and stores
   the identity in `flask.g.user`.
5. Near expiry, `ClientSessionStore.get_valid_access_token()` runs one shared
   refresh against `POST /auth/refresh`, which re-resolves the profile and
   mints a new pair (single-use when a `TokenVersionStore` is configured).

Security notes
--------------
- Never trust claims until signature verification succeeds.
- Access and refresh secrets must differ (key separation).
- Validate `iss` and `aud` so tokens from another app context are rejected.
- `is_expired` peeks without verifying; use it for scheduling only.

Example usage
-------------

.. code-block:: python

    from craftconnect_auth import AuthConfig, InMemoryTokenVersions, create_app

    app = create_app(AuthConfig.from_env(), versions=InMemoryTokenVersions())
"""

from .app import AuthServices, create_app, get_services
from .authenticator import AuthExtension, current_identity
from .client_store import ClientSessionStore, InMemoryStorage
from .codec import TokenCodec, is_token_expired
from .config import AuthConfig
from .coordinator import SessionCoordinator
from .errors import (
    AuthError,
    ExpiredToken,
    InvalidToken,
    MalformedRequest,
    MissingToken,
    SubjectNotFound,
)
from .extractors import (
    BearerExtractor,
    ChainExtractor,
    CookieExtractor,
    HeaderThenCookieExtractor,
)
from .gateway import create_auth_blueprint
from .issuer import TokenIssuer
from .models import AccessClaims, Identity, RefreshClaims, SessionOutcome, TokenPair
from .payments import create_payments_blueprint, verify_payment_signature
from .profiles import InMemoryProfileStore
from .protocols import (
    AccessVerifier,
    Claims,
    Extractor,
    KeyValueStorage,
    ProfileStore,
    TokenVersionStore,
    ViewFunc,
)
from .refresh_gate import RefreshGate
from .server_store import ServerSessionStore
from .token_versions import InMemoryTokenVersions, RedisTokenVersions

__all__ = [
    # App
    "AuthServices",
    "create_app",
    "get_services",
    # Config
    "AuthConfig",
    # Errors
    "AuthError",
    "ExpiredToken",
    "InvalidToken",
    "MalformedRequest",
    "MissingToken",
    "SubjectNotFound",
    # Models
    "AccessClaims",
    "Identity",
    "RefreshClaims",
    "SessionOutcome",
    "TokenPair",
    # Protocols
    "AccessVerifier",
    "Claims",
    "Extractor",
    "KeyValueStorage",
    "ProfileStore",
    "TokenVersionStore",
    "ViewFunc",
    # Tokens
    "TokenCodec",
    "TokenIssuer",
    "is_token_expired",
    "InMemoryTokenVersions",
    "RedisTokenVersions",
    # Extractors
    "BearerExtractor",
    "ChainExtractor",
    "CookieExtractor",
    "HeaderThenCookieExtractor",
    # Server side
    "AuthExtension",
    "current_identity",
    "ServerSessionStore",
    "create_auth_blueprint",
    "create_payments_blueprint",
    "verify_payment_signature",
    "InMemoryProfileStore",
    # Client side
    "ClientSessionStore",
    "InMemoryStorage",
    "RefreshGate",
    "SessionCoordinator",
]
