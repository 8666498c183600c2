"""
CraftConnect session API - Flask application factory.

Wires the token codec, issuer, cookie store and request authenticator into a
Flask app exposing the auth and payment-verification endpoints.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from flask import Flask, current_app, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException, InternalServerError

from .authenticator import AuthExtension
from .codec import TokenCodec
from .config import AuthConfig
from .gateway import create_auth_blueprint
from .issuer import TokenIssuer
from .logging import get_logger
from .payments import create_payments_blueprint
from .profiles import InMemoryProfileStore
from .protocols import ProfileStore, TokenVersionStore
from .server_store import ServerSessionStore

_SERVICES_KEY: Final[str] = "craftconnect_services"

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class AuthServices:
    """Collaborators built by create_app, reachable via ``get_services()``."""

    config: AuthConfig
    codec: TokenCodec
    issuer: TokenIssuer
    profiles: ProfileStore
    server_store: ServerSessionStore
    auth: AuthExtension


def get_services(app: Flask | None = None) -> AuthServices:
    """Return the services registered on ``app`` (default: the current app)."""
    return (app or current_app).extensions[_SERVICES_KEY]


def create_app(
    config: AuthConfig | None = None,
    *,
    profiles: ProfileStore | None = None,
    versions: TokenVersionStore | None = None,
    codec: TokenCodec | None = None,
) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config: Session configuration. Defaults to ``AuthConfig.from_env()``.
        profiles: Profile lookup used at refresh time. Defaults to an empty
            in-memory store.
        versions: Token version store; enables refresh-token rotation.
        codec: Pre-built codec (tests inject one with a skewed clock).

    Returns:
        Flask: Configured Flask application instance
    """
    cfg = config or AuthConfig.from_env()
    app = Flask(__name__)

    if cfg.cors_origins:
        CORS(
            app,
            origins=list(cfg.cors_origins),
            supports_credentials=True,
            allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
            methods=["GET", "POST", "OPTIONS"],
            max_age=3600,
        )

    token_codec = codec or TokenCodec(cfg)
    issuer = TokenIssuer(token_codec, versions=versions)
    profile_store = profiles if profiles is not None else InMemoryProfileStore()
    server_store = ServerSessionStore(issuer, profile_store, secure=cfg.production)

    auth = AuthExtension(verifier=token_codec)
    auth.init_app(app)

    app.extensions[_SERVICES_KEY] = AuthServices(
        config=cfg,
        codec=token_codec,
        issuer=issuer,
        profiles=profile_store,
        server_store=server_store,
        auth=auth,
    )

    app.register_blueprint(
        create_auth_blueprint(
            issuer=issuer,
            profiles=profile_store,
            server_store=server_store,
            auth=auth,
        )
    )
    app.register_blueprint(create_payments_blueprint(cfg.payment_key_secret))

    # ==================== Error Handlers ====================

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        """Render every HTTP error as JSON."""
        return jsonify({"error": error.description}), error.code

    @app.errorhandler(InternalServerError)
    def internal_error(error: InternalServerError):
        """Explicit aborts keep their message; crashes get a generic one."""
        if error.original_exception is not None:
            log.error(
                "unhandled_error",
                error=type(error.original_exception).__name__,
                exc_info=error.original_exception,
            )
            return jsonify({"error": "An unexpected error occurred"}), 500
        return jsonify({"error": error.description}), 500

    log.info("app_created", production=cfg.production, rotation=versions is not None)
    return app
