"""Flask request authentication for the session core.

This module provides the integration point between the token codec and Flask
views: two decorators that resolve the caller's identity from the request.

Key Components:
- AuthExtension.require: mandatory authentication, rejects with 401
- AuthExtension.optional: personalizes when possible, never rejects
- current_identity: accessor for the identity resolved for this request

Security Model:
1. Extract token from request (Authorization header first, then cookie)
2. Verify token signature and claims
3. Store the identity in flask.g.user and the claims in flask.g.jwt
4. Convert auth errors to HTTP 401 (mandatory variant only)
"""

from __future__ import annotations

from functools import wraps
from typing import TYPE_CHECKING, Any, Final

from flask import Flask, abort, g

from .errors import AuthError, MissingToken
from .extractors import HeaderThenCookieExtractor
from .logging import get_logger

if TYPE_CHECKING:
    from .models import AccessClaims, Identity
    from .protocols import AccessVerifier, Extractor, ViewFunc

_EXT_KEY: Final[str] = "craftconnect_auth"
"""Flask extensions registry key for AuthExtension."""

log = get_logger(__name__)


class AuthExtension:
    """
    Flask decorator glue for access-token authentication.

    Responsibilities:
    - Extract token from request (header over cookie)
    - Verify token (AccessVerifier, normally TokenCodec)
    - Store the resolved identity in `flask.g.user` and claims in `flask.g.jwt`
    - Convert domain errors to HTTP responses (abort), mandatory variant only

    Pattern:
        auth = AuthExtension(codec)
        auth.init_app(app)

    Usage:
        @app.get("/me")
        @auth.require()
        def me(): ...

        @app.get("/products")
        @auth.optional()
        def products(): ...
    """

    def __init__(
        self,
        verifier: AccessVerifier,
        extractor: Extractor | None = None,
    ) -> None:
        self._verifier: AccessVerifier = verifier
        self._extractor: Extractor = extractor or HeaderThenCookieExtractor()

    def init_app(
        self,
        app: Flask,
        *,
        verifier: AccessVerifier | None = None,
        extractor: Extractor | None = None,
    ) -> None:
        """Register the extension on ``app``.

        Args:
            app (Flask): The Flask application instance.
            verifier (AccessVerifier | None, optional): Replacement verifier. Defaults to None.
            extractor (Extractor | None, optional): Replacement extractor. Defaults to None.
        """
        if verifier is not None:
            self._verifier = verifier
        if extractor is not None:
            self._extractor = extractor

        app.extensions[_EXT_KEY] = self

    def _resolve(self) -> AccessClaims:
        """Extract and verify the request's access token.

        Raises:
            MissingToken: No token in header or cookie.
            InvalidToken: Token present but not acceptable (expired included).
        """
        token = self._extractor.extract()
        return self._verifier.verify_access(token)

    def require(self):
        """Decorator demanding a valid access token.

        Error mapping:
        - ``MissingToken``              -> HTTP 401 ("Authentication required")
        - ``InvalidToken``/``ExpiredToken`` -> HTTP 401 ("Invalid token")
        - Any other error               -> HTTP 401 ("Invalid token")

        Side Effects:
            - Writes ``flask.g.user`` and ``flask.g.jwt`` before calling the view.
            - May terminate request handling early via ``flask.abort``.
        """

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    claims = self._resolve()
                except MissingToken:
                    abort(401, description=MissingToken.description)
                except AuthError as e:
                    log.info("access_token_rejected", reason=str(e))
                    abort(401, description="Invalid token")
                except Exception:
                    log.exception("access_token_verification_error")
                    abort(401, description="Invalid token")

                g.jwt = claims
                g.user = claims.identity
                return view(*args, **kwargs)

            return wrapper

        return decorator

    def optional(self):
        """Decorator that attaches an identity when one can be verified.

        Absence of a token or a failed verification (for any reason) both
        continue to the view with ``flask.g.user`` set to None; nothing is
        rejected here.
        """

        def decorator(view: ViewFunc) -> ViewFunc:
            @wraps(view)
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    claims = self._resolve()
                except MissingToken:
                    claims = None
                except AuthError as e:
                    log.debug("optional_auth_ignored_token", reason=str(e))
                    claims = None
                except Exception:
                    log.exception("access_token_verification_error")
                    claims = None

                g.jwt = claims
                g.user = claims.identity if claims is not None else None
                return view(*args, **kwargs)

            return wrapper

        return decorator


def current_identity() -> Identity | None:
    """Identity resolved by AuthExtension for the current request, if any."""
    return g.get("user")
