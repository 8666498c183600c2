"""HTTP endpoints for session establishment, refresh and teardown.

Session state machine, from the gateway's point of view:

    [No Session]  --login identity verified externally-->  [Established]
    [Established] --access token valid------------------>  [Established]
    [Established] --access expired, refresh valid------->  [Established] (rotated)
    [Established] --refresh expired/invalid------------->  [No Session]
    [Established] --explicit logout--------------------->  [No Session]

Endpoints:
    POST /auth/session   store an issued pair as HTTP-only cookies
    POST /auth/refresh   exchange a refresh token for a new pair
    POST /auth/logout    clear cookies (idempotent)
    GET|POST /protected  demonstrates the mandatory authenticator
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from flask import Blueprint, abort, g, jsonify, request

from .errors import AuthError, MalformedRequest, SubjectNotFound
from .extractors import REFRESH_COOKIE
from .logging import get_logger

if TYPE_CHECKING:
    from .authenticator import AuthExtension
    from .issuer import TokenIssuer
    from .protocols import ProfileStore
    from .server_store import ServerSessionStore

log = get_logger(__name__)


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _require_fields(body: dict[str, Any], *fields: str) -> tuple[str, ...]:
    values = tuple(body.get(f) for f in fields)
    if not all(isinstance(v, str) and v for v in values):
        raise MalformedRequest(f"Missing field(s): {', '.join(fields)}")
    return values  # type: ignore[return-value]


def create_auth_blueprint(
    *,
    issuer: TokenIssuer,
    profiles: ProfileStore,
    server_store: ServerSessionStore,
    auth: AuthExtension,
) -> Blueprint:
    """Build the auth blueprint around the given collaborators.

    Args:
        issuer: Mints and rotates token pairs.
        profiles: Source of current email/username on refresh.
        server_store: Cookie custody.
        auth: Request authenticator guarding ``/protected``.

    Returns:
        Blueprint: register with ``app.register_blueprint(bp)``.
    """
    bp = Blueprint("auth", __name__)

    @bp.post("/auth/session")
    def establish_session():
        """Persist an already-issued pair as server cookies."""
        try:
            access_token, refresh_token = _require_fields(
                _json_body(), "accessToken", "refreshToken"
            )
        except MalformedRequest:
            abort(400, description="Missing tokens")

        try:
            resp = jsonify({"success": True})
            server_store.set_session_cookies(resp, access_token, refresh_token)
        except Exception:
            log.exception("session_create_failed")
            abort(500, description="Failed to create session")

        return resp

    @bp.post("/auth/refresh")
    def refresh_session():
        """Rotate a refresh token into a new pair with current profile data.

        The token comes from the JSON body; browsers on server-rendered pages
        may rely on the refresh cookie instead.
        """
        body = _json_body()
        refresh_token = body.get("refreshToken") or request.cookies.get(REFRESH_COOKIE)

        if not refresh_token:
            abort(400, description="Refresh token required")

        try:
            pair = issuer.rotate(str(refresh_token), profiles)
        except SubjectNotFound:
            abort(404, description="User not found")
        except AuthError as e:
            log.info("token_refresh_rejected", reason=str(e))
            abort(401, description="Failed to refresh token")
        except Exception:
            log.exception("token_refresh_error")
            abort(500, description="Failed to refresh token")

        resp = jsonify(pair.to_dict())
        server_store.set_session_cookies(resp, pair.access_token, pair.refresh_token)
        return resp

    @bp.post("/auth/logout")
    def logout():
        """Clear server cookies. Logging out twice is not an error."""
        try:
            resp = jsonify({"success": True})
            server_store.clear_session_cookies(resp)
        except Exception:
            log.exception("logout_failed")
            abort(500, description="Failed to logout")
        return resp

    @bp.route("/protected", methods=["GET", "POST"])
    @auth.require()
    def protected():
        """Echo the resolved identity of a valid access token."""
        return jsonify(
            {
                "message": "Protected endpoint accessed successfully",
                "user": g.user.to_dict(),
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    return bp
