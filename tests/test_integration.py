"""
Integration tests for the session API.

Drives the Flask app end to end through its test client: session
establishment, refresh, logout, the protected endpoint and payment checks.
"""

import hashlib
import hmac

import pytest
from flask import Flask, jsonify

from craftconnect_auth import (
    AuthConfig,
    Identity,
    InMemoryProfileStore,
    InMemoryTokenVersions,
    TokenCodec,
    TokenIssuer,
    create_app,
    get_services,
)


def _cookie(client, name: str) -> str | None:
    cookie = client.get_cookie(name)
    return cookie.value if cookie is not None else None


class TestSessionEndpoint:
    """POST /auth/session."""

    def test_sets_both_cookies(self, app: Flask, issuer: TokenIssuer, identity: Identity):
        client = app.test_client()
        pair = issuer.issue_pair(identity)

        r = client.post(
            "/auth/session",
            json={"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
        )

        assert r.status_code == 200
        assert r.get_json() == {"success": True}
        assert _cookie(client, "access_token") == pair.access_token
        assert _cookie(client, "refresh_token") == pair.refresh_token

    @pytest.mark.parametrize(
        "body",
        [{}, {"accessToken": "a"}, {"refreshToken": "r"}, {"accessToken": "", "refreshToken": "r"}],
    )
    def test_missing_tokens(self, app: Flask, body: dict):
        client = app.test_client()

        r = client.post("/auth/session", json=body)

        assert r.status_code == 400
        assert r.get_json() == {"error": "Missing tokens"}
        assert _cookie(client, "access_token") is None

    def test_non_json_body(self, app: Flask):
        r = app.test_client().post("/auth/session", data="nope", content_type="text/plain")

        assert r.status_code == 400


class TestRefreshEndpoint:
    """POST /auth/refresh."""

    def test_refresh_after_access_expiry(
        self,
        app: Flask,
        aged_codec: TokenCodec,
        codec: TokenCodec,
        identity: Identity,
        profiles: InMemoryProfileStore,
    ):
        client = app.test_client()
        aged = TokenIssuer(aged_codec).issue_pair(identity)
        profiles.upsert(identity.uid, email="alice@new.example")

        # the aged access token is refused
        r = client.get("/protected", headers={"Authorization": f"Bearer {aged.access_token}"})
        assert r.status_code == 401
        assert r.get_json() == {"error": "Invalid token"}

        r = client.post("/auth/refresh", json={"refreshToken": aged.refresh_token})

        assert r.status_code == 200
        body = r.get_json()
        assert body["expiresIn"] == 900_000
        assert body["refreshExpiresIn"] == 604_800_000
        claims = codec.verify_access(body["accessToken"])
        assert claims.email == "alice@new.example"
        assert claims.username == identity.username
        assert _cookie(client, "access_token") == body["accessToken"]

        r = client.get("/protected", headers={"Authorization": f"Bearer {body['accessToken']}"})
        assert r.status_code == 200

    def test_refresh_token_from_cookie(self, app: Flask, issuer: TokenIssuer, identity: Identity):
        client = app.test_client()
        client.set_cookie("refresh_token", issuer.issue_pair(identity).refresh_token)

        r = client.post("/auth/refresh")

        assert r.status_code == 200
        assert "accessToken" in r.get_json()

    def test_missing_refresh_token(self, app: Flask):
        r = app.test_client().post("/auth/refresh", json={})

        assert r.status_code == 400
        assert r.get_json() == {"error": "Refresh token required"}

    def test_invalid_refresh_token(self, app: Flask):
        r = app.test_client().post("/auth/refresh", json={"refreshToken": "garbage"})

        assert r.status_code == 401
        assert r.get_json() == {"error": "Failed to refresh token"}

    def test_access_token_is_not_a_refresh_token(
        self, app: Flask, issuer: TokenIssuer, identity: Identity
    ):
        pair = issuer.issue_pair(identity)

        r = app.test_client().post("/auth/refresh", json={"refreshToken": pair.access_token})

        assert r.status_code == 401

    def test_expired_refresh_token(self, app: Flask, config: AuthConfig, identity: Identity):
        old = TokenCodec(config, clock=lambda: 1_000_000).sign_refresh(identity.uid)

        r = app.test_client().post("/auth/refresh", json={"refreshToken": old})

        assert r.status_code == 401

    def test_unknown_subject(self, app: Flask, issuer: TokenIssuer):
        ghost = issuer.issue_pair(Identity("ghost", "g@example.com", "ghost"))

        r = app.test_client().post("/auth/refresh", json={"refreshToken": ghost.refresh_token})

        assert r.status_code == 404
        assert r.get_json() == {"error": "User not found"}

    def test_unexpected_error_is_500(
        self, config: AuthConfig, identity: Identity, issuer: TokenIssuer
    ):
        class BrokenProfiles:
            def get_profile(self, uid):
                raise ConnectionError("profile database unreachable")

        app = create_app(config, profiles=BrokenProfiles())
        pair = issuer.issue_pair(identity)

        r = app.test_client().post("/auth/refresh", json={"refreshToken": pair.refresh_token})

        assert r.status_code == 500
        assert r.get_json() == {"error": "Failed to refresh token"}


class TestRotation:
    """Single-use refresh tokens when a version store is configured."""

    def test_reuse_rejected(self, rotating_app: Flask, identity: Identity):
        issuer = get_services(rotating_app).issuer
        client = rotating_app.test_client()
        pair = issuer.issue_pair(identity)

        first = client.post("/auth/refresh", json={"refreshToken": pair.refresh_token})
        second = client.post("/auth/refresh", json={"refreshToken": pair.refresh_token})

        assert first.status_code == 200
        assert second.status_code == 401

    def test_profile_outage_does_not_consume_token(
        self, config: AuthConfig, identity: Identity, profiles: InMemoryProfileStore
    ):
        class FlakyProfiles:
            def __init__(self):
                self.failures = 1

            def get_profile(self, uid):
                if self.failures:
                    self.failures -= 1
                    raise ConnectionError("profile database unreachable")
                return profiles.get_profile(uid)

        app = create_app(config, profiles=FlakyProfiles(), versions=InMemoryTokenVersions())
        client = app.test_client()
        pair = get_services(app).issuer.issue_pair(identity)

        first = client.post("/auth/refresh", json={"refreshToken": pair.refresh_token})
        retry = client.post("/auth/refresh", json={"refreshToken": pair.refresh_token})

        assert first.status_code == 500
        assert retry.status_code == 200

    def test_successor_works(self, rotating_app: Flask, identity: Identity):
        issuer = get_services(rotating_app).issuer
        client = rotating_app.test_client()
        pair = issuer.issue_pair(identity)

        first = client.post("/auth/refresh", json={"refreshToken": pair.refresh_token})
        nxt = client.post(
            "/auth/refresh", json={"refreshToken": first.get_json()["refreshToken"]}
        )

        assert nxt.status_code == 200


class TestLogout:
    """POST /auth/logout."""

    def test_logout_clears_cookies(
        self, config: AuthConfig, profiles: InMemoryProfileStore, identity: Identity
    ):
        app = create_app(config, profiles=profiles)
        store = get_services(app).server_store

        @app.get("/whoami")
        def whoami():
            claims = store.get_session_from_cookies()
            return jsonify(uid=claims.uid if claims else None)

        client = app.test_client()
        pair = get_services(app).issuer.issue_pair(identity)
        client.post(
            "/auth/session",
            json={"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
        )
        assert client.get("/whoami").get_json() == {"uid": identity.uid}
        assert client.get("/protected").status_code == 200

        r = client.post("/auth/logout")

        assert r.status_code == 200
        assert r.get_json() == {"success": True}
        assert _cookie(client, "access_token") is None
        assert _cookie(client, "refresh_token") is None
        assert client.get("/whoami").get_json() == {"uid": None}
        assert client.get("/protected").status_code == 401

    def test_logout_twice(self, app: Flask):
        client = app.test_client()

        assert client.post("/auth/logout").status_code == 200
        assert client.post("/auth/logout").status_code == 200


class TestProtectedEndpoint:
    """GET|POST /protected."""

    def test_without_token(self, app: Flask):
        r = app.test_client().get("/protected")

        assert r.status_code == 401
        assert r.get_json() == {"error": "Authentication required"}

    @pytest.mark.parametrize("method", ["get", "post"])
    def test_with_bearer_token(
        self, app: Flask, codec: TokenCodec, identity: Identity, method: str
    ):
        token = codec.sign_access(identity)

        r = getattr(app.test_client(), method)(
            "/protected", headers={"Authorization": f"Bearer {token}"}
        )

        assert r.status_code == 200
        body = r.get_json()
        assert body["message"] == "Protected endpoint accessed successfully"
        assert body["user"] == identity.to_dict()
        assert body["timestamp"]

    def test_refresh_token_not_accepted(self, app: Flask, issuer: TokenIssuer, identity: Identity):
        pair = issuer.issue_pair(identity)

        r = app.test_client().get(
            "/protected", headers={"Authorization": f"Bearer {pair.refresh_token}"}
        )

        assert r.status_code == 401
        assert r.get_json() == {"error": "Invalid token"}

    def test_header_beats_stale_cookie(
        self, app: Flask, codec: TokenCodec, aged_codec: TokenCodec, identity: Identity
    ):
        client = app.test_client()
        client.set_cookie("access_token", aged_codec.sign_access(identity))

        r = client.get(
            "/protected", headers={"Authorization": f"Bearer {codec.sign_access(identity)}"}
        )

        assert r.status_code == 200


class TestPaymentVerification:
    """POST /payments/verify."""

    @staticmethod
    def _signed(secret: str, order_id: str = "order_1", payment_id: str = "pay_1") -> dict:
        signature = hmac.new(
            secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256
        ).hexdigest()
        return {
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature,
        }

    def test_valid_signature(self, app: Flask, config: AuthConfig):
        r = app.test_client().post(
            "/payments/verify", json=self._signed(config.payment_key_secret)
        )

        assert r.status_code == 200
        assert r.get_json() == {"success": True, "message": "Payment verified successfully"}

    def test_wrong_signature(self, app: Flask):
        r = app.test_client().post("/payments/verify", json=self._signed("other-secret"))

        assert r.status_code == 400
        assert r.get_json() == {"error": "Payment verification failed"}

    def test_non_ascii_signature(self, app: Flask, config: AuthConfig):
        body = self._signed(config.payment_key_secret)
        body["razorpay_signature"] = "é" * 64

        r = app.test_client().post("/payments/verify", json=body)

        assert r.status_code == 400
        assert r.get_json() == {"error": "Payment verification failed"}

    def test_signature_bound_to_order(self, app: Flask, config: AuthConfig):
        body = self._signed(config.payment_key_secret)
        body["razorpay_order_id"] = "order_2"

        r = app.test_client().post("/payments/verify", json=body)

        assert r.status_code == 400

    def test_missing_fields(self, app: Flask):
        r = app.test_client().post("/payments/verify", json={"razorpay_order_id": "order_1"})

        assert r.status_code == 400
        assert r.get_json() == {"error": "Missing required payment verification parameters"}

    def test_not_configured(self, profiles: InMemoryProfileStore):
        app = create_app(
            AuthConfig(access_secret="a" * 32, refresh_secret="r" * 32),
            profiles=profiles,
        )

        r = app.test_client().post("/payments/verify", json=self._signed("anything"))

        assert r.status_code == 500
        assert r.get_json() == {"error": "Payment verification not configured"}


class TestAppFactory:
    def test_services_registered(self, app: Flask, config: AuthConfig):
        services = get_services(app)

        assert services.config is config
        assert app.extensions["craftconnect_auth"] is services.auth

    def test_cors_enabled_for_configured_origin(self, profiles: InMemoryProfileStore):
        app = create_app(
            AuthConfig(
                access_secret="a" * 32,
                refresh_secret="r" * 32,
                cors_origins=("https://shop.example",),
            ),
            profiles=profiles,
        )

        r = app.test_client().options(
            "/auth/logout",
            headers={
                "Origin": "https://shop.example",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert r.headers.get("Access-Control-Allow-Origin") == "https://shop.example"
        assert r.headers.get("Access-Control-Allow-Credentials") == "true"

    def test_production_cookies_are_secure(
        self, profiles: InMemoryProfileStore, issuer: TokenIssuer, identity: Identity
    ):
        app = create_app(
            AuthConfig(access_secret="a" * 32, refresh_secret="r" * 32, production=True),
            profiles=profiles,
        )
        pair = issuer.issue_pair(identity)

        r = app.test_client().post(
            "/auth/session",
            json={"accessToken": pair.access_token, "refreshToken": pair.refresh_token},
        )

        cookies = r.headers.getlist("Set-Cookie")
        assert len(cookies) == 2
        assert all("Secure" in c and "HttpOnly" in c for c in cookies)

    def test_unknown_route_is_json(self, app: Flask):
        r = app.test_client().get("/nope")

        assert r.status_code == 404
        assert "error" in r.get_json()
