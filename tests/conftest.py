import time
from collections.abc import Callable

import httpx
import pytest
from flask import Flask

from craftconnect_auth import (
    AuthConfig,
    Identity,
    InMemoryProfileStore,
    InMemoryTokenVersions,
    TokenCodec,
    TokenIssuer,
    create_app,
)

ACCESS_SECRET = "access-secret-for-tests-0123456789abcdef"
REFRESH_SECRET = "refresh-secret-for-tests-0123456789abcdef"


@pytest.fixture
def config() -> AuthConfig:
    return AuthConfig(
        access_secret=ACCESS_SECRET,
        refresh_secret=REFRESH_SECRET,
        payment_key_secret="rzp-test-key-secret",
    )


@pytest.fixture
def codec(config: AuthConfig) -> TokenCodec:
    return TokenCodec(config)


@pytest.fixture
def aged_codec(config: AuthConfig) -> TokenCodec:
    """Signs as if an hour ago: access tokens are expired, refresh tokens are not."""
    return TokenCodec(config, clock=lambda: time.time() - 3600)


@pytest.fixture
def identity() -> Identity:
    return Identity(uid="u1", email="alice@example.com", username="alice")


@pytest.fixture
def profiles(identity: Identity) -> InMemoryProfileStore:
    return InMemoryProfileStore(
        {identity.uid: {"email": identity.email, "username": identity.username}}
    )


@pytest.fixture
def issuer(codec: TokenCodec) -> TokenIssuer:
    return TokenIssuer(codec)


@pytest.fixture
def plain_app() -> Flask:
    app = Flask(__name__)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def app(config: AuthConfig, profiles: InMemoryProfileStore) -> Flask:
    app = create_app(config, profiles=profiles)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def rotating_app(config: AuthConfig, profiles: InMemoryProfileStore) -> Flask:
    app = create_app(config, profiles=profiles, versions=InMemoryTokenVersions())
    app.config["TESTING"] = True
    return app


@pytest.fixture
def flask_transport() -> Callable[[Flask], httpx.MockTransport]:
    """
    Factory fixture bridging an httpx async client to a Flask app.

    The Flask test client keeps its own cookie jar, so the app sees the
    same cookies a browser would send back.

    Usage in tests:
        transport = flask_transport(app)
        async with httpx.AsyncClient(transport=transport, base_url="http://shop") as http:
            ...
    """

    def _make(app: Flask) -> httpx.MockTransport:
        client = app.test_client()
        forwarded = ("content-type", "authorization")

        def handler(request: httpx.Request) -> httpx.Response:
            headers = {k: v for k, v in request.headers.items() if k.lower() in forwarded}
            resp = client.open(
                request.url.path,
                method=request.method,
                headers=headers,
                data=request.content,
            )
            return httpx.Response(
                resp.status_code,
                headers={"content-type": resp.headers.get("Content-Type", "")},
                content=resp.get_data(),
            )

        return httpx.MockTransport(handler)

    return _make


class FakeRedis:
    """
    Minimal redis stub for RedisTokenVersions tests.
    Stores bytes under keys and supports get/incr.
    """

    def __init__(self):
        self._store: dict[str, bytes] = {}

    def get(self, key: str):
        return self._store.get(key)

    def incr(self, key: str) -> int:
        value = int(self._store.get(key, b"0")) + 1
        self._store[key] = str(value).encode("utf-8")
        return value

    def set(self, key: str, value: str | bytes):
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._store[key] = value


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()
