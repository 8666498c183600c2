"""Process-wide configuration for the session core.

Secrets are read once at start-up and passed explicitly into the codec and
the app factory. Nothing downstream reads the environment on its own.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Final

from dotenv import find_dotenv, load_dotenv

DEFAULT_ISSUER: Final[str] = "craftconnect-app"
DEFAULT_AUDIENCE: Final[str] = "craftconnect-users"

_PRODUCTION_ENVS: Final[frozenset[str]] = frozenset({"production", "prod"})


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """Configuration for token signing, cookies and the payment check.

    Attributes:
        access_secret: HMAC secret for access tokens.
        refresh_secret: HMAC secret for refresh tokens. Must differ from
            access_secret so one token class cannot be forged from the other.
        production: Enables the Secure cookie attribute.
        issuer: Expected and emitted `iss` claim.
        audience: Expected and emitted `aud` claim.
        algorithm: Signing algorithm. Only HMAC algorithms make sense here.
        leeway: Clock skew tolerance in seconds for exp validation.
        payment_key_secret: Payment gateway key secret, or None when the
            payment verification endpoint is not configured.
        cors_origins: Origins allowed to call the API with credentials.

    Raises:
        ValueError: If a secret is empty or both secrets are equal.
    """

    access_secret: str
    refresh_secret: str
    production: bool = False
    issuer: str = DEFAULT_ISSUER
    audience: str = DEFAULT_AUDIENCE
    algorithm: str = "HS256"
    leeway: int = 0
    payment_key_secret: str | None = None
    cors_origins: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.access_secret or not self.refresh_secret:
            raise ValueError("Both access and refresh signing secrets are required")
        if self.access_secret == self.refresh_secret:
            raise ValueError("Access and refresh signing secrets must differ")
        if not self.algorithm.startswith("HS"):
            raise ValueError(f"Unsupported signing algorithm {self.algorithm!r}")
        if self.leeway < 0:
            raise ValueError(f"leeway must be non-negative, got {self.leeway}")

    @classmethod
    def from_env(cls, env_file: str | None = None) -> AuthConfig:
        """Build the configuration from environment variables (and `.env`).

        Values already present in the environment win over the file. Without
        ``env_file`` the nearest `.env` above the working directory is used.

        Variables:
            JWT_SECRET, JWT_REFRESH_SECRET: signing secrets (required).
            APP_ENV or FLASK_ENV: "production" enables Secure cookies.
            JWT_ISSUER, JWT_AUDIENCE: override the default iss/aud strings.
            RAZORPAY_KEY_SECRET: payment signature secret (optional).
            CORS_ORIGINS: comma-separated list of allowed origins.
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))

        env_name = os.environ.get("APP_ENV") or os.environ.get("FLASK_ENV") or ""
        origins = os.environ.get("CORS_ORIGINS", "")

        return cls(
            access_secret=os.environ.get("JWT_SECRET", ""),
            refresh_secret=os.environ.get("JWT_REFRESH_SECRET", ""),
            production=env_name.strip().lower() in _PRODUCTION_ENVS,
            issuer=os.environ.get("JWT_ISSUER", DEFAULT_ISSUER),
            audience=os.environ.get("JWT_AUDIENCE", DEFAULT_AUDIENCE),
            payment_key_secret=os.environ.get("RAZORPAY_KEY_SECRET") or None,
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )
