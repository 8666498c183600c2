"""Session and authentication errors.

This module defines the exception hierarchy for the session core. Every error
inherits from AuthError and carries the HTTP status code and the client-safe
description the gateway should answer with.

Security Note:
    Descriptions are intentionally generic to avoid leaking implementation
    details. Detailed reasons belong in server-side logs, not in responses.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base exception for all session and authentication failures.

    Attributes:
        error_code: HTTP status code the gateway maps this error to.
        description: Client-safe message returned in the response body.
    """

    error_code: int = 401
    description: str = "Authentication failed"


class MissingToken(AuthError):  # noqa: N818
    """Raised when no credential is presented where one is mandatory.

    This occurs when:
    - The Authorization header is absent or does not use the Bearer scheme
    - The access cookie is absent

    Distinct from InvalidToken so callers (and tests) can tell "nothing was
    sent" apart from "what was sent is not acceptable".
    """

    description = "Authentication required"


class InvalidToken(AuthError):  # noqa: N818
    """Raised when a token is present but cannot be trusted.

    This occurs when:
    - Token is malformed (not a valid JWT structure)
    - Signature verification fails (wrong secret or tampered token)
    - Issuer (iss) or audience (aud) do not match
    - Required claims are missing or have the wrong type
    - A refresh token has already been used (rotation)
    """

    description = "Invalid token"


class ExpiredToken(InvalidToken):  # noqa: N818
    """Raised when a token's exp claim has passed.

    Subclasses InvalidToken: an expired credential is an invalid credential.
    The distinction is kept for logging and for client-side retry decisions.
    """

    description = "Token expired"


class MalformedRequest(AuthError):  # noqa: N818
    """Raised when a required field is absent from a request body."""

    error_code = 400
    description = "Malformed request"


class SubjectNotFound(AuthError):  # noqa: N818
    """Raised when a refresh token's subject no longer resolves to a profile."""

    error_code = 404
    description = "User not found"
