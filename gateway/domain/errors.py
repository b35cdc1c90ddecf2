"""
Error taxonomy for token issuance and tunnel authorization.

Issuance-time errors (ValidationError) carry a specific message; they are
safe to return to API clients. Gate-time errors (AuthError, TokenError,
ExpiryError) all become the same 401 for the caller.
"""

from __future__ import annotations

import enum


class GatewayError(Exception):
    """Base class for errors raised by the gateway."""

    status_code = 400


class ValidationError(GatewayError):
    """Raised when input validation fails."""

    status_code = 400


class PresetNotFoundError(ValidationError):
    """Raised when a token is requested for an unknown preset."""

    status_code = 404

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Preset not found: {name}")


class AuthFailure(str, enum.Enum):
    MISSING_API_KEY = "missing-api-key"
    INVALID_API_KEY = "invalid-api-key"
    MISSING_TOKEN = "missing-token"
    MISSING_EXPIRY = "missing-expiry"


class AuthError(GatewayError):
    """Raised when a credential (API key or tunnel token) is absent or wrong."""

    status_code = 401

    def __init__(self, reason: AuthFailure) -> None:
        self.reason = reason
        super().__init__(reason.value)


class TokenError(GatewayError):
    """Raised for any undecodable, undecryptable or malformed token.

    Every cause shares one message so callers cannot tell them apart.
    """

    status_code = 401

    def __init__(self) -> None:
        super().__init__("invalid token")


class ExpiryError(GatewayError):
    """Raised when a valid token is presented after its expiry."""

    status_code = 401

    def __init__(self, expires_at: int, checked_at: int) -> None:
        self.expires_at = expires_at
        self.checked_at = checked_at
        super().__init__(f"token expired at {expires_at} (checked at {checked_at})")
