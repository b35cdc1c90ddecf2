"""API module for Flask routes and helpers."""

from gateway.api.validators import (
    ValidationError,
    validate_ttl,
    validate_preset_name,
)
from gateway.api.responses import api_success, api_error
from gateway.api.auth import require_api_key

__all__ = [
    "ValidationError",
    "validate_ttl",
    "validate_preset_name",
    "api_success",
    "api_error",
    "require_api_key",
]
