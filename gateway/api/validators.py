"""
Input validation functions for the API.
"""

from typing import Any

from gateway.config.settings import (
    MAX_PRESET_NAME_LENGTH,
    PRESET_NAME_PATTERN,
    TTL_MAX,
    TTL_MIN,
)
from gateway.domain.errors import ValidationError


def validate_ttl(ttl: Any, default: int) -> int:
    """
    Validate a requested token lifetime.

    Args:
        ttl: Value from the JSON body, or None when absent
        default: Lifetime used when ``ttl`` is absent

    Returns:
        Lifetime in seconds

    Raises:
        ValidationError: If ttl is not an integer in [TTL_MIN, TTL_MAX]
    """
    if ttl is None:
        return default

    # bool is an int subclass; JSON true/false is not a lifetime
    if isinstance(ttl, bool) or not isinstance(ttl, int):
        raise ValidationError("ttl must be an integer number of seconds")

    if not TTL_MIN <= ttl <= TTL_MAX:
        raise ValidationError(f"ttl must be between {TTL_MIN} and {TTL_MAX} seconds")

    return ttl


def validate_preset_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise ValidationError("preset must be a non-empty string")

    if len(name) > MAX_PRESET_NAME_LENGTH:
        raise ValidationError(f"Preset name exceeds maximum length of {MAX_PRESET_NAME_LENGTH}")

    if not PRESET_NAME_PATTERN.match(name):
        raise ValidationError("Preset name contains invalid characters")

    return name
