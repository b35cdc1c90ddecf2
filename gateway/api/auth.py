"""
API key authentication for the issuance API.

Provides a before_request hook that enforces the shared API key on every
endpoint of the ``api`` blueprint except the health check. Missing and
wrong keys get the same response.
"""

from __future__ import annotations

import hmac
import logging

from flask import Response, request

from gateway.api.responses import api_error
from gateway.domain.errors import AuthError, AuthFailure

logger = logging.getLogger("token-gateway")

# Endpoints that do not require authentication (use Flask endpoint names)
PUBLIC_ENDPOINTS = frozenset({"api.health"})

UNAUTHORIZED_MESSAGE = "Unauthorized"


def _extract_request_key() -> str | None:
    """
    Extract the API key from the incoming request.

    Supported methods:
        - Header: X-API-Key: <key>
        - Header: Authorization: Bearer <key>
    """
    api_key = request.headers.get("X-API-Key")
    if api_key:
        return api_key

    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:] or None

    return None


def check_api_key(request_key: str | None, configured_key: str) -> None:
    """
    Compare a presented key with the configured one in constant time.

    Raises:
        AuthError: If the key is absent or does not match
    """
    if request_key is None:
        raise AuthError(AuthFailure.MISSING_API_KEY)
    if not hmac.compare_digest(request_key.encode("utf-8"), configured_key.encode("utf-8")):
        raise AuthError(AuthFailure.INVALID_API_KEY)


def require_api_key() -> tuple[Response, int] | None:
    """
    Flask before_request hook that enforces API key authentication.

    - Skips public endpoints (health check).
    - Returns 401 if the request key is missing or invalid.
    - Returns None (allows request) if the key is valid.
    """
    if request.endpoint in PUBLIC_ENDPOINTS:
        return None

    from gateway.container import get_services

    try:
        check_api_key(_extract_request_key(), get_services().environment.api_key)
    except AuthError as e:
        logger.warning(f"Rejected API request from {request.remote_addr} on {request.path}: {e.reason.value}")
        return api_error(UNAUTHORIZED_MESSAGE, 401)

    return None
