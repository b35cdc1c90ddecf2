"""
Flask API routes for the Token Gateway.
"""

from __future__ import annotations

import logging
from urllib.parse import quote

from flask import Blueprint, Response, g, jsonify, request

from gateway.api import rate_limit
from gateway.api.audit import audit_log_response
from gateway.api.auth import require_api_key
from gateway.api.rate_limit import limiter
from gateway.api.responses import api_success
from gateway.api.validators import validate_preset_name, validate_ttl
from gateway.config.loader import GatewayConfig
from gateway.config.secrets import secrets_provider
from gateway.config.settings import TUNNEL_PATH
from gateway.container import get_services
from gateway.domain.descriptor import build
from gateway.domain.errors import PresetNotFoundError, ValidationError

logger = logging.getLogger("token-gateway")

# Type alias for Flask route returns
RouteResponse = tuple[Response, int]

# Create Blueprint
api = Blueprint("api", __name__)

api.before_request(require_api_key)
api.after_request(audit_log_response)

CONNECTION_REQUIRED = "connection object required (or use preset)"


def tunnel_url(token: str) -> str:
    """Upgrade URL for ``token`` on the host the client used to reach us."""
    secure = request.is_secure or request.headers.get("X-Forwarded-Proto", "").lower() == "https"
    scheme = "wss" if secure else "ws"
    return f"{scheme}://{request.host}{TUNNEL_PATH}?token={quote(token, safe='')}"


# =============================================================================
# Health
# =============================================================================

@api.route("/health")
@limiter.exempt
def health() -> RouteResponse:
    """Health check endpoint."""
    services = get_services()
    return jsonify({
        "status": "healthy",
        "presets": len(services.presets),
        "guacd": f"{services.environment.guacd_host}:{services.environment.guacd_port}",
        "secrets": secrets_provider.get_status(),
    }), 200


# =============================================================================
# Tokens
# =============================================================================

@api.route("/token", methods=["POST"])
@limiter.limit(lambda: rate_limit.issue_limit)
def issue_token() -> RouteResponse:
    """
    Issue a tunnel token.

    Body: ``{"preset": name, "ttl": n}`` or ``{"connection": {...}, "ttl": n}``.
    A preset takes precedence when both are given.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError(CONNECTION_REQUIRED)

    services = get_services()
    ttl = validate_ttl(body.get("ttl"), GatewayConfig.settings().tokens.default_ttl)

    if body.get("preset") is not None:
        name = validate_preset_name(body["preset"])
        entry = services.presets.lookup(name)
        if entry is None:
            raise PresetNotFoundError(name)
        descriptor = entry.clone()
        mode = "preset"
        g.audit = {"preset": name}
    else:
        connection = body.get("connection")
        if not isinstance(connection, dict):
            raise ValidationError(CONNECTION_REQUIRED)
        descriptor = build(connection, default_kubeconfig=services.environment.kubeconfig)
        mode = "dynamic"
        g.audit = {}

    issued = services.issuer.issue(descriptor, ttl)
    g.audit.update({
        "mode": mode,
        "connection_type": issued.kind.value,
        "expires_at": issued.expires_at,
    })
    logger.info(f"Issued {mode} token for {issued.kind.value} connection, ttl={ttl}s")

    return api_success({
        "token": issued.token,
        "ws_url": tunnel_url(issued.token),
        "expires_at": issued.expires_at,
        "mode": mode,
        "connection_type": issued.kind.value,
    })


# =============================================================================
# Presets
# =============================================================================

@api.route("/presets")
def list_presets() -> RouteResponse:
    """List preset names; preset contents are never exposed."""
    return api_success({"presets": get_services().presets.names()})
