"""
Tunnel upgrade endpoint.

The token is checked before the WebSocket handshake is accepted; a rejected
upgrade gets a plain 401 and never reaches guacd.
"""

from __future__ import annotations

import logging

from flask import Blueprint, Response, request

from gateway.api.rate_limit import limiter
from gateway.api.responses import api_error
from gateway.config.settings import TUNNEL_PATH
from gateway.container import get_services
from gateway.domain.errors import AuthError, ExpiryError, TokenError
from gateway.observability import ERRORS_TOTAL

logger = logging.getLogger("token-gateway")

tunnel = Blueprint("tunnel", __name__)


def _is_websocket_upgrade() -> bool:
    connection = request.headers.get("Connection", "").lower()
    upgrade = request.headers.get("Upgrade", "").lower()
    return "upgrade" in connection and upgrade == "websocket"


@tunnel.route(TUNNEL_PATH, strict_slashes=False)
@limiter.exempt
def open_tunnel() -> Response | tuple[Response, int]:
    if not _is_websocket_upgrade():
        return api_error("WebSocket upgrade required", 426)

    services = get_services()
    try:
        authorization = services.gate.authorize(request.args.get("token"))
    except (AuthError, TokenError, ExpiryError):
        return api_error("Unauthorized", 401)
    except Exception as e:
        ERRORS_TOTAL.labels(endpoint="tunnel_upgrade").inc()
        logger.error(f"Unexpected error while authorizing upgrade: {e}")
        return api_error("Internal server error", 500)

    return services.tunnel_broker.open_tunnel(authorization.descriptor, request.environ)
