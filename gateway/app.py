"""
Guacamole Token Gateway.

This service lets a trusted backend hand browsers short-lived access to
remote sessions through guacd:
- Issues encrypted, expiring tokens for shell, desktop and container-exec targets
- Named connection presets loaded from a YAML/JSON file
- Validates the token on the WebSocket upgrade before any tunnel byte flows
- Relays the authorized tunnel to guacd
- Prometheus metrics and JSON structured logging
- Secret management via Vault (OpenBao/HashiCorp) or environment variables
"""

import atexit
import logging
import os
import re

from flask import Flask

# =============================================================================
# Logging Setup
# =============================================================================

from gateway.config.loader import GatewayConfig
from gateway.observability import setup_json_logging

_log_level = (os.environ.get("LOG_LEVEL") or GatewayConfig.settings().logging.level).upper()
setup_json_logging(level=_log_level)
logger = logging.getLogger("token-gateway")


# Filter sensitive data from logs
class SensitiveDataFilter(logging.Filter):
    """Filter to mask sensitive data in log messages."""

    SENSITIVE_PATTERNS = [
        (re.compile(r'password["\']?\s*[:=]\s*["\']?[^"\'}\s&]+', re.I), 'password=***'),
        (re.compile(r'passphrase["\']?\s*[:=]\s*["\']?[^"\'}\s&]+', re.I), 'passphrase=***'),
        (re.compile(r'private-key["\']?\s*[:=]\s*["\']?[^"\'}\s&]+', re.I), 'private-key=***'),
        (re.compile(r'token["\']?\s*[:=]\s*["\']?[^"\'}\s&]+', re.I), 'token=***'),
        (re.compile(r'secret["\']?\s*[:=]\s*["\']?[^"\'}\s&]+', re.I), 'secret=***'),
        (re.compile(r'api[_-]?key["\']?\s*[:=]\s*["\']?[^"\'}\s&]+', re.I), 'api_key=***'),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            for pattern, replacement in self.SENSITIVE_PATTERNS:
                record.msg = pattern.sub(replacement, record.msg)
        return True


logger.addFilter(SensitiveDataFilter())

# =============================================================================
# Flask Application
# =============================================================================

app = Flask(__name__)

# Initialize rate limiter
from gateway.api.rate_limit import init_limiter
init_limiter(app)

# Initialize Prometheus metrics (auto-instruments all routes, exposes /metrics)
from gateway.observability import init_metrics
init_metrics(app)

# =============================================================================
# Configuration and Services
# =============================================================================

from gateway.config.settings import load_environment

try:
    environment = load_environment()
except ValueError as e:
    logger.error(f"Refusing to start: {e}")
    raise

from gateway.container import ServiceContainer
import gateway.container as container_mod

container = ServiceContainer(environment)
app.extensions["services"] = container
container_mod._global_container = container

# Build everything now so configuration problems surface at startup
container.warm_up()
logger.info(f"Presets available: {container.presets.names()}")
logger.info(f"Tunnel broker: guacd at {environment.guacd_host}:{environment.guacd_port}")

# Import API routes and register blueprints
from gateway.api.routes import api
from gateway.api.tunnel import tunnel
from gateway.api.responses import api_error
from gateway.api.swagger import init_swagger
from gateway.domain.errors import GatewayError, ValidationError

app.register_blueprint(api)
app.register_blueprint(tunnel)
init_swagger(app)

# =============================================================================
# Error Handlers
# =============================================================================

@app.errorhandler(GatewayError)
def handle_gateway_error(e: GatewayError) -> tuple:
    """Validation errors keep their message; auth failures do not."""
    if isinstance(e, ValidationError):
        return api_error(str(e), e.status_code)
    return api_error("Unauthorized", e.status_code)


@app.errorhandler(404)
def handle_not_found(e: Exception) -> tuple:
    """Handle 404 errors."""
    return api_error("Resource not found", 404)


@app.errorhandler(500)
def handle_server_error(e: Exception) -> tuple:
    """Handle 500 errors."""
    from gateway.observability import ERRORS_TOTAL
    ERRORS_TOTAL.labels(endpoint="app_500").inc()
    logger.error(f"Internal server error: {e}")
    return api_error("Internal server error", 500)


# =============================================================================
# Startup
# =============================================================================

atexit.register(container.shutdown)

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=environment.port, threaded=True)
