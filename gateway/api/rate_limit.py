"""
Rate limiting for the issuance API.

Uses Flask-Limiter with in-memory storage (suitable for single-worker gunicorn).
"""

from flask import Flask
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from gateway.api.responses import api_error
from gateway.config.loader import GatewayConfig

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)

# Token issuance limit, read from config at init time and used by the route decorator
issue_limit = "30/minute"


def init_limiter(app: Flask) -> None:
    """Attach the limiter to the Flask app and configure it from gateway.yml."""
    global issue_limit

    rl_config = GatewayConfig.settings().security.rate_limiting

    if not rl_config.enabled:
        app.config["RATELIMIT_ENABLED"] = False

    app.config["RATELIMIT_DEFAULT"] = rl_config.default_limit
    issue_limit = rl_config.issue_limit

    limiter.init_app(app)

    @app.errorhandler(429)
    def rate_limit_handler(e):
        return api_error("Rate limit exceeded. Try again later.", 429)
