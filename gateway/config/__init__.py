"""Configuration module for the Token Gateway."""

from gateway.config.settings import (
    TTL_MIN,
    TTL_MAX,
    DEFAULT_TTL,
    TUNNEL_PATH,
    PRESET_NAME_PATTERN,
    MAX_PRESET_NAME_LENGTH,
    GatewayEnvironment,
    get_env,
    load_environment,
)
from gateway.config.secrets import secrets_provider, SecretsProvider
from gateway.config.loader import (
    GatewayConfig,
    CONFIG_PATH,
    GATEWAY_CONFIG_FILE,
)

__all__ = [
    "TTL_MIN",
    "TTL_MAX",
    "DEFAULT_TTL",
    "TUNNEL_PATH",
    "PRESET_NAME_PATTERN",
    "MAX_PRESET_NAME_LENGTH",
    "GatewayEnvironment",
    "get_env",
    "load_environment",
    "secrets_provider",
    "SecretsProvider",
    "GatewayConfig",
    "CONFIG_PATH",
    "GATEWAY_CONFIG_FILE",
]
