"""
Constants and settings for the Token Gateway.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

# =============================================================================
# Constants
# =============================================================================

TTL_MIN = 1
TTL_MAX = 86400
DEFAULT_TTL = 300

IV_LENGTH = 16
MAC_LENGTH = 32
MAX_TOKEN_LENGTH = 16384

DEFAULT_SHELL_PORT = 22
DEFAULT_DESKTOP_PORT = 3389
DEFAULT_GUACD_HOST = "127.0.0.1"
DEFAULT_GUACD_PORT = 4822
DEFAULT_HTTP_PORT = 8080

TUNNEL_PATH = "/ws"

# Preset names (alphanumeric, dash, underscore, dot)
PRESET_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')
MAX_PRESET_NAME_LENGTH = 255

# Hostnames, IPv4 and IPv6 literals
HOST_PATTERN = re.compile(r'^[a-zA-Z0-9._:%-]+$')
MAX_HOST_LENGTH = 253

# Kubernetes object names (RFC 1123)
K8S_NAME_PATTERN = re.compile(r'^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$')
MAX_K8S_NAME_LENGTH = 253
KUBECONFIG_PATH_PATTERN = re.compile(r'^[a-zA-Z0-9._/~-]+$')

RDP_SECURITY_MODES = frozenset({"any", "nla", "nla-ext", "tls", "vmconnect", "rdp"})


def get_env(key: str, default: str = None, required: bool = False) -> str:
    """
    Retrieve a configuration value with Vault support.

    Args:
        key: Configuration key (``token_secret`` → ``TOKEN_SECRET``)
        default: Default value
        required: Whether the value is required

    Returns:
        Configuration value

    Raises:
        ValueError: If required value is missing
    """
    # Import here to avoid circular imports
    from gateway.config.secrets import secrets_provider

    value = secrets_provider.get(key, default)
    if required and not value:
        raise ValueError(f"Required configuration missing: {key}")
    return value


@dataclass(frozen=True)
class GatewayEnvironment:
    """Deployment configuration read once at process start."""

    token_secret: str = field(repr=False)
    api_key: str = field(repr=False)
    guacd_host: str = DEFAULT_GUACD_HOST
    guacd_port: int = DEFAULT_GUACD_PORT
    connections_file: str | None = None
    kubeconfig: str | None = None
    port: int = DEFAULT_HTTP_PORT


def _parse_port(key: str, value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        port = int(value)
    except ValueError:
        raise ValueError(f"Invalid configuration for {key}: {value!r} is not a port number")
    if not 1 <= port <= 65535:
        raise ValueError(f"Invalid configuration for {key}: {port} is out of range")
    return port


def load_environment() -> GatewayEnvironment:
    """
    Read the deployment configuration.

    Raises:
        ValueError: If any required value is missing, naming all of them
    """
    token_secret = get_env("token_secret")
    api_key = get_env("api_key")

    missing = [name for name, value in (("TOKEN_SECRET", token_secret), ("API_KEY", api_key)) if not value]
    if missing:
        raise ValueError(f"Required configuration missing: {', '.join(missing)}")

    return GatewayEnvironment(
        token_secret=token_secret,
        api_key=api_key,
        guacd_host=get_env("guacd_host", DEFAULT_GUACD_HOST) or DEFAULT_GUACD_HOST,
        guacd_port=_parse_port("GUACD_PORT", get_env("guacd_port"), DEFAULT_GUACD_PORT),
        connections_file=get_env("connections_file") or None,
        kubeconfig=get_env("kubeconfig") or None,
        port=_parse_port("PORT", get_env("port"), DEFAULT_HTTP_PORT),
    )
