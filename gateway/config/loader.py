"""
Configuration loader for gateway.yml.
"""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

import yaml
from pydantic import ValidationError as PydanticValidationError

from gateway.config.models import GatewaySettings
from gateway.config.settings import get_env

logger = logging.getLogger("token-gateway")

# Configuration paths
CONFIG_PATH = Path(get_env("config_path", "/etc/token-gateway") or "/etc/token-gateway")
GATEWAY_CONFIG_FILE = CONFIG_PATH / "gateway.yml"


class GatewayConfig:
    """Manages gateway configuration from YAML file."""

    _lock = threading.Lock()
    _config: dict = {}
    _typed_config: GatewaySettings | None = None
    _last_load: float = 0
    _cache_duration: int = 60

    @classmethod
    def load(cls) -> dict:
        """Load gateway configuration, reusing the cached copy for 60 seconds."""
        now = time.time()
        if cls._config and (now - cls._last_load) < cls._cache_duration:
            return cls._config

        with cls._lock:
            # Double-check after acquiring the lock
            now = time.time()
            if cls._config and (now - cls._last_load) < cls._cache_duration:
                return cls._config
            return cls._load_locked(now)

    @classmethod
    def _load_locked(cls, now: float) -> dict:
        """Load config while holding ``_lock``. Called from :meth:`load`."""
        defaults = GatewaySettings().model_dump()

        if not GATEWAY_CONFIG_FILE.exists():
            logger.info(f"Gateway config not found, using defaults: {GATEWAY_CONFIG_FILE}")
            cls._apply(defaults, now)
            return cls._config

        try:
            with open(GATEWAY_CONFIG_FILE, "r") as f:
                file_config = yaml.safe_load(f) or {}
            if not isinstance(file_config, dict):
                raise ValueError("top-level YAML value must be a mapping")
            cls._apply(cls._deep_merge(defaults, file_config), now)
            logger.info(f"Loaded gateway config from {GATEWAY_CONFIG_FILE}")
        except (OSError, yaml.YAMLError, ValueError, PydanticValidationError) as e:
            logger.error(f"Error loading gateway config: {e}")
            cls._apply(defaults, now)

        return cls._config

    @classmethod
    def _apply(cls, config: dict, now: float) -> None:
        # Published only once it validates
        typed = GatewaySettings.model_validate(config)
        cls._config = config
        cls._typed_config = typed
        cls._last_load = now

    @classmethod
    def _deep_merge(cls, base: dict, override: dict) -> dict:
        """Deep merge two dictionaries."""
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = cls._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    @classmethod
    def get(cls, *keys: str, default: object = None) -> object:
        """Get a nested config value: ``GatewayConfig.get("tunnel", "dpi")``."""
        config = cls.load()
        for key in keys:
            if isinstance(config, dict) and key in config:
                config = config[key]
            else:
                return default
        return config

    @classmethod
    def settings(cls) -> GatewaySettings:
        """Get typed configuration as a GatewaySettings instance."""
        cls.load()
        assert cls._typed_config is not None
        return cls._typed_config

    @classmethod
    def reload(cls) -> None:
        """Force reload configuration."""
        with cls._lock:
            cls._last_load = 0
            cls._config = {}
        cls.load()
