"""
Pydantic models for gateway configuration.

Typed access to gateway.yml via GatewayConfig.settings(). The defaults here
are the defaults of the service: the loader merges the YAML file over
``GatewaySettings().model_dump()``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from gateway.config.settings import DEFAULT_TTL, TTL_MAX, TTL_MIN


class TokenConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    default_ttl: int = Field(DEFAULT_TTL, ge=TTL_MIN, le=TTL_MAX)


class TunnelConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    connect_timeout: float = 10.0
    handshake_timeout: float = 15.0
    width: int = 1024
    height: int = 768
    dpi: int = 96
    audio_mimetypes: list[str] = ["audio/L16"]
    video_mimetypes: list[str] = []
    image_mimetypes: list[str] = ["image/png", "image/jpeg", "image/webp"]
    timezone: str = ""


class RateLimitingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    default_limit: str = "200/minute"
    issue_limit: str = "30/minute"


class SecurityConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    rate_limiting: RateLimitingConfig = RateLimitingConfig()


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: str = "INFO"


class GatewaySettings(BaseModel):
    """Root settings model mirroring gateway.yml structure."""

    model_config = ConfigDict(extra="ignore")

    tokens: TokenConfig = TokenConfig()
    tunnel: TunnelConfig = TunnelConfig()
    security: SecurityConfig = SecurityConfig()
    logging: LoggingConfig = LoggingConfig()
