"""
Shared configuration management for the transit gateway.

Settings are read once at startup. Optional fields switch whole code paths
on or off: without ``redis_url`` no cache store is built at all.
"""

from typing import Dict, Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = "App/4.5.1 (iPhone; iOS 15.2; Scale/3.00)"
DEFAULT_UPSTREAM_URL = "https://v6.vbb.transport.rest"
# Berlin Friedrichstr.
DEFAULT_HEALTH_STATION_ID = "900100001"


class GatewaySettings(BaseSettings):
    """Startup configuration for the transit gateway."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Service
    service_name: str = "transit-gateway"
    version: str = "1.0.0"
    env: str = Field(default="local", validation_alias=AliasChoices("TRANSIT_ENV", "env"))
    hostname: str = Field(default="localhost", validation_alias=AliasChoices("HOSTNAME", "hostname"))
    port: int = Field(default=3000, validation_alias=AliasChoices("PORT", "port"))
    log_level: str = Field(default="info", validation_alias=AliasChoices("LOG_LEVEL", "log_level"))

    # Upstream journey-planning backend
    upstream_url: str = Field(
        default=DEFAULT_UPSTREAM_URL,
        validation_alias=AliasChoices("TRANSIT_UPSTREAM_URL", "upstream_url"),
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        validation_alias=AliasChoices("HAFAS_USER_AGENT", "user_agent"),
    )
    request_log_file: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("HAFAS_REQ_RES_LOG_FILE", "request_log_file"),
    )
    upstream_timeout: float = Field(
        default=10.0,
        validation_alias=AliasChoices("TRANSIT_UPSTREAM_TIMEOUT", "upstream_timeout"),
    )
    upstream_max_attempts: int = Field(
        default=2,
        validation_alias=AliasChoices("TRANSIT_UPSTREAM_MAX_ATTEMPTS", "upstream_max_attempts"),
    )
    resolve_timeout: float = Field(
        default=30.0,
        validation_alias=AliasChoices("RESOLVE_TIMEOUT", "resolve_timeout"),
    )

    # Cache store
    redis_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("REDIS_URL", "redis_url"))
    cache_timeout: float = Field(default=0.5, validation_alias=AliasChoices("CACHE_TIMEOUT", "cache_timeout"))
    cache_ttls: Dict[str, int] = Field(default_factory=dict, validation_alias=AliasChoices("CACHE_TTLS", "cache_ttls"))

    # Health checks
    health_station_id: str = Field(
        default=DEFAULT_HEALTH_STATION_ID,
        validation_alias=AliasChoices("HEALTH_CHECK_STATION_ID", "health_station_id"),
    )
    health_cache_timeout: float = Field(
        default=1.0,
        validation_alias=AliasChoices("HEALTH_CHECK_CACHE_TIMEOUT", "health_cache_timeout"),
    )

    @property
    def caching_enabled(self) -> bool:
        return bool(self.redis_url)


def get_settings(**overrides) -> GatewaySettings:
    """Load settings from the environment, applying explicit overrides."""
    return GatewaySettings(**overrides)
