"""
Shared configuration management for the Events Aggregator.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="EVENTS_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # External services
    redis_url: str = Field(default="redis://localhost:6379/0")
    postgres_dsn: str = Field(default="postgres://localhost:5432/events")

    # Upstream source
    upstream_url: str = Field(default="https://api.github.com/events")
    poll_interval_seconds: float = Field(default=180.0, gt=0)
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    fetch_max_attempts: int = Field(default=3, ge=1)

    # Backend timeouts
    store_timeout_seconds: float = Field(default=5.0, gt=0)
    cache_timeout_seconds: float = Field(default=5.0, gt=0)

    # Retention bounds
    retention_limit: int = Field(default=30, ge=1)
    recency_limit: int = Field(default=10, ge=1)
    aggregate_ttl_seconds: int = Field(default=60, ge=1)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
