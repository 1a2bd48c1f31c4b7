"""
Configuration management for the neo-access engine.

Settings are read from the environment (prefix ``NEO_ACCESS_``) and an
optional ``.env`` file, following the platform's pydantic-settings pattern.
"""
from typing import Optional, List
from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import CacheDefaults, DefaultSensitiveResources, HeaderNames


class AccessSettings(BaseSettings):
    """Settings for permission resolution, caching and invalidation."""

    model_config = SettingsConfigDict(
        env_prefix="NEO_ACCESS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_name: str = Field(default="neo-access")
    environment: str = Field(default="development")

    # Grant store database
    database_url: Optional[str] = Field(default=None)
    db_pool_min_size: int = Field(default=2, ge=1)
    db_pool_max_size: int = Field(default=20, ge=1)
    db_command_timeout: float = Field(default=10.0, gt=0)

    # Redis invalidation broadcast
    redis_url: Optional[str] = Field(default=None)
    invalidation_channel: str = Field(default="neo-access:invalidation")
    node_id: Optional[str] = Field(default=None)
    redis_reconnect_initial_seconds: float = Field(default=0.5, ge=0)
    redis_reconnect_max_seconds: float = Field(default=30.0, gt=0)

    # Resolution cache
    cache_ttl_seconds: int = Field(default=CacheDefaults.TTL_SECONDS, gt=0)
    cache_max_entries: int = Field(default=CacheDefaults.MAX_ENTRIES, gt=0)
    cache_sweep_interval_seconds: int = Field(default=CacheDefaults.SWEEP_INTERVAL_SECONDS, gt=0)

    # Audit
    sensitive_resources: List[str] = Field(
        default_factory=lambda: list(DefaultSensitiveResources.RESOURCES)
    )
    audit_allowed_checks: bool = Field(default=False)

    # Invalidation
    cascade_fanout_warning_threshold: int = Field(default=1000, gt=0)

    # HTTP integration
    tenant_header: str = Field(default=HeaderNames.TENANT_ID)
    user_header: str = Field(default=HeaderNames.USER_ID)
    correlation_header: str = Field(default=HeaderNames.CORRELATION_ID)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"


@lru_cache()
def get_settings() -> AccessSettings:
    """Get cached settings instance."""
    return AccessSettings()
