"""Configuration for neo-access: settings, constants and logging."""

from .constants import (
    PermissionAction,
    TenantStatus,
    GrantChangeType,
    AuditOutcome,
    PermissionSource,
    CacheDefaults,
    CascadeDepth,
    DefaultSensitiveResources,
    HeaderNames,
    DatabaseSettings,
)
from .settings import AccessSettings, get_settings
from .logging_config import LoggingConfig, setup_logging, get_logger, AUDIT_LOGGER_NAME

__all__ = [
    "PermissionAction",
    "TenantStatus",
    "GrantChangeType",
    "AuditOutcome",
    "PermissionSource",
    "CacheDefaults",
    "CascadeDepth",
    "DefaultSensitiveResources",
    "HeaderNames",
    "DatabaseSettings",
    "AccessSettings",
    "get_settings",
    "LoggingConfig",
    "setup_logging",
    "get_logger",
    "AUDIT_LOGGER_NAME",
]
