"""Core layer of neo-access: exceptions and value objects."""

from .exceptions import (
    NeoAccessError,
    AccessControlError,
    MissingTenantContext,
    TenantContextViolation,
    ResolutionUnavailable,
    InvalidGrantReference,
    GrantStoreError,
    GrantStoreUnavailableError,
    CacheError,
    ConfigurationError,
    ValidationError,
    get_http_status_code,
    create_error_response,
    is_security_error,
)
from .value_objects import (
    validate_identifier,
    validate_optional_identifier,
    parse_action,
    ResourceType,
    PermissionKey,
)

__all__ = [
    "NeoAccessError",
    "AccessControlError",
    "MissingTenantContext",
    "TenantContextViolation",
    "ResolutionUnavailable",
    "InvalidGrantReference",
    "GrantStoreError",
    "GrantStoreUnavailableError",
    "CacheError",
    "ConfigurationError",
    "ValidationError",
    "get_http_status_code",
    "create_error_response",
    "is_security_error",
    "validate_identifier",
    "validate_optional_identifier",
    "parse_action",
    "ResourceType",
    "PermissionKey",
]
