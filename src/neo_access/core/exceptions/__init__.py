"""Exceptions module for neo-access.

Complete exception hierarchy, organized by access-control concerns and
infrastructure concerns.
"""

from .base import (
    NeoAccessError,
    get_http_status_code,
    create_error_response,
)

from .access import (
    AccessControlError,
    MissingTenantContext,
    TenantContextViolation,
    ResolutionUnavailable,
    InvalidGrantReference,
)

from .infrastructure import (
    GrantStoreError,
    GrantStoreUnavailableError,
    CacheError,
    ConfigurationError,
    ValidationError,
)

from .http_mapping import is_security_error

__all__ = [
    # Base
    "NeoAccessError",
    "get_http_status_code",
    "create_error_response",
    "is_security_error",

    # Access control
    "AccessControlError",
    "MissingTenantContext",
    "TenantContextViolation",
    "ResolutionUnavailable",
    "InvalidGrantReference",

    # Infrastructure
    "GrantStoreError",
    "GrantStoreUnavailableError",
    "CacheError",
    "ConfigurationError",
    "ValidationError",
]
