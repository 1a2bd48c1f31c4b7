"""HTTP status code mapping for neo-access exceptions."""

from typing import Dict, Type

from .base import NeoAccessError
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


# Most specific classes first; the first isinstance match wins.
HTTP_STATUS_MAP: Dict[Type[Exception], int] = {
    TenantContextViolation: 403,
    MissingTenantContext: 403,
    ResolutionUnavailable: 403,
    InvalidGrantReference: 422,
    AccessControlError: 403,
    ValidationError: 400,
    GrantStoreUnavailableError: 503,
    GrantStoreError: 500,
    CacheError: 500,
    ConfigurationError: 500,
    NeoAccessError: 500,
}

SECURITY_ERRORS = (
    MissingTenantContext,
    TenantContextViolation,
    ResolutionUnavailable,
)


def get_http_status_code(exception: Exception) -> int:
    """Return the HTTP status for an exception, 500 if unmapped."""
    for exception_type, status_code in HTTP_STATUS_MAP.items():
        if isinstance(exception, exception_type):
            return status_code
    return 500


def is_security_error(exception: Exception) -> bool:
    """Whether the exception must be shown to end users only as "Access denied"."""
    return isinstance(exception, SECURITY_ERRORS)
