"""Infrastructure-specific exceptions for neo-access.

This module defines exceptions related to external systems (grant store,
cache, configuration) and input validation.
"""

from .base import NeoAccessError


# Grant store errors
class GrantStoreError(NeoAccessError):
    """Base class for grant store errors."""
    pass


class GrantStoreUnavailableError(GrantStoreError):
    """Raised when the grant store cannot be reached."""
    pass


# Cache errors
class CacheError(NeoAccessError):
    """Base class for cache-related errors."""
    pass


# Configuration errors
class ConfigurationError(NeoAccessError):
    """Raised when configuration is missing or invalid."""
    pass


# Validation errors
class ValidationError(NeoAccessError):
    """Raised when input validation fails."""
    pass
