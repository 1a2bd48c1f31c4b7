"""Base exceptions for neo-access.

All exceptions inherit from NeoAccessError and carry an error code and
structured details. Details are for operators (logs, audit trail) and are
never rendered to end users for security errors.
"""

from typing import Any, Dict, Optional


class NeoAccessError(Exception):
    """Base exception for all neo-access errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        *args,
        **kwargs
    ):
        super().__init__(message, *args, **kwargs)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for logging and audit detail."""
        return {
            "code": self.error_code,
            "message": self.message,
            "details": self.details,
            "type": self.__class__.__name__,
        }


def get_http_status_code(exception: Exception) -> int:
    """Get HTTP status code for exception.

    Args:
        exception: The exception instance

    Returns:
        HTTP status code
    """
    from .http_mapping import get_http_status_code as get_mapped_status_code
    return get_mapped_status_code(exception)


def create_error_response(exception: NeoAccessError) -> Dict[str, Any]:
    """Create standardized error response from exception.

    Security errors collapse to a generic "Access denied" body; the real
    reason stays in logs and the audit trail.
    """
    from .http_mapping import is_security_error

    if is_security_error(exception):
        return {
            "error": {
                "code": "ACCESS_DENIED",
                "message": "Access denied",
            }
        }

    return {
        "error": {
            "code": exception.error_code,
            "message": exception.message,
            "details": exception.details,
            "type": exception.__class__.__name__,
        }
    }
