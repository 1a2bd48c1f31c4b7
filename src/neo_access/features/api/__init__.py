"""FastAPI integration for neo-access."""

from .middleware import TenantContextMiddleware
from .dependencies import PermissionDependencies, AccessDenied
from .exception_handlers import register_exception_handlers

__all__ = [
    "TenantContextMiddleware",
    "PermissionDependencies",
    "AccessDenied",
    "register_exception_handlers",
]
