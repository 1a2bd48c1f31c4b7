"""Permission services."""

from .permission_resolver import PermissionResolver
from .grant_service import GrantService
from .resolution_api import ResolutionAPI

__all__ = [
    "PermissionResolver",
    "GrantService",
    "ResolutionAPI",
]
