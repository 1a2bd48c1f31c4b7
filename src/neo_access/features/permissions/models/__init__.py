"""Request and response models for permission resolution."""

from .requests import PermissionCheckRequest, BulkPermissionCheckRequest
from .responses import (
    PermissionCheckResponse,
    BulkPermissionCheckResponse,
    EffectivePermissionResponse,
    EffectivePermissionsResponse,
)

__all__ = [
    "PermissionCheckRequest",
    "BulkPermissionCheckRequest",
    "PermissionCheckResponse",
    "BulkPermissionCheckResponse",
    "EffectivePermissionResponse",
    "EffectivePermissionsResponse",
]
