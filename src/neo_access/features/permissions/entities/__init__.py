"""Permission entities and protocols."""

from .permission import Permission
from .role import Role, SYSTEM_ROLES
from .grants import RolePermission, UserRole, UserPermission
from .effective import EffectivePermission, EffectivePermissionSet, PermissionCheck
from .protocols import GrantReader, GrantReverseLookup, GrantWriter, GrantStore

__all__ = [
    "Permission",
    "Role",
    "SYSTEM_ROLES",
    "RolePermission",
    "UserRole",
    "UserPermission",
    "EffectivePermission",
    "EffectivePermissionSet",
    "PermissionCheck",
    "GrantReader",
    "GrantReverseLookup",
    "GrantWriter",
    "GrantStore",
]
