"""Permissions feature for neo-access.

- entities/: permission, role and grant objects, derived effective
  permissions and the grant store protocols
- repositories/: in-memory and asyncpg grant stores
- services/: resolver, grant mutation service and resolution API facade
- models/: pydantic request and response models
"""

# Core permission entities and protocols
from .entities import (
    Permission, Role, SYSTEM_ROLES,
    RolePermission, UserRole, UserPermission,
    EffectivePermission, EffectivePermissionSet, PermissionCheck,
    GrantReader, GrantReverseLookup, GrantWriter, GrantStore,
)

# Concrete grant stores
from .repositories import InMemoryGrantStore, AsyncPGGrantStore

# Services
from .services import PermissionResolver, GrantService, ResolutionAPI

__all__ = [
    # Entities
    "Permission",
    "Role",
    "SYSTEM_ROLES",
    "RolePermission",
    "UserRole",
    "UserPermission",
    "EffectivePermission",
    "EffectivePermissionSet",
    "PermissionCheck",

    # Protocols
    "GrantReader",
    "GrantReverseLookup",
    "GrantWriter",
    "GrantStore",

    # Repository Implementations
    "InMemoryGrantStore",
    "AsyncPGGrantStore",

    # Services
    "PermissionResolver",
    "GrantService",
    "ResolutionAPI",
]
