"""Protocol interfaces for the grant store.

The grant store is the tenant-scoped source of truth for roles, permissions
and grants. Every method takes the tenant id explicitly and must refuse to
run unless it equals the active tenant context, so no query ever reads or
writes another tenant's rows.
"""

from abc import abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Protocol, Set, Tuple, runtime_checkable

from ....config.constants import TenantStatus
from ...tenants.entities import Tenant, TenantMembership
from .grants import RolePermission, UserPermission, UserRole
from .permission import Permission
from .role import Role


@runtime_checkable
class GrantReader(Protocol):
    """Reads needed to resolve a user's effective permissions."""

    @abstractmethod
    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        """Get the tenant record."""
        ...

    @abstractmethod
    async def get_membership(self, tenant_id: str, user_id: str) -> Optional[TenantMembership]:
        """Get a user's membership in the tenant."""
        ...

    @abstractmethod
    async def get_role(self, tenant_id: str, role_id: str) -> Optional[Role]:
        """Get a role by id, including soft-deleted roles."""
        ...

    @abstractmethod
    async def get_permission(self, tenant_id: str, permission_id: str) -> Optional[Permission]:
        """Get a permission by id, including soft-deleted permissions."""
        ...

    @abstractmethod
    async def list_roles(self, tenant_id: str, include_deleted: bool = False) -> List[Role]:
        """List roles defined in the tenant."""
        ...

    @abstractmethod
    async def list_permissions(self, tenant_id: str, include_deleted: bool = False) -> List[Permission]:
        """List permissions defined in the tenant."""
        ...

    @abstractmethod
    async def list_user_permissions(
        self,
        tenant_id: str,
        user_id: str,
        at: datetime
    ) -> List[Tuple[UserPermission, Permission]]:
        """Direct grants live at ``at`` whose permission is not deleted."""
        ...

    @abstractmethod
    async def list_user_roles(
        self,
        tenant_id: str,
        user_id: str,
        at: datetime
    ) -> List[Tuple[UserRole, Role]]:
        """Role assignments live at ``at`` whose role is not deleted."""
        ...

    @abstractmethod
    async def list_role_permissions(
        self,
        tenant_id: str,
        role_ids: List[str]
    ) -> Dict[str, List[Permission]]:
        """Active permissions of each role over non-revoked links, in one batch."""
        ...


@runtime_checkable
class GrantReverseLookup(Protocol):
    """Reverse lookups used by cache invalidation.

    Results include expired, revoked and soft-deleted rows: invalidation
    evicts a superset of the affected users.
    """

    @abstractmethod
    async def list_role_holders(self, tenant_id: str, role_id: str) -> Set[str]:
        """Users who hold or held the role."""
        ...

    @abstractmethod
    async def list_permission_holders(self, tenant_id: str, permission_id: str) -> Set[str]:
        """Users granted the permission directly or via any role linked to it."""
        ...

    @abstractmethod
    async def list_resource_grantees(self, tenant_id: str, resource_id: str) -> Set[str]:
        """Users with a grant scoped to the resource instance."""
        ...


@runtime_checkable
class GrantWriter(Protocol):
    """Grant mutations. Callers go through GrantService so caches are invalidated."""

    @abstractmethod
    async def save_role(self, role: Role) -> Role:
        """Create or replace a role."""
        ...

    @abstractmethod
    async def delete_role(self, tenant_id: str, role_id: str, at: datetime) -> bool:
        """Soft-delete a role."""
        ...

    @abstractmethod
    async def save_permission(self, permission: Permission) -> Permission:
        """Create or replace a permission."""
        ...

    @abstractmethod
    async def delete_permission(self, tenant_id: str, permission_id: str, at: datetime) -> bool:
        """Soft-delete a permission."""
        ...

    @abstractmethod
    async def attach_permission(self, tenant_id: str, role_id: str, permission_id: str) -> RolePermission:
        """Link a permission to a role, reactivating a revoked link."""
        ...

    @abstractmethod
    async def detach_permission(
        self,
        tenant_id: str,
        role_id: str,
        permission_id: str,
        at: datetime
    ) -> bool:
        """Revoke a role-permission link."""
        ...

    @abstractmethod
    async def assign_role(self, user_role: UserRole) -> UserRole:
        """Assign a role to a user."""
        ...

    @abstractmethod
    async def revoke_role(self, tenant_id: str, user_id: str, role_id: str, at: datetime) -> int:
        """Expire the user's live assignments of the role."""
        ...

    @abstractmethod
    async def grant_permission(self, user_permission: UserPermission) -> UserPermission:
        """Grant a permission directly to a user."""
        ...

    @abstractmethod
    async def revoke_permission(
        self,
        tenant_id: str,
        user_id: str,
        permission_id: str,
        resource_id: Optional[str],
        at: datetime
    ) -> int:
        """Expire the user's live direct grants of the permission."""
        ...

    @abstractmethod
    async def revoke_resource_grants(self, tenant_id: str, resource_id: str, at: datetime) -> int:
        """Expire every live grant scoped to the resource instance."""
        ...

    @abstractmethod
    async def save_membership(self, membership: TenantMembership) -> TenantMembership:
        """Create or replace a tenant membership."""
        ...

    @abstractmethod
    async def set_tenant_status(self, tenant_id: str, status: TenantStatus) -> Optional[Tenant]:
        """Change the tenant's status."""
        ...


@runtime_checkable
class GrantStore(GrantReader, GrantReverseLookup, GrantWriter, Protocol):
    """Complete tenant-scoped grant store."""
    pass
