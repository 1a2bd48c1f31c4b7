"""In-memory grant store.

Implements the GrantStore protocol over plain dictionaries for development
and tests. Tenant isolation is enforced exactly as in the database store:
every call checks the active tenant context before touching any row.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from ....config.constants import TenantStatus
from ...tenants.context import ensure_tenant
from ...tenants.entities import Tenant, TenantMembership
from ..entities.grants import RolePermission, UserPermission, UserRole
from ..entities.permission import Permission
from ..entities.role import Role

logger = logging.getLogger(__name__)


class InMemoryGrantStore:
    """Dictionary-backed GrantStore."""

    def __init__(self):
        self._tenants: Dict[str, Tenant] = {}
        self._memberships: Dict[Tuple[str, str], TenantMembership] = {}
        self._roles: Dict[Tuple[str, str], Role] = {}
        self._permissions: Dict[Tuple[str, str], Permission] = {}
        self._role_permissions: Dict[Tuple[str, str, str], RolePermission] = {}
        self._user_roles: List[UserRole] = []
        self._user_permissions: List[UserPermission] = []

    def add_tenant(self, tenant: Tenant) -> Tenant:
        """Register a tenant. Tenant provisioning sits outside any tenant context."""
        self._tenants[tenant.id] = tenant
        return tenant

    # Reads

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        ensure_tenant(tenant_id, "get_tenant")
        return self._tenants.get(tenant_id)

    async def get_membership(self, tenant_id: str, user_id: str) -> Optional[TenantMembership]:
        ensure_tenant(tenant_id, "get_membership")
        return self._memberships.get((tenant_id, user_id))

    async def get_role(self, tenant_id: str, role_id: str) -> Optional[Role]:
        ensure_tenant(tenant_id, "get_role")
        return self._roles.get((tenant_id, role_id))

    async def get_permission(self, tenant_id: str, permission_id: str) -> Optional[Permission]:
        ensure_tenant(tenant_id, "get_permission")
        return self._permissions.get((tenant_id, permission_id))

    async def list_roles(self, tenant_id: str, include_deleted: bool = False) -> List[Role]:
        ensure_tenant(tenant_id, "list_roles")
        return sorted(
            (role for (tid, _), role in self._roles.items()
             if tid == tenant_id and (include_deleted or role.is_active)),
            key=lambda role: role.name,
        )

    async def list_permissions(self, tenant_id: str, include_deleted: bool = False) -> List[Permission]:
        ensure_tenant(tenant_id, "list_permissions")
        return sorted(
            (perm for (tid, _), perm in self._permissions.items()
             if tid == tenant_id and (include_deleted or perm.is_active)),
            key=lambda perm: perm.name,
        )

    async def list_user_permissions(
        self,
        tenant_id: str,
        user_id: str,
        at: datetime
    ) -> List[Tuple[UserPermission, Permission]]:
        ensure_tenant(tenant_id, "list_user_permissions")
        result = []
        for grant in self._user_permissions:
            if grant.tenant_id != tenant_id or grant.user_id != user_id or not grant.is_live(at):
                continue
            permission = self._permissions.get((tenant_id, grant.permission_id))
            if permission is not None and permission.is_active:
                result.append((grant, permission))
        return result

    async def list_user_roles(
        self,
        tenant_id: str,
        user_id: str,
        at: datetime
    ) -> List[Tuple[UserRole, Role]]:
        ensure_tenant(tenant_id, "list_user_roles")
        result = []
        for assignment in self._user_roles:
            if assignment.tenant_id != tenant_id or assignment.user_id != user_id:
                continue
            if not assignment.is_live(at):
                continue
            role = self._roles.get((tenant_id, assignment.role_id))
            if role is not None and role.is_active:
                result.append((assignment, role))
        return result

    async def list_role_permissions(
        self,
        tenant_id: str,
        role_ids: List[str]
    ) -> Dict[str, List[Permission]]:
        ensure_tenant(tenant_id, "list_role_permissions")
        wanted = set(role_ids)
        result: Dict[str, List[Permission]] = {role_id: [] for role_id in wanted}
        for (tid, role_id, permission_id), link in self._role_permissions.items():
            if tid != tenant_id or role_id not in wanted or not link.is_active:
                continue
            permission = self._permissions.get((tenant_id, permission_id))
            if permission is not None and permission.is_active:
                result[role_id].append(permission)
        return result

    # Reverse lookups

    async def list_role_holders(self, tenant_id: str, role_id: str) -> Set[str]:
        ensure_tenant(tenant_id, "list_role_holders")
        return {
            assignment.user_id for assignment in self._user_roles
            if assignment.tenant_id == tenant_id and assignment.role_id == role_id
        }

    async def list_permission_holders(self, tenant_id: str, permission_id: str) -> Set[str]:
        ensure_tenant(tenant_id, "list_permission_holders")
        role_ids = {
            role_id for (tid, role_id, pid) in self._role_permissions
            if tid == tenant_id and pid == permission_id
        }
        holders = {
            assignment.user_id for assignment in self._user_roles
            if assignment.tenant_id == tenant_id and assignment.role_id in role_ids
        }
        holders.update(
            grant.user_id for grant in self._user_permissions
            if grant.tenant_id == tenant_id and grant.permission_id == permission_id
        )
        return holders

    async def list_resource_grantees(self, tenant_id: str, resource_id: str) -> Set[str]:
        ensure_tenant(tenant_id, "list_resource_grantees")
        return {
            grant.user_id for grant in self._user_permissions
            if grant.tenant_id == tenant_id and grant.resource_id == resource_id
        }

    # Writes

    async def save_role(self, role: Role) -> Role:
        ensure_tenant(role.tenant_id, "save_role")
        self._roles[(role.tenant_id, role.id)] = role
        return role

    async def delete_role(self, tenant_id: str, role_id: str, at: datetime) -> bool:
        ensure_tenant(tenant_id, "delete_role")
        role = self._roles.get((tenant_id, role_id))
        if role is None or not role.is_active:
            return False
        self._roles[(tenant_id, role_id)] = replace(role, deleted_at=at)
        return True

    async def save_permission(self, permission: Permission) -> Permission:
        ensure_tenant(permission.tenant_id, "save_permission")
        self._permissions[(permission.tenant_id, permission.id)] = permission
        return permission

    async def delete_permission(self, tenant_id: str, permission_id: str, at: datetime) -> bool:
        ensure_tenant(tenant_id, "delete_permission")
        permission = self._permissions.get((tenant_id, permission_id))
        if permission is None or not permission.is_active:
            return False
        self._permissions[(tenant_id, permission_id)] = replace(permission, deleted_at=at)
        return True

    async def attach_permission(self, tenant_id: str, role_id: str, permission_id: str) -> RolePermission:
        ensure_tenant(tenant_id, "attach_permission")
        key = (tenant_id, role_id, permission_id)
        existing = self._role_permissions.get(key)
        if existing is not None and existing.is_active:
            return existing
        link = RolePermission(tenant_id=tenant_id, role_id=role_id, permission_id=permission_id)
        self._role_permissions[key] = link
        return link

    async def detach_permission(
        self,
        tenant_id: str,
        role_id: str,
        permission_id: str,
        at: datetime
    ) -> bool:
        ensure_tenant(tenant_id, "detach_permission")
        key = (tenant_id, role_id, permission_id)
        link = self._role_permissions.get(key)
        if link is None or not link.is_active:
            return False
        self._role_permissions[key] = replace(link, revoked_at=at)
        return True

    async def assign_role(self, user_role: UserRole) -> UserRole:
        ensure_tenant(user_role.tenant_id, "assign_role")
        self._user_roles.append(user_role)
        return user_role

    async def revoke_role(self, tenant_id: str, user_id: str, role_id: str, at: datetime) -> int:
        ensure_tenant(tenant_id, "revoke_role")
        revoked = 0
        for index, assignment in enumerate(self._user_roles):
            if (assignment.tenant_id == tenant_id and assignment.user_id == user_id
                    and assignment.role_id == role_id and assignment.is_live(at)):
                self._user_roles[index] = replace(assignment, expires_at=at)
                revoked += 1
        return revoked

    async def grant_permission(self, user_permission: UserPermission) -> UserPermission:
        ensure_tenant(user_permission.tenant_id, "grant_permission")
        self._user_permissions.append(user_permission)
        return user_permission

    async def revoke_permission(
        self,
        tenant_id: str,
        user_id: str,
        permission_id: str,
        resource_id: Optional[str],
        at: datetime
    ) -> int:
        ensure_tenant(tenant_id, "revoke_permission")
        revoked = 0
        for index, grant in enumerate(self._user_permissions):
            if (grant.tenant_id == tenant_id and grant.user_id == user_id
                    and grant.permission_id == permission_id
                    and grant.resource_id == resource_id and grant.is_live(at)):
                self._user_permissions[index] = replace(grant, expires_at=at)
                revoked += 1
        return revoked

    async def revoke_resource_grants(self, tenant_id: str, resource_id: str, at: datetime) -> int:
        ensure_tenant(tenant_id, "revoke_resource_grants")
        revoked = 0
        for index, grant in enumerate(self._user_permissions):
            if (grant.tenant_id == tenant_id and grant.resource_id == resource_id
                    and grant.is_live(at)):
                self._user_permissions[index] = replace(grant, expires_at=at)
                revoked += 1
        return revoked

    async def save_membership(self, membership: TenantMembership) -> TenantMembership:
        ensure_tenant(membership.tenant_id, "save_membership")
        self._memberships[(membership.tenant_id, membership.user_id)] = membership
        return membership

    async def set_tenant_status(self, tenant_id: str, status: TenantStatus) -> Optional[Tenant]:
        ensure_tenant(tenant_id, "set_tenant_status")
        tenant = self._tenants.get(tenant_id)
        if tenant is None:
            return None
        updated = replace(tenant, status=status)
        self._tenants[tenant_id] = updated
        logger.info(f"Tenant {tenant_id} status set to {status.value}")
        return updated
