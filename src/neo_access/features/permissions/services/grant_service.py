"""Grant mutation service.

The only supported way to change roles, permissions and grants. Every
mutation validates its references inside the active tenant, writes through
the grant store, and runs the invalidation cascade before returning, so a
caller that sees a mutation succeed will never observe a stale check
afterwards.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union, TYPE_CHECKING

from ....config.constants import AuditOutcome, PermissionAction, TenantStatus
from ....core.exceptions import InvalidGrantReference, ValidationError
from ....core.value_objects import validate_identifier, validate_optional_identifier
from ...audit.emitter import AuditEmitter, emit_safely
from ...audit.events import AuditEvent
from ...invalidation.entities.events import GrantChangeEvent, InvalidationResult
from ...tenants.context import ensure_tenant
from ...tenants.entities import Tenant, TenantMembership, utc_now
from ..entities.grants import RolePermission, UserPermission, UserRole
from ..entities.permission import Permission
from ..entities.protocols import GrantStore
from ..entities.role import Role

if TYPE_CHECKING:
    from ...invalidation.services.invalidation_coordinator import InvalidationCoordinator


logger = logging.getLogger(__name__)


class GrantService:
    """Service orchestrating grant mutations with cache invalidation and audit."""

    def __init__(
        self,
        grant_store: GrantStore,
        coordinator: "InvalidationCoordinator",
        audit_emitter: AuditEmitter,
        now: Callable[[], datetime] = utc_now
    ):
        self.grant_store = grant_store
        self.coordinator = coordinator
        self.audit_emitter = audit_emitter
        self._now = now

    # Role Management

    async def create_role(
        self,
        tenant_id: str,
        name: str,
        description: Optional[str] = None,
        is_system_role: bool = False,
        role_id: Optional[str] = None
    ) -> Role:
        """Create a role. A new role has no holders, so nothing is invalidated."""
        tenant_id = self._tenant(tenant_id)
        role = Role(
            id=role_id or str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=name,
            is_system_role=is_system_role,
            description=description,
            created_at=self._now(),
        )
        if await self.grant_store.get_role(tenant_id, role.id) is not None:
            raise ValidationError(f"Role {role.id} already exists")

        created = await self.grant_store.save_role(role)
        logger.info(f"Created role {created.name} ({created.id}) in tenant {tenant_id}")
        await self._audit(tenant_id, "role.create", "roles", resource_id=created.id, detail={"name": created.name})
        return created

    async def update_role(
        self,
        tenant_id: str,
        role_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Role:
        """Rename or re-describe a role. Holders are invalidated because provenance names the role."""
        tenant_id = self._tenant(tenant_id)
        role = await self._require_role(tenant_id, role_id)
        updated = Role(
            id=role.id,
            tenant_id=tenant_id,
            name=name if name is not None else role.name,
            is_system_role=role.is_system_role,
            description=description if description is not None else role.description,
            created_at=role.created_at,
        )
        saved = await self.grant_store.save_role(updated)
        await self._changed(GrantChangeEvent.role(tenant_id, role.id, reason="role.update"))
        await self._audit(tenant_id, "role.update", "roles", resource_id=role.id, detail={"name": saved.name})
        return saved

    async def delete_role(self, tenant_id: str, role_id: str) -> bool:
        """Soft-delete a role; its holders lose its permissions immediately."""
        tenant_id = self._tenant(tenant_id)
        role = await self._require_role(tenant_id, role_id)
        if role.is_system_role:
            raise ValidationError(f"System role {role.name} cannot be deleted")

        deleted = await self.grant_store.delete_role(tenant_id, role.id, self._now())
        if deleted:
            await self._changed(GrantChangeEvent.role(tenant_id, role.id, reason="role.delete"))
            await self._audit(tenant_id, "role.delete", "roles", resource_id=role.id)
        return deleted

    # Permission Management

    async def create_permission(
        self,
        tenant_id: str,
        name: str,
        resource: str,
        action: Union[str, PermissionAction],
        description: Optional[str] = None,
        permission_id: Optional[str] = None
    ) -> Permission:
        """Create a permission definition."""
        tenant_id = self._tenant(tenant_id)
        permission = Permission(
            id=permission_id or str(uuid.uuid4()),
            tenant_id=tenant_id,
            name=name,
            resource=resource,
            action=action,
            description=description,
            created_at=self._now(),
        )
        if await self.grant_store.get_permission(tenant_id, permission.id) is not None:
            raise ValidationError(f"Permission {permission.id} already exists")

        created = await self.grant_store.save_permission(permission)
        logger.info(f"Created permission {created.code} ({created.id}) in tenant {tenant_id}")
        await self._audit(
            tenant_id, "permission.create", "permissions",
            resource_id=created.id, detail={"code": created.code},
        )
        return created

    async def update_permission(
        self,
        tenant_id: str,
        permission_id: str,
        name: Optional[str] = None,
        resource: Optional[str] = None,
        action: Optional[Union[str, PermissionAction]] = None,
        description: Optional[str] = None
    ) -> Permission:
        """Change a permission definition and invalidate everyone holding it."""
        tenant_id = self._tenant(tenant_id)
        permission = await self._require_permission(tenant_id, permission_id)
        updated = Permission(
            id=permission.id,
            tenant_id=tenant_id,
            name=name if name is not None else permission.name,
            resource=resource if resource is not None else permission.resource,
            action=action if action is not None else permission.action,
            description=description if description is not None else permission.description,
            created_at=permission.created_at,
        )
        saved = await self.grant_store.save_permission(updated)
        await self._changed(GrantChangeEvent.permission(tenant_id, permission.id, reason="permission.update"))
        await self._audit(
            tenant_id, "permission.update", "permissions",
            resource_id=permission.id, detail={"code": saved.code},
        )
        return saved

    async def delete_permission(self, tenant_id: str, permission_id: str) -> bool:
        """Soft-delete a permission."""
        tenant_id = self._tenant(tenant_id)
        permission = await self._require_permission(tenant_id, permission_id)
        deleted = await self.grant_store.delete_permission(tenant_id, permission.id, self._now())
        if deleted:
            await self._changed(GrantChangeEvent.permission(tenant_id, permission.id, reason="permission.delete"))
            await self._audit(tenant_id, "permission.delete", "permissions", resource_id=permission.id)
        return deleted

    # Role-Permission Links

    async def attach_permission(self, tenant_id: str, role_id: str, permission_id: str) -> RolePermission:
        """Add a permission to a role."""
        tenant_id = self._tenant(tenant_id)
        role = await self._require_role(tenant_id, role_id)
        permission = await self._require_permission(tenant_id, permission_id)

        link = await self.grant_store.attach_permission(tenant_id, role.id, permission.id)
        await self._changed(GrantChangeEvent.role(tenant_id, role.id, reason="role.attach_permission"))
        await self._audit(
            tenant_id, "role.attach_permission", "roles",
            resource_id=role.id, detail={"permission_id": permission.id, "code": permission.code},
        )
        return link

    async def detach_permission(self, tenant_id: str, role_id: str, permission_id: str) -> bool:
        """Remove a permission from a role."""
        tenant_id = self._tenant(tenant_id)
        role = await self._require_role(tenant_id, role_id)
        permission = await self._require_permission(tenant_id, permission_id, allow_deleted=True)

        detached = await self.grant_store.detach_permission(tenant_id, role.id, permission.id, self._now())
        if detached:
            await self._changed(GrantChangeEvent.role(tenant_id, role.id, reason="role.detach_permission"))
            await self._audit(
                tenant_id, "role.detach_permission", "roles",
                resource_id=role.id, detail={"permission_id": permission.id, "code": permission.code},
            )
        return detached

    # User Grants

    async def assign_role(
        self,
        tenant_id: str,
        user_id: str,
        role_id: str,
        expires_at: Optional[datetime] = None,
        assigned_by: Optional[str] = None
    ) -> UserRole:
        """Assign a role to a member of the tenant."""
        tenant_id = self._tenant(tenant_id)
        user_id = await self._require_member(tenant_id, user_id)
        role = await self._require_role(tenant_id, role_id)
        now = self._now()
        self._check_expiry(expires_at, now)

        assignment = await self.grant_store.assign_role(
            UserRole(
                tenant_id=tenant_id,
                user_id=user_id,
                role_id=role.id,
                assigned_by=validate_optional_identifier(assigned_by, "Assigned by"),
                assigned_at=now,
                expires_at=expires_at,
            )
        )
        await self._changed(GrantChangeEvent.user(tenant_id, user_id, reason="role.assign"))
        await self._audit(
            tenant_id, "role.assign", "roles", user_id=user_id, resource_id=role.id,
            detail={"role": role.name, "assigned_by": assigned_by, "expires_at": _iso(expires_at)},
        )
        return assignment

    async def revoke_role(self, tenant_id: str, user_id: str, role_id: str) -> int:
        """Revoke a user's role by expiring the assignment. Returns rows expired."""
        tenant_id = self._tenant(tenant_id)
        user_id = validate_identifier(user_id, "User ID")
        role_id = validate_identifier(role_id, "Role ID")

        revoked = await self.grant_store.revoke_role(tenant_id, user_id, role_id, self._now())
        await self._changed(GrantChangeEvent.user(tenant_id, user_id, reason="role.revoke"))
        if revoked:
            await self._audit(tenant_id, "role.revoke", "roles", user_id=user_id, resource_id=role_id)
        return revoked

    async def grant_permission(
        self,
        tenant_id: str,
        user_id: str,
        permission_id: str,
        resource_id: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        granted_by: Optional[str] = None
    ) -> UserPermission:
        """Grant a permission directly to a member, optionally scoped to one resource."""
        tenant_id = self._tenant(tenant_id)
        user_id = await self._require_member(tenant_id, user_id)
        permission = await self._require_permission(tenant_id, permission_id)
        now = self._now()
        self._check_expiry(expires_at, now)

        grant = await self.grant_store.grant_permission(
            UserPermission(
                tenant_id=tenant_id,
                user_id=user_id,
                permission_id=permission.id,
                resource_id=validate_optional_identifier(resource_id, "Resource ID"),
                granted_by=validate_optional_identifier(granted_by, "Granted by"),
                granted_at=now,
                expires_at=expires_at,
            )
        )
        await self._changed(GrantChangeEvent.user(tenant_id, user_id, reason="permission.grant"))
        await self._audit(
            tenant_id, "permission.grant", permission.resource, user_id=user_id,
            resource_id=grant.resource_id,
            detail={"permission": permission.code, "granted_by": granted_by, "expires_at": _iso(expires_at)},
        )
        return grant

    async def revoke_permission(
        self,
        tenant_id: str,
        user_id: str,
        permission_id: str,
        resource_id: Optional[str] = None
    ) -> int:
        """Revoke a direct grant by expiring it. Returns rows expired."""
        tenant_id = self._tenant(tenant_id)
        user_id = validate_identifier(user_id, "User ID")
        permission_id = validate_identifier(permission_id, "Permission ID")
        resource_id = validate_optional_identifier(resource_id, "Resource ID")

        revoked = await self.grant_store.revoke_permission(
            tenant_id, user_id, permission_id, resource_id, self._now()
        )
        await self._changed(GrantChangeEvent.user(tenant_id, user_id, reason="permission.revoke"))
        if revoked:
            await self._audit(
                tenant_id, "permission.revoke", "permissions", user_id=user_id,
                resource_id=resource_id, detail={"permission_id": permission_id},
            )
        return revoked

    async def revoke_resource_grants(self, tenant_id: str, resource_id: str) -> int:
        """Expire every grant scoped to a resource instance, e.g. when it is deleted."""
        tenant_id = self._tenant(tenant_id)
        resource_id = validate_identifier(resource_id, "Resource ID")

        revoked = await self.grant_store.revoke_resource_grants(tenant_id, resource_id, self._now())
        await self._changed(GrantChangeEvent.entity(tenant_id, resource_id, reason="resource.revoke_grants"))
        await self._audit(
            tenant_id, "resource.revoke_grants", "resources",
            resource_id=resource_id, detail={"revoked": revoked},
        )
        return revoked

    # Membership

    async def add_member(self, tenant_id: str, user_id: str) -> TenantMembership:
        """Add or reactivate a user's membership."""
        tenant_id = self._tenant(tenant_id)
        user_id = validate_identifier(user_id, "User ID")
        membership = await self.grant_store.save_membership(
            TenantMembership(tenant_id=tenant_id, user_id=user_id, is_active=True, joined_at=self._now())
        )
        await self._changed(GrantChangeEvent.user(tenant_id, user_id, reason="membership.add"))
        await self._audit(tenant_id, "membership.add", "users", user_id=user_id)
        return membership

    async def remove_member(self, tenant_id: str, user_id: str) -> TenantMembership:
        """Deactivate a user's membership; they hold nothing in the tenant afterwards."""
        tenant_id = self._tenant(tenant_id)
        user_id = validate_identifier(user_id, "User ID")
        existing = await self.grant_store.get_membership(tenant_id, user_id)
        if existing is None:
            raise InvalidGrantReference("user", user_id, tenant_id)

        now = self._now()
        membership = await self.grant_store.save_membership(
            TenantMembership(
                tenant_id=tenant_id,
                user_id=user_id,
                is_active=False,
                joined_at=existing.joined_at,
                left_at=now,
            )
        )
        await self._changed(GrantChangeEvent.user(tenant_id, user_id, reason="membership.remove"))
        await self._audit(tenant_id, "membership.remove", "users", user_id=user_id)
        return membership

    # Tenant Status

    async def set_tenant_status(self, tenant_id: str, status: Union[str, TenantStatus]) -> Tenant:
        """Suspend, reactivate or delete a tenant; every cached set of the tenant is dropped."""
        tenant_id = self._tenant(tenant_id)
        try:
            status = TenantStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown tenant status: {status!r}")

        tenant = await self.grant_store.set_tenant_status(tenant_id, status)
        if tenant is None:
            raise InvalidGrantReference("tenant", tenant_id, tenant_id)

        await self._changed(GrantChangeEvent.tenant(tenant_id, reason=f"tenant.{status.value}"))
        await self._audit(tenant_id, "tenant.set_status", "tenants", resource_id=tenant_id, detail={"status": status.value})
        return tenant

    # Helpers

    @staticmethod
    def _tenant(tenant_id: str) -> str:
        tenant_id = validate_identifier(tenant_id, "Tenant ID")
        ensure_tenant(tenant_id)
        return tenant_id

    async def _require_role(self, tenant_id: str, role_id: str) -> Role:
        role_id = validate_identifier(role_id, "Role ID")
        role = await self.grant_store.get_role(tenant_id, role_id)
        if role is None or not role.is_active or role.tenant_id != tenant_id:
            raise InvalidGrantReference("role", role_id, tenant_id)
        return role

    async def _require_permission(
        self,
        tenant_id: str,
        permission_id: str,
        allow_deleted: bool = False
    ) -> Permission:
        permission_id = validate_identifier(permission_id, "Permission ID")
        permission = await self.grant_store.get_permission(tenant_id, permission_id)
        if permission is None or permission.tenant_id != tenant_id:
            raise InvalidGrantReference("permission", permission_id, tenant_id)
        if not permission.is_active and not allow_deleted:
            raise InvalidGrantReference("permission", permission_id, tenant_id)
        return permission

    async def _require_member(self, tenant_id: str, user_id: str) -> str:
        user_id = validate_identifier(user_id, "User ID")
        membership = await self.grant_store.get_membership(tenant_id, user_id)
        if membership is None or not membership.is_active:
            raise InvalidGrantReference("user", user_id, tenant_id)
        return user_id

    @staticmethod
    def _check_expiry(expires_at: Optional[datetime], now: datetime) -> None:
        if expires_at is None:
            return
        if expires_at.tzinfo is None:
            raise ValidationError("expires_at must be timezone-aware")
        if expires_at <= now:
            raise ValidationError("expires_at must be in the future")

    async def _changed(self, event: GrantChangeEvent) -> InvalidationResult:
        return await self.coordinator.on_grant_changed(event)

    async def _audit(
        self,
        tenant_id: str,
        action: str,
        resource_type: str,
        user_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None
    ) -> None:
        await emit_safely(
            self.audit_emitter,
            AuditEvent(
                tenant_id=tenant_id,
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                outcome=AuditOutcome.SUCCESS,
                resource_id=resource_id,
                detail=detail or {},
            ),
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
