"""AsyncPG-based grant store implementation.

Concrete implementation of the GrantStore protocol. Every query runs in a
transaction that sets ``app.current_tenant`` for row-level security and
also filters on ``tenant_id`` explicitly, so isolation holds even if RLS is
misconfigured. Joins are always constrained to a single tenant.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple
import asyncio
import logging

import asyncpg

from ....config.constants import DatabaseSettings, PermissionAction, TenantStatus
from ....core.exceptions import GrantStoreError, GrantStoreUnavailableError
from ....database.connection import DatabaseManager
from ...tenants.context import ensure_tenant
from ...tenants.entities import Tenant, TenantMembership
from ..entities.grants import RolePermission, UserPermission, UserRole
from ..entities.permission import Permission
from ..entities.role import Role


logger = logging.getLogger(__name__)

UNAVAILABLE_ERRORS = (
    OSError,
    asyncio.TimeoutError,
    asyncpg.InterfaceError,
    asyncpg.PostgresConnectionError,
)


def _affected_rows(status: str) -> int:
    """Row count from an asyncpg command status such as ``UPDATE 3``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


class AsyncPGGrantStore:
    """AsyncPG implementation of the GrantStore protocol."""

    def __init__(self, database: DatabaseManager, schema: str = DatabaseSettings.SCHEMA):
        self.database = database
        self.schema = schema

    @asynccontextmanager
    async def _connection(self, tenant_id: str, operation: str):
        """Tenant-scoped transaction with driver errors mapped to store errors."""
        ensure_tenant(tenant_id, operation)
        try:
            async with self.database.tenant_transaction(tenant_id) as conn:
                yield conn
        except UNAVAILABLE_ERRORS as e:
            logger.error(f"Grant store unavailable during {operation} for tenant {tenant_id}: {e}")
            raise GrantStoreUnavailableError(
                f"Grant store unavailable: {e}", details={"operation": operation}
            ) from e
        except asyncpg.PostgresError as e:
            logger.error(f"Grant store query failed during {operation} for tenant {tenant_id}: {e}")
            raise GrantStoreError(
                f"Grant store query failed: {e}", details={"operation": operation}
            ) from e

    # Row mapping

    @staticmethod
    def _build_tenant(row: asyncpg.Record) -> Tenant:
        return Tenant(id=str(row["id"]), name=row["name"], status=TenantStatus(row["status"]))

    @staticmethod
    def _build_membership(row: asyncpg.Record) -> TenantMembership:
        return TenantMembership(
            tenant_id=str(row["tenant_id"]),
            user_id=str(row["user_id"]),
            is_active=row["is_active"],
            joined_at=row["joined_at"],
            left_at=row["left_at"],
        )

    @staticmethod
    def _build_role(row: asyncpg.Record, prefix: str = "") -> Role:
        return Role(
            id=str(row[f"{prefix}id"]),
            tenant_id=str(row[f"{prefix}tenant_id"]),
            name=row[f"{prefix}name"],
            is_system_role=row[f"{prefix}is_system_role"],
            description=row[f"{prefix}description"],
            created_at=row[f"{prefix}created_at"],
            deleted_at=row[f"{prefix}deleted_at"],
        )

    @staticmethod
    def _build_permission(row: asyncpg.Record, prefix: str = "") -> Permission:
        return Permission(
            id=str(row[f"{prefix}id"]),
            tenant_id=str(row[f"{prefix}tenant_id"]),
            name=row[f"{prefix}name"],
            resource=row[f"{prefix}resource"],
            action=PermissionAction(row[f"{prefix}action"]),
            description=row[f"{prefix}description"],
            created_at=row[f"{prefix}created_at"],
            deleted_at=row[f"{prefix}deleted_at"],
        )

    @staticmethod
    def _build_user_role(row: asyncpg.Record) -> UserRole:
        return UserRole(
            tenant_id=str(row["tenant_id"]),
            user_id=str(row["user_id"]),
            role_id=str(row["role_id"]),
            assigned_by=row["assigned_by"],
            assigned_at=row["assigned_at"],
            expires_at=row["expires_at"],
        )

    @staticmethod
    def _build_user_permission(row: asyncpg.Record) -> UserPermission:
        return UserPermission(
            tenant_id=str(row["tenant_id"]),
            user_id=str(row["user_id"]),
            permission_id=str(row["permission_id"]),
            resource_id=row["resource_id"],
            granted_by=row["granted_by"],
            granted_at=row["granted_at"],
            expires_at=row["expires_at"],
        )

    # Reads

    async def get_tenant(self, tenant_id: str) -> Optional[Tenant]:
        async with self._connection(tenant_id, "get_tenant") as conn:
            row = await conn.fetchrow(
                f"SELECT id, name, status FROM {self.schema}.tenants WHERE id = $1",
                tenant_id,
            )
        return self._build_tenant(row) if row else None

    async def get_membership(self, tenant_id: str, user_id: str) -> Optional[TenantMembership]:
        async with self._connection(tenant_id, "get_membership") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT tenant_id, user_id, is_active, joined_at, left_at
                FROM {self.schema}.tenant_memberships
                WHERE tenant_id = $1 AND user_id = $2
                """,
                tenant_id, user_id,
            )
        return self._build_membership(row) if row else None

    async def get_role(self, tenant_id: str, role_id: str) -> Optional[Role]:
        async with self._connection(tenant_id, "get_role") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT id, tenant_id, name, is_system_role, description, created_at, deleted_at
                FROM {self.schema}.roles
                WHERE tenant_id = $1 AND id = $2
                """,
                tenant_id, role_id,
            )
        return self._build_role(row) if row else None

    async def get_permission(self, tenant_id: str, permission_id: str) -> Optional[Permission]:
        async with self._connection(tenant_id, "get_permission") as conn:
            row = await conn.fetchrow(
                f"""
                SELECT id, tenant_id, name, resource, action, description, created_at, deleted_at
                FROM {self.schema}.permissions
                WHERE tenant_id = $1 AND id = $2
                """,
                tenant_id, permission_id,
            )
        return self._build_permission(row) if row else None

    async def list_roles(self, tenant_id: str, include_deleted: bool = False) -> List[Role]:
        deleted_clause = "" if include_deleted else "AND deleted_at IS NULL"
        async with self._connection(tenant_id, "list_roles") as conn:
            rows = await conn.fetch(
                f"""
                SELECT id, tenant_id, name, is_system_role, description, created_at, deleted_at
                FROM {self.schema}.roles
                WHERE tenant_id = $1 {deleted_clause}
                ORDER BY name
                """,
                tenant_id,
            )
        return [self._build_role(row) for row in rows]

    async def list_permissions(self, tenant_id: str, include_deleted: bool = False) -> List[Permission]:
        deleted_clause = "" if include_deleted else "AND deleted_at IS NULL"
        async with self._connection(tenant_id, "list_permissions") as conn:
            rows = await conn.fetch(
                f"""
                SELECT id, tenant_id, name, resource, action, description, created_at, deleted_at
                FROM {self.schema}.permissions
                WHERE tenant_id = $1 {deleted_clause}
                ORDER BY name
                """,
                tenant_id,
            )
        return [self._build_permission(row) for row in rows]

    async def list_user_permissions(
        self,
        tenant_id: str,
        user_id: str,
        at: datetime
    ) -> List[Tuple[UserPermission, Permission]]:
        async with self._connection(tenant_id, "list_user_permissions") as conn:
            rows = await conn.fetch(
                f"""
                SELECT up.tenant_id, up.user_id, up.permission_id, up.resource_id,
                       up.granted_by, up.granted_at, up.expires_at,
                       p.id AS p_id, p.tenant_id AS p_tenant_id, p.name AS p_name,
                       p.resource AS p_resource, p.action AS p_action,
                       p.description AS p_description, p.created_at AS p_created_at,
                       p.deleted_at AS p_deleted_at
                FROM {self.schema}.user_permissions up
                JOIN {self.schema}.permissions p
                  ON p.tenant_id = up.tenant_id AND p.id = up.permission_id
                WHERE up.tenant_id = $1
                  AND up.user_id = $2
                  AND (up.expires_at IS NULL OR up.expires_at > $3)
                  AND p.deleted_at IS NULL
                """,
                tenant_id, user_id, at,
            )
        return [
            (self._build_user_permission(row), self._build_permission(row, prefix="p_"))
            for row in rows
        ]

    async def list_user_roles(
        self,
        tenant_id: str,
        user_id: str,
        at: datetime
    ) -> List[Tuple[UserRole, Role]]:
        async with self._connection(tenant_id, "list_user_roles") as conn:
            rows = await conn.fetch(
                f"""
                SELECT ur.tenant_id, ur.user_id, ur.role_id, ur.assigned_by,
                       ur.assigned_at, ur.expires_at,
                       r.id AS r_id, r.tenant_id AS r_tenant_id, r.name AS r_name,
                       r.is_system_role AS r_is_system_role, r.description AS r_description,
                       r.created_at AS r_created_at, r.deleted_at AS r_deleted_at
                FROM {self.schema}.user_roles ur
                JOIN {self.schema}.roles r
                  ON r.tenant_id = ur.tenant_id AND r.id = ur.role_id
                WHERE ur.tenant_id = $1
                  AND ur.user_id = $2
                  AND (ur.expires_at IS NULL OR ur.expires_at > $3)
                  AND r.deleted_at IS NULL
                """,
                tenant_id, user_id, at,
            )
        return [(self._build_user_role(row), self._build_role(row, prefix="r_")) for row in rows]

    async def list_role_permissions(
        self,
        tenant_id: str,
        role_ids: List[str]
    ) -> Dict[str, List[Permission]]:
        result: Dict[str, List[Permission]] = {role_id: [] for role_id in role_ids}
        if not role_ids:
            ensure_tenant(tenant_id, "list_role_permissions")
            return result

        async with self._connection(tenant_id, "list_role_permissions") as conn:
            rows = await conn.fetch(
                f"""
                SELECT rp.role_id,
                       p.id, p.tenant_id, p.name, p.resource, p.action,
                       p.description, p.created_at, p.deleted_at
                FROM {self.schema}.role_permissions rp
                JOIN {self.schema}.permissions p
                  ON p.tenant_id = rp.tenant_id AND p.id = rp.permission_id
                WHERE rp.tenant_id = $1
                  AND rp.role_id = ANY($2::text[])
                  AND rp.revoked_at IS NULL
                  AND p.deleted_at IS NULL
                """,
                tenant_id, list(role_ids),
            )
        for row in rows:
            result.setdefault(str(row["role_id"]), []).append(self._build_permission(row))
        return result

    # Reverse lookups

    async def list_role_holders(self, tenant_id: str, role_id: str) -> Set[str]:
        async with self._connection(tenant_id, "list_role_holders") as conn:
            rows = await conn.fetch(
                f"""
                SELECT DISTINCT user_id FROM {self.schema}.user_roles
                WHERE tenant_id = $1 AND role_id = $2
                """,
                tenant_id, role_id,
            )
        return {str(row["user_id"]) for row in rows}

    async def list_permission_holders(self, tenant_id: str, permission_id: str) -> Set[str]:
        async with self._connection(tenant_id, "list_permission_holders") as conn:
            rows = await conn.fetch(
                f"""
                SELECT ur.user_id
                FROM {self.schema}.role_permissions rp
                JOIN {self.schema}.user_roles ur
                  ON ur.tenant_id = rp.tenant_id AND ur.role_id = rp.role_id
                WHERE rp.tenant_id = $1 AND rp.permission_id = $2
                UNION
                SELECT up.user_id
                FROM {self.schema}.user_permissions up
                WHERE up.tenant_id = $1 AND up.permission_id = $2
                """,
                tenant_id, permission_id,
            )
        return {str(row["user_id"]) for row in rows}

    async def list_resource_grantees(self, tenant_id: str, resource_id: str) -> Set[str]:
        async with self._connection(tenant_id, "list_resource_grantees") as conn:
            rows = await conn.fetch(
                f"""
                SELECT DISTINCT user_id FROM {self.schema}.user_permissions
                WHERE tenant_id = $1 AND resource_id = $2
                """,
                tenant_id, resource_id,
            )
        return {str(row["user_id"]) for row in rows}

    # Writes

    async def save_role(self, role: Role) -> Role:
        async with self._connection(role.tenant_id, "save_role") as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self.schema}.roles
                    (id, tenant_id, name, is_system_role, description, created_at, deleted_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    is_system_role = EXCLUDED.is_system_role,
                    description = EXCLUDED.description,
                    deleted_at = EXCLUDED.deleted_at
                WHERE {self.schema}.roles.tenant_id = EXCLUDED.tenant_id
                RETURNING id, tenant_id, name, is_system_role, description, created_at, deleted_at
                """,
                role.id, role.tenant_id, role.name, role.is_system_role,
                role.description, role.created_at, role.deleted_at,
            )
        if row is None:
            raise GrantStoreError(f"Role {role.id} belongs to another tenant")
        return self._build_role(row)

    async def delete_role(self, tenant_id: str, role_id: str, at: datetime) -> bool:
        async with self._connection(tenant_id, "delete_role") as conn:
            status = await conn.execute(
                f"""
                UPDATE {self.schema}.roles SET deleted_at = $3
                WHERE tenant_id = $1 AND id = $2 AND deleted_at IS NULL
                """,
                tenant_id, role_id, at,
            )
        return _affected_rows(status) > 0

    async def save_permission(self, permission: Permission) -> Permission:
        async with self._connection(permission.tenant_id, "save_permission") as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self.schema}.permissions
                    (id, tenant_id, name, resource, action, description, created_at, deleted_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                ON CONFLICT (id) DO UPDATE SET
                    name = EXCLUDED.name,
                    resource = EXCLUDED.resource,
                    action = EXCLUDED.action,
                    description = EXCLUDED.description,
                    deleted_at = EXCLUDED.deleted_at
                WHERE {self.schema}.permissions.tenant_id = EXCLUDED.tenant_id
                RETURNING id, tenant_id, name, resource, action, description, created_at, deleted_at
                """,
                permission.id, permission.tenant_id, permission.name, permission.resource,
                permission.action.value, permission.description,
                permission.created_at, permission.deleted_at,
            )
        if row is None:
            raise GrantStoreError(f"Permission {permission.id} belongs to another tenant")
        return self._build_permission(row)

    async def delete_permission(self, tenant_id: str, permission_id: str, at: datetime) -> bool:
        async with self._connection(tenant_id, "delete_permission") as conn:
            status = await conn.execute(
                f"""
                UPDATE {self.schema}.permissions SET deleted_at = $3
                WHERE tenant_id = $1 AND id = $2 AND deleted_at IS NULL
                """,
                tenant_id, permission_id, at,
            )
        return _affected_rows(status) > 0

    async def attach_permission(self, tenant_id: str, role_id: str, permission_id: str) -> RolePermission:
        async with self._connection(tenant_id, "attach_permission") as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self.schema}.role_permissions (tenant_id, role_id, permission_id)
                VALUES ($1, $2, $3)
                ON CONFLICT (tenant_id, role_id, permission_id) DO UPDATE SET
                    granted_at = CASE
                        WHEN {self.schema}.role_permissions.revoked_at IS NULL
                        THEN {self.schema}.role_permissions.granted_at
                        ELSE now()
                    END,
                    revoked_at = NULL
                RETURNING tenant_id, role_id, permission_id, granted_at, revoked_at
                """,
                tenant_id, role_id, permission_id,
            )
        return RolePermission(
            tenant_id=str(row["tenant_id"]),
            role_id=str(row["role_id"]),
            permission_id=str(row["permission_id"]),
            granted_at=row["granted_at"],
            revoked_at=row["revoked_at"],
        )

    async def detach_permission(
        self,
        tenant_id: str,
        role_id: str,
        permission_id: str,
        at: datetime
    ) -> bool:
        async with self._connection(tenant_id, "detach_permission") as conn:
            status = await conn.execute(
                f"""
                UPDATE {self.schema}.role_permissions SET revoked_at = $4
                WHERE tenant_id = $1 AND role_id = $2 AND permission_id = $3
                  AND revoked_at IS NULL
                """,
                tenant_id, role_id, permission_id, at,
            )
        return _affected_rows(status) > 0

    async def assign_role(self, user_role: UserRole) -> UserRole:
        async with self._connection(user_role.tenant_id, "assign_role") as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self.schema}.user_roles
                    (tenant_id, user_id, role_id, assigned_by, assigned_at, expires_at)
                VALUES ($1, $2, $3, $4, $5, $6)
                RETURNING tenant_id, user_id, role_id, assigned_by, assigned_at, expires_at
                """,
                user_role.tenant_id, user_role.user_id, user_role.role_id,
                user_role.assigned_by, user_role.assigned_at, user_role.expires_at,
            )
        return self._build_user_role(row)

    async def revoke_role(self, tenant_id: str, user_id: str, role_id: str, at: datetime) -> int:
        async with self._connection(tenant_id, "revoke_role") as conn:
            status = await conn.execute(
                f"""
                UPDATE {self.schema}.user_roles SET expires_at = $4
                WHERE tenant_id = $1 AND user_id = $2 AND role_id = $3
                  AND (expires_at IS NULL OR expires_at > $4)
                """,
                tenant_id, user_id, role_id, at,
            )
        return _affected_rows(status)

    async def grant_permission(self, user_permission: UserPermission) -> UserPermission:
        async with self._connection(user_permission.tenant_id, "grant_permission") as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self.schema}.user_permissions
                    (tenant_id, user_id, permission_id, resource_id, granted_by, granted_at, expires_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING tenant_id, user_id, permission_id, resource_id,
                          granted_by, granted_at, expires_at
                """,
                user_permission.tenant_id, user_permission.user_id,
                user_permission.permission_id, user_permission.resource_id,
                user_permission.granted_by, user_permission.granted_at,
                user_permission.expires_at,
            )
        return self._build_user_permission(row)

    async def revoke_permission(
        self,
        tenant_id: str,
        user_id: str,
        permission_id: str,
        resource_id: Optional[str],
        at: datetime
    ) -> int:
        async with self._connection(tenant_id, "revoke_permission") as conn:
            status = await conn.execute(
                f"""
                UPDATE {self.schema}.user_permissions SET expires_at = $5
                WHERE tenant_id = $1 AND user_id = $2 AND permission_id = $3
                  AND resource_id IS NOT DISTINCT FROM $4
                  AND (expires_at IS NULL OR expires_at > $5)
                """,
                tenant_id, user_id, permission_id, resource_id, at,
            )
        return _affected_rows(status)

    async def revoke_resource_grants(self, tenant_id: str, resource_id: str, at: datetime) -> int:
        async with self._connection(tenant_id, "revoke_resource_grants") as conn:
            status = await conn.execute(
                f"""
                UPDATE {self.schema}.user_permissions SET expires_at = $3
                WHERE tenant_id = $1 AND resource_id = $2
                  AND (expires_at IS NULL OR expires_at > $3)
                """,
                tenant_id, resource_id, at,
            )
        return _affected_rows(status)

    async def save_membership(self, membership: TenantMembership) -> TenantMembership:
        async with self._connection(membership.tenant_id, "save_membership") as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO {self.schema}.tenant_memberships
                    (tenant_id, user_id, is_active, joined_at, left_at)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (tenant_id, user_id) DO UPDATE SET
                    is_active = EXCLUDED.is_active,
                    left_at = EXCLUDED.left_at
                RETURNING tenant_id, user_id, is_active, joined_at, left_at
                """,
                membership.tenant_id, membership.user_id, membership.is_active,
                membership.joined_at, membership.left_at,
            )
        return self._build_membership(row)

    async def set_tenant_status(self, tenant_id: str, status: TenantStatus) -> Optional[Tenant]:
        async with self._connection(tenant_id, "set_tenant_status") as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE {self.schema}.tenants SET status = $2
                WHERE id = $1
                RETURNING id, name, status
                """,
                tenant_id, status.value,
            )
        if row:
            logger.info(f"Tenant {tenant_id} status set to {status.value}")
        return self._build_tenant(row) if row else None
