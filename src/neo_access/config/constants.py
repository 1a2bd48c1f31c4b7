"""Constants and enums for neo-access.

This module defines the constants, enums, and default configuration values
used throughout the neo-access library. The enums correspond to the database
enums defined in the reference schema (``database/sql/schema.sql``).
"""

from enum import Enum
from typing import Final


class PermissionAction(str, Enum):
    """Actions a permission can grant - corresponds to access.permission_action."""

    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"
    VIEW = "view"
    EDIT = "edit"

    @classmethod
    def values(cls) -> list[str]:
        """Get all action values."""
        return [action.value for action in cls]


class TenantStatus(str, Enum):
    """Tenant lifecycle status - corresponds to access.tenant_status."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class GrantChangeType(str, Enum):
    """Kinds of grant change that trigger cache invalidation."""

    USER = "user"
    ROLE = "role"
    PERMISSION = "permission"
    ENTITY = "entity"
    TENANT = "tenant"


class AuditOutcome(str, Enum):
    """Outcome recorded on audit events."""

    SUCCESS = "success"
    FAILURE = "failure"
    DENIED = "denied"


class PermissionSource:
    """Provenance markers for effective permissions."""

    DIRECT: Final[str] = "direct"


class CacheDefaults:
    """Resolution cache defaults."""

    TTL_SECONDS: Final[int] = 300  # 5 minutes
    MAX_ENTRIES: Final[int] = 10_000
    SWEEP_INTERVAL_SECONDS: Final[int] = 60


class CascadeDepth:
    """Number of lookup hops needed to find the users affected by an event."""

    USER: Final[int] = 1
    ENTITY: Final[int] = 1
    TENANT: Final[int] = 1
    ROLE: Final[int] = 2
    PERMISSION: Final[int] = 2


class DefaultSensitiveResources:
    """Resource types whose denied checks are always audited."""

    RESOURCES: Final[tuple[str, ...]] = (
        "users",
        "roles",
        "permissions",
        "tenants",
        "audit_logs",
        "settings",
    )


class HeaderNames:
    """HTTP headers carrying request-scoped access context."""

    TENANT_ID: Final[str] = "X-Tenant-ID"
    USER_ID: Final[str] = "X-User-ID"
    CORRELATION_ID: Final[str] = "X-Correlation-ID"


class DatabaseSettings:
    """Postgres settings used for row-level security."""

    TENANT_SETTING: Final[str] = "app.current_tenant"
    SCHEMA: Final[str] = "access"
