"""Grant link entities: role-permission, user-role and user-permission rows.

Grants are never physically deleted by the access layer. Revoking a user
grant sets ``expires_at``; detaching a permission from a role sets
``revoked_at``. Expired or revoked rows stay visible to reverse lookups used
by cache invalidation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ...tenants.entities import utc_now


def _is_live(expires_at: Optional[datetime], at: datetime) -> bool:
    return expires_at is None or expires_at > at


@dataclass(frozen=True)
class RolePermission:
    """Permission attached to a role - maps to access.role_permissions."""

    tenant_id: str
    role_id: str
    permission_id: str
    granted_at: datetime = field(default_factory=utc_now)
    revoked_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.revoked_at is None


@dataclass(frozen=True)
class UserRole:
    """Role assigned to a user - maps to access.user_roles."""

    tenant_id: str
    user_id: str
    role_id: str
    assigned_by: Optional[str] = None
    assigned_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None

    def is_live(self, at: datetime) -> bool:
        """Whether the assignment is in force at ``at``."""
        return _is_live(self.expires_at, at)


@dataclass(frozen=True)
class UserPermission:
    """Permission granted directly to a user - maps to access.user_permissions.

    ``resource_id`` limits the grant to one resource instance; None grants on
    the whole resource type.
    """

    tenant_id: str
    user_id: str
    permission_id: str
    resource_id: Optional[str] = None
    granted_by: Optional[str] = None
    granted_at: datetime = field(default_factory=utc_now)
    expires_at: Optional[datetime] = None

    def is_live(self, at: datetime) -> bool:
        """Whether the grant is in force at ``at``."""
        return _is_live(self.expires_at, at)
