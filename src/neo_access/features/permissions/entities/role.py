"""Role domain entity for neo-access.

Roles are flat named bundles of permissions inside one tenant. A role never
inherits another role's permissions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ....core.value_objects import validate_identifier
from ...tenants.entities import utc_now


SYSTEM_ROLES = ("owner", "admin", "member", "viewer")


@dataclass(frozen=True)
class Role:
    """Tenant-scoped role - maps to access.roles."""

    id: str
    tenant_id: str
    name: str
    is_system_role: bool = False
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "id", validate_identifier(self.id, "Role ID"))
        object.__setattr__(self, "tenant_id", validate_identifier(self.tenant_id, "Tenant ID"))
        object.__setattr__(self, "name", validate_identifier(self.name, "Role name"))

    @property
    def is_active(self) -> bool:
        """Check if role is not soft-deleted."""
        return self.deleted_at is None

    def is_assignable(self) -> bool:
        """Active roles can be assigned to users."""
        return self.is_active
