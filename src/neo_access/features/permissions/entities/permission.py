"""Permission domain entity for neo-access.

A permission names one action on one resource type inside a tenant, for
example ``documents:update``. Permissions do not imply each other: holding
``manage`` on a resource says nothing about ``read``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from ....config.constants import PermissionAction
from ....core.value_objects import (
    PermissionKey,
    ResourceType,
    parse_action,
    validate_identifier,
)
from ...tenants.entities import utc_now


@dataclass(frozen=True)
class Permission:
    """Tenant-scoped permission definition - maps to access.permissions."""

    id: str
    tenant_id: str
    name: str
    resource: str
    action: PermissionAction
    description: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    deleted_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "id", validate_identifier(self.id, "Permission ID"))
        object.__setattr__(self, "tenant_id", validate_identifier(self.tenant_id, "Tenant ID"))
        object.__setattr__(self, "name", validate_identifier(self.name, "Permission name"))
        object.__setattr__(self, "resource", ResourceType.of(self.resource).value)
        object.__setattr__(self, "action", parse_action(self.action))

    @property
    def is_active(self) -> bool:
        """Check if permission is not soft-deleted."""
        return self.deleted_at is None

    @property
    def code(self) -> str:
        """``resource:action`` code."""
        return f"{self.resource}:{self.action.value}"

    def key(self, resource_id: Optional[str] = None) -> PermissionKey:
        """Effective-permission key for this permission, optionally scoped."""
        return PermissionKey(self.resource, self.action, resource_id)
