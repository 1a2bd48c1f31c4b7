"""Grant-change events and invalidation results."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Optional

from ....config.constants import GrantChangeType
from ....core.exceptions import ValidationError
from ....core.value_objects import validate_identifier, validate_optional_identifier
from ...tenants.entities import utc_now


_REQUIRED_FIELDS = {
    GrantChangeType.USER: "user_id",
    GrantChangeType.ROLE: "role_id",
    GrantChangeType.PERMISSION: "permission_id",
    GrantChangeType.ENTITY: "resource_id",
    GrantChangeType.TENANT: None,
}


@dataclass(frozen=True)
class GrantChangeEvent:
    """A committed change to grants that may invalidate cached permission sets.

    Each change type needs its own subject id: ``user_id`` for user events,
    ``role_id`` for role events, ``permission_id`` for permission events and
    ``resource_id`` for entity events. Tenant events need only the tenant.
    """

    change_type: GrantChangeType
    tenant_id: str
    user_id: Optional[str] = None
    role_id: Optional[str] = None
    permission_id: Optional[str] = None
    resource_id: Optional[str] = None
    reason: Optional[str] = None
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=utc_now)
    origin_node: Optional[str] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "change_type", GrantChangeType(self.change_type))
        except ValueError:
            raise ValidationError(f"Unknown grant change type: {self.change_type!r}")
        if self.occurred_at.tzinfo is None:
            object.__setattr__(self, "occurred_at", self.occurred_at.replace(tzinfo=timezone.utc))
        object.__setattr__(self, "tenant_id", validate_identifier(self.tenant_id, "Tenant ID"))
        for name in ("user_id", "role_id", "permission_id", "resource_id"):
            object.__setattr__(self, name, validate_optional_identifier(getattr(self, name), name))

        required = _REQUIRED_FIELDS[self.change_type]
        if required and getattr(self, required) is None:
            raise ValidationError(f"{self.change_type.value} change event requires {required}")

    @classmethod
    def user(cls, tenant_id: str, user_id: str, **kwargs) -> "GrantChangeEvent":
        return cls(GrantChangeType.USER, tenant_id, user_id=user_id, **kwargs)

    @classmethod
    def role(cls, tenant_id: str, role_id: str, **kwargs) -> "GrantChangeEvent":
        return cls(GrantChangeType.ROLE, tenant_id, role_id=role_id, **kwargs)

    @classmethod
    def permission(cls, tenant_id: str, permission_id: str, **kwargs) -> "GrantChangeEvent":
        return cls(GrantChangeType.PERMISSION, tenant_id, permission_id=permission_id, **kwargs)

    @classmethod
    def entity(cls, tenant_id: str, resource_id: str, **kwargs) -> "GrantChangeEvent":
        return cls(GrantChangeType.ENTITY, tenant_id, resource_id=resource_id, **kwargs)

    @classmethod
    def tenant(cls, tenant_id: str, **kwargs) -> "GrantChangeEvent":
        return cls(GrantChangeType.TENANT, tenant_id, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "change_type": self.change_type.value,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "role_id": self.role_id,
            "permission_id": self.permission_id,
            "resource_id": self.resource_id,
            "reason": self.reason,
            "occurred_at": self.occurred_at.isoformat(),
            "origin_node": self.origin_node,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GrantChangeEvent":
        occurred_at = data.get("occurred_at")
        return cls(
            change_type=data["change_type"],
            tenant_id=data["tenant_id"],
            user_id=data.get("user_id"),
            role_id=data.get("role_id"),
            permission_id=data.get("permission_id"),
            resource_id=data.get("resource_id"),
            reason=data.get("reason"),
            event_id=data.get("event_id") or str(uuid.uuid4()),
            occurred_at=datetime.fromisoformat(occurred_at) if occurred_at else utc_now(),
            origin_node=data.get("origin_node"),
        )


@dataclass(frozen=True)
class InvalidationResult:
    """Outcome of applying one grant-change event to the cache.

    ``affected_users`` is the reverse-lookup snapshot (empty for tenant
    events and fallbacks); ``evicted`` counts cache entries actually removed.
    """

    event: GrantChangeEvent
    affected_users: FrozenSet[str]
    evicted: int
    cascade_depth: int
    fell_back_to_tenant: bool = False
    duration_ms: float = 0.0

    @property
    def fanout(self) -> int:
        return len(self.affected_users) if not self.fell_back_to_tenant else self.evicted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event.event_id,
            "change_type": self.event.change_type.value,
            "tenant_id": self.event.tenant_id,
            "affected_users": sorted(self.affected_users),
            "evicted": self.evicted,
            "cascade_depth": self.cascade_depth,
            "fell_back_to_tenant": self.fell_back_to_tenant,
            "duration_ms": round(self.duration_ms, 3),
        }
