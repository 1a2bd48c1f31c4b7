"""Derived effective-permission entities.

An ``EffectivePermissionSet`` is the union of a user's live direct grants and
the permissions of their live roles in one tenant, computed by the resolver
and held by the resolution cache.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Tuple

from ....config.constants import PermissionAction
from ....core.value_objects import PermissionKey


@dataclass(frozen=True)
class EffectivePermission:
    """One capability a user holds, with the grants that contribute it.

    ``source`` is ``"direct"`` or the contributing role's name; when several
    grants contribute the same capability, ``source`` is the first one in
    resolution order and ``sources`` lists all of them.
    """

    permission_name: str
    resource: str
    action: PermissionAction
    resource_id: Optional[str] = None
    source: str = "direct"
    sources: Tuple[str, ...] = ()

    @property
    def key(self) -> PermissionKey:
        return PermissionKey(self.resource, self.action, self.resource_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "permission_name": self.permission_name,
            "resource": self.resource,
            "action": self.action.value,
            "resource_id": self.resource_id,
            "source": self.source,
            "sources": list(self.sources),
        }


@dataclass(frozen=True)
class EffectivePermissionSet:
    """Resolved permissions of one user in one tenant."""

    tenant_id: str
    user_id: str
    entries: Tuple[EffectivePermission, ...]
    computed_at: datetime
    valid_until: Optional[datetime] = None

    _index: Dict[PermissionKey, EffectivePermission] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))
        object.__setattr__(self, "_index", {entry.key: entry for entry in self.entries})

    @classmethod
    def empty(cls, tenant_id: str, user_id: str, computed_at: datetime) -> "EffectivePermissionSet":
        """Set with no permissions, e.g. for a non-member or inactive tenant."""
        return cls(tenant_id=tenant_id, user_id=user_id, entries=(), computed_at=computed_at)

    def allows(
        self,
        action: PermissionAction,
        resource: str,
        resource_id: Optional[str] = None
    ) -> bool:
        """Check whether the set grants ``action`` on ``resource``.

        An unscoped entry grants on every instance of the resource type. A
        scoped entry grants only on its own ``resource_id``, so a query
        without ``resource_id`` is satisfied by unscoped entries only.
        """
        if PermissionKey(resource, action) in self._index:
            return True
        if resource_id is None:
            return False
        return PermissionKey(resource, action, resource_id) in self._index

    def find(self, key: PermissionKey) -> Optional[EffectivePermission]:
        """Entry for an exact key, if present."""
        return self._index.get(key)

    def is_expired(self, at: datetime) -> bool:
        """Whether any contributing grant has expired by ``at``."""
        return self.valid_until is not None and self.valid_until <= at

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def codes(self) -> List[str]:
        """Sorted ``resource:action[:resource_id]`` codes."""
        return sorted(entry.key.code for entry in self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[EffectivePermission]:
        return iter(self.entries)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "permissions": [entry.to_dict() for entry in self.entries],
            "computed_at": self.computed_at.isoformat(),
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
        }


@dataclass(frozen=True)
class PermissionCheck:
    """One "can the user do ``action`` on ``resource``" question in a bulk check."""

    action: PermissionAction
    resource: str
    resource_id: Optional[str] = None

    @classmethod
    def of(cls, value: Any) -> "PermissionCheck":
        """Coerce a PermissionCheck, mapping or ``(action, resource[, resource_id])`` tuple."""
        if isinstance(value, PermissionCheck):
            return value
        if isinstance(value, dict):
            return cls(value.get("action"), value.get("resource"), value.get("resource_id"))
        return cls(*value)
