"""Audit event entity."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ...config.constants import AuditOutcome
from ..tenants.entities import utc_now
from .correlation import get_correlation_id, new_correlation_id


@dataclass(frozen=True)
class AuditEvent:
    """One security-relevant occurrence.

    ``action`` is the attempted permission action for checks and the
    mutation name (e.g. ``role.assign``) for grant changes.
    """

    tenant_id: Optional[str]
    user_id: Optional[str]
    action: str
    resource_type: str
    outcome: AuditOutcome
    resource_id: Optional[str] = None
    correlation_id: str = ""
    detail: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not self.correlation_id:
            object.__setattr__(self, "correlation_id", get_correlation_id() or new_correlation_id())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "action": self.action,
            "resource_type": self.resource_type,
            "resource_id": self.resource_id,
            "outcome": self.outcome.value,
            "correlation_id": self.correlation_id,
            "detail": self.detail,
        }
