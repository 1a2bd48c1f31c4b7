"""Tenant domain entities.

A tenant is the root isolation boundary. Users have a global identity and a
per-tenant membership; a user without an active membership holds nothing in
that tenant.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ...config.constants import TenantStatus


def utc_now() -> datetime:
    """Get current UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Tenant:
    """Tenant record as seen by the access layer."""

    id: str
    name: str
    status: TenantStatus = TenantStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        """Check if tenant is active."""
        return self.status == TenantStatus.ACTIVE


@dataclass(frozen=True)
class User:
    """Global user identity."""

    id: str
    email: str


@dataclass(frozen=True)
class TenantMembership:
    """A user's membership record in one tenant."""

    tenant_id: str
    user_id: str
    is_active: bool = True
    joined_at: datetime = field(default_factory=utc_now)
    left_at: Optional[datetime] = None
