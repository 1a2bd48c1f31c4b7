"""Tenants feature for neo-access.

Tenant records, per-tenant user membership and the request-scoped tenant
context that every resolution and grant-store query runs under.
"""

from .entities import Tenant, User, TenantMembership, utc_now
from .context import (
    tenant_id_var,
    get_current_tenant_id,
    require_tenant_id,
    ensure_tenant,
    tenant_scope,
    with_tenant,
    TenantContext,
    TenantContextMetrics,
)

__all__ = [
    # Entities
    "Tenant",
    "User",
    "TenantMembership",
    "utc_now",

    # Context
    "tenant_id_var",
    "get_current_tenant_id",
    "require_tenant_id",
    "ensure_tenant",
    "tenant_scope",
    "with_tenant",
    "TenantContext",
    "TenantContextMetrics",
]
