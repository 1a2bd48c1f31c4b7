"""neo-access: tenant-scoped permission resolution and cache invalidation.

Resolves a user's effective permissions in a tenant from direct grants and
flat roles, caches the result per (tenant, user), and invalidates it through
user, role, permission, entity and tenant cascades whenever grants change.
"""

from .__version__ import __version__

# Configure logging on import
from .config.logging_config import setup_logging
setup_logging()

from .config import (
    AccessSettings,
    get_settings,
    PermissionAction,
    TenantStatus,
    GrantChangeType,
    AuditOutcome,
)
from .core.exceptions import (
    NeoAccessError,
    AccessControlError,
    MissingTenantContext,
    TenantContextViolation,
    ResolutionUnavailable,
    InvalidGrantReference,
    ValidationError,
    GrantStoreError,
    GrantStoreUnavailableError,
)
from .features.tenants import (
    Tenant,
    TenantMembership,
    TenantContext,
    tenant_scope,
    with_tenant,
    get_current_tenant_id,
    require_tenant_id,
    ensure_tenant,
)
from .features.permissions import (
    Permission,
    Role,
    EffectivePermission,
    EffectivePermissionSet,
    PermissionCheck,
    GrantStore,
    InMemoryGrantStore,
    AsyncPGGrantStore,
    PermissionResolver,
    GrantService,
    ResolutionAPI,
)
from .features.cache import ResolutionCache
from .features.invalidation import (
    GrantChangeEvent,
    InvalidationResult,
    InvalidationCoordinator,
    RedisInvalidationDistributor,
)
from .features.audit import (
    AuditEvent,
    AuditEmitter,
    LoggingAuditEmitter,
    correlation_scope,
)
from .engine import AccessEngine

__all__ = [
    "__version__",
    "AccessSettings",
    "get_settings",
    "PermissionAction",
    "TenantStatus",
    "GrantChangeType",
    "AuditOutcome",
    "setup_logging",
    "NeoAccessError",
    "AccessControlError",
    "MissingTenantContext",
    "TenantContextViolation",
    "ResolutionUnavailable",
    "InvalidGrantReference",
    "ValidationError",
    "GrantStoreError",
    "GrantStoreUnavailableError",
    "Tenant",
    "TenantMembership",
    "TenantContext",
    "tenant_scope",
    "with_tenant",
    "get_current_tenant_id",
    "require_tenant_id",
    "ensure_tenant",
    "Permission",
    "Role",
    "EffectivePermission",
    "EffectivePermissionSet",
    "PermissionCheck",
    "GrantStore",
    "InMemoryGrantStore",
    "AsyncPGGrantStore",
    "PermissionResolver",
    "GrantService",
    "ResolutionAPI",
    "ResolutionCache",
    "GrantChangeEvent",
    "InvalidationResult",
    "InvalidationCoordinator",
    "RedisInvalidationDistributor",
    "AuditEvent",
    "AuditEmitter",
    "LoggingAuditEmitter",
    "correlation_scope",
    "AccessEngine",
]
