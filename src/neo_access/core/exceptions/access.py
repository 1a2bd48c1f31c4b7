"""Access-control exceptions for neo-access.

These are the errors raised by tenant context enforcement, permission
resolution and grant mutation.
"""

from typing import Optional

from .base import NeoAccessError


class AccessControlError(NeoAccessError):
    """Base class for access-control errors."""
    pass


class MissingTenantContext(AccessControlError):
    """Raised when a resolution or grant-store call runs without a tenant context.

    This is a programming error and is never defaulted to some tenant.
    """

    def __init__(self, operation: Optional[str] = None):
        message = "No active tenant context"
        if operation:
            message = f"No active tenant context for {operation}"
        super().__init__(message, details={"operation": operation} if operation else None)


class TenantContextViolation(AccessControlError):
    """Raised when a caller-supplied tenant id differs from the active context."""

    def __init__(self, requested_tenant_id: str, active_tenant_id: str):
        super().__init__(
            f"Tenant {requested_tenant_id} requested under active tenant context {active_tenant_id}",
            details={
                "requested_tenant_id": requested_tenant_id,
                "active_tenant_id": active_tenant_id,
            },
        )
        self.requested_tenant_id = requested_tenant_id
        self.active_tenant_id = active_tenant_id


class ResolutionUnavailable(AccessControlError):
    """Raised when the grant store could not be reached during resolution."""

    def __init__(self, tenant_id: str, user_id: str, cause: Optional[BaseException] = None):
        super().__init__(
            f"Permissions for user {user_id} in tenant {tenant_id} could not be resolved",
            details={
                "tenant_id": tenant_id,
                "user_id": user_id,
                "cause": repr(cause) if cause else None,
            },
        )
        self.tenant_id = tenant_id
        self.user_id = user_id


class InvalidGrantReference(AccessControlError):
    """Raised when a grant references a missing or foreign-tenant role, permission or user."""

    def __init__(self, entity_type: str, entity_id: str, tenant_id: str):
        super().__init__(
            f"{entity_type} {entity_id} does not exist in tenant {tenant_id}",
            details={
                "entity_type": entity_type,
                "entity_id": entity_id,
                "tenant_id": tenant_id,
            },
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.tenant_id = tenant_id
