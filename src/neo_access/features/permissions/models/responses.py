"""Permission resolution response models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ....config.constants import PermissionAction
from ..entities.effective import EffectivePermission, EffectivePermissionSet


class PermissionCheckResponse(BaseModel):
    """Result of a single check."""

    allowed: bool = Field(..., description="Whether the action is permitted")


class BulkPermissionCheckResponse(BaseModel):
    """Results of a bulk check, in request order."""

    results: List[bool] = Field(default_factory=list, description="One result per check")
    all_allowed: bool = Field(..., description="Whether every check was allowed")
    any_allowed: bool = Field(..., description="Whether at least one check was allowed")


class EffectivePermissionResponse(BaseModel):
    """One effective permission with provenance."""

    permission_name: str = Field(..., description="Permission name")
    resource: str = Field(..., description="Resource type")
    action: PermissionAction = Field(..., description="Granted action")
    resource_id: Optional[str] = Field(default=None, description="Resource instance for scoped grants")
    source: str = Field(..., description='"direct" or the granting role name')
    sources: List[str] = Field(default_factory=list, description="Every contributing source")

    model_config = ConfigDict(use_enum_values=True)

    @classmethod
    def from_entity(cls, entry: EffectivePermission) -> "EffectivePermissionResponse":
        return cls(
            permission_name=entry.permission_name,
            resource=entry.resource,
            action=entry.action,
            resource_id=entry.resource_id,
            source=entry.source,
            sources=list(entry.sources),
        )


class EffectivePermissionsResponse(BaseModel):
    """A user's resolved permissions in a tenant."""

    tenant_id: str = Field(..., description="Tenant")
    user_id: str = Field(..., description="User")
    permissions: List[EffectivePermissionResponse] = Field(default_factory=list)
    computed_at: datetime = Field(..., description="When the set was computed")
    valid_until: Optional[datetime] = Field(
        default=None,
        description="Earliest expiry among contributing grants",
    )

    @classmethod
    def from_entity(cls, permission_set: EffectivePermissionSet) -> "EffectivePermissionsResponse":
        return cls(
            tenant_id=permission_set.tenant_id,
            user_id=permission_set.user_id,
            permissions=[EffectivePermissionResponse.from_entity(entry) for entry in permission_set.entries],
            computed_at=permission_set.computed_at,
            valid_until=permission_set.valid_until,
        )
