"""Resolution API facade.

Thin layer over the resolver that returns pydantic response models, for
use by HTTP handlers and other services.
"""

from typing import Iterable, List, Optional, Union

from ....config.constants import PermissionAction
from ..entities.effective import PermissionCheck
from ..models.requests import PermissionCheckRequest
from ..models.responses import (
    BulkPermissionCheckResponse,
    EffectivePermissionResponse,
    EffectivePermissionsResponse,
    PermissionCheckResponse,
)
from .permission_resolver import PermissionResolver


class ResolutionAPI:
    """Permission checks and effective-permission listings as response models."""

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def check_permission(
        self,
        tenant_id: str,
        user_id: str,
        action: Union[str, PermissionAction],
        resource: str,
        resource_id: Optional[str] = None
    ) -> PermissionCheckResponse:
        allowed = await self.resolver.check(tenant_id, user_id, action, resource, resource_id)
        return PermissionCheckResponse(allowed=allowed)

    async def check_permissions(
        self,
        tenant_id: str,
        user_id: str,
        checks: Iterable[Union[PermissionCheckRequest, PermissionCheck]]
    ) -> BulkPermissionCheckResponse:
        queries = [
            PermissionCheck(check.action, check.resource, check.resource_id)
            for check in checks
        ]
        results = await self.resolver.check_many(tenant_id, user_id, queries)
        return BulkPermissionCheckResponse(
            results=results,
            all_allowed=bool(results) and all(results),
            any_allowed=any(results),
        )

    async def get_effective_permissions(self, tenant_id: str, user_id: str) -> List[EffectivePermissionResponse]:
        entries = await self.resolver.get_effective_permissions(tenant_id, user_id)
        return [EffectivePermissionResponse.from_entity(entry) for entry in entries]

    async def get_permission_set(self, tenant_id: str, user_id: str) -> EffectivePermissionsResponse:
        permission_set = await self.resolver.resolve(tenant_id, user_id)
        return EffectivePermissionsResponse.from_entity(permission_set)
