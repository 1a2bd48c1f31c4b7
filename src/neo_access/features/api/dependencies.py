"""FastAPI permission dependencies."""

import logging
from typing import Annotated, Iterable, Optional, Tuple, Union

from fastapi import Depends, HTTPException, Request, status

from ...config.constants import PermissionAction
from ...core.value_objects import ResourceType, parse_action
from ..permissions.entities.effective import PermissionCheck
from ..permissions.services.permission_resolver import PermissionResolver
from ..tenants.context import require_tenant_id

logger = logging.getLogger(__name__)


class AccessDenied(HTTPException):
    """403 with a body that reveals nothing about the reason."""

    def __init__(self):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


class PermissionDependencies:
    """FastAPI permission dependencies factory.

    The tenant comes from the active tenant context (set by
    ``TenantContextMiddleware``); the user from ``request.state.user_id``,
    which an authentication layer or the middleware populates.
    """

    def __init__(self, resolver: PermissionResolver):
        self.resolver = resolver

    async def get_current_user_id(self, request: Request) -> str:
        """Authenticated user id for the request."""
        user_id = getattr(request.state, "user_id", None)
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
        return user_id

    def require_permission(
        self,
        action: Union[str, PermissionAction],
        resource: str,
        resource_id_param: Optional[str] = None
    ):
        """Require ``action`` on ``resource``.

        When ``resource_id_param`` is given, the named path parameter is the
        resource instance to check.
        """
        query = PermissionCheck(parse_action(action), ResourceType.of(resource).value)

        async def dependency(
            request: Request,
            user_id: Annotated[str, Depends(self.get_current_user_id)]
        ) -> str:
            tenant_id = require_tenant_id("require_permission")
            resource_id = request.path_params.get(resource_id_param) if resource_id_param else None
            allowed = await self.resolver.check(tenant_id, user_id, query.action, query.resource, resource_id)
            if not allowed:
                logger.warning(
                    f"User {user_id} lacks permission {query.resource}:{query.action.value} in tenant {tenant_id}"
                )
                raise AccessDenied()
            return user_id

        return dependency

    def require_any_permission(self, checks: Iterable[Tuple]):
        """Require at least one of several ``(action, resource[, resource_id])`` checks."""
        queries = [self._parse(check) for check in checks]

        async def dependency(user_id: Annotated[str, Depends(self.get_current_user_id)]) -> str:
            tenant_id = require_tenant_id("require_any_permission")
            if not await self.resolver.check_any(tenant_id, user_id, queries):
                logger.warning(f"User {user_id} lacks any of {[self._code(q) for q in queries]} in tenant {tenant_id}")
                raise AccessDenied()
            return user_id

        return dependency

    def require_all_permissions(self, checks: Iterable[Tuple]):
        """Require every one of several ``(action, resource[, resource_id])`` checks."""
        queries = [self._parse(check) for check in checks]

        async def dependency(user_id: Annotated[str, Depends(self.get_current_user_id)]) -> str:
            tenant_id = require_tenant_id("require_all_permissions")
            if not await self.resolver.check_all(tenant_id, user_id, queries):
                logger.warning(f"User {user_id} lacks some of {[self._code(q) for q in queries]} in tenant {tenant_id}")
                raise AccessDenied()
            return user_id

        return dependency

    @staticmethod
    def _parse(check) -> PermissionCheck:
        query = PermissionCheck.of(check)
        return PermissionCheck(parse_action(query.action), ResourceType.of(query.resource).value, query.resource_id)

    @staticmethod
    def _code(query: PermissionCheck) -> str:
        return f"{query.resource}:{query.action.value}"
