"""Permission resolver.

Computes a user's effective permissions in a tenant as the union of their
live direct grants and the permissions of their live roles, caches the
result, and answers permission checks against it.

Checks fail closed: if the grant store cannot be reached, or the caller
names a tenant other than the active one, the answer is "no".
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from ....config.constants import AuditOutcome, DefaultSensitiveResources, PermissionAction, PermissionSource
from ....core.exceptions import (
    GrantStoreError,
    MissingTenantContext,
    ResolutionUnavailable,
    TenantContextViolation,
)
from ....core.value_objects import (
    PermissionKey,
    ResourceType,
    parse_action,
    validate_identifier,
    validate_optional_identifier,
)
from ...audit.emitter import AuditEmitter, emit_safely
from ...audit.events import AuditEvent
from ...cache.resolution_cache import ResolutionCache
from ...tenants.context import ensure_tenant
from ...tenants.entities import utc_now
from ..entities.effective import EffectivePermission, EffectivePermissionSet, PermissionCheck
from ..entities.permission import Permission
from ..entities.protocols import GrantReader


logger = logging.getLogger(__name__)

STORE_FAILURES = (GrantStoreError, OSError, asyncio.TimeoutError)


class PermissionResolver:
    """Resolves and checks permissions for (tenant, user) pairs."""

    def __init__(
        self,
        grant_store: GrantReader,
        cache: ResolutionCache,
        audit_emitter: AuditEmitter,
        sensitive_resources: Iterable[str] = DefaultSensitiveResources.RESOURCES,
        audit_allowed_checks: bool = False,
        now: Callable[[], datetime] = utc_now
    ):
        """Initialize the resolver.

        Args:
            grant_store: Tenant-scoped source of grants
            cache: Resolution cache shared with the invalidation coordinator
            audit_emitter: Sink for denied sensitive checks and failures
            sensitive_resources: Resource types whose denials are always audited
            audit_allowed_checks: Also audit allowed checks on sensitive resources
            now: Wall clock used for grant expiry
        """
        self.grant_store = grant_store
        self.cache = cache
        self.audit_emitter = audit_emitter
        self.sensitive_resources = frozenset(sensitive_resources)
        self.audit_allowed_checks = audit_allowed_checks
        self._now = now

    # Resolution

    async def resolve(self, tenant_id: str, user_id: str) -> EffectivePermissionSet:
        """Effective permission set of a user in a tenant.

        Raises:
            ValidationError: empty tenant or user id
            MissingTenantContext: no active tenant context
            TenantContextViolation: tenant_id differs from the active tenant
            ResolutionUnavailable: the grant store could not be reached
        """
        tenant_id = validate_identifier(tenant_id, "Tenant ID")
        user_id = validate_identifier(user_id, "User ID")
        await self._enforce_tenant(tenant_id, user_id, "resolve", "permissions")
        return await self._resolve(tenant_id, user_id)

    async def get_effective_permissions(self, tenant_id: str, user_id: str) -> List[EffectivePermission]:
        """Effective permissions as a list, in resolution order."""
        permission_set = await self.resolve(tenant_id, user_id)
        return list(permission_set.entries)

    async def _resolve(self, tenant_id: str, user_id: str) -> EffectivePermissionSet:
        cached = await self.cache.get(tenant_id, user_id)
        if cached is not None and not cached.is_expired(self._now()):
            logger.debug(f"Permission cache hit for user {user_id} in tenant {tenant_id}")
            return cached

        version = self.cache.version(tenant_id, user_id)
        try:
            permission_set = await self._compute(tenant_id, user_id)
        except STORE_FAILURES as e:
            logger.error(f"Permission resolution unavailable for user {user_id} in tenant {tenant_id}: {e}")
            raise ResolutionUnavailable(tenant_id, user_id, e) from e

        await self.cache.put(
            tenant_id,
            user_id,
            permission_set,
            ttl=self._ttl_for(permission_set),
            version=version,
        )
        logger.debug(
            f"Resolved {len(permission_set)} permissions for user {user_id} in tenant {tenant_id}"
        )
        return permission_set

    async def _compute(self, tenant_id: str, user_id: str) -> EffectivePermissionSet:
        at = self._now()

        tenant = await self.grant_store.get_tenant(tenant_id)
        if tenant is None or not tenant.is_active:
            logger.debug(f"Tenant {tenant_id} is missing or inactive; resolving to no permissions")
            return EffectivePermissionSet.empty(tenant_id, user_id, at)

        membership = await self.grant_store.get_membership(tenant_id, user_id)
        if membership is None or not membership.is_active:
            return EffectivePermissionSet.empty(tenant_id, user_id, at)

        direct = [
            (grant, permission)
            for grant, permission in await self.grant_store.list_user_permissions(tenant_id, user_id, at)
            if grant.is_live(at) and permission.is_active
            and self._same_tenant(tenant_id, grant.tenant_id, permission.tenant_id)
        ]
        assignments = [
            (assignment, role)
            for assignment, role in await self.grant_store.list_user_roles(tenant_id, user_id, at)
            if assignment.is_live(at) and role.is_active
            and self._same_tenant(tenant_id, assignment.tenant_id, role.tenant_id)
        ]

        roles = {}
        for _, role in assignments:
            roles[role.id] = role
        ordered_roles = sorted(roles.values(), key=lambda role: (role.name, role.id))

        role_permissions: Dict[str, List[Permission]] = {}
        if ordered_roles:
            role_permissions = await self.grant_store.list_role_permissions(
                tenant_id, [role.id for role in ordered_roles]
            )

        merged: Dict[PermissionKey, Tuple[str, List[str]]] = {}

        def add(permission: Permission, resource_id: Optional[str], source: str) -> None:
            key = permission.key(resource_id)
            if key in merged:
                sources = merged[key][1]
                if source not in sources:
                    sources.append(source)
            else:
                merged[key] = (permission.name, [source])

        for grant, permission in sorted(direct, key=lambda pair: (pair[1].name, pair[0].resource_id or "")):
            add(permission, grant.resource_id, PermissionSource.DIRECT)

        for role in ordered_roles:
            permissions = sorted(role_permissions.get(role.id, []), key=lambda permission: permission.name)
            for permission in permissions:
                if permission.is_active and self._same_tenant(tenant_id, permission.tenant_id):
                    add(permission, None, role.name)

        entries = tuple(
            EffectivePermission(
                permission_name=name,
                resource=key.resource,
                action=key.action,
                resource_id=key.resource_id,
                source=sources[0],
                sources=tuple(sources),
            )
            for key, (name, sources) in merged.items()
        )

        expiries = [grant.expires_at for grant, _ in direct if grant.expires_at is not None]
        expiries += [assignment.expires_at for assignment, _ in assignments if assignment.expires_at is not None]

        return EffectivePermissionSet(
            tenant_id=tenant_id,
            user_id=user_id,
            entries=entries,
            computed_at=at,
            valid_until=min(expiries) if expiries else None,
        )

    @staticmethod
    def _same_tenant(tenant_id: str, *row_tenants: str) -> bool:
        for row_tenant in row_tenants:
            if row_tenant != tenant_id:
                logger.error(f"Grant store returned a row of tenant {row_tenant} for tenant {tenant_id}; ignoring it")
                return False
        return True

    def _ttl_for(self, permission_set: EffectivePermissionSet) -> Optional[float]:
        """Cache TTL capped by the earliest expiry among contributing grants."""
        if permission_set.valid_until is None:
            return None
        return (permission_set.valid_until - self._now()).total_seconds()

    # Checks

    async def check(
        self,
        tenant_id: str,
        user_id: str,
        action: Union[str, PermissionAction],
        resource: str,
        resource_id: Optional[str] = None
    ) -> bool:
        """Whether the user may perform ``action`` on ``resource`` in the tenant.

        Returns False when the grant store is unreachable or the tenant id
        does not match the active context. ``MissingTenantContext`` and
        ``ValidationError`` propagate.
        """
        tenant_id = validate_identifier(tenant_id, "Tenant ID")
        user_id = validate_identifier(user_id, "User ID")
        query = self._validate_check(PermissionCheck(action, resource, resource_id))

        permission_set = await self._resolve_for_check(tenant_id, user_id, query)
        if permission_set is None:
            return False
        return await self._evaluate(permission_set, query)

    async def check_many(
        self,
        tenant_id: str,
        user_id: str,
        checks: Iterable[Union[PermissionCheck, Tuple, Dict[str, Any]]]
    ) -> List[bool]:
        """Answer several checks for one user against a single resolution."""
        tenant_id = validate_identifier(tenant_id, "Tenant ID")
        user_id = validate_identifier(user_id, "User ID")
        queries = [self._validate_check(PermissionCheck.of(check)) for check in checks]
        if not queries:
            return []

        permission_set = await self._resolve_for_check(tenant_id, user_id, queries[0])
        if permission_set is None:
            return [False] * len(queries)
        return list(await asyncio.gather(*(self._evaluate(permission_set, query) for query in queries)))

    async def check_any(self, tenant_id: str, user_id: str, checks: Iterable[Any]) -> bool:
        """True if at least one check is allowed."""
        return any(await self.check_many(tenant_id, user_id, checks))

    async def check_all(self, tenant_id: str, user_id: str, checks: Iterable[Any]) -> bool:
        """True if every check is allowed. An empty list is not allowed."""
        results = await self.check_many(tenant_id, user_id, checks)
        return bool(results) and all(results)

    async def prefetch(self, tenant_id: str, user_ids: Iterable[str]) -> int:
        """Resolve and cache permission sets for users not already cached.

        Returns the number of users whose set was computed. Users whose
        resolution fails are logged and skipped.
        """
        tenant_id = validate_identifier(tenant_id, "Tenant ID")
        users = list(dict.fromkeys(validate_identifier(user_id, "User ID") for user_id in user_ids))
        ensure_tenant(tenant_id, "prefetch")

        populated = 0
        for user_id in users:
            if await self.cache.contains(tenant_id, user_id):
                continue
            try:
                await self._resolve(tenant_id, user_id)
            except ResolutionUnavailable as e:
                logger.warning(f"Prefetch skipped user {user_id} in tenant {tenant_id}: {e.message}")
                continue
            populated += 1

        logger.info(f"Prefetched permissions for {populated}/{len(users)} users in tenant {tenant_id}")
        return populated

    @staticmethod
    def _validate_check(query: PermissionCheck) -> PermissionCheck:
        return PermissionCheck(
            action=parse_action(query.action),
            resource=ResourceType.of(query.resource).value,
            resource_id=validate_optional_identifier(query.resource_id, "Resource ID"),
        )

    async def _resolve_for_check(
        self,
        tenant_id: str,
        user_id: str,
        query: PermissionCheck
    ) -> Optional[EffectivePermissionSet]:
        """Resolve for a check; None means the check is denied outright."""
        try:
            await self._enforce_tenant(tenant_id, user_id, query.action.value, query.resource, query.resource_id)
        except TenantContextViolation:
            return None

        try:
            return await self._resolve(tenant_id, user_id)
        except ResolutionUnavailable as e:
            await self._audit(
                tenant_id, user_id, query.action.value, query.resource, AuditOutcome.FAILURE,
                resource_id=query.resource_id,
                detail={"reason": "resolution_unavailable", "error": e.to_dict()},
            )
            return None

    async def _evaluate(self, permission_set: EffectivePermissionSet, query: PermissionCheck) -> bool:
        allowed = permission_set.allows(query.action, query.resource, query.resource_id)
        if query.resource in self.sensitive_resources:
            if not allowed:
                await self._audit(
                    permission_set.tenant_id, permission_set.user_id,
                    query.action.value, query.resource, AuditOutcome.DENIED,
                    resource_id=query.resource_id,
                )
            elif self.audit_allowed_checks:
                await self._audit(
                    permission_set.tenant_id, permission_set.user_id,
                    query.action.value, query.resource, AuditOutcome.SUCCESS,
                    resource_id=query.resource_id,
                )
        return allowed

    # Tenant enforcement and audit

    async def _enforce_tenant(
        self,
        tenant_id: str,
        user_id: str,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None
    ) -> None:
        """Check the tenant context; boundary errors are audited and re-raised."""
        try:
            ensure_tenant(tenant_id, action)
        except (MissingTenantContext, TenantContextViolation) as e:
            logger.warning(f"Tenant context rejected {action} on {resource_type} for user {user_id}: {e.message}")
            await self._audit(
                tenant_id, user_id, action, resource_type, AuditOutcome.FAILURE,
                resource_id=resource_id,
                detail={"reason": e.error_code, "error": e.to_dict()},
            )
            raise

    async def _audit(
        self,
        tenant_id: str,
        user_id: str,
        action: str,
        resource_type: str,
        outcome: AuditOutcome,
        resource_id: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None
    ) -> None:
        await emit_safely(
            self.audit_emitter,
            AuditEvent(
                tenant_id=tenant_id,
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                outcome=outcome,
                resource_id=resource_id,
                detail=detail or {},
            ),
        )
