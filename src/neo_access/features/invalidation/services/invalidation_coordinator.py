"""Invalidation coordinator.

Turns committed grant changes into cache evictions. Each change type maps
to a reverse lookup that finds every user whose effective permissions may
have changed; those users' cache entries are evicted before the write that
triggered the event is reported successful.

Cascade depth is the number of lookup hops between the changed row and the
affected cache entries: user, entity and tenant events need one, role and
permission events need two (role -> assignments -> users, permission ->
role links / direct grants -> users).
"""

import asyncio
import logging
import time
from typing import Optional, Set

from ....config.constants import AuditOutcome, CascadeDepth, GrantChangeType
from ....core.exceptions import GrantStoreError
from ...audit.emitter import AuditEmitter, emit_safely
from ...audit.events import AuditEvent
from ...cache.resolution_cache import ResolutionCache
from ...permissions.entities.protocols import GrantReverseLookup
from ...tenants.context import tenant_scope
from ..entities.events import GrantChangeEvent, InvalidationResult
from ..entities.metrics import InvalidationMetrics
from ..entities.protocols import InvalidationDistributor


logger = logging.getLogger(__name__)

LOOKUP_FAILURES = (GrantStoreError, OSError, asyncio.TimeoutError)

_DEPTHS = {
    GrantChangeType.USER: CascadeDepth.USER,
    GrantChangeType.ROLE: CascadeDepth.ROLE,
    GrantChangeType.PERMISSION: CascadeDepth.PERMISSION,
    GrantChangeType.ENTITY: CascadeDepth.ENTITY,
    GrantChangeType.TENANT: CascadeDepth.TENANT,
}


class InvalidationCoordinator:
    """Applies grant-change events to the resolution cache."""

    def __init__(
        self,
        grant_store: GrantReverseLookup,
        cache: ResolutionCache,
        audit_emitter: Optional[AuditEmitter] = None,
        distributor: Optional[InvalidationDistributor] = None,
        fanout_warning_threshold: int = 1000
    ):
        self.grant_store = grant_store
        self.cache = cache
        self.audit_emitter = audit_emitter
        self.distributor = distributor
        self.fanout_warning_threshold = fanout_warning_threshold
        self._metrics = InvalidationMetrics()

    @property
    def metrics(self) -> InvalidationMetrics:
        return self._metrics

    async def on_grant_changed(self, event: GrantChangeEvent) -> InvalidationResult:
        """Invalidate everything the event affects, then broadcast it.

        Applying the same event twice is harmless: the second pass finds
        nothing left to evict.
        """
        result = await self.apply(event)

        if self.distributor is not None:
            published = await self.distributor.publish(event)
            if not published:
                self._metrics.broadcast_failures += 1
                logger.warning(f"Invalidation event {event.event_id} was not broadcast to other nodes")

        if self.audit_emitter is not None:
            await emit_safely(
                self.audit_emitter,
                AuditEvent(
                    tenant_id=event.tenant_id,
                    user_id=event.user_id,
                    action=f"invalidate.{event.change_type.value}",
                    resource_type="permission_cache",
                    outcome=AuditOutcome.SUCCESS,
                    resource_id=event.resource_id,
                    detail=result.to_dict(),
                ),
            )
        return result

    async def apply_remote(self, event: GrantChangeEvent) -> InvalidationResult:
        """Apply an event received from another node, without re-broadcasting."""
        result = await self.apply(event)
        self._metrics.remote_applied += 1
        return result

    async def apply(self, event: GrantChangeEvent) -> InvalidationResult:
        """Evict the cache entries affected by ``event`` in this process."""
        started = time.perf_counter()
        fell_back = False

        if event.change_type == GrantChangeType.TENANT:
            affected: Set[str] = set()
            evicted = await self.cache.evict_tenant(event.tenant_id)
        else:
            try:
                affected = await self._affected_users(event)
            except LOOKUP_FAILURES as e:
                logger.warning(
                    f"Reverse lookup failed for {event.change_type.value} event {event.event_id} "
                    f"in tenant {event.tenant_id}; evicting the whole tenant: {e}"
                )
                affected, fell_back = set(), True
                evicted = await self.cache.evict_tenant(event.tenant_id)
            else:
                evicted = await self.cache.evict_many(event.tenant_id, affected)

        result = InvalidationResult(
            event=event,
            affected_users=frozenset(affected),
            evicted=evicted,
            cascade_depth=_DEPTHS[event.change_type],
            fell_back_to_tenant=fell_back,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        self._record(result)
        logger.debug(
            f"Invalidated {result.evicted} entries ({len(result.affected_users)} affected users) "
            f"for {event.change_type.value} event {event.event_id} in tenant {event.tenant_id}"
        )
        return result

    async def _affected_users(self, event: GrantChangeEvent) -> Set[str]:
        """Reverse lookup for the event, run inside the event's tenant context."""
        if event.change_type == GrantChangeType.USER:
            return {event.user_id}

        with tenant_scope(event.tenant_id):
            if event.change_type == GrantChangeType.ROLE:
                return set(await self.grant_store.list_role_holders(event.tenant_id, event.role_id))
            if event.change_type == GrantChangeType.PERMISSION:
                return set(await self.grant_store.list_permission_holders(event.tenant_id, event.permission_id))
            if event.change_type == GrantChangeType.ENTITY:
                return set(await self.grant_store.list_resource_grantees(event.tenant_id, event.resource_id))
        raise ValueError(f"Unsupported change type: {event.change_type}")

    def _record(self, result: InvalidationResult) -> None:
        metrics = self._metrics
        change_type = result.event.change_type.value
        metrics.total += 1
        metrics.by_type[change_type] = metrics.by_type.get(change_type, 0) + 1
        metrics.total_depth += result.cascade_depth
        metrics.total_fanout += result.fanout
        metrics.max_fanout = max(metrics.max_fanout, result.fanout)
        metrics.total_evicted += result.evicted
        if result.fell_back_to_tenant:
            metrics.fallbacks += 1

        if result.fanout > self.fanout_warning_threshold:
            logger.warning(
                f"Large invalidation cascade: {change_type} event {result.event.event_id} "
                f"in tenant {result.event.tenant_id} affected {result.fanout} users "
                f"(threshold {self.fanout_warning_threshold})"
            )
