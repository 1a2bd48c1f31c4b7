"""Access engine assembly.

Wires the grant store, resolution cache, resolver, invalidation coordinator,
grant service and optional Redis broadcast into one object with a start/stop
lifecycle. Services are constructed explicitly here; nothing is a module
level singleton.

Usage:
    engine = AccessEngine.create(settings, grant_store=store)
    await engine.start()
    engine.install(app)

    with tenant_scope("t1"):
        allowed = await engine.resolver.check("t1", "u1", "read", "documents")
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

import redis.asyncio as redis
from fastapi import FastAPI

from .config.settings import AccessSettings, get_settings
from .core.exceptions import ConfigurationError
from .database.connection import DatabaseManager
from .features.api.dependencies import PermissionDependencies
from .features.api.exception_handlers import register_exception_handlers
from .features.api.middleware import TenantContextMiddleware
from .features.audit.emitter import AuditEmitter, LoggingAuditEmitter
from .features.cache.resolution_cache import ResolutionCache
from .features.invalidation.distributors.redis_distributor import RedisInvalidationDistributor
from .features.invalidation.services.invalidation_coordinator import InvalidationCoordinator
from .features.permissions.entities.protocols import GrantStore
from .features.permissions.repositories.asyncpg_grant_store import AsyncPGGrantStore
from .features.permissions.services.grant_service import GrantService
from .features.permissions.services.permission_resolver import PermissionResolver
from .features.permissions.services.resolution_api import ResolutionAPI
from .features.tenants.context import TenantContext
from .features.tenants.entities import utc_now

logger = logging.getLogger(__name__)


class AccessEngine:
    """Assembled permission resolution and invalidation engine."""

    def __init__(
        self,
        settings: AccessSettings,
        grant_store: GrantStore,
        cache: ResolutionCache,
        resolver: PermissionResolver,
        coordinator: InvalidationCoordinator,
        grant_service: GrantService,
        resolution_api: ResolutionAPI,
        audit_emitter: AuditEmitter,
        tenant_context: TenantContext,
        distributor: Optional[RedisInvalidationDistributor] = None,
        database: Optional[DatabaseManager] = None
    ):
        self.settings = settings
        self.grant_store = grant_store
        self.cache = cache
        self.resolver = resolver
        self.coordinator = coordinator
        self.grant_service = grant_service
        self.resolution_api = resolution_api
        self.audit_emitter = audit_emitter
        self.tenant_context = tenant_context
        self.distributor = distributor
        self.database = database
        self._started = False

    @classmethod
    def create(
        cls,
        settings: Optional[AccessSettings] = None,
        grant_store: Optional[GrantStore] = None,
        audit_emitter: Optional[AuditEmitter] = None,
        redis_client: Any = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = utc_now
    ) -> "AccessEngine":
        """Build an engine from settings.

        Args:
            settings: Defaults to ``get_settings()``
            grant_store: Defaults to an AsyncPGGrantStore on ``settings.database_url``
            audit_emitter: Defaults to LoggingAuditEmitter
            redis_client: redis.asyncio client; created from ``settings.redis_url``
                when omitted. Without either, invalidation stays in-process.
            clock: Monotonic clock for cache TTLs
            now: Wall clock for grant expiry
        """
        settings = settings or get_settings()

        database = None
        if grant_store is None:
            if not settings.database_url:
                raise ConfigurationError(
                    "No grant store configured: pass grant_store or set NEO_ACCESS_DATABASE_URL"
                )
            database = DatabaseManager.from_settings(settings)
            grant_store = AsyncPGGrantStore(database)

        audit_emitter = audit_emitter or LoggingAuditEmitter()

        cache = ResolutionCache(
            ttl_seconds=settings.cache_ttl_seconds,
            max_entries=settings.cache_max_entries,
            sweep_interval_seconds=settings.cache_sweep_interval_seconds,
            clock=clock,
        )

        if redis_client is None and settings.redis_url:
            redis_client = redis.from_url(settings.redis_url)
        distributor = None
        if redis_client is not None:
            distributor = RedisInvalidationDistributor(
                redis_client,
                channel=settings.invalidation_channel,
                node_id=settings.node_id,
                reconnect_initial_seconds=settings.redis_reconnect_initial_seconds,
                reconnect_max_seconds=settings.redis_reconnect_max_seconds,
            )

        resolver = PermissionResolver(
            grant_store,
            cache,
            audit_emitter,
            sensitive_resources=settings.sensitive_resources,
            audit_allowed_checks=settings.audit_allowed_checks,
            now=now,
        )
        coordinator = InvalidationCoordinator(
            grant_store,
            cache,
            audit_emitter=audit_emitter,
            distributor=distributor,
            fanout_warning_threshold=settings.cascade_fanout_warning_threshold,
        )
        grant_service = GrantService(grant_store, coordinator, audit_emitter, now=now)

        return cls(
            settings=settings,
            grant_store=grant_store,
            cache=cache,
            resolver=resolver,
            coordinator=coordinator,
            grant_service=grant_service,
            resolution_api=ResolutionAPI(resolver),
            audit_emitter=audit_emitter,
            tenant_context=TenantContext(),
            distributor=distributor,
            database=database,
        )

    async def start(self) -> None:
        """Open the database pool, start the cache sweeper and the Redis listener."""
        if self._started:
            return
        if self.database is not None:
            await self.database.create_pool()
        await self.cache.start()
        if self.distributor is not None:
            await self.distributor.start(self.coordinator.apply_remote)
        self._started = True
        logger.info(f"{self.settings.app_name} access engine started")

    async def stop(self) -> None:
        """Stop background work and release connections."""
        if not self._started:
            return
        if self.distributor is not None:
            await self.distributor.stop()
        await self.cache.stop()
        if self.database is not None:
            await self.database.close_pool()
        self._started = False
        logger.info(f"{self.settings.app_name} access engine stopped")

    def dependencies(self) -> PermissionDependencies:
        """FastAPI dependency factory bound to this engine's resolver."""
        return PermissionDependencies(self.resolver)

    def install(self, app: FastAPI) -> None:
        """Add the tenant context middleware and exception handlers to an app."""
        app.add_middleware(
            TenantContextMiddleware,
            tenant_header=self.settings.tenant_header,
            user_header=self.settings.user_header,
            correlation_header=self.settings.correlation_header,
        )
        register_exception_handlers(app)

    def stats(self) -> Dict[str, Any]:
        """Cache, invalidation, tenant-context and broadcast listener metrics."""
        return {
            "cache": self.cache.stats().to_dict(),
            "invalidation": self.coordinator.metrics.to_dict(),
            "tenant_context": self.tenant_context.metrics.to_dict(),
            "distributor": self.distributor.stats() if self.distributor is not None else None,
        }
