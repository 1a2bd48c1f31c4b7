"""Pytest configuration and fixtures for neo-access tests."""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from neo_access.config.constants import PermissionAction
from neo_access.features.audit.emitter import InMemoryAuditEmitter
from neo_access.features.cache.resolution_cache import ResolutionCache
from neo_access.features.invalidation.services.invalidation_coordinator import InvalidationCoordinator
from neo_access.features.permissions.entities.grants import UserPermission, UserRole
from neo_access.features.permissions.entities.permission import Permission
from neo_access.features.permissions.entities.role import Role
from neo_access.features.permissions.repositories.memory_grant_store import InMemoryGrantStore
from neo_access.features.permissions.services.grant_service import GrantService
from neo_access.features.permissions.services.permission_resolver import PermissionResolver
from neo_access.features.tenants.context import tenant_scope
from neo_access.features.tenants.entities import Tenant, TenantMembership


START = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock driven by the test: a monotonic reading and a matching wall time."""

    def __init__(self, start: datetime = START):
        self._start = start
        self._elapsed = 0.0

    def monotonic(self) -> float:
        return 1000.0 + self._elapsed

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def advance(self, seconds: float) -> None:
        self._elapsed += seconds


@pytest.fixture
def clock():
    """Manually advanced clock."""
    return ManualClock()


@pytest.fixture
def audit_emitter():
    """Collecting audit emitter."""
    return InMemoryAuditEmitter()


@pytest_asyncio.fixture
async def grant_store():
    """Grant store seeded with two tenants.

    Tenant t1:
        roles: editor (documents:read, documents:update), viewer (documents:read),
               admin (system role, users:delete)
        members: alice (editor), bob (viewer), carol (direct documents:update on doc-42),
                 dave (no grants)
    Tenant t2:
        roles: editor (documents:read)
        members: alice (no grants), erin (editor)
    """
    store = InMemoryGrantStore()
    store.add_tenant(Tenant(id="t1", name="Tenant One"))
    store.add_tenant(Tenant(id="t2", name="Tenant Two"))

    with tenant_scope("t1"):
        for permission in (
            Permission("p-doc-read", "t1", "documents.read", "documents", PermissionAction.READ),
            Permission("p-doc-update", "t1", "documents.update", "documents", PermissionAction.UPDATE),
            Permission("p-doc-delete", "t1", "documents.delete", "documents", PermissionAction.DELETE),
            Permission("p-users-delete", "t1", "users.delete", "users", PermissionAction.DELETE),
        ):
            await store.save_permission(permission)

        await store.save_role(Role("r-editor", "t1", "editor"))
        await store.save_role(Role("r-viewer", "t1", "viewer"))
        await store.save_role(Role("r-admin", "t1", "admin", is_system_role=True))
        await store.attach_permission("t1", "r-editor", "p-doc-read")
        await store.attach_permission("t1", "r-editor", "p-doc-update")
        await store.attach_permission("t1", "r-viewer", "p-doc-read")
        await store.attach_permission("t1", "r-admin", "p-users-delete")

        for user_id in ("alice", "bob", "carol", "dave"):
            await store.save_membership(TenantMembership("t1", user_id, joined_at=START))

        await store.assign_role(UserRole("t1", "alice", "r-editor", assigned_at=START))
        await store.assign_role(UserRole("t1", "bob", "r-viewer", assigned_at=START))
        await store.grant_permission(
            UserPermission("t1", "carol", "p-doc-update", resource_id="doc-42", granted_at=START)
        )

    with tenant_scope("t2"):
        await store.save_permission(
            Permission("p2-doc-read", "t2", "documents.read", "documents", PermissionAction.READ)
        )
        await store.save_role(Role("r2-editor", "t2", "editor"))
        await store.attach_permission("t2", "r2-editor", "p2-doc-read")
        await store.save_membership(TenantMembership("t2", "alice", joined_at=START))
        await store.save_membership(TenantMembership("t2", "erin", joined_at=START))
        await store.assign_role(UserRole("t2", "erin", "r2-editor", assigned_at=START))

    return store


@pytest.fixture
def cache(clock):
    """Resolution cache on the manual clock."""
    return ResolutionCache(ttl_seconds=300, max_entries=100, sweep_interval_seconds=60, clock=clock.monotonic)


@pytest.fixture
def resolver(grant_store, cache, audit_emitter, clock):
    """Permission resolver over the seeded store."""
    return PermissionResolver(grant_store, cache, audit_emitter, now=clock.now)


@pytest.fixture
def coordinator(grant_store, cache, audit_emitter):
    """Invalidation coordinator without cross-process broadcast."""
    return InvalidationCoordinator(grant_store, cache, audit_emitter=audit_emitter)


@pytest.fixture
def grant_service(grant_store, coordinator, audit_emitter, clock):
    """Grant service wired to the coordinator."""
    return GrantService(grant_store, coordinator, audit_emitter, now=clock.now)
