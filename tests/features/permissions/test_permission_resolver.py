"""Tests for permission resolution and checks."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from neo_access.config.constants import AuditOutcome, PermissionAction, TenantStatus
from neo_access.core.exceptions import (
    GrantStoreUnavailableError,
    MissingTenantContext,
    ResolutionUnavailable,
    TenantContextViolation,
    ValidationError,
)
from neo_access.features.permissions.entities.effective import PermissionCheck
from neo_access.features.permissions.entities.grants import UserPermission, UserRole
from neo_access.features.permissions.services.permission_resolver import PermissionResolver
from neo_access.features.tenants.context import get_current_tenant_id, tenant_scope
from neo_access.features.tenants.entities import TenantMembership


class TestResolution:
    """Test effective permission computation."""

    @pytest.mark.asyncio
    async def test_role_permissions(self, resolver):
        with tenant_scope("t1"):
            permission_set = await resolver.resolve("t1", "alice")

        assert permission_set.codes() == ["documents:read", "documents:update"]
        assert {entry.source for entry in permission_set} == {"editor"}

    @pytest.mark.asyncio
    async def test_union_of_direct_and_role_grants(self, resolver, grant_store, clock):
        with tenant_scope("t1"):
            await grant_store.grant_permission(UserPermission("t1", "alice", "p-doc-read", granted_at=clock.now()))
            await grant_store.assign_role(UserRole("t1", "alice", "r-viewer", assigned_at=clock.now()))
            entries = await resolver.get_effective_permissions("t1", "alice")

        read = next(entry for entry in entries if entry.action == PermissionAction.READ)
        assert read.source == "direct"
        assert read.sources == ("direct", "editor", "viewer")
        assert len(entries) == 2

    @pytest.mark.asyncio
    async def test_scoped_direct_grant(self, resolver):
        with tenant_scope("t1"):
            assert await resolver.check("t1", "carol", "update", "documents", "doc-42")
            assert not await resolver.check("t1", "carol", "update", "documents", "doc-43")
            assert not await resolver.check("t1", "carol", "update", "documents")

    @pytest.mark.asyncio
    async def test_non_member_resolves_empty(self, resolver):
        with tenant_scope("t1"):
            permission_set = await resolver.resolve("t1", "mallory")
        assert permission_set.is_empty

    @pytest.mark.asyncio
    async def test_inactive_membership_resolves_empty(self, resolver, grant_store):
        with tenant_scope("t1"):
            await grant_store.save_membership(TenantMembership("t1", "alice", is_active=False))
            assert not await resolver.check("t1", "alice", "read", "documents")

    @pytest.mark.asyncio
    async def test_suspended_tenant_resolves_empty(self, resolver, grant_store):
        with tenant_scope("t1"):
            await grant_store.set_tenant_status("t1", TenantStatus.SUSPENDED)
            assert not await resolver.check("t1", "alice", "read", "documents")

    @pytest.mark.asyncio
    async def test_deleted_role_contributes_nothing(self, resolver, grant_store, clock):
        with tenant_scope("t1"):
            await grant_store.delete_role("t1", "r-editor", clock.now())
            permission_set = await resolver.resolve("t1", "alice")
        assert permission_set.is_empty

    @pytest.mark.asyncio
    async def test_membership_in_one_tenant_grants_nothing_in_another(self, resolver):
        with tenant_scope("t2"):
            assert not await resolver.check("t2", "alice", "read", "documents")
            assert await resolver.check("t2", "erin", "read", "documents")

    @pytest.mark.asyncio
    async def test_invalid_input(self, resolver):
        with tenant_scope("t1"):
            with pytest.raises(ValidationError):
                await resolver.resolve("t1", "")
            with pytest.raises(ValidationError):
                await resolver.check("t1", "alice", "approve", "documents")


class TestExpiry:
    """Test that expired grants stop counting."""

    @pytest.mark.asyncio
    async def test_expired_direct_grant_denied_after_cache_hit(self, resolver, grant_store, clock):
        with tenant_scope("t1"):
            await grant_store.grant_permission(
                UserPermission("t1", "dave", "p-doc-read", expires_at=clock.now() + timedelta(seconds=60))
            )
            assert await resolver.check("t1", "dave", "read", "documents")

            clock.advance(61)
            assert not await resolver.check("t1", "dave", "read", "documents")

    @pytest.mark.asyncio
    async def test_valid_until_is_earliest_expiry(self, resolver, grant_store, clock):
        soon = clock.now() + timedelta(minutes=2)
        with tenant_scope("t1"):
            await grant_store.assign_role(UserRole("t1", "dave", "r-viewer", expires_at=soon))
            await grant_store.grant_permission(
                UserPermission("t1", "dave", "p-doc-update", expires_at=soon + timedelta(hours=1))
            )
            permission_set = await resolver.resolve("t1", "dave")
        assert permission_set.valid_until == soon

    @pytest.mark.asyncio
    async def test_expired_role_assignment_ignored(self, resolver, grant_store, clock):
        with tenant_scope("t1"):
            await grant_store.assign_role(
                UserRole("t1", "dave", "r-editor", expires_at=clock.now() - timedelta(seconds=1))
            )
            assert not await resolver.check("t1", "dave", "read", "documents")


class TestTenantBoundary:
    """Test tenant context enforcement."""

    @pytest.mark.asyncio
    async def test_missing_context_raises_and_is_audited(self, resolver, audit_emitter):
        with pytest.raises(MissingTenantContext):
            await resolver.check("t1", "alice", "read", "documents")

        assert audit_emitter.events[-1].outcome == AuditOutcome.FAILURE
        assert audit_emitter.events[-1].detail["reason"] == "MissingTenantContext"

    @pytest.mark.asyncio
    async def test_foreign_tenant_check_denied(self, resolver, audit_emitter):
        with tenant_scope("t1"):
            assert not await resolver.check("t2", "erin", "read", "documents")

        event = audit_emitter.events[-1]
        assert event.outcome == AuditOutcome.FAILURE
        assert event.detail["reason"] == "TenantContextViolation"

    @pytest.mark.asyncio
    async def test_foreign_tenant_resolve_raises(self, resolver):
        with tenant_scope("t1"):
            with pytest.raises(TenantContextViolation):
                await resolver.resolve("t2", "erin")


class TestFailClosed:
    """Test behavior when the grant store is down."""

    @pytest.mark.asyncio
    async def test_check_denies_when_store_unavailable(self, resolver, grant_store, cache, audit_emitter):
        with patch.object(grant_store, "get_tenant", AsyncMock(side_effect=GrantStoreUnavailableError("down"))):
            with tenant_scope("t1"):
                assert not await resolver.check("t1", "alice", "read", "documents")

        assert len(cache) == 0
        event = audit_emitter.events[-1]
        assert event.outcome == AuditOutcome.FAILURE
        assert event.detail["reason"] == "resolution_unavailable"

    @pytest.mark.asyncio
    async def test_resolve_raises_when_store_unavailable(self, resolver, grant_store):
        with patch.object(grant_store, "list_user_roles", AsyncMock(side_effect=OSError("reset"))):
            with tenant_scope("t1"):
                with pytest.raises(ResolutionUnavailable):
                    await resolver.resolve("t1", "alice")

    @pytest.mark.asyncio
    async def test_check_many_denies_everything_when_store_unavailable(self, resolver, grant_store):
        with patch.object(grant_store, "get_tenant", AsyncMock(side_effect=GrantStoreUnavailableError("down"))):
            with tenant_scope("t1"):
                results = await resolver.check_many("t1", "alice", [("read", "documents"), ("update", "documents")])
        assert results == [False, False]


class TestCaching:
    """Test resolution cache interplay."""

    @pytest.mark.asyncio
    async def test_second_check_is_served_from_cache(self, resolver, cache):
        with tenant_scope("t1"):
            await resolver.check("t1", "alice", "read", "documents")
            await resolver.check("t1", "alice", "update", "documents")

        stats = cache.stats()
        assert stats.misses == 1
        assert stats.hits == 1

    @pytest.mark.asyncio
    async def test_resolution_racing_an_eviction_is_not_cached(self, resolver, grant_store, cache):
        original = grant_store.list_user_roles

        async def racing(tenant_id, user_id, at):
            rows = await original(tenant_id, user_id, at)
            await cache.evict(tenant_id, user_id)
            return rows

        with patch.object(grant_store, "list_user_roles", side_effect=racing):
            with tenant_scope("t1"):
                permission_set = await resolver.resolve("t1", "alice")

        assert not permission_set.is_empty
        assert not await cache.contains("t1", "alice")
        assert cache.stats().stale_puts_rejected == 1

    @pytest.mark.asyncio
    async def test_cancelled_resolution_leaves_no_entry(self, resolver, grant_store, cache):
        original = grant_store.list_user_roles
        started = asyncio.Event()
        release = asyncio.Event()
        observed = []

        async def blocked(tenant_id, user_id, at):
            started.set()
            await release.wait()
            return await original(tenant_id, user_id, at)

        async def resolve_alice():
            try:
                with tenant_scope("t1"):
                    await resolver.resolve("t1", "alice")
            except asyncio.CancelledError:
                observed.append(get_current_tenant_id())
                raise

        with patch.object(grant_store, "list_user_roles", side_effect=blocked):
            task = asyncio.create_task(resolve_alice())
            await started.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert observed == [None]
        assert await cache.get("t1", "alice") is None
        assert len(cache) == 0
        assert get_current_tenant_id() is None

    @pytest.mark.asyncio
    async def test_cache_keys_are_per_tenant(self, resolver, cache):
        with tenant_scope("t1"):
            await resolver.resolve("t1", "alice")
        with tenant_scope("t2"):
            permission_set = await resolver.resolve("t2", "alice")

        assert permission_set.is_empty
        assert len(cache) == 2


class TestAudit:
    """Test audit of sensitive checks."""

    @pytest.mark.asyncio
    async def test_sensitive_denial_audited(self, resolver, audit_emitter):
        with tenant_scope("t1"):
            assert not await resolver.check("t1", "dave", "delete", "users", "alice")

        event = audit_emitter.events[-1]
        assert event.outcome == AuditOutcome.DENIED
        assert event.resource_type == "users"
        assert event.resource_id == "alice"
        assert event.action == "delete"

    @pytest.mark.asyncio
    async def test_ordinary_denial_not_audited(self, resolver, audit_emitter):
        with tenant_scope("t1"):
            assert not await resolver.check("t1", "dave", "read", "documents")
        assert audit_emitter.events == []

    @pytest.mark.asyncio
    async def test_allowed_sensitive_checks_audited_when_enabled(
        self, grant_store, cache, audit_emitter, clock
    ):
        resolver = PermissionResolver(grant_store, cache, audit_emitter, audit_allowed_checks=True, now=clock.now)
        with tenant_scope("t1"):
            await grant_store.assign_role(UserRole("t1", "dave", "r-admin"))
            assert await resolver.check("t1", "dave", "delete", "users")

        assert [event.outcome for event in audit_emitter.events] == [AuditOutcome.SUCCESS]

    @pytest.mark.asyncio
    async def test_audit_failure_does_not_change_answer(self, resolver, audit_emitter):
        audit_emitter.emit = AsyncMock(side_effect=RuntimeError("sink down"))
        with tenant_scope("t1"):
            assert not await resolver.check("t1", "dave", "delete", "users")


class TestBulkChecks:
    """Test check_many, check_any and check_all."""

    @pytest.mark.asyncio
    async def test_check_many_preserves_order(self, resolver, cache):
        checks = [
            ("read", "documents"),
            PermissionCheck(PermissionAction.DELETE, "documents"),
            {"action": "update", "resource": "documents", "resource_id": "doc-1"},
        ]
        with tenant_scope("t1"):
            assert await resolver.check_many("t1", "alice", checks) == [True, False, True]
        assert cache.stats().misses == 1

    @pytest.mark.asyncio
    async def test_check_any_and_all(self, resolver):
        checks = [("read", "documents"), ("delete", "documents")]
        with tenant_scope("t1"):
            assert await resolver.check_any("t1", "alice", checks)
            assert not await resolver.check_all("t1", "alice", checks)
            assert await resolver.check_all("t1", "alice", checks[:1])

    @pytest.mark.asyncio
    async def test_empty_bulk_checks(self, resolver):
        with tenant_scope("t1"):
            assert await resolver.check_many("t1", "alice", []) == []
            assert not await resolver.check_any("t1", "alice", [])
            assert not await resolver.check_all("t1", "alice", [])


class TestPrefetch:
    """Test cache warming."""

    @pytest.mark.asyncio
    async def test_prefetch_populates_missing_entries(self, resolver, cache):
        with tenant_scope("t1"):
            assert await resolver.prefetch("t1", ["alice", "bob", "alice", "dave"]) == 3
            assert await resolver.prefetch("t1", ["alice", "bob"]) == 0
        assert len(cache) == 3

    @pytest.mark.asyncio
    async def test_prefetch_requires_context(self, resolver):
        with pytest.raises(MissingTenantContext):
            await resolver.prefetch("t1", ["alice"])

    @pytest.mark.asyncio
    async def test_prefetch_skips_failures(self, resolver, grant_store):
        with patch.object(grant_store, "get_tenant", AsyncMock(side_effect=GrantStoreUnavailableError("down"))):
            with tenant_scope("t1"):
                assert await resolver.prefetch("t1", ["alice", "bob"]) == 0
