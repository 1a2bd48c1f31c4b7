"""Tests for tenant context propagation."""

import asyncio

import pytest

from neo_access.core.exceptions import MissingTenantContext, TenantContextViolation, ValidationError
from neo_access.features.tenants.context import (
    TenantContext,
    ensure_tenant,
    get_current_tenant_id,
    require_tenant_id,
    tenant_scope,
    with_tenant,
)


class TestTenantScope:
    """Test scoped tenant binding."""

    def test_no_tenant_outside_scope(self):
        assert get_current_tenant_id() is None
        with pytest.raises(MissingTenantContext):
            require_tenant_id("test")

    def test_scope_sets_and_restores(self):
        with tenant_scope("t1") as active:
            assert active == "t1"
            assert get_current_tenant_id() == "t1"
        assert get_current_tenant_id() is None

    def test_nested_scopes_unwind(self):
        with tenant_scope("t1"):
            with tenant_scope("t2"):
                assert get_current_tenant_id() == "t2"
            assert get_current_tenant_id() == "t1"

    def test_scope_restored_after_exception(self):
        with pytest.raises(RuntimeError):
            with tenant_scope("t1"):
                raise RuntimeError("boom")
        assert get_current_tenant_id() is None

    def test_scope_strips_and_validates(self):
        with tenant_scope("  t1 "):
            assert get_current_tenant_id() == "t1"
        with pytest.raises(ValidationError):
            with tenant_scope(""):
                pass

    def test_ensure_tenant(self):
        with pytest.raises(MissingTenantContext):
            ensure_tenant("t1")
        with tenant_scope("t1"):
            assert ensure_tenant("t1") == "t1"
            with pytest.raises(TenantContextViolation) as exc_info:
                ensure_tenant("t2")
        assert exc_info.value.requested_tenant_id == "t2"
        assert exc_info.value.active_tenant_id == "t1"


class TestWithTenant:
    """Test running callables under a tenant."""

    @pytest.mark.asyncio
    async def test_runs_coroutine_function(self):
        async def current():
            return get_current_tenant_id()

        assert await with_tenant("t1", current) == "t1"
        assert get_current_tenant_id() is None

    @pytest.mark.asyncio
    async def test_runs_plain_function(self):
        assert await with_tenant("t1", lambda: get_current_tenant_id()) == "t1"

    @pytest.mark.asyncio
    async def test_concurrent_tasks_are_isolated(self):
        async def observe(tenant_id):
            async def inner():
                await asyncio.sleep(0)
                return get_current_tenant_id()
            return await with_tenant(tenant_id, inner)

        results = await asyncio.gather(*(observe(f"t{i}") for i in range(10)))
        assert results == [f"t{i}" for i in range(10)]

    @pytest.mark.asyncio
    async def test_cancellation_clears_tenant(self):
        started = asyncio.Event()
        observed = []

        async def blocked():
            observed.append(get_current_tenant_id())
            started.set()
            await asyncio.Event().wait()

        async def runner():
            try:
                await with_tenant("t1", blocked)
            except asyncio.CancelledError:
                observed.append(get_current_tenant_id())
                raise

        task = asyncio.create_task(runner())
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert observed == ["t1", None]
        assert get_current_tenant_id() is None


class TestTenantContextService:
    """Test the metered tenant context service."""

    def test_scope_records_switches(self):
        readings = iter([1.0, 1.5, 2.0, 2.25])
        context = TenantContext(clock=lambda: next(readings))

        with context.scope("t1"):
            assert context.current() == "t1"
        with context.scope("t2"):
            pass

        metrics = context.metrics
        assert metrics.switch_count == 2
        assert metrics.last_tenant_id == "t2"
        assert metrics.per_tenant == {"t1": 1, "t2": 1}
        assert metrics.average_switch_seconds == pytest.approx(0.375)
        assert metrics.failure_rate == 0.0

    def test_invalid_tenant_counts_as_failure(self):
        context = TenantContext()
        with pytest.raises(ValidationError):
            with context.scope("   "):
                pass
        assert context.metrics.failure_count == 1
        assert context.metrics.failure_rate == 1.0
        assert context.current() is None

    @pytest.mark.asyncio
    async def test_run(self):
        context = TenantContext()

        async def current():
            return context.require("test")

        assert await context.run("t1", current) == "t1"
        assert context.metrics.to_dict()["switch_count"] == 1
