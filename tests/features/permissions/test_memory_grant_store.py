"""Tests for the in-memory grant store."""

from datetime import timedelta

import pytest

from neo_access.core.exceptions import MissingTenantContext, TenantContextViolation
from neo_access.features.permissions.entities.protocols import GrantStore
from neo_access.features.permissions.repositories.memory_grant_store import InMemoryGrantStore
from neo_access.features.tenants.context import tenant_scope


class TestInMemoryGrantStore:
    """Test tenant enforcement and reverse lookups."""

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryGrantStore(), GrantStore)

    @pytest.mark.asyncio
    async def test_reads_require_matching_context(self, grant_store):
        with pytest.raises(MissingTenantContext):
            await grant_store.get_role("t1", "r-editor")
        with tenant_scope("t2"):
            with pytest.raises(TenantContextViolation):
                await grant_store.list_roles("t1")

    @pytest.mark.asyncio
    async def test_lists_are_tenant_scoped(self, grant_store):
        with tenant_scope("t1"):
            roles = await grant_store.list_roles("t1")
            permissions = await grant_store.list_permissions("t1")
        assert [role.name for role in roles] == ["admin", "editor", "viewer"]
        assert all(permission.tenant_id == "t1" for permission in permissions)

    @pytest.mark.asyncio
    async def test_reverse_lookups(self, grant_store):
        with tenant_scope("t1"):
            assert await grant_store.list_role_holders("t1", "r-editor") == {"alice"}
            assert await grant_store.list_permission_holders("t1", "p-doc-update") == {"alice", "carol"}
            assert await grant_store.list_permission_holders("t1", "p-doc-read") == {"alice", "bob"}
            assert await grant_store.list_resource_grantees("t1", "doc-42") == {"carol"}

    @pytest.mark.asyncio
    async def test_revocation_keeps_row_for_reverse_lookup(self, grant_store, clock):
        with tenant_scope("t1"):
            assert await grant_store.revoke_role("t1", "alice", "r-editor", clock.now()) == 1
            assert await grant_store.list_user_roles("t1", "alice", clock.now()) == []
            assert "alice" in await grant_store.list_role_holders("t1", "r-editor")

    @pytest.mark.asyncio
    async def test_soft_deleted_rows_are_filtered(self, grant_store, clock):
        with tenant_scope("t1"):
            await grant_store.delete_permission("t1", "p-doc-read", clock.now())
            role_permissions = await grant_store.list_role_permissions("t1", ["r-editor", "r-viewer"])
            assert not await grant_store.delete_permission("t1", "p-doc-read", clock.now())
            assert len(await grant_store.list_permissions("t1", include_deleted=True)) == 4

        assert [permission.id for permission in role_permissions["r-editor"]] == ["p-doc-update"]
        assert role_permissions["r-viewer"] == []

    @pytest.mark.asyncio
    async def test_reattach_after_detach(self, grant_store, clock):
        with tenant_scope("t1"):
            await grant_store.detach_permission("t1", "r-viewer", "p-doc-read", clock.now())
            link = await grant_store.attach_permission("t1", "r-viewer", "p-doc-read")
            role_permissions = await grant_store.list_role_permissions("t1", ["r-viewer"])
        assert link.is_active
        assert [permission.id for permission in role_permissions["r-viewer"]] == ["p-doc-read"]

    @pytest.mark.asyncio
    async def test_expired_grants_not_listed(self, grant_store, clock):
        with tenant_scope("t1"):
            later = clock.now() + timedelta(days=1)
            assert await grant_store.revoke_resource_grants("t1", "doc-42", clock.now()) == 1
            assert await grant_store.list_user_permissions("t1", "carol", later) == []
