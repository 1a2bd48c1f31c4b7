"""Tests for the FastAPI middleware, permission dependencies and error handlers."""

from typing import Annotated

import pytest
import pytest_asyncio
from fastapi import Depends, FastAPI, Request
from httpx import ASGITransport, AsyncClient

from neo_access.core.exceptions import TenantContextViolation
from neo_access.features.api.dependencies import PermissionDependencies
from neo_access.features.api.exception_handlers import register_exception_handlers
from neo_access.features.api.middleware import TenantContextMiddleware
from neo_access.features.audit.correlation import get_correlation_id
from neo_access.features.permissions.services.resolution_api import ResolutionAPI
from neo_access.features.tenants.context import get_current_tenant_id


def create_app(resolver) -> FastAPI:
    app = FastAPI()
    app.add_middleware(TenantContextMiddleware)
    register_exception_handlers(app)

    permissions = PermissionDependencies(resolver)
    resolution_api = ResolutionAPI(resolver)

    @app.get("/health")
    async def health():
        return {"tenant_id": get_current_tenant_id()}

    @app.get("/documents")
    async def list_documents(user_id: Annotated[str, Depends(permissions.require_permission("read", "documents"))]):
        return {"user_id": user_id, "tenant_id": get_current_tenant_id(), "correlation_id": get_correlation_id()}

    @app.put("/documents/{document_id}")
    async def update_document(
        document_id: str,
        user_id: Annotated[str, Depends(permissions.require_permission("update", "documents", "document_id"))]
    ):
        return {"document_id": document_id}

    @app.get("/reports")
    async def reports(
        user_id: Annotated[str, Depends(permissions.require_any_permission([("view", "reports"), ("read", "documents")]))]
    ):
        return {"ok": True}

    @app.delete("/users/{target}")
    async def delete_user(
        target: str,
        user_id: Annotated[str, Depends(permissions.require_all_permissions([("read", "documents"), ("delete", "users")]))]
    ):
        return {"deleted": target}

    @app.get("/me/permissions")
    async def my_permissions(request: Request, user_id: Annotated[str, Depends(permissions.get_current_user_id)]):
        response = await resolution_api.get_permission_set(request.state.tenant_id, user_id)
        return response.model_dump(mode="json")

    @app.get("/cross-tenant")
    async def cross_tenant():
        raise TenantContextViolation(requested_tenant_id="t2", active_tenant_id="t1")

    return app


@pytest_asyncio.fixture
async def async_client(resolver):
    """Async client against the test app."""
    transport = ASGITransport(app=create_app(resolver))
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def headers(user_id, tenant_id="t1"):
    return {"X-Tenant-ID": tenant_id, "X-User-ID": user_id}


class TestMiddleware:
    """Test request context establishment."""

    @pytest.mark.asyncio
    async def test_tenant_and_correlation_bound(self, async_client):
        response = await async_client.get(
            "/documents", headers={**headers("alice"), "X-Correlation-ID": "req-123"}
        )
        assert response.status_code == 200
        assert response.json() == {"user_id": "alice", "tenant_id": "t1", "correlation_id": "req-123"}
        assert response.headers["X-Correlation-ID"] == "req-123"

    @pytest.mark.asyncio
    async def test_correlation_id_generated(self, async_client):
        response = await async_client.get("/health")
        assert response.headers["X-Correlation-ID"]
        assert response.json() == {"tenant_id": None}

    @pytest.mark.asyncio
    async def test_invalid_tenant_header_rejected(self, async_client):
        response = await async_client.get("/documents", headers={"X-Tenant-ID": "t" * 300, "X-User-ID": "alice"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_missing_user_is_unauthorized(self, async_client):
        response = await async_client.get("/documents", headers={"X-Tenant-ID": "t1"})
        assert response.status_code == 401


class TestPermissionDependencies:
    """Test route guards."""

    @pytest.mark.asyncio
    async def test_allowed_and_denied(self, async_client):
        assert (await async_client.get("/documents", headers=headers("bob"))).status_code == 200

        response = await async_client.get("/documents", headers=headers("dave"))
        assert response.status_code == 403
        assert response.json() == {"detail": "Access denied"}

    @pytest.mark.asyncio
    async def test_path_parameter_scopes_check(self, async_client):
        assert (await async_client.put("/documents/doc-42", headers=headers("carol"))).status_code == 200
        assert (await async_client.put("/documents/doc-43", headers=headers("carol"))).status_code == 403

    @pytest.mark.asyncio
    async def test_same_user_other_tenant(self, async_client):
        assert (await async_client.get("/documents", headers=headers("alice", "t2"))).status_code == 403

    @pytest.mark.asyncio
    async def test_any_and_all(self, async_client):
        assert (await async_client.get("/reports", headers=headers("bob"))).status_code == 200
        assert (await async_client.get("/reports", headers=headers("dave"))).status_code == 403
        assert (await async_client.delete("/users/bob", headers=headers("alice"))).status_code == 403

    @pytest.mark.asyncio
    async def test_missing_tenant_context_is_access_denied(self, async_client):
        response = await async_client.get("/documents", headers={"X-User-ID": "alice"})
        assert response.status_code == 403
        assert response.json() == {"error": {"code": "ACCESS_DENIED", "message": "Access denied"}}


class TestResponses:
    """Test response bodies."""

    @pytest.mark.asyncio
    async def test_effective_permissions_listing(self, async_client):
        response = await async_client.get("/me/permissions", headers=headers("alice"))
        body = response.json()
        assert body["tenant_id"] == "t1"
        assert [(p["resource"], p["action"], p["source"]) for p in body["permissions"]] == [
            ("documents", "read", "editor"),
            ("documents", "update", "editor"),
        ]

    @pytest.mark.asyncio
    async def test_security_errors_are_generic(self, async_client):
        response = await async_client.get("/cross-tenant", headers=headers("alice"))
        assert response.status_code == 403
        assert "t2" not in response.text
