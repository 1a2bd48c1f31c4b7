"""Request context middleware.

Establishes the tenant context and correlation id for each request from
headers, so every permission check made while serving the request runs in
the caller's tenant and every audit event carries the request's
correlation id.
"""

import logging
from typing import List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ...config.constants import HeaderNames
from ...core.exceptions import ValidationError, create_error_response, get_http_status_code
from ...core.value_objects import validate_identifier
from ..audit.correlation import correlation_scope, new_correlation_id
from ..tenants.context import tenant_scope

logger = logging.getLogger(__name__)


class TenantContextMiddleware(BaseHTTPMiddleware):
    """Binds tenant context and correlation id for the duration of a request."""

    def __init__(
        self,
        app,
        *,
        tenant_header: str = HeaderNames.TENANT_ID,
        user_header: str = HeaderNames.USER_ID,
        correlation_header: str = HeaderNames.CORRELATION_ID,
        exclude_paths: Optional[List[str]] = None
    ):
        super().__init__(app)
        self.tenant_header = tenant_header
        self.user_header = user_header
        self.correlation_header = correlation_header
        self.exclude_paths = exclude_paths or ["/health", "/docs", "/openapi.json"]

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get(self.correlation_header) or new_correlation_id()

        with correlation_scope(correlation_id):
            request.state.correlation_id = correlation_id
            user_id = request.headers.get(self.user_header)
            request.state.user_id = user_id.strip() if user_id and user_id.strip() else None

            raw_tenant = request.headers.get(self.tenant_header)
            if raw_tenant is None or self._is_excluded(request.url.path):
                request.state.tenant_id = None
                response = await call_next(request)
            else:
                try:
                    tenant_id = validate_identifier(raw_tenant, "Tenant ID")
                except ValidationError as e:
                    logger.warning(f"Rejected request with invalid {self.tenant_header} header: {e.message}")
                    return JSONResponse(
                        status_code=get_http_status_code(e),
                        content=create_error_response(e),
                        headers={self.correlation_header: correlation_id},
                    )

                with tenant_scope(tenant_id):
                    request.state.tenant_id = tenant_id
                    response = await call_next(request)

        response.headers[self.correlation_header] = correlation_id
        return response

    def _is_excluded(self, path: str) -> bool:
        return any(path.startswith(excluded) for excluded in self.exclude_paths)
