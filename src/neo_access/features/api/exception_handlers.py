"""
Exception handlers for applications using neo-access.

Security-boundary errors are logged with full detail and answered with a
generic "Access denied" body.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ...core.exceptions import (
    NeoAccessError,
    create_error_response,
    get_http_status_code,
    is_security_error,
)

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Register neo-access exception handlers on a FastAPI application."""

    @app.exception_handler(NeoAccessError)
    async def neo_access_exception_handler(request: Request, exc: NeoAccessError):
        status_code = get_http_status_code(exc)
        if is_security_error(exc):
            logger.warning(f"Access denied on {request.method} {request.url.path}: {exc.to_dict()}")
        elif status_code >= 500:
            logger.error(f"{exc.error_code} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status_code, content=create_error_response(exc))
