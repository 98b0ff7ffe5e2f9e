"""HTTP middleware that rejects tenant-scoped requests without a usable tenant header."""

import logging
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from clinihub.core.config import get_settings
from clinihub.core.errors import HubError, MissingTenantContext
from clinihub.core.tenancy import is_tenant_scoped_path, validate_identifier

logger = logging.getLogger(__name__)

settings = get_settings()


async def tenant_header_guard(
    request: Request, call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    """Validate the header shape before routing; the registry lookup happens later."""
    if request.method == "OPTIONS" or not is_tenant_scoped_path(request.url.path):
        return await call_next(request)

    raw = request.headers.get(settings.tenant_header_name)
    try:
        if raw is None or not raw.strip():
            raise MissingTenantContext(header=settings.tenant_header_name)
        validate_identifier(raw)
    except HubError as exc:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
    return await call_next(request)
