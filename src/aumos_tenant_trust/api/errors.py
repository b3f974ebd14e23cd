"""Exception handlers for aumos-tenant-trust.

Every TrustBoundaryError is rendered as its status code with the body from
``to_payload()``; the itemized violations are always included.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from aumos_tenant_trust.errors import TrustBoundaryError
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)


async def trust_boundary_error_handler(request: Request, exc: TrustBoundaryError) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.info
    log(
        "Request denied",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        violations=exc.reasons,
    )
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(TrustBoundaryError, trust_boundary_error_handler)
