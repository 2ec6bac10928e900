"""
Exception handlers for failures of the collaborators behind the API. Domain
errors are translated in the route handlers themselves.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from intelgroups.core.codec import MalformedDocument
from intelgroups.service.ledger import LedgerUnavailable
from intelgroups.store.files import StoreUnavailable, VersionConflict


async def upstream_handler(request: Request, exc: Exception) -> JSONResponse:
    log = get_logger().bind(url=str(request.url), error=str(exc))
    await log.aerror("api.upstream_unavailable", kind=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)}
    )


async def conflict_handler(request: Request, exc: VersionConflict) -> JSONResponse:
    log = get_logger().bind(url=str(request.url), error=str(exc))
    await log.awarning("api.version_conflict")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"detail": "The data changed while saving, please try again"},
    )


def add_exception_handlers(app: FastAPI) -> FastAPI:
    """
    Map store and ledger failures to 502 responses, and version conflicts that
    outlasted every retry to 409.
    """
    app.add_exception_handler(StoreUnavailable, upstream_handler)
    app.add_exception_handler(MalformedDocument, upstream_handler)
    app.add_exception_handler(LedgerUnavailable, upstream_handler)
    app.add_exception_handler(VersionConflict, conflict_handler)
    return app
