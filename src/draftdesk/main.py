"""
DraftDesk API - Application Entry Point

FastAPI application for reference intake and document version history.

Start locally:
    uvicorn draftdesk.main:app --host 0.0.0.0 --port 8000 --reload
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from draftdesk.api.v1.intake import router as intake_router
from draftdesk.api.v1.versions import router as versions_router
from draftdesk.core.config import settings
from draftdesk.core.database import dispose_engine, get_engine
from draftdesk.core.errors import (
    AccessDenied,
    AggregateNotFound,
    DraftDeskError,
    ExtractionFailed,
    InvalidSource,
    JobAlreadyActive,
    NotFound,
    ReferenceNotReady,
    VersionNumberConflict,
    WorkerDispatchFailed,
)
from draftdesk.core.logging import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

# First match wins, so subclasses come before their bases
ERROR_STATUS: list[tuple[type[DraftDeskError], int]] = [
    (AccessDenied, 403),
    (InvalidSource, 422),
    (NotFound, 404),
    (ReferenceNotReady, 409),
    (JobAlreadyActive, 409),
    (AggregateNotFound, 409),
    (ExtractionFailed, 409),
    (WorkerDispatchFailed, 502),
    (VersionNumberConflict, 500),
]


def status_for(exc: DraftDeskError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
        1. Validate database connectivity.

    Shutdown:
        1. Dispose database engine.
    """
    logger.info("Starting %s...", settings.PROJECT_NAME)

    engine = get_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except Exception:
        logger.exception("Database connection failed")
        raise

    yield

    await dispose_engine()
    logger.info("%s shutdown complete", settings.PROJECT_NAME)


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Reference intake and document version history.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(intake_router, prefix="/api/v1", tags=["Intake"])
app.include_router(versions_router, prefix="/api/v1", tags=["Versions"])


@app.exception_handler(DraftDeskError)
async def domain_error_handler(request: Request, exc: DraftDeskError) -> JSONResponse:
    code = status_for(exc)
    if code >= 500:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc.message,
        )
    return JSONResponse(
        status_code=code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check for load balancers and orchestrators."""
    return {"status": "ok", "service": "draftdesk"}
