"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from datetime import UTC
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import ingestion, jobs, search
from app.core.config import settings
from app.core.errors import ServiceError
from app.core.logging import setup_logging, get_logger
from app.db.connection import db
from app.db.qdrant import qdrant

# Set up logging
setup_logging()
logger = get_logger(__name__)

# HTTP status per error kind; anything unlisted is a 400
STATUS_BY_KIND = {
    "not_connected": 409,
    "reconnect_required": 401,
    "refresh_rejected": 401,
    "decryption_failed": 500,
    "external_quota_exceeded": 429,
    "external_transient_failure": 503,
    "job_already_active": 409,
    "job_state_error": 409,
    "video_unavailable": 410,
    "job_not_found": 404,
    "video_not_found": 404,
    "tenant_not_found": 404,
    "channel_not_found": 404,
    "invalid_transcript": 422,
    "invalid_embedding": 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager for startup/shutdown."""
    # Startup
    logger.info("application_starting", app_name=settings.app_name)

    await db.connect()
    await db.init_schema()
    qdrant.ensure_collection()

    logger.info("application_started")

    yield

    # Shutdown
    logger.info("application_stopping")
    qdrant.close()
    await db.disconnect()
    logger.info("application_stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Tenant video knowledge core: credentials, ingestion state and segment search",
    version="0.1.0",
    lifespan=lifespan,
)

# Include routers
app.include_router(ingestion.router)
app.include_router(jobs.router)
app.include_router(search.router)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Return the structured error so clients can act on kind, not message."""
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.kind)
    else:
        logger.info("request_rejected", path=request.url.path, error=exc.kind)

    headers = {}
    if exc.retry_after is not None:
        headers["Retry-After"] = exc.retry_after.astimezone(UTC).strftime("%a, %d %b %Y %H:%M:%S GMT")
    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": "Video Knowledge Core API",
        "docs": "/docs",
    }
