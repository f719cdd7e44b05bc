"""Ingestion API routes: channel connection, sync, dispatch, retries and status."""

from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

import structlog

from app.api.dependencies import get_orchestrator
from app.models.job import JobType, ProcessingJob, RetryRequest
from app.models.tenant import TenantStats
from app.models.video import VideoProgress, VideoStatus
from app.services.ingestion.orchestrator import IngestionOrchestrator

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["ingestion"])


class ConnectRequest(BaseModel):
    """OAuth callback parameters."""

    code: str = Field(..., min_length=1)
    redirect_uri: str
    tenant_id: int | None = None
    tenant_name: str | None = Field(default=None, max_length=200)


class AuthorizationUrlRequest(BaseModel):
    redirect_uri: str
    state: str = Field(..., min_length=1)


class SyncRequest(BaseModel):
    max_videos: int | None = Field(default=None, ge=1, le=500)


class DispatchJobRequest(BaseModel):
    job_type: JobType


@router.post("/connect/authorization-url")
async def authorization_url(
    request: AuthorizationUrlRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, str]:
    """Build the consent URL that starts the channel connection."""
    url = orchestrator.credentials.oauth.build_authorization_url(request.redirect_uri, request.state)
    return {"authorization_url": url}


@router.post("/connect", status_code=status.HTTP_201_CREATED)
async def connect_channel(
    request: ConnectRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Exchange an authorization code and link the channel to a tenant."""
    return await orchestrator.connect_channel(
        code=request.code,
        redirect_uri=request.redirect_uri,
        tenant_id=request.tenant_id,
        tenant_name=request.tenant_name,
    )


@router.delete("/tenants/{tenant_id}/connection")
async def disconnect_channel(
    tenant_id: int,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Remove the tenant's stored credential and channel link."""
    deleted = await orchestrator.credentials.disconnect(tenant_id)
    return {"tenant_id": tenant_id, "disconnected": deleted}


@router.post("/tenants/{tenant_id}/sync")
async def sync_channel(
    tenant_id: int,
    request: SyncRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Sync the tenant's channel videos and wait for completion."""
    return await orchestrator.sync_channel(tenant_id, max_videos=request.max_videos)


@router.get("/tenants/{tenant_id}/stats", response_model=TenantStats)
async def get_tenant_stats(
    tenant_id: int,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> TenantStats:
    """Video counts per status and embedding coverage for a tenant."""
    return await orchestrator.tenant_stats(tenant_id)


@router.post(
    "/tenants/{tenant_id}/videos/{video_id}/jobs",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=ProcessingJob,
)
async def dispatch_job(
    tenant_id: int,
    video_id: int,
    request: DispatchJobRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> ProcessingJob:
    """Create a transcription or embedding job for a video and hand it off."""
    return await orchestrator.dispatch_job(tenant_id, video_id, request.job_type)


@router.get("/tenants/{tenant_id}/videos/{video_id}/progress", response_model=VideoProgress)
async def get_video_progress(
    tenant_id: int,
    video_id: int,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> VideoProgress:
    """Current status and in-flight job of a video."""
    return await orchestrator.video_progress(video_id, tenant_id)


@router.post("/tenants/{tenant_id}/videos/{video_id}/retry")
async def retry_video(
    tenant_id: int,
    video_id: int,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Clear a video's failure so its status is derived again."""
    new_status: VideoStatus = await orchestrator.retry_video(video_id, tenant_id)
    return {"video_id": video_id, "status": new_status.value}


@router.get("/tenants/{tenant_id}/jobs/{job_id}", response_model=ProcessingJob)
async def get_job(
    tenant_id: int,
    job_id: int,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> ProcessingJob:
    """A job's status and progress, visible only to its own tenant."""
    return await orchestrator.get_job(job_id, tenant_id)


@router.post("/jobs/retry-failed")
async def retry_failed_jobs(
    request: RetryRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Schedule new attempts for retryable failed jobs."""
    return await orchestrator.retry_failed(limit=request.limit)


@router.post("/jobs/dispatch-due")
async def dispatch_due_jobs(
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Hand off pending jobs whose backoff has elapsed."""
    return await orchestrator.dispatch_due()
