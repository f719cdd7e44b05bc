"""Worker callback routes for processing jobs."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

import structlog

from app.api.dependencies import get_orchestrator
from app.models.job import JobFailure, ProcessingJob, ProgressUpdate
from app.models.transcript import TranscriptSegment
from app.models.video import CaptionSource
from app.services.ingestion.orchestrator import IngestionOrchestrator

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/jobs", tags=["jobs"])


class StartRequest(BaseModel):
    execution_id: str | None = None


class TranscriptResult(BaseModel):
    """Result of a transcription job."""

    segments: list[TranscriptSegment] = Field(..., min_length=1)
    caption_source: CaptionSource | None = None


class EmbeddingResult(BaseModel):
    """Result of an embedding job, keyed by segment index."""

    embeddings: dict[int, list[float]] = Field(..., min_length=1)


@router.post("/{job_id}/start", response_model=ProcessingJob)
async def start_job(
    job_id: int,
    request: StartRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> ProcessingJob:
    return await orchestrator.start_job(job_id, request.execution_id)


@router.post("/{job_id}/progress", response_model=ProcessingJob)
async def report_progress(
    job_id: int,
    request: ProgressUpdate,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> ProcessingJob:
    return await orchestrator.report_progress(job_id, request.message, request.percent)


@router.post("/{job_id}/transcript")
async def complete_transcription(
    job_id: int,
    request: TranscriptResult,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Store transcript segments and complete the transcription job."""
    video_status = await orchestrator.record_transcription(
        job_id, request.segments, request.caption_source
    )
    return {"job_id": job_id, "video_status": video_status.value}


@router.post("/{job_id}/embeddings")
async def complete_embedding(
    job_id: int,
    request: EmbeddingResult,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Store segment embeddings and complete the embedding job."""
    video_status = await orchestrator.record_embeddings(job_id, request.embeddings)
    return {"job_id": job_id, "video_status": video_status.value}


@router.post("/{job_id}/fail", response_model=ProcessingJob)
async def fail_job(
    job_id: int,
    request: JobFailure,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> ProcessingJob:
    """Record a worker failure; the error detail is stored verbatim."""
    return await orchestrator.record_failure(job_id, request)
