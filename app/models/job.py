"""Pydantic models for processing jobs."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class JobType(str, Enum):
    """Kinds of asynchronous work tracked in the job ledger."""

    SYNC = "sync"
    TRANSCRIPTION = "transcription"
    EMBEDDING = "embedding"


class JobStatus(str, Enum):
    """Job lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING, JobStatus.RUNNING)


class ProcessingJob(BaseModel):
    """Full processing job schema with database fields."""

    id: int
    tenant_id: int
    video_id: Optional[int] = None
    job_type: JobType
    status: JobStatus
    progress_message: Optional[str] = None
    progress_percent: int = 0
    error_message: Optional[str] = None
    error_kind: Optional[str] = None
    retryable: bool = False
    execution_id: Optional[str] = None
    attempt: int = 1
    scheduled_at: Optional[datetime] = None
    retry_after: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_JOB_STATUSES


class ProgressUpdate(BaseModel):
    """Progress report from an external worker."""

    message: str = Field(..., max_length=500)
    percent: int = Field(..., ge=0, le=100)


class JobFailure(BaseModel):
    """Failure report from an external worker."""

    error_message: str = Field(..., description="Stored verbatim on the job row")
    retryable: bool = True
    error_kind: Optional[str] = None
    retry_after: Optional[datetime] = Field(
        default=None,
        description="Earliest time a retry can succeed, e.g. a provider quota reset",
    )


class RetryRequest(BaseModel):
    """Request to retry failed jobs."""

    limit: int = Field(
        default=100,
        ge=1,
        le=500,
        description="Maximum number of failed jobs to retry",
    )
