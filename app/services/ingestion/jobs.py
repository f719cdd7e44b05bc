"""Processing job ledger: dispatch, transitions and retention."""

from datetime import datetime, timedelta, UTC
from typing import Any

import libsql_experimental as libsql
import structlog

from app.core.config import settings
from app.db.connection import to_iso
from app.db.repositories.job import JobRepository
from app.models.job import JobType, ProcessingJob
from app.services.ingestion.exceptions import JobAlreadyActive, JobNotFoundError, JobStateError

logger = structlog.get_logger(__name__)


class JobTracker:
    """Creates job rows and moves them through pending, running and a terminal state."""

    def __init__(self, connection: libsql.Connection):
        self.repo = JobRepository(connection)

    async def get(self, job_id: int) -> ProcessingJob:
        row = await self.repo.get_by_id(job_id)
        if row is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return ProcessingJob(**row)

    async def dispatch(
        self,
        tenant_id: int,
        video_id: int | None,
        job_type: JobType,
        attempt: int = 1,
        scheduled_at: datetime | None = None,
    ) -> ProcessingJob:
        """Create a pending job unless one of the same type is already active.

        Raises:
            JobAlreadyActive: A pending or running job of this type exists.
        """
        active = await self.repo.get_active(tenant_id, video_id, job_type.value)
        if active is not None:
            raise JobAlreadyActive(active["id"], job_type.value)

        try:
            job_id = await self.repo.create(
                tenant_id,
                video_id,
                job_type.value,
                attempt=attempt,
                scheduled_at=to_iso(scheduled_at),
                progress_message="Queued",
            )
        except Exception as e:
            # A concurrent dispatch won the unique active-job index
            active = await self.repo.get_active(tenant_id, video_id, job_type.value)
            if active is None:
                raise
            raise JobAlreadyActive(active["id"], job_type.value) from e

        return await self.get(job_id)

    async def start(self, job_id: int, execution_id: str | None = None) -> ProcessingJob:
        if not await self.repo.mark_running(job_id, execution_id):
            job = await self.get(job_id)
            if job.status.value != "running":
                raise JobStateError(f"Job {job_id} cannot start from status {job.status.value}")
            return job
        logger.info("job_started", job_id=job_id, execution_id=execution_id)
        return await self.get(job_id)

    async def record_execution(self, job_id: int, execution_id: str) -> None:
        await self.repo.set_execution_id(job_id, execution_id)

    async def report_progress(self, job_id: int, message: str, percent: int) -> ProcessingJob:
        if not await self.repo.update_progress(job_id, message, percent):
            job = await self.get(job_id)
            raise JobStateError(f"Job {job_id} is already {job.status.value}")
        logger.debug("job_progress", job_id=job_id, percent=percent)
        return await self.get(job_id)

    async def complete(self, job_id: int, message: str | None = None) -> ProcessingJob:
        if not await self.repo.mark_completed(job_id, message):
            job = await self.get(job_id)
            raise JobStateError(f"Job {job_id} is already {job.status.value}")
        logger.info("job_completed", job_id=job_id)
        return await self.get(job_id)

    async def fail(
        self,
        job_id: int,
        error_message: str,
        retryable: bool,
        error_kind: str | None = None,
        retry_after: datetime | None = None,
    ) -> ProcessingJob:
        """Mark an active job failed, storing the error detail verbatim.

        ``retry_after`` is the earliest time a new attempt can succeed.
        """
        if not await self.repo.mark_failed(
            job_id, error_message, error_kind, retryable, to_iso(retry_after)
        ):
            job = await self.get(job_id)
            raise JobStateError(f"Job {job_id} is already {job.status.value}")
        logger.warning(
            "job_failed",
            job_id=job_id,
            error_kind=error_kind,
            retryable=retryable,
            retry_after=to_iso(retry_after),
        )
        return await self.get(job_id)

    async def current_job(self, video_id: int) -> ProcessingJob | None:
        """Most recent pending or running job for a video."""
        row = await self.repo.get_current_for_video(video_id)
        return ProcessingJob(**row) if row else None

    async def history(self, video_id: int) -> list[ProcessingJob]:
        return [ProcessingJob(**row) for row in await self.repo.list_by_video(video_id)]

    async def list_due(self, limit: int = 100) -> list[ProcessingJob]:
        rows = await self.repo.list_due(to_iso(datetime.now(UTC)), limit)
        return [ProcessingJob(**row) for row in rows]

    async def list_retry_candidates(self, limit: int = 100) -> list[ProcessingJob]:
        rows = await self.repo.list_retryable_failed(limit)
        return [ProcessingJob(**row) for row in rows]

    async def cleanup_old_jobs(self, retention_days: int | None = None) -> int:
        """Delete terminal jobs finished more than ``retention_days`` ago.

        Videos and transcript segments are never touched.
        """
        days = settings.job_retention_days if retention_days is None else retention_days
        cutoff = datetime.now(UTC) - timedelta(days=days)
        deleted = await self.repo.delete_terminal_before(to_iso(cutoff))
        logger.info("jobs_cleaned_up", deleted=deleted, retention_days=days)
        return deleted

    async def stats(self, tenant_id: int | None = None) -> dict[str, Any]:
        return await self.repo.get_stats(tenant_id)
