"""Processing job repository for database operations."""

from typing import Any

import libsql_experimental as libsql
import structlog

from app.db.connection import now_iso, row_to_dict, rows_to_dicts

logger = structlog.get_logger(__name__)


class JobRepository:
    """Repository for the processing job ledger."""

    def __init__(self, connection: libsql.Connection):
        """Initialize with database connection."""
        self.conn = connection

    async def create(
        self,
        tenant_id: int,
        video_id: int | None,
        job_type: str,
        attempt: int = 1,
        scheduled_at: str | None = None,
        progress_message: str | None = None,
    ) -> int:
        """Create a new pending job.

        The partial unique index on active jobs makes a concurrent duplicate fail here.
        """
        now = now_iso()
        try:
            cursor = self.conn.execute(
                """
                INSERT INTO processing_jobs (
                    tenant_id, video_id, job_type, status, progress_message,
                    attempt, scheduled_at, created_at, updated_at
                )
                VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?)
                """,
                (tenant_id, video_id, job_type, progress_message, attempt, scheduled_at, now, now),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        logger.info(
            "job_created",
            job_id=cursor.lastrowid,
            video_id=video_id,
            job_type=job_type,
            attempt=attempt,
        )
        return cursor.lastrowid or 0

    async def get_by_id(self, job_id: int) -> dict[str, Any] | None:
        """Get a job by its database ID."""
        cursor = self.conn.execute("SELECT * FROM processing_jobs WHERE id = ?", (job_id,))
        return row_to_dict(cursor)

    async def get_active(
        self,
        tenant_id: int,
        video_id: int | None,
        job_type: str,
    ) -> dict[str, Any] | None:
        """Get the pending or running job of a type for a video (or tenant-level job)."""
        cursor = self.conn.execute(
            """
            SELECT * FROM processing_jobs
            WHERE tenant_id = ?
              AND IFNULL(video_id, 0) = IFNULL(?, 0)
              AND job_type = ?
              AND status IN ('pending', 'running')
            ORDER BY id DESC
            LIMIT 1
            """,
            (tenant_id, video_id, job_type),
        )
        return row_to_dict(cursor)

    async def get_current_for_video(self, video_id: int) -> dict[str, Any] | None:
        """Get the most recent pending or running job for a video."""
        cursor = self.conn.execute(
            """
            SELECT * FROM processing_jobs
            WHERE video_id = ? AND status IN ('pending', 'running')
            ORDER BY id DESC
            LIMIT 1
            """,
            (video_id,),
        )
        return row_to_dict(cursor)

    async def list_by_video(self, video_id: int) -> list[dict[str, Any]]:
        """List every job recorded for a video, oldest first."""
        cursor = self.conn.execute(
            "SELECT * FROM processing_jobs WHERE video_id = ? ORDER BY id",
            (video_id,),
        )
        return rows_to_dicts(cursor)

    async def mark_running(self, job_id: int, execution_id: str | None = None) -> bool:
        """Transition a pending job to running."""
        now = now_iso()
        cursor = self.conn.execute(
            """
            UPDATE processing_jobs
            SET status = 'running',
                execution_id = COALESCE(?, execution_id),
                started_at = ?,
                updated_at = ?
            WHERE id = ? AND status = 'pending'
            """,
            (execution_id, now, now, job_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    async def set_execution_id(self, job_id: int, execution_id: str) -> None:
        """Record the external execution reference for a job."""
        self.conn.execute(
            "UPDATE processing_jobs SET execution_id = ?, updated_at = ? WHERE id = ?",
            (execution_id, now_iso(), job_id),
        )
        self.conn.commit()

    async def update_progress(self, job_id: int, message: str, percent: int) -> bool:
        """Update the progress of an active job."""
        cursor = self.conn.execute(
            """
            UPDATE processing_jobs
            SET progress_message = ?, progress_percent = ?, updated_at = ?
            WHERE id = ? AND status IN ('pending', 'running')
            """,
            (message, percent, now_iso(), job_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    async def mark_completed(self, job_id: int, message: str | None = None) -> bool:
        """Transition an active job to completed."""
        now = now_iso()
        cursor = self.conn.execute(
            """
            UPDATE processing_jobs
            SET status = 'completed',
                progress_percent = 100,
                progress_message = COALESCE(?, progress_message),
                started_at = COALESCE(started_at, ?),
                completed_at = ?,
                updated_at = ?
            WHERE id = ? AND status IN ('pending', 'running')
            """,
            (message, now, now, now, job_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    async def mark_failed(
        self,
        job_id: int,
        error_message: str,
        error_kind: str | None = None,
        retryable: bool = False,
        retry_after: str | None = None,
    ) -> bool:
        """Transition an active job to failed, storing the error detail verbatim."""
        now = now_iso()
        cursor = self.conn.execute(
            """
            UPDATE processing_jobs
            SET status = 'failed',
                error_message = ?,
                error_kind = ?,
                retryable = ?,
                retry_after = ?,
                completed_at = ?,
                updated_at = ?
            WHERE id = ? AND status IN ('pending', 'running')
            """,
            (error_message, error_kind, int(retryable), retry_after, now, now, job_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    async def list_due(self, now: str, limit: int = 100) -> list[dict[str, Any]]:
        """List pending jobs not yet handed off whose scheduled time has arrived."""
        cursor = self.conn.execute(
            """
            SELECT * FROM processing_jobs
            WHERE status = 'pending'
              AND execution_id IS NULL
              AND (scheduled_at IS NULL OR scheduled_at <= ?)
            ORDER BY id
            LIMIT ?
            """,
            (now, limit),
        )
        return rows_to_dicts(cursor)

    async def list_retryable_failed(self, limit: int = 100) -> list[dict[str, Any]]:
        """List retryable failed jobs that no later job has superseded."""
        cursor = self.conn.execute(
            """
            SELECT j.* FROM processing_jobs j
            WHERE j.status = 'failed'
              AND j.retryable = 1
              AND NOT EXISTS (
                  SELECT 1 FROM processing_jobs n
                  WHERE n.tenant_id = j.tenant_id
                    AND IFNULL(n.video_id, 0) = IFNULL(j.video_id, 0)
                    AND n.job_type = j.job_type
                    AND n.id > j.id
              )
            ORDER BY j.completed_at
            LIMIT ?
            """,
            (limit,),
        )
        return rows_to_dicts(cursor)

    async def delete_terminal_before(self, cutoff: str) -> int:
        """Delete completed/failed jobs that finished before ``cutoff``."""
        cursor = self.conn.execute(
            """
            DELETE FROM processing_jobs
            WHERE status IN ('completed', 'failed')
              AND completed_at < ?
            """,
            (cutoff,),
        )
        self.conn.commit()
        return cursor.rowcount

    async def get_stats(self, tenant_id: int | None = None) -> dict[str, int]:
        """Get job counts by status."""
        if tenant_id is None:
            cursor = self.conn.execute(
                "SELECT status, COUNT(*) AS count FROM processing_jobs GROUP BY status"
            )
        else:
            cursor = self.conn.execute(
                """
                SELECT status, COUNT(*) AS count FROM processing_jobs
                WHERE tenant_id = ?
                GROUP BY status
                """,
                (tenant_id,),
            )
        return {row["status"]: row["count"] for row in rows_to_dicts(cursor)}
