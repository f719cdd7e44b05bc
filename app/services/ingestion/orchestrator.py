"""Ingestion orchestrator - coordinates sync, job hand-off, callbacks and retries."""

from typing import Any

import libsql_experimental as libsql
import structlog

from app.core.config import settings
from app.core.errors import ServiceError
from app.core.logging import bind_tenant
from app.db.connection import db
from app.db.repositories.tenant import TenantRepository
from app.db.repositories.transcript import TranscriptRepository
from app.db.repositories.video import VideoRepository
from app.models.credential import YOUTUBE_PROVIDER
from app.models.job import JobFailure, JobType, ProcessingJob
from app.models.tenant import TenantStats
from app.models.transcript import TranscriptSegment
from app.models.video import CaptionSource, VideoProgress, VideoStatus
from app.services.credentials.token_manager import CredentialManager, build_cipher
from app.services.ingestion.dispatcher import DispatchRequest, HttpJobDispatcher, JobDispatcher
from app.services.ingestion.exceptions import (
    InvalidEmbedding,
    InvalidTranscript,
    JobAlreadyActive,
    JobNotFoundError,
    JobStateError,
    TenantNotFoundError,
    VideoNotFoundError,
)
from app.services.ingestion.jobs import JobTracker
from app.services.ingestion.retry import RetryPolicy
from app.services.ingestion.status import StatusRecomputer
from app.services.search.vector_search import VectorSearchService
from app.services.youtube.api import YouTubeDataClient
from app.services.youtube.exceptions import VideoUnavailable

logger = structlog.get_logger(__name__)


class IngestionOrchestrator:
    """Orchestrates channel sync and the per-video processing lifecycle."""

    def __init__(
        self,
        connection: libsql.Connection | None = None,
        credentials: CredentialManager | None = None,
        youtube: YouTubeDataClient | None = None,
        dispatcher: JobDispatcher | None = None,
        search: VectorSearchService | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """Initialize the orchestrator.

        Collaborators default to the configured process-wide instances.
        """
        connection = connection or db.connection
        self.tenant_repo = TenantRepository(connection)
        self.video_repo = VideoRepository(connection)
        self.transcript_repo = TranscriptRepository(connection)
        self.jobs = JobTracker(connection)
        self.status = StatusRecomputer(connection)
        self.credentials = credentials or CredentialManager(connection, build_cipher())
        self.youtube = youtube or YouTubeDataClient()
        if dispatcher is None and settings.dispatcher_url:
            dispatcher = HttpJobDispatcher()
        self.dispatcher = dispatcher
        self.search = search or VectorSearchService()
        self.retry_policy = retry_policy or RetryPolicy.from_settings()

    # Channel connection and sync

    async def connect_channel(
        self,
        code: str,
        redirect_uri: str,
        tenant_id: int | None = None,
        tenant_name: str | None = None,
    ) -> dict[str, Any]:
        """Complete the OAuth flow and link the channel to a tenant.

        The tenant is created on first connection unless ``tenant_id`` is given.
        """
        tokens = await self.credentials.oauth.exchange_code(code, redirect_uri)
        channel = await self.youtube.get_channel_info(tokens.access_token)

        if tenant_id is None:
            existing = await self.tenant_repo.get_by_channel_id(channel["channel_id"])
            if existing:
                tenant_id = existing["id"]
            else:
                tenant_id = await self.tenant_repo.create(tenant_name or channel["channel_name"])
        elif await self.tenant_repo.get_by_id(tenant_id) is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")

        bind_tenant(tenant_id)
        await self.credentials.store(
            tenant_id,
            YOUTUBE_PROVIDER,
            tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
            scope=tokens.scope,
            token_type=tokens.token_type,
        )
        await self.tenant_repo.set_channel(
            tenant_id,
            channel["channel_id"],
            channel["channel_name"],
            channel["thumbnail"],
        )
        logger.info("channel_connected", channel_id=channel["channel_id"])

        return {
            "tenant_id": tenant_id,
            "channel_id": channel["channel_id"],
            "channel_name": channel["channel_name"],
        }

    async def sync_channel(self, tenant_id: int, max_videos: int | None = None) -> dict[str, Any]:
        """Sync a tenant's channel videos under a tenant-level sync job.

        Raises:
            JobAlreadyActive: A sync for this tenant is already pending or running.
        """
        bind_tenant(tenant_id)
        if await self.tenant_repo.get_by_id(tenant_id) is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")

        job = await self.jobs.dispatch(tenant_id, None, JobType.SYNC)
        return await self._run_sync(job, max_videos)

    async def _run_sync(self, job: ProcessingJob, max_videos: int | None = None) -> dict[str, Any]:
        tenant_id = job.tenant_id
        max_videos = max_videos or settings.youtube_sync_max_videos
        await self.jobs.start(job.id)

        logger.info("channel_sync_started", job_id=job.id, max_videos=max_videos)

        try:
            access_token = await self.credentials.get_access_token(tenant_id)

            tenant = await self.tenant_repo.get_by_id(tenant_id)
            channel_id = tenant["youtube_channel_id"] if tenant else None
            if not channel_id:
                channel = await self.youtube.get_channel_info(access_token)
                channel_id = channel["channel_id"]
                await self.tenant_repo.set_channel(
                    tenant_id, channel_id, channel["channel_name"], channel["thumbnail"]
                )

            await self.jobs.report_progress(job.id, "Listing channel videos", 10)
            videos = await self.youtube.list_videos(access_token, channel_id, max_videos)

            created = 0
            for i, video in enumerate(videos, start=1):
                existing = await self.video_repo.get_by_youtube_id(tenant_id, video.youtube_video_id)
                await self.video_repo.upsert(tenant_id, video)
                if existing is None:
                    created += 1
                if i % 10 == 0:
                    await self.jobs.report_progress(
                        job.id,
                        f"Saved {i} of {len(videos)} videos",
                        10 + int(90 * i / len(videos)),
                    )

            await self.jobs.complete(job.id, f"Synced {len(videos)} videos")

        except ServiceError as e:
            await self.jobs.fail(job.id, e.message, e.retryable, e.kind, retry_after=e.retry_after)
            raise
        except Exception as e:
            await self.jobs.fail(job.id, str(e), retryable=False, error_kind="internal_error")
            raise

        summary = {
            "tenant_id": tenant_id,
            "job_id": job.id,
            "channel_id": channel_id,
            "videos_found": len(videos),
            "videos_created": created,
            "videos_updated": len(videos) - created,
        }
        logger.info("channel_sync_completed", **summary)
        return summary

    # Job hand-off

    async def dispatch_job(
        self,
        tenant_id: int,
        video_id: int,
        job_type: JobType,
    ) -> ProcessingJob:
        """Create a job for a video and hand it to the worker.

        Raises:
            JobAlreadyActive: A job of this type is already active for the video.
        """
        bind_tenant(tenant_id)
        await self._get_video(video_id, tenant_id)

        job = await self.jobs.dispatch(tenant_id, video_id, job_type)
        if self.dispatcher is not None:
            await self._hand_off(job)
        return await self.jobs.get(job.id)

    async def _hand_off(self, job: ProcessingJob) -> None:
        try:
            access_token = await self.credentials.get_access_token(job.tenant_id)
            execution_id = await self.dispatcher.dispatch(
                DispatchRequest(
                    tenant_id=job.tenant_id,
                    video_id=job.video_id,
                    job_id=job.id,
                    job_type=job.job_type.value,
                    access_token=access_token,
                )
            )
        except ServiceError as e:
            await self.record_failure(
                job.id,
                JobFailure(
                    error_message=e.message,
                    retryable=e.retryable,
                    error_kind=e.kind,
                    retry_after=e.retry_after,
                ),
            )
            raise
        except Exception as e:
            # Fail the job so dispatch_due never hands it off a second time
            await self.record_failure(
                job.id,
                JobFailure(error_message=str(e), retryable=False, error_kind="internal_error"),
            )
            raise

        await self.jobs.record_execution(job.id, execution_id or f"job-{job.id}")

    async def dispatch_due(self, limit: int = 100) -> dict[str, Any]:
        """Hand off pending jobs whose backoff has elapsed."""
        due = await self.jobs.list_due(limit)
        dispatched = 0
        failed = 0

        for job in due:
            bind_tenant(job.tenant_id)
            try:
                if job.job_type == JobType.SYNC:
                    await self._run_sync(job)
                elif self.dispatcher is None:
                    continue
                else:
                    await self._hand_off(job)
                dispatched += 1
            except ServiceError as e:
                failed += 1
                logger.warning("due_job_dispatch_failed", job_id=job.id, error=e.kind)
            except Exception:
                # Already recorded on the job row; keep sweeping the remaining jobs
                failed += 1
                logger.exception("due_job_dispatch_error", job_id=job.id)

        summary = {"due": len(due), "dispatched": dispatched, "failed": failed}
        logger.info("due_jobs_dispatched", **summary)
        return summary

    # Worker callbacks

    async def start_job(self, job_id: int, execution_id: str | None = None) -> ProcessingJob:
        return await self.jobs.start(job_id, execution_id)

    async def report_progress(self, job_id: int, message: str, percent: int) -> ProcessingJob:
        return await self.jobs.report_progress(job_id, message, percent)

    async def record_transcription(
        self,
        job_id: int,
        segments: list[TranscriptSegment],
        caption_source: CaptionSource | None = None,
    ) -> VideoStatus:
        """Store a transcription job's segments and complete the job."""
        job = await self._callback_job(job_id, JobType.TRANSCRIPTION)
        status = await self.add_segments(job.video_id, segments, caption_source)
        await self.jobs.complete(job_id, f"Stored {len(segments)} segments")
        return status

    async def record_embeddings(
        self,
        job_id: int,
        embeddings: dict[int, list[float]],
    ) -> VideoStatus:
        """Store an embedding job's vectors and complete the job."""
        job = await self._callback_job(job_id, JobType.EMBEDDING)
        status = await self.set_embeddings(job.video_id, embeddings)
        await self.jobs.complete(job_id, f"Stored {len(embeddings)} embeddings")
        return status

    async def record_failure(self, job_id: int, failure: JobFailure) -> ProcessingJob:
        """Fail a job; the video fails too once the failure cannot be retried."""
        # An unavailable source video never recovers on retry
        retryable = failure.retryable and failure.error_kind != VideoUnavailable.kind
        job = await self.jobs.fail(
            job_id,
            failure.error_message,
            retryable,
            failure.error_kind,
            retry_after=failure.retry_after,
        )
        if job.video_id is not None and self.retry_policy.is_exhausted(job):
            await self._fail_video(job.video_id, failure.error_message)
        return job

    async def _callback_job(self, job_id: int, job_type: JobType) -> ProcessingJob:
        job = await self.jobs.get(job_id)
        if job.job_type != job_type:
            raise JobStateError(f"Job {job_id} is a {job.job_type.value} job, not {job_type.value}")
        if not job.is_active:
            raise JobStateError(f"Job {job_id} is already {job.status.value}")
        if job.video_id is None:
            raise JobStateError(f"Job {job_id} has no video")
        bind_tenant(job.tenant_id)
        return job

    # Transcript writes

    async def add_segments(
        self,
        video_id: int,
        segments: list[TranscriptSegment],
        caption_source: CaptionSource | None = None,
    ) -> VideoStatus:
        """Insert or replace a video's segments and recompute its status."""
        video = await self._get_video(video_id)
        if not segments:
            return VideoStatus(video["status"])

        indices = [s.segment_index for s in segments]
        if len(set(indices)) != len(indices):
            raise InvalidTranscript("Duplicate segment_index in batch")

        starts = {
            row["segment_index"]: row["start_time"]
            for row in await self.transcript_repo.list_by_video(video_id)
        }
        starts.update({s.segment_index: s.start_time for s in segments})
        ordered = [starts[i] for i in sorted(starts)]
        for index, (previous, current) in enumerate(zip(ordered, ordered[1:]), start=1):
            if current < previous:
                raise InvalidTranscript(
                    f"Segment start times must not decrease with segment order (at position {index})"
                )

        for s in segments:
            if s.embedding is not None:
                self._check_embedding(s.segment_index, s.embedding)

        await self.transcript_repo.upsert_segments(video["tenant_id"], video_id, segments)
        if caption_source is not None:
            await self.video_repo.set_caption_source(video_id, caption_source.value)

        return await self._after_segment_write(video, set(indices))

    async def set_embeddings(
        self,
        video_id: int,
        embeddings: dict[int, list[float] | None],
    ) -> VideoStatus:
        """Set (or clear, with None) embeddings by segment index and recompute status."""
        video = await self._get_video(video_id)
        if not embeddings:
            return VideoStatus(video["status"])

        known = {row["segment_index"] for row in await self.transcript_repo.list_by_video(video_id)}
        missing = sorted(set(embeddings) - known)
        if missing:
            raise InvalidEmbedding(f"Video {video_id} has no segments with index {missing}")

        for index, vector in embeddings.items():
            if vector is not None:
                self._check_embedding(index, vector)

        for index, vector in embeddings.items():
            await self.transcript_repo.set_embedding(video_id, index, vector)

        return await self._after_segment_write(video, set(embeddings))

    def _check_embedding(self, segment_index: int, vector: list[float]) -> None:
        if len(vector) != self.search.dimensions:
            raise InvalidEmbedding(
                f"Segment {segment_index} embedding has {len(vector)} dimensions, "
                f"expected {self.search.dimensions}"
            )
        # Zero or non-finite vectors cannot be ranked by cosine distance
        if not self.search.is_valid_vector(vector):
            raise InvalidEmbedding(f"Segment {segment_index} embedding must be finite and non-zero")

    async def _after_segment_write(self, video: dict[str, Any], indices: set[int]) -> VideoStatus:
        status = await self.status.recompute(video["id"])
        indexed = status == VideoStatus.INDEXED

        rows = [
            row
            for row in await self.transcript_repo.list_by_video(video["id"])
            if row["segment_index"] in indices
        ]
        await self.search.index_segments(video["tenant_id"], video["id"], rows, indexed)
        await self.search.set_video_visibility(video["id"], indexed)
        return status

    # Failure and retry

    async def _fail_video(self, video_id: int, error_message: str) -> None:
        await self.video_repo.mark_failed(video_id, error_message)
        await self.search.set_video_visibility(video_id, False)

    async def retry_failed(self, limit: int = 100) -> dict[str, Any]:
        """Schedule new attempts for retryable failed jobs, with backoff."""
        candidates = await self.jobs.list_retry_candidates(limit)
        retried = 0
        exhausted = 0
        skipped = 0

        for job in candidates:
            if not self.retry_policy.should_retry(job):
                exhausted += 1
                continue

            attempt = self.retry_policy.next_attempt(job)
            try:
                await self.jobs.dispatch(
                    job.tenant_id,
                    job.video_id,
                    job.job_type,
                    attempt=attempt,
                    scheduled_at=self.retry_policy.next_run_at(attempt, not_before=job.retry_after),
                )
                retried += 1
            except JobAlreadyActive:
                skipped += 1

        summary = {
            "candidates": len(candidates),
            "retried": retried,
            "exhausted": exhausted,
            "skipped": skipped,
        }
        logger.info("failed_jobs_retried", **summary)
        return summary

    async def retry_video(self, video_id: int, tenant_id: int | None = None) -> VideoStatus:
        """Clear a video's sticky failure and let derived status govern it again."""
        video = await self._get_video(video_id, tenant_id)
        if not await self.video_repo.clear_failure(video_id):
            return VideoStatus(video["status"])

        status = await self.status.recompute(video_id)
        await self.search.set_video_visibility(video_id, status == VideoStatus.INDEXED)
        logger.info("video_failure_cleared", video_id=video_id, status=status.value)
        return status

    # Observability

    async def current_job(self, video_id: int) -> ProcessingJob | None:
        return await self.jobs.current_job(video_id)

    async def get_job(self, job_id: int, tenant_id: int | None = None) -> ProcessingJob:
        job = await self.jobs.get(job_id)
        if tenant_id is not None and job.tenant_id != tenant_id:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def video_progress(self, video_id: int, tenant_id: int | None = None) -> VideoProgress:
        video = await self._get_video(video_id, tenant_id)
        job = await self.jobs.current_job(video_id)
        total, with_embeddings = await self.transcript_repo.count_for_video(video_id)
        return VideoProgress(
            video_id=video_id,
            video_status=video["status"],
            current_job_type=job.job_type.value if job else None,
            current_job_status=job.status.value if job else None,
            current_progress_message=job.progress_message if job else None,
            current_progress_percent=job.progress_percent if job else None,
            total_segments=total,
            segments_with_embeddings=with_embeddings,
        )

    async def tenant_stats(self, tenant_id: int) -> TenantStats:
        row = await self.tenant_repo.get_stats(tenant_id)
        if row is None:
            raise TenantNotFoundError(f"Tenant {tenant_id} not found")
        total = row["total_segments"]
        coverage = round(row["segments_with_embeddings"] / total * 100, 2) if total else None
        return TenantStats(**row, embedding_coverage_percent=coverage)

    async def cleanup_old_jobs(self, retention_days: int | None = None) -> int:
        return await self.jobs.cleanup_old_jobs(retention_days)

    # Index maintenance

    async def embedding_stats(self) -> dict[str, Any]:
        stats = await self.transcript_repo.get_embedding_stats()
        total = stats.get("total_segments") or 0
        embedded = stats.get("segments_with_embeddings") or 0
        return {
            **stats,
            "coverage_percent": round(embedded / total * 100, 2) if total else None,
        }

    async def rebuild_search_index(self, resync: bool = False) -> str:
        """Rebuild the vector index sized for the current embedded row count.

        With ``resync``, every embedded segment is first re-mirrored from the
        segment rows.
        """
        if resync:
            await self._resync_index()
        stats = await self.transcript_repo.get_embedding_stats()
        return await self.search.rebuild_index(stats.get("segments_with_embeddings") or 0)

    async def _resync_index(self) -> None:
        by_video: dict[int, list[dict[str, Any]]] = {}
        for row in await self.transcript_repo.list_embedded():
            by_video.setdefault(row["video_id"], []).append(row)

        for video_id, rows in by_video.items():
            video = await self.video_repo.get_by_id(video_id)
            if video is None:
                continue
            await self.search.index_segments(
                video["tenant_id"],
                video_id,
                rows,
                indexed=video["status"] == VideoStatus.INDEXED.value,
            )
        logger.info("search_index_resynced", videos=len(by_video))

    async def _get_video(self, video_id: int, tenant_id: int | None = None) -> dict[str, Any]:
        """Load a video, treating another tenant's video as missing."""
        video = await self.video_repo.get_by_id(video_id)
        if video is None or (tenant_id is not None and video["tenant_id"] != tenant_id):
            raise VideoNotFoundError(f"Video {video_id} not found")
        return video
