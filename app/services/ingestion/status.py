"""Video status derived from transcript and embedding counts.

A video's status is never set directly by workers. It is recomputed from
its segments after every change so that callers cannot disagree on it:

- no segments: unchanged
- every segment embedded: ``indexed`` (also clears ``failed``)
- some segments embedded: ``processing``
- no segment embedded: ``completed``

``failed`` is sticky except against ``indexed``.
"""

from dataclasses import dataclass

import libsql_experimental as libsql
import structlog

from app.db.repositories.transcript import TranscriptRepository
from app.db.repositories.video import VideoRepository
from app.models.video import VideoStatus
from app.services.ingestion.exceptions import VideoNotFoundError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class DerivedStatus:
    status: VideoStatus
    has_embeddings: bool
    overrides_failed: bool


def derive_status(total: int, with_embeddings: int) -> DerivedStatus | None:
    """Map segment counts to a status, or None when there is nothing to derive from."""
    if total <= 0:
        return None
    if with_embeddings >= total:
        return DerivedStatus(VideoStatus.INDEXED, has_embeddings=True, overrides_failed=True)
    if with_embeddings > 0:
        return DerivedStatus(VideoStatus.PROCESSING, has_embeddings=False, overrides_failed=False)
    return DerivedStatus(VideoStatus.COMPLETED, has_embeddings=False, overrides_failed=False)


class StatusRecomputer:
    """Applies :func:`derive_status` to stored videos."""

    def __init__(self, connection: libsql.Connection):
        self.videos = VideoRepository(connection)
        self.transcripts = TranscriptRepository(connection)

    async def recompute(self, video_id: int) -> VideoStatus:
        """Recompute and persist a video's status.

        Returns:
            The video's status after the update.
        """
        video = await self.videos.get_by_id(video_id)
        if video is None:
            raise VideoNotFoundError(f"Video {video_id} not found")

        total, with_embeddings = await self.transcripts.count_for_video(video_id)
        derived = derive_status(total, with_embeddings)
        if derived is None:
            return VideoStatus(video["status"])

        applied = await self.videos.apply_derived_status(
            video_id,
            derived.status.value,
            derived.has_embeddings,
            unless_failed=not derived.overrides_failed,
        )
        if not applied:
            logger.debug("video_status_kept_failed", video_id=video_id, derived=derived.status.value)
            return VideoStatus(video["status"])

        if video["status"] != derived.status.value:
            logger.info(
                "video_status_changed",
                video_id=video_id,
                previous=video["status"],
                status=derived.status.value,
                segments=total,
                embedded=with_embeddings,
            )
        return derived.status
