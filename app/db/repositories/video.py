"""Video repository for database operations."""

from typing import Any

import libsql_experimental as libsql
import structlog

from app.db.connection import now_iso, row_to_dict, rows_to_dicts, to_iso
from app.models.video import VideoCreate

logger = structlog.get_logger(__name__)


class VideoRepository:
    """Repository for video CRUD and status operations."""

    def __init__(self, connection: libsql.Connection):
        """Initialize with database connection."""
        self.conn = connection

    async def upsert(self, tenant_id: int, data: VideoCreate) -> int:
        """Insert a new pending video or update its metadata in place.

        Status, error and transcript fields of an existing row are left untouched.
        """
        now = now_iso()
        self.conn.execute(
            """
            INSERT INTO videos (
                tenant_id, youtube_video_id, title, description, thumbnail_url,
                duration_seconds, published_at, status, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', ?, ?)
            ON CONFLICT(tenant_id, youtube_video_id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                thumbnail_url = excluded.thumbnail_url,
                duration_seconds = excluded.duration_seconds,
                published_at = excluded.published_at,
                updated_at = excluded.updated_at
            """,
            (
                tenant_id,
                data.youtube_video_id,
                data.title,
                data.description,
                data.thumbnail_url,
                data.duration_seconds,
                to_iso(data.published_at),
                now,
                now,
            ),
        )
        self.conn.commit()

        cursor = self.conn.execute(
            "SELECT id FROM videos WHERE tenant_id = ? AND youtube_video_id = ?",
            (tenant_id, data.youtube_video_id),
        )
        row = cursor.fetchone()
        return row[0] if row else 0

    async def get_by_id(self, id: int) -> dict[str, Any] | None:
        """Get a video by its database ID."""
        cursor = self.conn.execute("SELECT * FROM videos WHERE id = ?", (id,))
        return row_to_dict(cursor)

    async def get_by_youtube_id(self, tenant_id: int, youtube_video_id: str) -> dict[str, Any] | None:
        """Get a tenant's video by its YouTube video ID."""
        cursor = self.conn.execute(
            "SELECT * FROM videos WHERE tenant_id = ? AND youtube_video_id = ?",
            (tenant_id, youtube_video_id),
        )
        return row_to_dict(cursor)

    async def list_by_tenant(
        self,
        tenant_id: int,
        status: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """List a tenant's videos, newest first, optionally filtered by status."""
        if status is None:
            cursor = self.conn.execute(
                """
                SELECT * FROM videos
                WHERE tenant_id = ?
                ORDER BY published_at DESC
                LIMIT ? OFFSET ?
                """,
                (tenant_id, limit, offset),
            )
        else:
            cursor = self.conn.execute(
                """
                SELECT * FROM videos
                WHERE tenant_id = ? AND status = ?
                ORDER BY published_at DESC
                LIMIT ? OFFSET ?
                """,
                (tenant_id, status, limit, offset),
            )
        return rows_to_dicts(cursor)

    async def count_by_tenant(self, tenant_id: int) -> int:
        """Count videos for a tenant."""
        cursor = self.conn.execute(
            "SELECT COUNT(*) FROM videos WHERE tenant_id = ?",
            (tenant_id,),
        )
        row = cursor.fetchone()
        return row[0] if row else 0

    async def apply_derived_status(
        self,
        video_id: int,
        status: str,
        has_embeddings: bool,
        unless_failed: bool,
    ) -> bool:
        """Write a recomputed status, optionally leaving a failed video alone.

        Returns:
            True if the row was updated.
        """
        query = """
            UPDATE videos
            SET status = ?, has_embeddings = ?, updated_at = ?
            WHERE id = ?
        """
        if unless_failed:
            query += " AND status != 'failed'"
        cursor = self.conn.execute(query, (status, int(has_embeddings), now_iso(), video_id))
        self.conn.commit()
        return cursor.rowcount > 0

    async def mark_failed(self, video_id: int, error_message: str) -> None:
        """Mark a video as failed with the error detail."""
        self.conn.execute(
            """
            UPDATE videos
            SET status = 'failed', error_message = ?, updated_at = ?
            WHERE id = ?
            """,
            (error_message, now_iso(), video_id),
        )
        self.conn.commit()
        logger.info("video_marked_failed", video_id=video_id)

    async def clear_failure(self, video_id: int) -> bool:
        """Reset a failed video to pending and drop its error detail."""
        cursor = self.conn.execute(
            """
            UPDATE videos
            SET status = 'pending', error_message = NULL, updated_at = ?
            WHERE id = ? AND status = 'failed'
            """,
            (now_iso(), video_id),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    async def set_caption_source(self, video_id: int, caption_source: str | None) -> None:
        """Record how the video's transcript was obtained."""
        self.conn.execute(
            "UPDATE videos SET caption_source = ?, updated_at = ? WHERE id = ?",
            (caption_source, now_iso(), video_id),
        )
        self.conn.commit()

    async def delete(self, video_id: int) -> bool:
        """Delete a video and, by cascade, its segments and jobs."""
        cursor = self.conn.execute("DELETE FROM videos WHERE id = ?", (video_id,))
        self.conn.commit()
        return cursor.rowcount > 0
