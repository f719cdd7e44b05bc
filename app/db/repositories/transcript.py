"""Transcript segment repository for database operations."""

import json
from typing import Any

import libsql_experimental as libsql
import structlog

from app.db.connection import now_iso, row_to_dict, rows_to_dicts
from app.models.transcript import TranscriptSegment

logger = structlog.get_logger(__name__)


def encode_embedding(embedding: list[float] | None) -> str | None:
    """Serialize an embedding for the TEXT column."""
    if embedding is None:
        return None
    return json.dumps([float(x) for x in embedding])


def decode_embedding(value: str | None) -> list[float] | None:
    """Parse a stored embedding."""
    if value is None:
        return None
    return json.loads(value)


class TranscriptRepository:
    """Repository for transcript segments and their embeddings."""

    def __init__(self, connection: libsql.Connection):
        """Initialize with database connection."""
        self.conn = connection

    async def upsert_segments(
        self,
        tenant_id: int,
        video_id: int,
        segments: list[TranscriptSegment],
    ) -> None:
        """Insert segments, replacing any existing segment with the same index."""
        now = now_iso()
        self.conn.executemany(
            """
            INSERT INTO transcript_segments (
                tenant_id, video_id, segment_index, start_time, end_time,
                text, language, embedding, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(video_id, segment_index) DO UPDATE SET
                start_time = excluded.start_time,
                end_time = excluded.end_time,
                text = excluded.text,
                language = excluded.language,
                embedding = excluded.embedding,
                updated_at = excluded.updated_at
            """,
            [
                (
                    tenant_id,
                    video_id,
                    s.segment_index,
                    s.start_time,
                    s.end_time,
                    s.text,
                    s.language,
                    encode_embedding(s.embedding),
                    now,
                    now,
                )
                for s in segments
            ],
        )
        self.conn.commit()
        logger.info("segments_upserted", video_id=video_id, count=len(segments))

    async def set_embedding(
        self,
        video_id: int,
        segment_index: int,
        embedding: list[float] | None,
    ) -> int | None:
        """Set (or clear) one segment's embedding.

        Returns:
            The segment's database ID, or None if no such segment exists.
        """
        cursor = self.conn.execute(
            """
            UPDATE transcript_segments
            SET embedding = ?, updated_at = ?
            WHERE video_id = ? AND segment_index = ?
            """,
            (encode_embedding(embedding), now_iso(), video_id, segment_index),
        )
        self.conn.commit()
        if cursor.rowcount == 0:
            return None

        cursor = self.conn.execute(
            "SELECT id FROM transcript_segments WHERE video_id = ? AND segment_index = ?",
            (video_id, segment_index),
        )
        row = cursor.fetchone()
        return row[0] if row else None

    async def list_by_video(self, video_id: int) -> list[dict[str, Any]]:
        """List a video's segments in order."""
        cursor = self.conn.execute(
            """
            SELECT * FROM transcript_segments
            WHERE video_id = ?
            ORDER BY segment_index, start_time
            """,
            (video_id,),
        )
        return rows_to_dicts(cursor)

    async def list_embedded(self, video_id: int | None = None) -> list[dict[str, Any]]:
        """List segments that carry an embedding, for one video or all videos."""
        if video_id is None:
            cursor = self.conn.execute(
                "SELECT * FROM transcript_segments WHERE embedding IS NOT NULL ORDER BY id"
            )
        else:
            cursor = self.conn.execute(
                """
                SELECT * FROM transcript_segments
                WHERE video_id = ? AND embedding IS NOT NULL
                ORDER BY segment_index
                """,
                (video_id,),
            )
        return rows_to_dicts(cursor)

    async def count_for_video(self, video_id: int) -> tuple[int, int]:
        """Count a video's segments and those with embeddings.

        Returns:
            (total, with_embeddings)
        """
        cursor = self.conn.execute(
            """
            SELECT COUNT(*), COUNT(embedding)
            FROM transcript_segments
            WHERE video_id = ?
            """,
            (video_id,),
        )
        row = cursor.fetchone()
        return (row[0], row[1]) if row else (0, 0)

    async def get_embedding_stats(self) -> dict[str, Any]:
        """Embedding coverage across all tenants."""
        cursor = self.conn.execute(
            """
            SELECT
                COUNT(*) AS total_segments,
                COUNT(embedding) AS segments_with_embeddings,
                COUNT(DISTINCT CASE WHEN embedding IS NOT NULL THEN tenant_id END) AS tenants_with_embeddings,
                COUNT(DISTINCT CASE WHEN embedding IS NOT NULL THEN video_id END) AS videos_with_embeddings
            FROM transcript_segments
            """
        )
        return row_to_dict(cursor) or {}
