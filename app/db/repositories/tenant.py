"""Tenant repository for database operations."""

from typing import Any

import libsql_experimental as libsql
import structlog

from app.db.connection import now_iso, row_to_dict, rows_to_dicts

logger = structlog.get_logger(__name__)


class TenantRepository:
    """Repository for tenant CRUD operations."""

    def __init__(self, connection: libsql.Connection):
        """Initialize with database connection."""
        self.conn = connection

    async def create(self, name: str) -> int:
        """Create a new tenant."""
        now = now_iso()
        cursor = self.conn.execute(
            """
            INSERT INTO tenants (name, created_at, updated_at)
            VALUES (?, ?, ?)
            """,
            (name, now, now),
        )
        self.conn.commit()
        logger.info("tenant_created", tenant_id=cursor.lastrowid)
        return cursor.lastrowid or 0

    async def get_by_id(self, id: int) -> dict[str, Any] | None:
        """Get a tenant by its database ID."""
        cursor = self.conn.execute("SELECT * FROM tenants WHERE id = ?", (id,))
        return row_to_dict(cursor)

    async def get_by_channel_id(self, channel_id: str) -> dict[str, Any] | None:
        """Get the tenant linked to a YouTube channel."""
        cursor = self.conn.execute(
            "SELECT * FROM tenants WHERE youtube_channel_id = ?",
            (channel_id,),
        )
        return row_to_dict(cursor)

    async def set_channel(
        self,
        tenant_id: int,
        channel_id: str | None,
        channel_name: str | None,
        channel_thumbnail: str | None,
    ) -> None:
        """Record (or clear, with all None) the tenant's linked channel."""
        self.conn.execute(
            """
            UPDATE tenants
            SET youtube_channel_id = ?,
                youtube_channel_name = ?,
                youtube_channel_thumbnail = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (channel_id, channel_name, channel_thumbnail, now_iso(), tenant_id),
        )
        self.conn.commit()

    async def list_connected(self) -> list[dict[str, Any]]:
        """List tenants that have a linked channel."""
        cursor = self.conn.execute(
            "SELECT * FROM tenants WHERE youtube_channel_id IS NOT NULL ORDER BY id"
        )
        return rows_to_dicts(cursor)

    async def delete(self, tenant_id: int) -> bool:
        """Delete a tenant and, by cascade, everything it owns."""
        cursor = self.conn.execute("DELETE FROM tenants WHERE id = ?", (tenant_id,))
        self.conn.commit()
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("tenant_deleted", tenant_id=tenant_id)
        return deleted

    async def get_stats(self, tenant_id: int) -> dict[str, Any] | None:
        """Video and segment statistics for one tenant."""
        cursor = self.conn.execute(
            """
            SELECT
                t.id AS tenant_id,
                t.name AS tenant_name,
                t.youtube_channel_name,
                (SELECT COUNT(*) FROM videos v WHERE v.tenant_id = t.id) AS total_videos,
                (SELECT COUNT(*) FROM videos v WHERE v.tenant_id = t.id AND v.status = 'pending') AS pending_videos,
                (SELECT COUNT(*) FROM videos v WHERE v.tenant_id = t.id AND v.status = 'processing') AS processing_videos,
                (SELECT COUNT(*) FROM videos v WHERE v.tenant_id = t.id AND v.status = 'completed') AS completed_videos,
                (SELECT COUNT(*) FROM videos v WHERE v.tenant_id = t.id AND v.status = 'indexed') AS indexed_videos,
                (SELECT COUNT(*) FROM videos v WHERE v.tenant_id = t.id AND v.status = 'failed') AS failed_videos,
                (SELECT COUNT(*) FROM transcript_segments s WHERE s.tenant_id = t.id) AS total_segments,
                (SELECT COUNT(s.embedding) FROM transcript_segments s WHERE s.tenant_id = t.id) AS segments_with_embeddings,
                (SELECT MAX(v.updated_at) FROM videos v WHERE v.tenant_id = t.id) AS last_video_update
            FROM tenants t
            WHERE t.id = ?
            """,
            (tenant_id,),
        )
        return row_to_dict(cursor)
