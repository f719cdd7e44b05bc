"""Credential repository for encrypted third-party tokens."""

from typing import Any

import libsql_experimental as libsql
import structlog

from app.db.connection import now_iso, row_to_dict, rows_to_dicts

logger = structlog.get_logger(__name__)


class CredentialRepository:
    """Repository for the single (tenant, provider) credential row.

    Values passed in and returned are already encrypted; this layer never
    sees plaintext secrets.
    """

    def __init__(self, connection: libsql.Connection):
        """Initialize with database connection."""
        self.conn = connection

    async def upsert(
        self,
        tenant_id: int,
        provider: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: str | None,
        scope: str | None,
        token_type: str = "Bearer",
    ) -> None:
        """Insert the credential or overwrite every field of the existing row."""
        now = now_iso()
        self.conn.execute(
            """
            INSERT INTO credentials (
                tenant_id, provider, access_token, refresh_token,
                expires_at, scope, token_type, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(tenant_id, provider) DO UPDATE SET
                access_token = excluded.access_token,
                refresh_token = excluded.refresh_token,
                expires_at = excluded.expires_at,
                scope = excluded.scope,
                token_type = excluded.token_type,
                updated_at = excluded.updated_at
            """,
            (tenant_id, provider, access_token, refresh_token, expires_at, scope, token_type, now, now),
        )
        self.conn.commit()
        logger.info("credential_stored", tenant_id=tenant_id, provider=provider)

    async def get(self, tenant_id: int, provider: str) -> dict[str, Any] | None:
        """Get the credential row for a tenant and provider."""
        cursor = self.conn.execute(
            "SELECT * FROM credentials WHERE tenant_id = ? AND provider = ?",
            (tenant_id, provider),
        )
        return row_to_dict(cursor)

    async def update_access_token(
        self,
        tenant_id: int,
        provider: str,
        access_token: str,
        expires_at: str | None,
        expected_updated_at: str,
    ) -> bool:
        """Persist a refreshed access token if the row is unchanged since it was read.

        Returns:
            False when another writer updated the row first.
        """
        cursor = self.conn.execute(
            """
            UPDATE credentials
            SET access_token = ?, expires_at = ?, updated_at = ?
            WHERE tenant_id = ? AND provider = ? AND updated_at = ?
            """,
            (access_token, expires_at, now_iso(), tenant_id, provider, expected_updated_at),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    async def delete(self, tenant_id: int, provider: str) -> bool:
        """Delete the credential row."""
        cursor = self.conn.execute(
            "DELETE FROM credentials WHERE tenant_id = ? AND provider = ?",
            (tenant_id, provider),
        )
        self.conn.commit()
        return cursor.rowcount > 0

    async def exists(self, tenant_id: int, provider: str) -> bool:
        """Check if a credential row exists."""
        cursor = self.conn.execute(
            "SELECT 1 FROM credentials WHERE tenant_id = ? AND provider = ? LIMIT 1",
            (tenant_id, provider),
        )
        return cursor.fetchone() is not None

    async def count_for_tenant(self, tenant_id: int) -> int:
        """Count credential rows for a tenant."""
        cursor = self.conn.execute(
            "SELECT COUNT(*) FROM credentials WHERE tenant_id = ?",
            (tenant_id,),
        )
        row = cursor.fetchone()
        return row[0] if row else 0

    async def list_needing_refresh(self, cutoff: str) -> list[dict[str, Any]]:
        """List refreshable credentials whose expiry is unset or before ``cutoff``."""
        cursor = self.conn.execute(
            """
            SELECT id, tenant_id, provider, expires_at FROM credentials
            WHERE refresh_token IS NOT NULL
              AND (expires_at IS NULL OR expires_at < ?)
            ORDER BY expires_at IS NOT NULL, expires_at
            """,
            (cutoff,),
        )
        return rows_to_dicts(cursor)
