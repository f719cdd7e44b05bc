"""Async database connection manager supporting Turso (libSQL) and local SQLite."""

from datetime import datetime, UTC
from pathlib import Path
from typing import Any

import libsql_experimental as libsql
import structlog

from app.core.config import settings

logger = structlog.get_logger(__name__)


def now_iso() -> str:
    """Current UTC time in the fixed-width ISO format stored in every timestamp column."""
    return datetime.now(UTC).isoformat(timespec="microseconds")


def to_iso(value: datetime | None) -> str | None:
    """Normalize an aware or naive (assumed UTC) datetime to the stored format."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    """Parse a stored timestamp back into an aware datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def rows_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert all remaining cursor rows to dicts keyed by column name."""
    columns = [desc[0] for desc in cursor.description]
    return [dict(zip(columns, row)) for row in cursor.fetchall()]


def row_to_dict(cursor: Any) -> dict[str, Any] | None:
    """Convert the next cursor row to a dict, or None when exhausted."""
    row = cursor.fetchone()
    if row is None:
        return None
    columns = [desc[0] for desc in cursor.description]
    return dict(zip(columns, row))


class Database:
    """Async database connection manager supporting Turso and local SQLite."""

    def __init__(self, database_path: Path | None = None):
        """Initialize database manager.

        Args:
            database_path: Local database file. Defaults to the configured path.
        """
        self._database_path = database_path
        self._connection: libsql.Connection | None = None

    async def connect(self) -> None:
        """Initialize the database connection."""
        if settings.use_turso and self._database_path is None:
            self._connection = libsql.connect(
                database=settings.turso_database_url,
                auth_token=settings.turso_auth_token,
            )
            logger.info(
                "database_connected",
                type="turso",
                url=settings.turso_database_url[:50] + "..." if len(settings.turso_database_url) > 50 else settings.turso_database_url,
            )
        else:
            db_path = self._database_path or settings.database_path
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._connection = libsql.connect(database=str(db_path))
            logger.info("database_connected", type="sqlite", path=str(db_path))

        # Required for ON DELETE CASCADE
        self._connection.execute("PRAGMA foreign_keys = ON")

    async def disconnect(self) -> None:
        """Close the database connection."""
        if self._connection:
            self._connection.close()
            self._connection = None
            logger.info("database_disconnected")

    @property
    def connection(self) -> libsql.Connection:
        """Get the current database connection."""
        if not self._connection:
            raise RuntimeError("Database not connected")
        return self._connection

    @property
    def is_connected(self) -> bool:
        """Check if the database is connected."""
        return self._connection is not None

    async def init_schema(self, schema_path: str | Path | None = None) -> None:
        """Initialize database schema from SQL file."""
        if schema_path is None:
            schema_path = Path(__file__).parent / "schema.sql"

        with open(schema_path) as f:
            schema = f.read()

        if not self._connection:
            raise RuntimeError("Database not connected")

        # Execute each statement separately (libsql doesn't have executescript)
        for statement in schema.split(";"):
            statement = statement.strip()
            if statement:
                self._connection.execute(statement)
        self._connection.commit()

        logger.info("database_schema_initialized")


# Global database instance
db = Database()
