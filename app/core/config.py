"""Application configuration using pydantic-settings."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Sermon Knowledge Core"
    debug: bool = False

    # Database
    database_url: str = Field(default="data/knowledge.db")
    use_turso: bool = Field(default=False)
    turso_database_url: str = Field(default="")
    turso_auth_token: str | None = Field(default=None)

    # Credential encryption (required, no default)
    encryption_key: str = Field(..., min_length=1, description="Process-wide secret for key derivation")
    encryption_iterations: int = Field(default=100_000, ge=1)

    # OAuth / YouTube
    token_refresh_buffer_minutes: int = Field(default=5, ge=0)
    google_client_id: str = Field(default="")
    google_client_secret: str = Field(default="")
    google_auth_url: str = Field(default="https://accounts.google.com/o/oauth2/v2/auth")
    google_token_url: str = Field(default="https://oauth2.googleapis.com/token")
    youtube_api_url: str = Field(default="https://www.googleapis.com/youtube/v3")
    http_timeout_seconds: float = Field(default=30.0)
    youtube_sync_max_videos: int = Field(default=50, ge=1, le=500)

    # Processing jobs
    job_retention_days: int = Field(default=30, ge=1)
    max_retry_attempts: int = Field(default=3, ge=1)
    retry_backoff_base_seconds: int = Field(default=30, ge=1)
    retry_backoff_max_seconds: int = Field(default=3600, ge=1)

    # External workflow dispatcher
    dispatcher_url: str | None = Field(default=None)
    dispatcher_token: str | None = Field(default=None)

    # Qdrant settings
    qdrant_url: str = Field(default="http://localhost:6333")
    qdrant_api_key: str | None = Field(default=None)
    qdrant_collection_name: str = Field(default="transcript_segments")

    # Embedding / search settings
    embedding_dimensions: int = Field(default=1536)
    index_min_lists: int = Field(default=100, description="Lower bound for the index candidate list size")
    default_search_limit: int = Field(default=10, ge=1, le=100)

    @property
    def database_path(self) -> Path:
        """Get the database path as a Path object."""
        return Path(self.database_url)


settings = Settings()
