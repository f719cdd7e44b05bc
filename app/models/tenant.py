"""Pydantic models for tenants."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Tenant(BaseModel):
    """Tenant (organization) that owns credentials, videos and transcripts."""

    id: int
    name: str
    youtube_channel_id: Optional[str] = None
    youtube_channel_name: Optional[str] = None
    youtube_channel_thumbnail: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TenantStats(BaseModel):
    """Per-tenant processing statistics."""

    tenant_id: int
    tenant_name: str
    youtube_channel_name: Optional[str] = None
    total_videos: int = 0
    pending_videos: int = 0
    processing_videos: int = 0
    completed_videos: int = 0
    indexed_videos: int = 0
    failed_videos: int = 0
    total_segments: int = 0
    segments_with_embeddings: int = 0
    embedding_coverage_percent: Optional[float] = Field(
        default=None,
        description="Share of segments with embeddings, None when there are no segments",
    )
    last_video_update: Optional[datetime] = None
