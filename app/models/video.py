"""Pydantic models for videos."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class VideoStatus(str, Enum):
    """Derived lifecycle stage of a video."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    INDEXED = "indexed"
    FAILED = "failed"


class CaptionSource(str, Enum):
    """How a video's transcript was obtained."""

    YOUTUBE_CAPTIONS = "youtube_captions"
    WHISPER = "whisper"


class VideoCreate(BaseModel):
    """Metadata for a video as returned by the platform."""

    youtube_video_id: str = Field(..., description="YouTube video ID")
    title: str = Field(..., description="Video title")
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    published_at: Optional[datetime] = None


class Video(VideoCreate):
    """Full video schema with database fields."""

    id: int
    tenant_id: int
    status: VideoStatus = VideoStatus.PENDING
    error_message: Optional[str] = None
    caption_source: Optional[CaptionSource] = None
    has_embeddings: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class VideoProgress(BaseModel):
    """Real-time processing progress for one video."""

    video_id: int
    video_status: VideoStatus
    current_job_type: Optional[str] = None
    current_job_status: Optional[str] = None
    current_progress_message: Optional[str] = None
    current_progress_percent: Optional[int] = None
    total_segments: int = 0
    segments_with_embeddings: int = 0
