"""Transcript segment models."""

from typing import Optional

from pydantic import BaseModel, Field, model_validator


class TranscriptSegment(BaseModel):
    """Individual timed segment from a transcript."""

    segment_index: int = Field(..., ge=0, description="Order of the segment in the video")
    start_time: float = Field(..., ge=0, description="Start time in seconds")
    end_time: float = Field(..., ge=0, description="End time in seconds")
    text: str = Field(..., description="Segment text content")
    language: Optional[str] = Field(default=None, description="Detected language, e.g. 'en'")
    embedding: Optional[list[float]] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "TranscriptSegment":
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class SegmentMatch(BaseModel):
    """One ranked similarity search hit."""

    segment_id: int
    video_id: int
    segment_index: int
    start_time: float
    end_time: float
    text: str
    language: Optional[str] = None
    similarity: float
