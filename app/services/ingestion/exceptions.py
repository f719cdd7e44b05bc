"""Ingestion service exceptions."""

from app.core.errors import ServiceError


class IngestionError(ServiceError):
    """Base exception for ingestion errors."""

    kind = "ingestion_error"


class JobAlreadyActive(IngestionError):
    """Raised when a job of the same type is already pending or running."""

    kind = "job_already_active"
    default_action = "wait"

    def __init__(self, job_id: int, job_type: str) -> None:
        self.job_id = job_id
        self.job_type = job_type
        super().__init__(f"A {job_type} job is already active (job {job_id}). Wait for it to finish.")


class JobNotFoundError(IngestionError):
    """Raised when a job id does not exist."""

    kind = "job_not_found"


class VideoNotFoundError(IngestionError):
    """Raised when a video row does not exist."""

    kind = "video_not_found"


class JobStateError(IngestionError):
    """Raised when a callback targets a job that is finished or of the wrong type."""

    kind = "job_state_error"


class InvalidTranscript(IngestionError):
    """Raised when segment timing is inconsistent with segment order."""

    kind = "invalid_transcript"


class InvalidEmbedding(IngestionError):
    """Raised when an embedding has the wrong dimensionality or targets a missing segment."""

    kind = "invalid_embedding"


class TenantNotFoundError(IngestionError):
    """Raised when a tenant id does not exist."""

    kind = "tenant_not_found"
