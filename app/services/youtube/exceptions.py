"""YouTube service exceptions."""

from app.core.errors import ServiceError


class YouTubeError(ServiceError):
    """Base exception for YouTube service errors."""

    kind = "youtube_error"


class ExternalQuotaExceeded(YouTubeError):
    """Raised when the API quota is exhausted until the provider's reset time."""

    kind = "external_quota_exceeded"
    retryable = True
    default_action = "wait"


class ExternalTransientFailure(YouTubeError):
    """Raised on network errors and provider-side failures worth retrying."""

    kind = "external_transient_failure"
    retryable = True
    default_action = "retry"


class RefreshRejected(YouTubeError):
    """Raised when the provider permanently rejects a refresh secret."""

    kind = "refresh_rejected"


class ChannelNotFoundError(YouTubeError):
    """Raised when the authorized account has no channel."""

    kind = "channel_not_found"


class VideoUnavailable(YouTubeError):
    """Raised when a video is permanently unavailable (private, deleted, etc.)."""

    kind = "video_unavailable"
