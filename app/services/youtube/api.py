"""YouTube Data API v3 client.

Provides channel lookup and paginated video listing for an authorized
account, with actionable errors for expired access and exhausted quota.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import structlog

from app.core.config import settings
from app.models.video import VideoCreate
from app.services.credentials.exceptions import ReconnectRequired
from app.services.youtube.exceptions import (
    ChannelNotFoundError,
    ExternalQuotaExceeded,
    ExternalTransientFailure,
    VideoUnavailable,
    YouTubeError,
)

logger = structlog.get_logger(__name__)

# YouTube API max per request
PAGE_SIZE = 50

# Quota resets at midnight Pacific time (DST ignored)
PACIFIC = timezone(timedelta(hours=-8), "PT")

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$")


def parse_duration(duration: str) -> int:
    """Parse an ISO 8601 duration (e.g. ``PT1H2M30S``) to seconds."""
    match = _DURATION_RE.match(duration or "")
    if not match:
        return 0
    days, hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def format_duration(seconds: int) -> str:
    """Format seconds as ``H:MM:SS`` or ``M:SS``."""
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def next_quota_reset(now: datetime | None = None) -> datetime:
    """Next midnight Pacific time, when the daily API quota resets."""
    now = (now or datetime.now(timezone.utc)).astimezone(PACIFIC)
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)
    return midnight.astimezone(timezone.utc)


def _best_thumbnail(snippet: dict[str, Any], order: tuple[str, ...]) -> str:
    thumbnails = snippet.get("thumbnails") or {}
    for size in order:
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return ""


class YouTubeDataClient:
    """Thin async client for the endpoints the sync pipeline needs."""

    def __init__(self, http_client: httpx.AsyncClient | None = None, base_url: str | None = None):
        """Initialize the client.

        Args:
            http_client: Pre-built HTTP client, mainly for tests
            base_url: API root (defaults to settings)
        """
        self.base_url = (base_url or settings.youtube_api_url).rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    async def get_channel_info(self, access_token: str) -> dict[str, Any]:
        """Get the authorized account's channel.

        Returns:
            Dict with channel_id, channel_name, thumbnail, description,
            custom_url and video_count.
        """
        data = await self._get(
            "channels",
            access_token,
            {"part": "snippet,statistics,contentDetails", "mine": "true"},
            context="channel info",
        )

        items = data.get("items") or []
        if not items or not items[0].get("id"):
            raise ChannelNotFoundError(
                "No YouTube channel found for this account. Make sure a YouTube channel "
                "is associated with the connected Google account."
            )

        channel = items[0]
        snippet = channel.get("snippet") or {}
        statistics = channel.get("statistics") or {}
        video_count = statistics.get("videoCount")

        return {
            "channel_id": channel["id"],
            "channel_name": snippet.get("title") or "Unknown Channel",
            "thumbnail": _best_thumbnail(snippet, ("default", "medium")),
            "description": snippet.get("description") or None,
            "custom_url": snippet.get("customUrl") or None,
            "video_count": int(video_count) if video_count else None,
        }

    async def list_videos(
        self,
        access_token: str,
        channel_id: str,
        max_results: int = PAGE_SIZE,
    ) -> list[VideoCreate]:
        """List a channel's videos, most recent first, following pagination."""
        videos: list[VideoCreate] = []
        page_token: str | None = None

        while len(videos) < max_results:
            params: dict[str, Any] = {
                "part": "snippet",
                "channelId": channel_id,
                "maxResults": min(PAGE_SIZE, max_results - len(videos)),
                "order": "date",
                "type": "video",
            }
            if page_token:
                params["pageToken"] = page_token

            page = await self._get("search", access_token, params, context="video list")
            items = page.get("items") or []
            if not items:
                break

            video_ids = [item["id"]["videoId"] for item in items if (item.get("id") or {}).get("videoId")]
            if video_ids:
                details = await self._get(
                    "videos",
                    access_token,
                    {"part": "snippet,contentDetails", "id": ",".join(video_ids)},
                    context="video details",
                )
                for video in details.get("items") or []:
                    snippet = video.get("snippet")
                    content = video.get("contentDetails")
                    if not video.get("id") or not snippet or not content:
                        continue
                    videos.append(
                        VideoCreate(
                            youtube_video_id=video["id"],
                            title=snippet.get("title") or "Untitled Video",
                            description=snippet.get("description") or "",
                            thumbnail_url=_best_thumbnail(snippet, ("medium", "default")),
                            duration_seconds=parse_duration(content.get("duration") or "PT0S"),
                            published_at=snippet.get("publishedAt") or datetime.now(timezone.utc),
                        )
                    )

            page_token = page.get("nextPageToken")
            if not page_token:
                break

        videos = videos[:max_results]
        logger.info(
            "youtube_videos_listed",
            channel_id=channel_id,
            count=len(videos),
            total_duration=format_duration(sum(v.duration_seconds or 0 for v in videos)),
        )
        return videos

    async def _get(
        self,
        resource: str,
        access_token: str,
        params: dict[str, Any],
        context: str,
    ) -> dict[str, Any]:
        try:
            response = await self._client.get(
                f"{self.base_url}/{resource}",
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.TransportError as e:
            logger.warning("youtube_request_failed", resource=resource, error=str(e))
            raise ExternalTransientFailure(f"Failed to fetch YouTube {context}: {e}") from e

        if response.status_code >= 400:
            _raise_for_error(response, context)
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def _raise_for_error(response: httpx.Response, context: str) -> None:
    """Map an API error response onto the service error taxonomy."""
    try:
        error = response.json().get("error") or {}
    except ValueError:
        error = {}
    message = error.get("message") or response.reason_phrase
    reasons = {e.get("reason") for e in error.get("errors") or [] if isinstance(e, dict)}
    status = response.status_code

    logger.warning("youtube_api_error", status=status, reasons=sorted(r for r in reasons if r), context=context)

    if status == 401:
        raise ReconnectRequired("YouTube access token expired. Please reconnect your YouTube account.")

    if status == 403:
        if reasons & {"quotaExceeded", "dailyLimitExceeded"} or "quota" in message.lower():
            reset = next_quota_reset()
            hours = max(1, int((reset - datetime.now(timezone.utc)).total_seconds() // 3600) + 1)
            raise ExternalQuotaExceeded(
                f"YouTube API quota exceeded. Quota resets in approximately {hours} hours. "
                "Learn more: https://developers.google.com/youtube/v3/getting-started#quota",
                retry_after=reset,
            )
        if reasons & {"forbidden", "videoPrivate"} and context == "video details":
            raise VideoUnavailable(f"Video is not accessible: {message}")
        raise YouTubeError(
            "YouTube API access forbidden. Verify that YouTube Data API v3 is enabled "
            f"in Google Cloud Console. ({message})"
        )

    if status == 404:
        raise VideoUnavailable(f"YouTube {context} not found: {message}")

    if status == 429 or status >= 500:
        raise ExternalTransientFailure(f"YouTube API returned HTTP {status} for {context}: {message}")

    raise YouTubeError(f"Failed to fetch YouTube {context}: {message}")
