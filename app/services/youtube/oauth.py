"""OAuth 2.0 client for YouTube Data API access.

Builds the consent URL, exchanges authorization codes and refreshes access
tokens against Google's token endpoint. Refresh failures are split into
permanent rejections (the user must reconnect) and transient failures
(the stored credential stays valid and the call can be retried).
"""

from datetime import datetime, timedelta, UTC
from urllib.parse import urlencode

import httpx
import structlog

from app.core.config import settings
from app.models.credential import OAuthTokens, RefreshedToken
from app.services.youtube.exceptions import ExternalTransientFailure, RefreshRejected

logger = structlog.get_logger(__name__)

YOUTUBE_SCOPES = [
    "https://www.googleapis.com/auth/youtube.readonly",
    "https://www.googleapis.com/auth/youtube.force-ssl",
]

# Token endpoint error codes that no retry can fix
PERMANENT_OAUTH_ERRORS = {
    "invalid_grant",
    "invalid_client",
    "unauthorized_client",
    "unsupported_grant_type",
    "invalid_scope",
}


class YouTubeOAuthClient:
    """Client for Google's OAuth 2.0 endpoints."""

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the OAuth client.

        Args:
            client_id: OAuth client ID (defaults to settings)
            client_secret: OAuth client secret (defaults to settings)
            http_client: Pre-built HTTP client, mainly for tests
        """
        self.client_id = client_id if client_id is not None else settings.google_client_id
        self.client_secret = client_secret if client_secret is not None else settings.google_client_secret
        self._client = http_client or httpx.AsyncClient(timeout=settings.http_timeout_seconds)

    def build_authorization_url(self, redirect_uri: str, state: str) -> str:
        """Build the consent screen URL.

        Requests offline access and forces consent so a refresh token is issued.
        """
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": " ".join(YOUTUBE_SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{settings.google_auth_url}?{urlencode(params)}"

    async def exchange_code(self, code: str, redirect_uri: str) -> OAuthTokens:
        """Exchange an authorization code for access and refresh tokens."""
        data = await self._post_token(
            {
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_at=_expiry_from(data),
            scope=data.get("scope") or " ".join(YOUTUBE_SCOPES),
            token_type=data.get("token_type") or "Bearer",
        )

    async def refresh_access_token(self, refresh_token: str) -> RefreshedToken:
        """Get a new access token using a refresh token.

        Raises:
            RefreshRejected: The provider permanently rejected the refresh token.
            ExternalTransientFailure: Network error or provider-side failure.
        """
        data = await self._post_token(
            {
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "refresh_token",
            }
        )
        return RefreshedToken(access_token=data["access_token"], expires_at=_expiry_from(data))

    async def _post_token(self, form: dict[str, str]) -> dict:
        grant_type = form["grant_type"]
        try:
            response = await self._client.post(settings.google_token_url, data=form)
        except httpx.TransportError as e:
            logger.warning("oauth_token_request_failed", grant_type=grant_type, error=str(e))
            raise ExternalTransientFailure(
                f"Could not reach the token endpoint: {e}. Please try again shortly."
            ) from e

        if response.status_code >= 500 or response.status_code == 429:
            logger.warning("oauth_token_endpoint_unavailable", status=response.status_code)
            raise ExternalTransientFailure(
                f"Token endpoint returned HTTP {response.status_code}. Please try again shortly."
            )

        try:
            data = response.json()
        except ValueError:
            data = {}

        if response.status_code >= 400:
            error = data.get("error", "unknown_error")
            description = data.get("error_description") or error
            logger.warning(
                "oauth_token_rejected",
                grant_type=grant_type,
                status=response.status_code,
                error=error,
            )
            if error in PERMANENT_OAUTH_ERRORS or response.status_code in (400, 401, 403):
                raise RefreshRejected(
                    f"Token request rejected ({error}): {description}. "
                    "Please reconnect your YouTube channel.",
                    action="reconnect",
                )
            raise ExternalTransientFailure(f"Token request failed ({error}): {description}")

        if not data.get("access_token"):
            raise ExternalTransientFailure("No access token received from the token endpoint")

        return data

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()


def _expiry_from(data: dict) -> datetime | None:
    expires_in = data.get("expires_in")
    if expires_in is None:
        return None
    return datetime.now(UTC) + timedelta(seconds=int(expires_in))
