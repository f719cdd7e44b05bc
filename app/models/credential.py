"""Pydantic models for third-party credentials."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

YOUTUBE_PROVIDER = "youtube"


class OAuthTokens(BaseModel):
    """Plaintext tokens returned by the provider's token endpoint."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"


class RefreshedToken(BaseModel):
    """Result of a refresh call: a new access secret and its absolute expiry."""

    access_token: str
    expires_at: Optional[datetime] = None


class AccessCredential(BaseModel):
    """Decrypted credential handed to callers of the token manager."""

    tenant_id: int
    provider: str
    access_token: str = Field(..., repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None


class CredentialExpiry(BaseModel):
    """Row summary used by the scheduled refresh sweep."""

    id: int
    tenant_id: int
    provider: str
    expires_at: Optional[datetime] = None
