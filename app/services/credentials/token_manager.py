"""Credential lifecycle: encrypted storage, expiry detection and refresh.

Every external call made on a tenant's behalf first asks this manager for
an access token. Rows are encrypted at rest and refreshed in place; a
failed refresh never deletes the stored credential.
"""

from datetime import datetime, timedelta, UTC
from typing import Any

import libsql_experimental as libsql
import structlog

from app.core.config import settings
from app.core.errors import ServiceError
from app.db.connection import from_iso, to_iso
from app.db.repositories.credential import CredentialRepository
from app.db.repositories.tenant import TenantRepository
from app.models.credential import YOUTUBE_PROVIDER, AccessCredential, CredentialExpiry
from app.services.credentials.encryption import SecretCipher
from app.services.credentials.exceptions import NotConnected, ReconnectRequired
from app.services.youtube.exceptions import ExternalTransientFailure, RefreshRejected
from app.services.youtube.oauth import YouTubeOAuthClient

logger = structlog.get_logger(__name__)


def build_cipher() -> SecretCipher:
    """Create the cipher from the process-wide configured secret."""
    return SecretCipher(settings.encryption_key, iterations=settings.encryption_iterations)


class CredentialManager:
    """Owns encryption, storage, expiry detection and refresh of credentials."""

    def __init__(
        self,
        connection: libsql.Connection,
        cipher: SecretCipher,
        oauth_client: YouTubeOAuthClient | None = None,
        refresh_buffer: timedelta | None = None,
    ):
        """Initialize the manager.

        Args:
            connection: Database connection
            cipher: Cipher bound to the process-wide secret
            oauth_client: Client used for refresh calls
            refresh_buffer: Minimum remaining lifetime of a returned token
        """
        self.repo = CredentialRepository(connection)
        self.tenant_repo = TenantRepository(connection)
        self.cipher = cipher
        self.oauth = oauth_client or YouTubeOAuthClient()
        self.refresh_buffer = (
            refresh_buffer
            if refresh_buffer is not None
            else timedelta(minutes=settings.token_refresh_buffer_minutes)
        )

    def needs_refresh(self, expires_at: datetime | None, now: datetime | None = None) -> bool:
        """True if the expiry is unset or falls inside the buffer window."""
        if expires_at is None:
            return True
        now = now or datetime.now(UTC)
        return expires_at - self.refresh_buffer < now

    async def store(
        self,
        tenant_id: int,
        provider: str,
        access_token: str,
        refresh_token: str | None = None,
        expires_at: datetime | None = None,
        scope: str | None = None,
        token_type: str = "Bearer",
    ) -> None:
        """Encrypt both secrets independently and upsert the (tenant, provider) row."""
        await self.repo.upsert(
            tenant_id=tenant_id,
            provider=provider,
            access_token=self.cipher.encrypt(access_token),
            refresh_token=self.cipher.encrypt(refresh_token) if refresh_token is not None else None,
            expires_at=to_iso(expires_at),
            scope=scope,
            token_type=token_type,
        )

    async def get(self, tenant_id: int, provider: str = YOUTUBE_PROVIDER) -> AccessCredential:
        """Get a credential whose access token is valid beyond the buffer window.

        Raises:
            NotConnected: No credential is stored.
            ReconnectRequired: Expired with no refresh token, or refresh permanently rejected.
            ExternalTransientFailure: Refresh failed transiently; the row is untouched.
            DecryptionFailed: Stored data cannot be decrypted.
        """
        row = await self.repo.get(tenant_id, provider)
        if row is None:
            raise NotConnected(
                f"{provider.capitalize()} not connected. Please connect your {provider} channel first."
            )

        credential = self._decrypt_row(row)
        if not self.needs_refresh(credential.expires_at):
            return credential

        if not credential.refresh_token:
            logger.warning("credential_expired_without_refresh_token", tenant_id=tenant_id, provider=provider)
            raise ReconnectRequired(
                f"{provider.capitalize()} access token expired and no refresh token is available. "
                f"Please reconnect your {provider} channel."
            )

        try:
            refreshed = await self.oauth.refresh_access_token(credential.refresh_token)
        except RefreshRejected as e:
            logger.warning("credential_refresh_rejected", tenant_id=tenant_id, provider=provider)
            raise ReconnectRequired(
                f"Failed to refresh {provider} access token: {e.message}",
            ) from e

        if refreshed.expires_at is not None and self.needs_refresh(refreshed.expires_at):
            raise ExternalTransientFailure(
                "Provider issued an access token that expires within the refresh buffer"
            )

        persisted = await self.repo.update_access_token(
            tenant_id=tenant_id,
            provider=provider,
            access_token=self.cipher.encrypt(refreshed.access_token),
            expires_at=to_iso(refreshed.expires_at),
            expected_updated_at=row["updated_at"],
        )

        if not persisted:
            # Another worker refreshed (or reconnected) first; prefer its token
            logger.info("credential_refresh_race_lost", tenant_id=tenant_id, provider=provider)
            latest = await self.repo.get(tenant_id, provider)
            if latest is None:
                raise NotConnected(f"{provider.capitalize()} was disconnected during token refresh.")
            winner = self._decrypt_row(latest)
            if not self.needs_refresh(winner.expires_at):
                return winner

        logger.info(
            "credential_refreshed",
            tenant_id=tenant_id,
            provider=provider,
            expires_at=to_iso(refreshed.expires_at),
        )
        return credential.model_copy(
            update={"access_token": refreshed.access_token, "expires_at": refreshed.expires_at}
        )

    async def get_access_token(self, tenant_id: int, provider: str = YOUTUBE_PROVIDER) -> str:
        """Shortcut for ``get(...).access_token``."""
        credential = await self.get(tenant_id, provider)
        return credential.access_token

    async def is_connected(self, tenant_id: int, provider: str = YOUTUBE_PROVIDER) -> bool:
        """Check if a credential is stored for the tenant."""
        return await self.repo.exists(tenant_id, provider)

    async def disconnect(self, tenant_id: int, provider: str = YOUTUBE_PROVIDER) -> bool:
        """Delete the credential and clear the tenant's linked channel."""
        deleted = await self.repo.delete(tenant_id, provider)
        if provider == YOUTUBE_PROVIDER:
            await self.tenant_repo.set_channel(tenant_id, None, None, None)
        logger.info("credential_disconnected", tenant_id=tenant_id, provider=provider, deleted=deleted)
        return deleted

    async def list_needing_refresh(self) -> list[CredentialExpiry]:
        """Refreshable credentials that are expired or expiring within the buffer."""
        cutoff = to_iso(datetime.now(UTC) + self.refresh_buffer)
        rows = await self.repo.list_needing_refresh(cutoff)
        return [
            CredentialExpiry(
                id=row["id"],
                tenant_id=row["tenant_id"],
                provider=row["provider"],
                expires_at=from_iso(row["expires_at"]),
            )
            for row in rows
        ]

    async def refresh_expiring(self) -> dict[str, Any]:
        """Refresh every expiring credential, recording failures without stopping."""
        due = await self.list_needing_refresh()
        refreshed = 0
        failures: list[dict[str, Any]] = []

        for item in due:
            try:
                await self.get(item.tenant_id, item.provider)
                refreshed += 1
            except ServiceError as e:
                logger.warning(
                    "scheduled_refresh_failed",
                    tenant_id=item.tenant_id,
                    provider=item.provider,
                    error=e.kind,
                )
                failures.append({"tenant_id": item.tenant_id, "provider": item.provider, **e.to_dict()})

        summary = {"due": len(due), "refreshed": refreshed, "failed": len(failures), "failures": failures}
        logger.info("scheduled_refresh_completed", due=len(due), refreshed=refreshed, failed=len(failures))
        return summary

    def _decrypt_row(self, row: dict[str, Any]) -> AccessCredential:
        return AccessCredential(
            tenant_id=row["tenant_id"],
            provider=row["provider"],
            access_token=self.cipher.decrypt(row["access_token"]),
            refresh_token=self.cipher.decrypt(row["refresh_token"]) if row["refresh_token"] else None,
            expires_at=from_iso(row["expires_at"]),
            scope=row["scope"],
        )
