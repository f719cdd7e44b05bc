"""Tests for the credential lifecycle manager."""

from datetime import datetime, timedelta, UTC

import httpx
import pytest

from app.db.connection import Database, now_iso, to_iso
from app.db.repositories.credential import CredentialRepository
from app.db.repositories.tenant import TenantRepository
from app.models.credential import YOUTUBE_PROVIDER
from app.services.credentials.encryption import SecretCipher
from app.services.credentials.exceptions import DecryptionFailed, NotConnected, ReconnectRequired
from app.services.credentials.token_manager import CredentialManager
from app.services.youtube.exceptions import ExternalTransientFailure
from app.services.youtube.oauth import YouTubeOAuthClient
from tests.helpers import mock_http_client


def manager_with_token_endpoint(
    test_db: Database,
    cipher: SecretCipher,
    handler,
) -> CredentialManager:
    oauth = YouTubeOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        http_client=mock_http_client(handler),
    )
    return CredentialManager(test_db.connection, cipher, oauth)


@pytest.mark.asyncio
async def test_get_without_credential_raises_not_connected(
    credential_manager: CredentialManager,
    tenant_id: int,
) -> None:
    with pytest.raises(NotConnected) as exc_info:
        await credential_manager.get(tenant_id, YOUTUBE_PROVIDER)

    assert exc_info.value.action == "reconnect"


@pytest.mark.asyncio
async def test_store_encrypts_at_rest(
    test_db: Database,
    credential_manager: CredentialManager,
    tenant_id: int,
) -> None:
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "access-123", "refresh-456")

    row = await CredentialRepository(test_db.connection).get(tenant_id, YOUTUBE_PROVIDER)
    assert "access-123" not in row["access_token"]
    assert "refresh-456" not in row["refresh_token"]
    assert row["access_token"] != row["refresh_token"]


@pytest.mark.asyncio
async def test_store_is_idempotent_per_tenant_and_provider(
    test_db: Database,
    credential_manager: CredentialManager,
    tenant_id: int,
) -> None:
    expires = datetime.now(UTC) + timedelta(hours=1)
    for _ in range(3):
        await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "access", "refresh", expires)
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "latest", "refresh", expires)

    assert await CredentialRepository(test_db.connection).count_for_tenant(tenant_id) == 1
    assert await credential_manager.get_access_token(tenant_id) == "latest"


@pytest.mark.asyncio
async def test_valid_credential_returned_without_refresh(
    credential_manager: CredentialManager,
    token_calls: list[httpx.Request],
    tenant_id: int,
) -> None:
    expires = datetime.now(UTC) + timedelta(hours=1)
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "still-good", "refresh", expires)

    credential = await credential_manager.get(tenant_id)

    assert credential.access_token == "still-good"
    assert token_calls == []


@pytest.mark.asyncio
async def test_expired_credential_refreshed_once(
    test_db: Database,
    cipher: SecretCipher,
    credential_manager: CredentialManager,
    token_calls: list[httpx.Request],
    tenant_id: int,
) -> None:
    """An access token that expired a second ago triggers exactly one refresh."""
    expired = datetime.now(UTC) - timedelta(seconds=1)
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "stale", "refresh-secret", expired)

    credential = await credential_manager.get(tenant_id)

    assert len(token_calls) == 1
    assert b"refresh_token=refresh-secret" in token_calls[0].content
    assert credential.access_token == "fresh-access-token"
    assert credential.expires_at - timedelta(minutes=5) > datetime.now(UTC)

    # Persisted: the next call needs no refresh
    row = await CredentialRepository(test_db.connection).get(tenant_id, YOUTUBE_PROVIDER)
    assert cipher.decrypt(row["access_token"]) == "fresh-access-token"
    assert cipher.decrypt(row["refresh_token"]) == "refresh-secret"
    assert (await credential_manager.get(tenant_id)).access_token == "fresh-access-token"
    assert len(token_calls) == 1


@pytest.mark.asyncio
async def test_token_inside_buffer_is_refreshed(
    credential_manager: CredentialManager,
    token_calls: list[httpx.Request],
    tenant_id: int,
) -> None:
    soon = datetime.now(UTC) + timedelta(minutes=2)
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "expiring", "refresh", soon)

    assert await credential_manager.get_access_token(tenant_id) == "fresh-access-token"
    assert len(token_calls) == 1


@pytest.mark.asyncio
async def test_unset_expiry_is_refreshed(
    credential_manager: CredentialManager,
    token_calls: list[httpx.Request],
    tenant_id: int,
) -> None:
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "unknown", "refresh", None)

    assert await credential_manager.get_access_token(tenant_id) == "fresh-access-token"
    assert len(token_calls) == 1


@pytest.mark.asyncio
async def test_expired_without_refresh_token_requires_reconnect(
    credential_manager: CredentialManager,
    token_calls: list[httpx.Request],
    tenant_id: int,
) -> None:
    expired = datetime.now(UTC) - timedelta(minutes=1)
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "stale", None, expired)

    with pytest.raises(ReconnectRequired):
        await credential_manager.get(tenant_id)
    assert token_calls == []


@pytest.mark.asyncio
async def test_rejected_refresh_leaves_row_unchanged(
    test_db: Database,
    cipher: SecretCipher,
    tenant_id: int,
) -> None:
    def rejecting(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Token has been revoked."})

    manager = manager_with_token_endpoint(test_db, cipher, rejecting)
    expired = datetime.now(UTC) - timedelta(minutes=1)
    await manager.store(tenant_id, YOUTUBE_PROVIDER, "original-access", "original-refresh", expired)
    repo = CredentialRepository(test_db.connection)
    before = await repo.get(tenant_id, YOUTUBE_PROVIDER)

    with pytest.raises(ReconnectRequired) as exc_info:
        await manager.get(tenant_id)

    assert exc_info.value.action == "reconnect"
    after = await repo.get(tenant_id, YOUTUBE_PROVIDER)
    assert after == before
    assert cipher.decrypt(after["access_token"]) == "original-access"
    assert cipher.decrypt(after["refresh_token"]) == "original-refresh"


@pytest.mark.asyncio
async def test_transient_refresh_failure_is_retryable_and_keeps_row(
    test_db: Database,
    cipher: SecretCipher,
    tenant_id: int,
) -> None:
    def unavailable(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="Service Unavailable")

    manager = manager_with_token_endpoint(test_db, cipher, unavailable)
    expired = datetime.now(UTC) - timedelta(minutes=1)
    await manager.store(tenant_id, YOUTUBE_PROVIDER, "original-access", "original-refresh", expired)
    repo = CredentialRepository(test_db.connection)
    before = await repo.get(tenant_id, YOUTUBE_PROVIDER)

    with pytest.raises(ExternalTransientFailure) as exc_info:
        await manager.get(tenant_id)

    assert exc_info.value.retryable
    assert await repo.get(tenant_id, YOUTUBE_PROVIDER) == before


@pytest.mark.asyncio
async def test_network_error_is_transient(
    test_db: Database,
    cipher: SecretCipher,
    tenant_id: int,
) -> None:
    def offline(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    manager = manager_with_token_endpoint(test_db, cipher, offline)
    await manager.store(tenant_id, YOUTUBE_PROVIDER, "a", "r", datetime.now(UTC) - timedelta(minutes=1))

    with pytest.raises(ExternalTransientFailure):
        await manager.get(tenant_id)
    assert await manager.is_connected(tenant_id)


@pytest.mark.asyncio
async def test_lost_refresh_race_returns_winner(
    test_db: Database,
    cipher: SecretCipher,
    tenant_id: int,
) -> None:
    """A concurrent refresh that lands first wins; its token is returned."""
    winner_expiry = datetime.now(UTC) + timedelta(hours=1)

    def racing(request: httpx.Request) -> httpx.Response:
        # Another worker persists its refreshed token while this call is in flight
        test_db.connection.execute(
            "UPDATE credentials SET access_token = ?, expires_at = ?, updated_at = ? WHERE tenant_id = ?",
            (cipher.encrypt("winner-token"), to_iso(winner_expiry), now_iso(), tenant_id),
        )
        test_db.connection.commit()
        return httpx.Response(200, json={"access_token": "loser-token", "expires_in": 3600})

    manager = manager_with_token_endpoint(test_db, cipher, racing)
    await manager.store(tenant_id, YOUTUBE_PROVIDER, "stale", "refresh", datetime.now(UTC) - timedelta(seconds=1))

    credential = await manager.get(tenant_id)

    assert credential.access_token == "winner-token"
    row = await CredentialRepository(test_db.connection).get(tenant_id, YOUTUBE_PROVIDER)
    assert cipher.decrypt(row["access_token"]) == "winner-token"


@pytest.mark.asyncio
async def test_corrupted_row_raises_decryption_failed(
    test_db: Database,
    credential_manager: CredentialManager,
    tenant_id: int,
) -> None:
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "access", "refresh", None)
    test_db.connection.execute("UPDATE credentials SET access_token = 'garbage' WHERE tenant_id = ?", (tenant_id,))
    test_db.connection.commit()

    with pytest.raises(DecryptionFailed):
        await credential_manager.get(tenant_id)


@pytest.mark.asyncio
async def test_disconnect_clears_credential_and_channel(
    test_db: Database,
    credential_manager: CredentialManager,
    tenant_id: int,
) -> None:
    tenants = TenantRepository(test_db.connection)
    await tenants.set_channel(tenant_id, "UCabc", "Channel", None)
    await credential_manager.store(tenant_id, YOUTUBE_PROVIDER, "access", "refresh", None)

    assert await credential_manager.disconnect(tenant_id)

    assert not await credential_manager.is_connected(tenant_id)
    assert (await tenants.get_by_id(tenant_id))["youtube_channel_id"] is None
    with pytest.raises(NotConnected):
        await credential_manager.get(tenant_id)


@pytest.mark.asyncio
async def test_refresh_expiring_sweep_continues_past_failures(
    test_db: Database,
    credential_manager: CredentialManager,
    token_calls: list[httpx.Request],
) -> None:
    tenants = TenantRepository(test_db.connection)
    expiring = await tenants.create("expiring")
    corrupted = await tenants.create("corrupted")
    healthy = await tenants.create("healthy")
    past = datetime.now(UTC) - timedelta(minutes=1)

    await credential_manager.store(expiring, YOUTUBE_PROVIDER, "a", "r", past)
    await credential_manager.store(corrupted, YOUTUBE_PROVIDER, "a", "r", past)
    await credential_manager.store(healthy, YOUTUBE_PROVIDER, "a", "r", datetime.now(UTC) + timedelta(hours=2))
    test_db.connection.execute(
        "UPDATE credentials SET refresh_token = 'garbage' WHERE tenant_id = ?", (corrupted,)
    )
    test_db.connection.commit()

    due = await credential_manager.list_needing_refresh()
    assert sorted(c.tenant_id for c in due) == sorted([expiring, corrupted])

    summary = await credential_manager.refresh_expiring()

    assert summary["due"] == 2
    assert summary["refreshed"] == 1
    assert summary["failed"] == 1
    assert summary["failures"][0]["tenant_id"] == corrupted
    assert summary["failures"][0]["error"] == "decryption_failed"
    assert len(token_calls) == 1
