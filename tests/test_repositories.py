"""Tests for database repositories."""

from datetime import datetime, timedelta, UTC

import pytest

from app.db.connection import Database, to_iso
from app.db.repositories.credential import CredentialRepository
from app.db.repositories.job import JobRepository
from app.db.repositories.tenant import TenantRepository
from app.db.repositories.transcript import TranscriptRepository
from app.db.repositories.video import VideoRepository
from app.models.transcript import TranscriptSegment
from app.models.video import VideoCreate


@pytest.mark.asyncio
async def test_tenant_create_and_link_channel(test_db: Database) -> None:
    """Test creating a tenant and linking its channel."""
    repo = TenantRepository(test_db.connection)

    tenant_id = await repo.create("Grace Chapel")
    await repo.set_channel(tenant_id, "UC123456789012345678901", "Grace Chapel TV", None)

    tenant = await repo.get_by_channel_id("UC123456789012345678901")
    assert tenant is not None
    assert tenant["id"] == tenant_id
    assert tenant["youtube_channel_name"] == "Grace Chapel TV"
    assert [t["id"] for t in await repo.list_connected()] == [tenant_id]

    await repo.set_channel(tenant_id, None, None, None)
    assert await repo.list_connected() == []


@pytest.mark.asyncio
async def test_video_upsert_updates_metadata_in_place(test_db: Database, tenant_id: int) -> None:
    """Re-syncing a video updates metadata but never duplicates it or resets status."""
    repo = VideoRepository(test_db.connection)

    first = await repo.upsert(
        tenant_id,
        VideoCreate(
            youtube_video_id="abcdefghijk",
            title="Old Title",
            duration_seconds=3600,
            published_at=datetime(2024, 1, 1, tzinfo=UTC),
        ),
    )
    await repo.mark_failed(first, "captions disabled")

    second = await repo.upsert(tenant_id, VideoCreate(youtube_video_id="abcdefghijk", title="New Title"))

    assert second == first
    assert await repo.count_by_tenant(tenant_id) == 1
    video = await repo.get_by_id(first)
    assert video["title"] == "New Title"
    assert video["status"] == "failed"
    assert video["error_message"] == "captions disabled"


@pytest.mark.asyncio
async def test_same_external_video_is_separate_per_tenant(test_db: Database) -> None:
    tenants = TenantRepository(test_db.connection)
    repo = VideoRepository(test_db.connection)
    a = await tenants.create("A")
    b = await tenants.create("B")

    va = await repo.upsert(a, VideoCreate(youtube_video_id="shared00001", title="Shared"))
    vb = await repo.upsert(b, VideoCreate(youtube_video_id="shared00001", title="Shared"))

    assert va != vb
    assert (await repo.get_by_youtube_id(a, "shared00001"))["id"] == va
    assert (await repo.get_by_youtube_id(b, "shared00001"))["id"] == vb


@pytest.mark.asyncio
async def test_credential_upsert_keeps_one_row(test_db: Database, tenant_id: int) -> None:
    repo = CredentialRepository(test_db.connection)

    for token in ("first", "second", "third"):
        await repo.upsert(tenant_id, "youtube", token, "refresh", None, "scope", "Bearer")

    assert await repo.count_for_tenant(tenant_id) == 1
    row = await repo.get(tenant_id, "youtube")
    assert row["access_token"] == "third"


@pytest.mark.asyncio
async def test_credential_conditional_update(test_db: Database, tenant_id: int) -> None:
    """The access token only changes if the row is unchanged since it was read."""
    repo = CredentialRepository(test_db.connection)
    await repo.upsert(tenant_id, "youtube", "old", "refresh", None, None, "Bearer")
    row = await repo.get(tenant_id, "youtube")

    assert await repo.update_access_token(tenant_id, "youtube", "new", None, row["updated_at"])
    assert not await repo.update_access_token(tenant_id, "youtube", "newer", None, row["updated_at"])
    assert (await repo.get(tenant_id, "youtube"))["access_token"] == "new"


@pytest.mark.asyncio
async def test_credentials_needing_refresh(test_db: Database) -> None:
    tenants = TenantRepository(test_db.connection)
    repo = CredentialRepository(test_db.connection)
    now = datetime.now(UTC)

    expired = await tenants.create("expired")
    fresh = await tenants.create("fresh")
    unknown = await tenants.create("unknown expiry")
    no_refresh = await tenants.create("no refresh token")

    await repo.upsert(expired, "youtube", "a", "r", to_iso(now - timedelta(minutes=1)), None, "Bearer")
    await repo.upsert(fresh, "youtube", "a", "r", to_iso(now + timedelta(hours=1)), None, "Bearer")
    await repo.upsert(unknown, "youtube", "a", "r", None, None, "Bearer")
    await repo.upsert(no_refresh, "youtube", "a", None, None, None, "Bearer")

    rows = await repo.list_needing_refresh(to_iso(now + timedelta(minutes=5)))

    assert [r["tenant_id"] for r in rows] == [unknown, expired]


@pytest.mark.asyncio
async def test_segment_counts(test_db: Database, tenant_id: int, video_id: int) -> None:
    repo = TranscriptRepository(test_db.connection)
    await repo.upsert_segments(
        tenant_id,
        video_id,
        [
            TranscriptSegment(segment_index=0, start_time=0.0, end_time=4.5, text="Welcome"),
            TranscriptSegment(segment_index=1, start_time=4.5, end_time=9.0, text="Let us pray", embedding=[0.1, 0.2, 0.3, 0.4]),
        ],
    )

    assert await repo.count_for_video(video_id) == (2, 1)
    assert await repo.set_embedding(video_id, 0, [1.0, 0.0, 0.0, 0.0]) is not None
    assert await repo.set_embedding(video_id, 7, [1.0, 0.0, 0.0, 0.0]) is None
    assert await repo.count_for_video(video_id) == (2, 2)

    stats = await repo.get_embedding_stats()
    assert stats["segments_with_embeddings"] == 2
    assert stats["videos_with_embeddings"] == 1


@pytest.mark.asyncio
async def test_only_one_active_job_per_type(test_db: Database, tenant_id: int, video_id: int) -> None:
    """The unique index rejects a second pending job of the same type."""
    repo = JobRepository(test_db.connection)
    await repo.create(tenant_id, video_id, "transcription")

    with pytest.raises(Exception):
        await repo.create(tenant_id, video_id, "transcription")

    # A different type, or a tenant-level job, is fine
    await repo.create(tenant_id, video_id, "embedding")
    await repo.create(tenant_id, None, "sync")
    assert len(await repo.list_by_video(video_id)) == 2


@pytest.mark.asyncio
async def test_deleting_video_cascades(test_db: Database, tenant_id: int, video_id: int) -> None:
    videos = VideoRepository(test_db.connection)
    transcripts = TranscriptRepository(test_db.connection)
    jobs = JobRepository(test_db.connection)

    await transcripts.upsert_segments(
        tenant_id,
        video_id,
        [TranscriptSegment(segment_index=0, start_time=0.0, end_time=1.0, text="Hi")],
    )
    await jobs.create(tenant_id, video_id, "transcription")

    assert await videos.delete(video_id)
    assert await transcripts.count_for_video(video_id) == (0, 0)
    assert await jobs.list_by_video(video_id) == []
