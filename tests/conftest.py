"""Pytest configuration and fixtures."""

import os

# Settings require the process-wide secret at import time
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-secret")

from pathlib import Path
from typing import AsyncIterator, Iterator

import httpx
import pytest
import pytest_asyncio

from app.db.connection import Database
from app.db.qdrant import QdrantConnection
from app.db.repositories.tenant import TenantRepository
from app.db.repositories.video import VideoRepository
from app.models.video import VideoCreate
from app.services.credentials.encryption import SecretCipher
from app.services.credentials.token_manager import CredentialManager
from app.services.ingestion.orchestrator import IngestionOrchestrator
from app.services.ingestion.retry import RetryPolicy
from app.services.search.vector_search import VectorSearchService
from app.services.youtube.api import YouTubeDataClient
from app.services.youtube.oauth import YouTubeOAuthClient
from tests.helpers import EMBEDDING_DIMENSIONS, RecordingDispatcher, mock_http_client, token_endpoint


@pytest_asyncio.fixture
async def test_db(tmp_path: Path) -> AsyncIterator[Database]:
    """Create a test database with temporary path."""
    db = Database(database_path=tmp_path / "test.db")
    await db.connect()
    await db.init_schema()

    yield db

    await db.disconnect()


@pytest.fixture
def cipher() -> SecretCipher:
    """Cipher with a low iteration count to keep tests fast."""
    return SecretCipher("unit-test-secret", iterations=1_000)


@pytest.fixture
def qdrant_conn() -> Iterator[QdrantConnection]:
    """In-process Qdrant collection."""
    conn = QdrantConnection(
        location=":memory:",
        collection_name="test_segments",
        dimensions=EMBEDDING_DIMENSIONS,
    )
    conn.ensure_collection()

    yield conn

    conn.close()


@pytest.fixture
def search_service(qdrant_conn: QdrantConnection) -> VectorSearchService:
    return VectorSearchService(qdrant_conn)


@pytest.fixture
def token_calls() -> list[httpx.Request]:
    return []


@pytest.fixture
def oauth_client(token_calls: list[httpx.Request]) -> YouTubeOAuthClient:
    return YouTubeOAuthClient(
        client_id="client-id",
        client_secret="client-secret",
        http_client=mock_http_client(token_endpoint(token_calls)),
    )


@pytest.fixture
def credential_manager(
    test_db: Database,
    cipher: SecretCipher,
    oauth_client: YouTubeOAuthClient,
) -> CredentialManager:
    return CredentialManager(test_db.connection, cipher, oauth_client)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def orchestrator(
    test_db: Database,
    credential_manager: CredentialManager,
    dispatcher: RecordingDispatcher,
    search_service: VectorSearchService,
) -> IngestionOrchestrator:
    def no_api(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"message": "unexpected call"}})

    return IngestionOrchestrator(
        connection=test_db.connection,
        credentials=credential_manager,
        youtube=YouTubeDataClient(http_client=mock_http_client(no_api), base_url="https://yt.test/v3"),
        dispatcher=dispatcher,
        search=search_service,
        retry_policy=RetryPolicy(max_attempts=3, base_delay_seconds=30, max_delay_seconds=3600),
    )


@pytest_asyncio.fixture
async def tenant_id(test_db: Database) -> int:
    return await TenantRepository(test_db.connection).create("Grace Chapel")


@pytest_asyncio.fixture
async def video_id(test_db: Database, tenant_id: int) -> int:
    return await VideoRepository(test_db.connection).upsert(
        tenant_id,
        VideoCreate(youtube_video_id="vid00000001", title="Sunday Service"),
    )
