"""Tests for tenant-scoped vector search."""

from typing import Any

import pytest

from app.db.qdrant import QdrantConnection, optimal_list_count
from app.services.search.vector_search import VectorSearchService
from tests.helpers import unit_vector


def _row(segment_id: int, index: int, embedding: list[float] | None, text: str = "") -> dict[str, Any]:
    return {
        "id": segment_id,
        "segment_index": index,
        "start_time": index * 10.0,
        "end_time": index * 10.0 + 10.0,
        "text": text or f"segment {index}",
        "language": "en",
        "embedding": embedding,
    }


@pytest.mark.asyncio
async def test_search_never_crosses_tenants(search_service: VectorSearchService) -> None:
    """Tenant B's identical vectors are never returned to tenant A."""
    query = unit_vector(1.0, 0.0, 0.0)
    await search_service.index_segments(1, 10, [_row(1, 0, unit_vector(0.0, 1.0, 0.0), "tenant A")], indexed=True)
    await search_service.index_segments(2, 20, [_row(2, 0, query, "tenant B exact")], indexed=True)
    await search_service.index_segments(2, 20, [_row(3, 1, unit_vector(0.99, 0.01), "tenant B close")], indexed=True)

    results = await search_service.search(1, query, limit=10)

    assert [r.segment_id for r in results] == [1]
    assert results[0].video_id == 10
    assert results[0].text == "tenant A"


@pytest.mark.asyncio
async def test_search_limit_and_ordering(search_service: VectorSearchService) -> None:
    rows = [
        _row(1, 0, unit_vector(1.0, 0.0)),
        _row(2, 1, unit_vector(1.0, 0.5)),
        _row(3, 2, unit_vector(1.0, 1.0)),
        _row(4, 3, unit_vector(0.0, 1.0)),
        _row(5, 4, unit_vector(-1.0, 0.0)),
    ]
    await search_service.index_segments(1, 10, rows, indexed=True)

    results = await search_service.search(1, unit_vector(1.0, 0.0), limit=3)

    assert len(results) == 3
    assert [r.segment_id for r in results] == [1, 2, 3]
    scores = [r.similarity for r in results]
    assert scores == sorted(scores, reverse=True)
    assert scores[0] == pytest.approx(1.0, abs=1e-5)
    assert results[0].segment_index == 0
    assert results[0].language == "en"


@pytest.mark.asyncio
async def test_similarity_is_one_minus_cosine_distance(search_service: VectorSearchService) -> None:
    await search_service.index_segments(1, 10, [_row(1, 0, unit_vector(0.0, 1.0))], indexed=True)

    results = await search_service.search(1, unit_vector(1.0, 1.0), limit=1)

    # cos(45 degrees)
    assert results[0].similarity == pytest.approx(0.7071, abs=1e-3)


@pytest.mark.asyncio
async def test_only_indexed_videos_are_visible(search_service: VectorSearchService) -> None:
    await search_service.index_segments(1, 10, [_row(1, 0, unit_vector(1.0))], indexed=False)
    assert await search_service.search(1, unit_vector(1.0)) == []

    await search_service.set_video_visibility(10, True)
    assert [r.segment_id for r in await search_service.search(1, unit_vector(1.0))] == [1]

    await search_service.set_video_visibility(10, False)
    assert await search_service.search(1, unit_vector(1.0)) == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "query",
    [
        [1.0, 0.0],
        [1.0, 0.0, 0.0, 0.0, 0.0],
        [0.0, 0.0, 0.0, 0.0],
        [],
    ],
)
async def test_malformed_query_returns_empty(search_service: VectorSearchService, query: list[float]) -> None:
    await search_service.index_segments(1, 10, [_row(1, 0, unit_vector(1.0))], indexed=True)

    assert await search_service.search(1, query) == []


@pytest.mark.asyncio
async def test_tenant_without_rows_returns_empty(search_service: VectorSearchService) -> None:
    assert await search_service.search(42, unit_vector(1.0)) == []


@pytest.mark.asyncio
async def test_cleared_embedding_removes_point(search_service: VectorSearchService) -> None:
    await search_service.index_segments(1, 10, [_row(1, 0, unit_vector(1.0))], indexed=True)
    await search_service.index_segments(1, 10, [_row(1, 0, None)], indexed=True)

    assert await search_service.search(1, unit_vector(1.0)) == []


@pytest.mark.asyncio
async def test_remove_video(search_service: VectorSearchService) -> None:
    await search_service.index_segments(1, 10, [_row(1, 0, unit_vector(1.0))], indexed=True)
    await search_service.index_segments(1, 11, [_row(2, 0, unit_vector(1.0))], indexed=True)

    await search_service.remove_video(10)

    assert [r.video_id for r in await search_service.search(1, unit_vector(1.0))] == [11]


@pytest.mark.parametrize(
    ("rows", "expected"),
    [
        (0, 100),
        (1_000, 100),
        (40_000, 100),
        (150_000, 193),
        (1_000_000, 500),
    ],
)
def test_optimal_list_count(rows: int, expected: int) -> None:
    assert optimal_list_count(rows, minimum=100) == expected


@pytest.mark.asyncio
async def test_rebuild_index_reports_list_count(
    search_service: VectorSearchService,
    qdrant_conn: QdrantConnection,
) -> None:
    message = await search_service.rebuild_index(1_000_000)

    assert message == "Index rebuilt with 500 lists for 1000000 rows"
    assert qdrant_conn.get_collection_info()["name"] == "test_segments"
