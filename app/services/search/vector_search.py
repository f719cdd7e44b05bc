"""Tenant-scoped similarity search over transcript segment embeddings."""

import math
from typing import Any

from qdrant_client.http.models import (
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PointIdsList,
    PointStruct,
)
import structlog

from app.core.config import settings
from app.db.qdrant import QdrantConnection, qdrant
from app.db.repositories.transcript import decode_embedding
from app.models.transcript import SegmentMatch

logger = structlog.get_logger(__name__)

# Batch size for Qdrant upserts
UPSERT_BATCH_SIZE = 100


def _video_filter(video_id: int) -> Filter:
    return Filter(must=[FieldCondition(key="video_id", match=MatchValue(value=video_id))])


class VectorSearchService:
    """Mirror of embedded segments in Qdrant plus the nearest-neighbor query.

    The segment rows stay the source of truth. A point's ``indexed`` payload
    flag follows its video's derived status, and only flagged points are
    returned by :meth:`search`.
    """

    def __init__(self, connection: QdrantConnection | None = None):
        self.qdrant = connection or qdrant

    @property
    def dimensions(self) -> int:
        return self.qdrant.dimensions

    def is_valid_vector(self, vector: list[float] | None) -> bool:
        """Whether ``vector`` has the index dimensions and a finite, non-zero direction."""
        if vector is None or len(vector) != self.dimensions:
            return False
        if not all(math.isfinite(x) for x in vector):
            return False
        return any(x != 0 for x in vector)

    async def index_segments(
        self,
        tenant_id: int,
        video_id: int,
        segments: list[dict[str, Any]],
        indexed: bool,
    ) -> int:
        """Upsert embedded segment rows as points keyed by segment id.

        Rows without a usable embedding are removed from the index instead.

        Returns:
            Number of points written.
        """
        points: list[PointStruct] = []
        stale: list[int] = []

        for row in segments:
            embedding = row["embedding"]
            if isinstance(embedding, str):
                embedding = decode_embedding(embedding)
            if not self.is_valid_vector(embedding):
                stale.append(row["id"])
                continue
            points.append(
                PointStruct(
                    id=row["id"],
                    vector=embedding,
                    payload={
                        "tenant_id": tenant_id,
                        "video_id": video_id,
                        "segment_index": row["segment_index"],
                        "start_time": row["start_time"],
                        "end_time": row["end_time"],
                        "text": row["text"],
                        "language": row["language"],
                        "indexed": indexed,
                    },
                )
            )

        for i in range(0, len(points), UPSERT_BATCH_SIZE):
            self.qdrant.client.upsert(
                collection_name=self.qdrant.collection_name,
                points=points[i : i + UPSERT_BATCH_SIZE],
            )

        if stale:
            self.qdrant.client.delete(
                collection_name=self.qdrant.collection_name,
                points_selector=PointIdsList(points=stale),
            )

        logger.debug(
            "segments_indexed",
            tenant_id=tenant_id,
            video_id=video_id,
            points=len(points),
            removed=len(stale),
        )
        return len(points)

    async def set_video_visibility(self, video_id: int, indexed: bool) -> None:
        """Flip whether a video's segments are visible to search."""
        self.qdrant.client.set_payload(
            collection_name=self.qdrant.collection_name,
            payload={"indexed": indexed},
            points=FilterSelector(filter=_video_filter(video_id)),
        )
        logger.debug("video_visibility_set", video_id=video_id, indexed=indexed)

    async def remove_video(self, video_id: int) -> None:
        """Delete all points for a video."""
        self.qdrant.client.delete(
            collection_name=self.qdrant.collection_name,
            points_selector=FilterSelector(filter=_video_filter(video_id)),
        )
        logger.info("video_points_deleted", video_id=video_id)

    async def search(
        self,
        tenant_id: int,
        query_embedding: list[float],
        limit: int | None = None,
    ) -> list[SegmentMatch]:
        """Find a tenant's indexed segments nearest to ``query_embedding``.

        Results are approximate, ordered by descending cosine similarity.
        A malformed query vector yields an empty list.
        """
        limit = settings.default_search_limit if limit is None else limit
        if limit < 1 or not self.is_valid_vector(query_embedding):
            logger.warning(
                "search_query_rejected",
                tenant_id=tenant_id,
                dimensions=len(query_embedding) if query_embedding is not None else None,
                limit=limit,
            )
            return []

        result = self.qdrant.client.query_points(
            collection_name=self.qdrant.collection_name,
            query=query_embedding,
            query_filter=Filter(
                must=[
                    FieldCondition(key="tenant_id", match=MatchValue(value=tenant_id)),
                    FieldCondition(key="indexed", match=MatchValue(value=True)),
                ]
            ),
            limit=limit,
            with_payload=True,
        )

        matches = [
            SegmentMatch(
                segment_id=int(point.id),
                video_id=point.payload["video_id"],
                segment_index=point.payload["segment_index"],
                start_time=point.payload["start_time"],
                end_time=point.payload["end_time"],
                text=point.payload["text"],
                language=point.payload.get("language"),
                similarity=point.score,
            )
            for point in result.points
        ]
        matches.sort(key=lambda m: m.similarity, reverse=True)

        logger.info(
            "vector_search_completed",
            tenant_id=tenant_id,
            limit=limit,
            results_count=len(matches),
            top_score=matches[0].similarity if matches else None,
        )
        return matches

    async def rebuild_index(self, row_count: int) -> str:
        """Recompute the list count from ``row_count`` and rebuild the index."""
        lists = self.qdrant.rebuild_index(row_count)
        return f"Index rebuilt with {lists} lists for {row_count} rows"
