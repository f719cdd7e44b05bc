"""Qdrant vector database connection manager."""

import math

from qdrant_client import QdrantClient
from qdrant_client.http.models import Distance, HnswConfigDiff, PayloadSchemaType, VectorParams
import structlog

from app.core.config import settings

logger = structlog.get_logger(__name__)

# Payload fields filtered on at query time
PAYLOAD_INDEXES = {
    "tenant_id": PayloadSchemaType.INTEGER,
    "video_id": PayloadSchemaType.INTEGER,
    "indexed": PayloadSchemaType.BOOL,
}


def optimal_list_count(row_count: int, minimum: int | None = None) -> int:
    """Cluster/candidate-list count for an index over ``row_count`` vectors."""
    minimum = settings.index_min_lists if minimum is None else minimum
    return max(minimum, math.floor(math.sqrt(max(row_count, 0)) / 2))


class QdrantConnection:
    """Manages Qdrant client connection and collection setup."""

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        location: str | None = None,
        collection_name: str | None = None,
        dimensions: int | None = None,
    ):
        """Initialize the Qdrant connection manager.

        Args:
            url: Server URL. Defaults to the configured URL.
            api_key: Server API key.
            location: ``":memory:"`` for an in-process index (tests, local runs).
            collection_name: Collection holding segment vectors.
            dimensions: Embedding dimensionality.
        """
        self._url = url
        self._api_key = api_key
        self._location = location
        self.collection_name = collection_name or settings.qdrant_collection_name
        self.dimensions = dimensions or settings.embedding_dimensions
        self._client: QdrantClient | None = None

    @property
    def client(self) -> QdrantClient:
        """Get the Qdrant client, creating if needed."""
        if self._client is None:
            if self._location is not None:
                self._client = QdrantClient(location=self._location)
                logger.info("qdrant_connected", location=self._location)
            else:
                url = self._url or settings.qdrant_url
                self._client = QdrantClient(
                    url=url,
                    api_key=self._api_key or settings.qdrant_api_key,
                    timeout=120,
                )
                logger.info(
                    "qdrant_connected",
                    url=url[:50] + "..." if len(url) > 50 else url,
                )
        return self._client

    def collection_exists(self) -> bool:
        collections = self.client.get_collections()
        return any(c.name == self.collection_name for c in collections.collections)

    def ensure_collection(self) -> None:
        """Ensure the transcript segment collection and its payload indexes exist."""
        if self.collection_exists():
            logger.info("qdrant_collection_exists", collection_name=self.collection_name)
            return

        self.client.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(
                size=self.dimensions,
                distance=Distance.COSINE,
            ),
            hnsw_config=HnswConfigDiff(
                m=16,
                ef_construct=optimal_list_count(0),
            ),
        )
        for field_name, schema in PAYLOAD_INDEXES.items():
            self.client.create_payload_index(
                collection_name=self.collection_name,
                field_name=field_name,
                field_schema=schema,
            )
        logger.info("qdrant_collection_created", collection_name=self.collection_name)

    def rebuild_index(self, row_count: int) -> int:
        """Re-tune the ANN index for the current row count and trigger a rebuild.

        Returns:
            The list count applied.
        """
        lists = optimal_list_count(row_count)
        self.client.update_collection(
            collection_name=self.collection_name,
            hnsw_config=HnswConfigDiff(ef_construct=lists),
        )
        logger.info(
            "qdrant_index_rebuilt",
            collection_name=self.collection_name,
            rows=row_count,
            lists=lists,
        )
        return lists

    def get_collection_info(self) -> dict:
        """Get information about the collection."""
        info = self.client.get_collection(self.collection_name)
        return {
            "name": self.collection_name,
            "points_count": info.points_count,
            "status": info.status.value,
        }

    def close(self) -> None:
        """Close the Qdrant client connection."""
        if self._client is not None:
            self._client.close()
            self._client = None
            logger.info("qdrant_disconnected")


# Global instance
qdrant = QdrantConnection()
