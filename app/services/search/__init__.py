"""Similarity search over indexed transcript segments."""

from app.services.search.vector_search import VectorSearchService

__all__ = ["VectorSearchService"]
