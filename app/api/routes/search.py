"""Search API routes over indexed transcript segments."""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

import structlog

from app.api.dependencies import get_orchestrator
from app.models.transcript import SegmentMatch
from app.services.ingestion.orchestrator import IngestionOrchestrator

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api", tags=["search"])


class SearchRequest(BaseModel):
    """Request body for similarity search."""

    embedding: list[float] = Field(..., min_length=1, description="Query embedding")
    limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum number of results to return",
    )


class RebuildRequest(BaseModel):
    resync: bool = Field(default=False, description="Re-mirror every embedded segment first")


@router.post("/tenants/{tenant_id}/search")
async def search_segments(
    tenant_id: int,
    request: SearchRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Find the tenant's indexed segments nearest to the query embedding.

    A query with the wrong dimensionality returns no results.
    """
    results: list[SegmentMatch] = await orchestrator.search.search(
        tenant_id,
        request.embedding,
        limit=request.limit,
    )
    return {
        "tenant_id": tenant_id,
        "results": [r.model_dump() for r in results],
        "total_results": len(results),
    }


@router.get("/index/stats")
async def index_stats(
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Embedding coverage across all tenants."""
    return await orchestrator.embedding_stats()


@router.post("/index/rebuild")
async def rebuild_index(
    request: RebuildRequest,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, str]:
    """Rebuild the vector index for the current row count."""
    message = await orchestrator.rebuild_search_index(resync=request.resync)
    return {"message": message}
