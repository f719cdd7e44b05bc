"""Shared route dependencies."""

from functools import lru_cache

from app.services.ingestion.orchestrator import IngestionOrchestrator


@lru_cache(maxsize=1)
def get_orchestrator() -> IngestionOrchestrator:
    """Get the process-wide orchestrator, built on first use after startup."""
    return IngestionOrchestrator()
