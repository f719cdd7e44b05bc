#!/usr/bin/env python3
"""Rebuild the segment vector index for the current row count.

Schedule after bulk growth, e.g. every order-of-magnitude increase in
embedded segments.

Usage:
    python scripts/rebuild_index.py
    python scripts/rebuild_index.py --resync
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging, get_logger
from app.db.connection import db
from app.db.qdrant import qdrant
from app.services.ingestion.orchestrator import IngestionOrchestrator

setup_logging()
logger = get_logger(__name__)


async def main(resync: bool) -> None:
    await db.connect()
    try:
        qdrant.ensure_collection()
        orchestrator = IngestionOrchestrator()

        stats = await orchestrator.embedding_stats()
        print(f"Segments:        {stats.get('total_segments', 0)}")
        print(f"With embeddings: {stats.get('segments_with_embeddings', 0)}")
        print(f"Coverage:        {stats.get('coverage_percent')}%")

        message = await orchestrator.rebuild_search_index(resync=resync)
        print(message)
    finally:
        qdrant.close()
        await db.disconnect()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Rebuild the segment vector index")
    parser.add_argument(
        "--resync",
        action="store_true",
        help="Re-mirror every embedded segment from the database first",
    )
    args = parser.parse_args()
    asyncio.run(main(args.resync))
