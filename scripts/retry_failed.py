#!/usr/bin/env python3
"""Schedule retries for failed jobs and hand off the ones that are due.

Usage:
    python scripts/retry_failed.py
    python scripts/retry_failed.py --limit 20
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


async def main(limit: int) -> None:
    await db.connect()
    try:
        orchestrator = IngestionOrchestrator()

        retried = await orchestrator.retry_failed(limit=limit)
        print(
            f"Retry candidates: {retried['candidates']}  scheduled: {retried['retried']}  "
            f"exhausted: {retried['exhausted']}  already active: {retried['skipped']}"
        )

        due = await orchestrator.dispatch_due(limit=limit)
        print(f"Due jobs: {due['due']}  dispatched: {due['dispatched']}  failed: {due['failed']}")
    finally:
        qdrant.close()
        await db.disconnect()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Retry failed processing jobs")
    parser.add_argument("--limit", type=int, default=100, help="Maximum jobs to process")
    args = parser.parse_args()
    asyncio.run(main(args.limit))
