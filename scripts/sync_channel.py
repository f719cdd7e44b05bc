#!/usr/bin/env python3
"""
Channel sync script for cron.

This script:
1. Syncs video metadata for one tenant, or every tenant with a linked channel
2. Records each sync as a job in the processing ledger
3. Logs results for monitoring
4. Exits with appropriate status codes for cron

Usage:
    # Every connected tenant
    python scripts/sync_channel.py

    # One tenant, initial bulk load
    python scripts/sync_channel.py --tenant 3 --max-videos 500
"""

import argparse
import asyncio
import sys
from datetime import datetime, UTC
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.errors import ServiceError
from app.core.logging import setup_logging, get_logger
from app.db.connection import db
from app.db.qdrant import qdrant
from app.services.ingestion.orchestrator import IngestionOrchestrator

setup_logging()
logger = get_logger(__name__)


async def main(tenant_id: int | None, max_videos: int | None) -> int:
    """Run the sync and return exit code.

    Returns:
        0 = success
        1 = partial failure (some tenants failed)
        2 = complete failure
    """
    start_time = datetime.now(UTC)

    try:
        await db.connect()
        await db.init_schema()
        qdrant.ensure_collection()

        orchestrator = IngestionOrchestrator()
        if tenant_id is not None:
            tenant_ids = [tenant_id]
        else:
            tenant_ids = [t["id"] for t in await orchestrator.tenant_repo.list_connected()]

        logger.info("sync_started", tenants=len(tenant_ids), max_videos=max_videos)

        succeeded = 0
        failed = 0
        for tid in tenant_ids:
            try:
                result = await orchestrator.sync_channel(tid, max_videos=max_videos)
                succeeded += 1
                print(
                    f"Tenant {tid}: {result['videos_found']} videos "
                    f"({result['videos_created']} new, {result['videos_updated']} updated)"
                )
            except ServiceError as e:
                failed += 1
                logger.error("tenant_sync_failed", tenant_id=tid, **e.to_dict())
                print(f"Tenant {tid}: FAILED - {e.message} (action: {e.action or 'none'})")

        duration = (datetime.now(UTC) - start_time).total_seconds()
        logger.info(
            "sync_completed",
            succeeded=succeeded,
            failed=failed,
            duration_seconds=round(duration, 1),
        )

        if failed > 0:
            return 2 if succeeded == 0 else 1
        return 0

    except Exception as e:
        logger.error("sync_failed", error=str(e))
        print(f"\nERROR: {e}")
        return 2
    finally:
        qdrant.close()
        await db.disconnect()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Sync channel videos for tenants",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--tenant",
        type=int,
        default=None,
        help="Tenant ID (default: every tenant with a linked channel)",
    )
    parser.add_argument(
        "--max-videos",
        type=int,
        default=None,
        help="Maximum videos to check (defaults to YOUTUBE_SYNC_MAX_VIDEOS)",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    sys.exit(asyncio.run(main(tenant_id=args.tenant, max_videos=args.max_videos)))
