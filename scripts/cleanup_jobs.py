#!/usr/bin/env python3
"""Delete finished processing jobs past the retention window.

Videos and transcript segments are never touched.

Usage:
    python scripts/cleanup_jobs.py
    python scripts/cleanup_jobs.py --retention-days 7
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging, get_logger
from app.db.connection import db
from app.services.ingestion.jobs import JobTracker

setup_logging()
logger = get_logger(__name__)


async def main(retention_days: int | None) -> None:
    await db.connect()
    try:
        deleted = await JobTracker(db.connection).cleanup_old_jobs(retention_days)
    finally:
        await db.disconnect()
    print(f"Deleted {deleted} finished jobs")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Delete old finished processing jobs")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=None,
        help="Keep jobs finished within this many days (defaults to JOB_RETENTION_DAYS)",
    )
    args = parser.parse_args()
    asyncio.run(main(args.retention_days))
