#!/usr/bin/env python3
"""Refresh credentials that are expired or about to expire.

Run every few minutes from cron so request paths rarely pay for a refresh.

Usage:
    python scripts/refresh_tokens.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.logging import setup_logging, get_logger
from app.db.connection import db
from app.services.credentials.token_manager import CredentialManager, build_cipher

setup_logging()
logger = get_logger(__name__)


async def main() -> int:
    await db.connect()
    try:
        manager = CredentialManager(db.connection, build_cipher())
        summary = await manager.refresh_expiring()
        await manager.oauth.close()
    finally:
        await db.disconnect()

    print(f"Due: {summary['due']}  Refreshed: {summary['refreshed']}  Failed: {summary['failed']}")
    for failure in summary["failures"]:
        print(f"  tenant {failure['tenant_id']}: {failure['error']} - {failure['message']}")

    return 1 if summary["failed"] else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
