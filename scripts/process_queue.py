#!/usr/bin/env python3
"""CLI script to run one notification queue pass (for system cron).

Usage:
    python scripts/process_queue.py [--cleanup]
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import structlog

from email_worker.driver import build_driver
from notification_service.infrastructure.database.connection import worker_session_factory
from shared.log_config import configure_logging

configure_logging()
logger = structlog.get_logger()


async def main(cleanup: bool) -> None:
    """Dispatch due jobs, optionally garbage-collecting old ones first."""
    async with worker_session_factory() as factory:
        driver = build_driver(factory)

        if cleanup:
            deleted = await driver.cleanup_old_jobs()
            logger.info("Cleanup completed", deleted=deleted)

        result = await driver.run_once()
        logger.info("Queue pass completed", stats=result["stats"], **result["processed"])


if __name__ == "__main__":
    asyncio.run(main(cleanup="--cleanup" in sys.argv[1:]))
