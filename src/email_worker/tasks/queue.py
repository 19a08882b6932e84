"""Notification queue tasks."""

import asyncio
from typing import Any

import structlog
from celery import shared_task

from email_worker.driver import build_driver
from notification_service.infrastructure.database.connection import worker_session_factory

logger = structlog.get_logger()


async def _process_queue() -> dict[str, Any]:
    async with worker_session_factory() as factory:
        return await build_driver(factory).run_once()


async def _cleanup_old_jobs() -> int:
    async with worker_session_factory() as factory:
        return await build_driver(factory).cleanup_old_jobs()


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def process_notification_queue(self) -> dict:
    """
    Process one batch of due notification jobs.

    Returns:
        dict: Pass result with queue stats and per-outcome counts
    """
    logger.info("Processing notification queue (celery)")
    try:
        return asyncio.run(_process_queue())
    except Exception as e:
        logger.error("Notification queue task failed", error=str(e))
        raise self.retry(exc=e)


@shared_task(bind=True, max_retries=3, default_retry_delay=300)
def cleanup_old_jobs(self) -> dict:
    """
    Delete completed and failed jobs older than the retention window.

    Returns:
        dict: Number of deleted jobs
    """
    try:
        deleted = asyncio.run(_cleanup_old_jobs())
    except Exception as e:
        logger.error("Queue cleanup task failed", error=str(e))
        raise self.retry(exc=e)

    return {"deleted": deleted}
