"""In-process queue driver.

Polls the notification queue on a fixed interval and garbage-collects old
jobs on a slower one. The API process owns one driver (see the FastAPI
lifespan in ``notification_service.main``); Celery beat and the HTTP cron
trigger are alternatives that call the same dispatcher.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from email_worker.services.mail_sender import get_mail_sender
from notification_service.config import Settings, get_settings
from notification_service.services.dispatcher import NotificationDispatcher
from notification_service.services.mail import MailSender
from notification_service.services.queue_store import QueueStore
from shared.constants import (
    QUEUE_CLEANUP_INTERVAL_MINUTES,
    QUEUE_POLL_INTERVAL_SECONDS,
    QUEUE_RETENTION_DAYS,
)
from shared.timeutils import utcnow

logger = structlog.get_logger()


class QueueDriver:
    """Periodic dispatch and cleanup with explicit start/stop."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        poll_interval: float = QUEUE_POLL_INTERVAL_SECONDS,
        cleanup_interval: float = QUEUE_CLEANUP_INTERVAL_MINUTES * 60,
        retention: timedelta = timedelta(days=QUEUE_RETENTION_DAYS),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.dispatcher = dispatcher
        self.session_factory = session_factory
        self.poll_interval = poll_interval
        self.cleanup_interval = cleanup_interval
        self.retention = retention
        self.clock = clock

        self._tasks: list[asyncio.Task] = []
        self._started_at: datetime | None = None

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Start both periodic loops. Calling it again while running is a no-op."""
        if self.is_running:
            logger.info("Queue driver already running")
            return

        self._started_at = self.clock()
        self._tasks = [
            asyncio.create_task(
                self._every(self.poll_interval, self.dispatcher.process_due_jobs, "dispatch"),
                name="queue-dispatch",
            ),
            asyncio.create_task(
                self._every(self.cleanup_interval, self.cleanup_old_jobs, "cleanup"),
                name="queue-cleanup",
            ),
        ]
        logger.info(
            "Queue driver started",
            poll_interval=self.poll_interval,
            cleanup_interval=self.cleanup_interval,
        )

    async def stop(self) -> None:
        if not self.is_running:
            logger.info("Queue driver not running")
            return

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._started_at = None
        logger.info("Queue driver stopped")

    def status(self) -> dict[str, Any]:
        return {
            "is_running": self.is_running,
            "started_at": self._started_at.isoformat() if self._started_at else None,
        }

    async def _every(
        self, interval: float, tick: Callable[[], Awaitable[Any]], name: str
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Queue driver tick failed", loop=name, error=str(e))

    async def cleanup_old_jobs(self) -> int:
        """Delete completed and failed jobs processed before the retention window."""
        cutoff = self.clock() - self.retention
        async with self.session_factory() as session:
            deleted = await QueueStore(session).delete_terminal_older_than(cutoff)
            await session.commit()

        logger.info("Cleaned up old queue jobs", deleted=deleted, cutoff=cutoff.isoformat())
        return deleted

    async def stats(self) -> dict[str, int]:
        async with self.session_factory() as session:
            return await QueueStore(session).stats()

    async def run_once(self) -> dict[str, Any]:
        """One dispatch pass, outside the periodic loop."""
        summary = await self.dispatcher.process_due_jobs()
        return {
            "success": True,
            "timestamp": self.clock().isoformat(),
            "stats": await self.stats(),
            "processed": summary.to_dict(),
        }


def build_dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
    mail_sender: MailSender | None = None,
) -> NotificationDispatcher:
    """Dispatcher wired from settings."""
    settings = settings or get_settings()
    return NotificationDispatcher(
        session_factory,
        mail_sender or get_mail_sender(settings),
        batch_size=settings.queue_batch_size,
        retry_delay=timedelta(minutes=settings.queue_retry_delay_minutes),
    )


def build_driver(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings | None = None,
    mail_sender: MailSender | None = None,
) -> QueueDriver:
    """Queue driver wired from settings."""
    settings = settings or get_settings()
    return QueueDriver(
        build_dispatcher(session_factory, settings, mail_sender),
        session_factory,
        poll_interval=settings.queue_poll_interval_seconds,
        cleanup_interval=settings.queue_cleanup_interval_minutes * 60,
        retention=timedelta(days=settings.queue_retention_days),
    )
