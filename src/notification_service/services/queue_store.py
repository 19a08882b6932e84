"""Notification queue persistence.

The queue is a polled table. The only concurrency guard is the conditional
pending -> processing update in :meth:`QueueStore.mark_processing`: a job
claimed by one poller is invisible to every other poller's due-job query.
"""

from collections.abc import Iterable
from datetime import datetime

import structlog
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notification_service.infrastructure.database.models import (
    QueueJob,
    QueueJobStatus,
    QueueJobType,
)
from notification_service.services.payloads import InvalidPayloadError, ProductSnapshot
from shared.constants import QUEUE_BATCH_SIZE, QUEUE_MAX_ATTEMPTS
from shared.timeutils import utcnow

logger = structlog.get_logger()


class QueueStore:
    """Data access for :class:`QueueJob` rows.

    Methods flush but never commit; the caller owns the transaction.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def enqueue(
        self,
        subscription_id: int,
        job_type: QueueJobType,
        scheduled_for: datetime,
        payload: ProductSnapshot,
    ) -> QueueJob:
        """
        Add a pending job. Storage errors propagate to the caller.

        Args:
            subscription_id: Subscription the notification is for
            job_type: Kind of notification to send
            scheduled_for: Earliest time the job may run (naive UTC)
            payload: Product snapshot stored with the job

        Returns:
            QueueJob: The flushed job, with its id assigned
        """
        job = QueueJob(
            subscription_id=subscription_id,
            type=job_type,
            scheduled_for=scheduled_for,
            status=QueueJobStatus.PENDING,
            attempts=0,
            max_attempts=QUEUE_MAX_ATTEMPTS,
            data=payload.dumps(),
        )
        self.session.add(job)
        await self.session.flush()

        logger.info(
            "Job added to queue",
            job_id=job.id,
            subscription_id=subscription_id,
            type=job_type.value,
            scheduled_for=scheduled_for.isoformat(),
        )
        return job

    async def get(self, job_id: int) -> QueueJob | None:
        return await self.session.get(QueueJob, job_id, populate_existing=True)

    async def find_due_jobs(
        self, now: datetime | None = None, limit: int = QUEUE_BATCH_SIZE
    ) -> list[QueueJob]:
        """
        Pending jobs that are due and still have attempts left.

        Args:
            now: Cutoff for ``scheduled_for``; defaults to the current time
            limit: Maximum number of jobs to return

        Returns:
            list[QueueJob]: Jobs ordered by ``scheduled_for``, oldest first
        """
        now = now or utcnow()
        query = (
            select(QueueJob)
            .where(
                QueueJob.status == QueueJobStatus.PENDING,
                QueueJob.scheduled_for <= now,
                QueueJob.attempts < QueueJob.max_attempts,
            )
            .order_by(QueueJob.scheduled_for.asc(), QueueJob.id.asc())
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_processing(self, job_id: int) -> bool:
        """Claim a pending job and count the attempt.

        Returns False when another poller already claimed it, or it was
        cancelled in the meantime.
        """
        result = await self.session.execute(
            update(QueueJob)
            .where(QueueJob.id == job_id, QueueJob.status == QueueJobStatus.PENDING)
            .values(status=QueueJobStatus.PROCESSING, attempts=QueueJob.attempts + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def mark_completed(self, job_id: int, now: datetime | None = None) -> None:
        await self._set_terminal(job_id, QueueJobStatus.COMPLETED, now=now)

    async def mark_failed(
        self, job_id: int, reason: str, now: datetime | None = None
    ) -> None:
        await self._set_terminal(job_id, QueueJobStatus.FAILED, now=now, reason=reason)

    async def _set_terminal(
        self,
        job_id: int,
        status: QueueJobStatus,
        now: datetime | None = None,
        reason: str | None = None,
    ) -> None:
        values: dict[str, object] = {"status": status, "processed_at": now or utcnow()}
        if reason is not None:
            values["error_message"] = reason
        await self.session.execute(
            update(QueueJob)
            .where(QueueJob.id == job_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

    async def reschedule_for_retry(
        self, job_id: int, new_time: datetime, reason: str
    ) -> None:
        """Put a job that is being processed back in the queue. Attempts are kept."""
        await self.session.execute(
            update(QueueJob)
            .where(QueueJob.id == job_id, QueueJob.status == QueueJobStatus.PROCESSING)
            .values(
                status=QueueJobStatus.PENDING,
                scheduled_for=new_time,
                error_message=reason,
            )
            .execution_options(synchronize_session=False)
        )

    async def cancel_pending_by_type(
        self,
        subscription_id: int,
        types: Iterable[QueueJobType],
        reason: str,
    ) -> int:
        """Cancel a subscription's pending jobs of the given types."""
        result = await self.session.execute(
            update(QueueJob)
            .where(
                QueueJob.subscription_id == subscription_id,
                QueueJob.type.in_(list(types)),
                QueueJob.status == QueueJobStatus.PENDING,
            )
            .values(status=QueueJobStatus.CANCELLED, error_message=reason)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(
                "Cancelled pending jobs",
                subscription_id=subscription_id,
                count=result.rowcount,
                reason=reason,
            )
        return result.rowcount

    async def delete_terminal_older_than(self, cutoff: datetime) -> int:
        """Garbage-collect completed and failed jobs processed before ``cutoff``."""
        result = await self.session.execute(
            delete(QueueJob)
            .where(
                QueueJob.status.in_([QueueJobStatus.COMPLETED, QueueJobStatus.FAILED]),
                QueueJob.processed_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def has_reminder(self, subscription_id: int, reminder_number: int) -> bool:
        """Whether a reminder_email job for this ordinal is pending or in flight."""
        query = select(QueueJob).where(
            QueueJob.subscription_id == subscription_id,
            QueueJob.type == QueueJobType.REMINDER_EMAIL,
            QueueJob.status.in_([QueueJobStatus.PENDING, QueueJobStatus.PROCESSING]),
        )
        result = await self.session.execute(query)
        for job in result.scalars():
            try:
                snapshot = ProductSnapshot.loads(job.data)
            except InvalidPayloadError:
                continue
            if (snapshot.reminder_number or 1) == reminder_number:
                return True
        return False

    async def stats(self) -> dict[str, int]:
        """Job counts grouped by status."""
        query = select(QueueJob.status, func.count(QueueJob.id)).group_by(QueueJob.status)
        result = await self.session.execute(query)
        return {status.value: count for status, count in result.all()}

    async def has_pending(self, subscription_id: int, job_type: QueueJobType) -> bool:
        """Whether the subscription already has a pending job of this type."""
        query = (
            select(func.count(QueueJob.id))
            .where(
                QueueJob.subscription_id == subscription_id,
                QueueJob.type == job_type,
                QueueJob.status == QueueJobStatus.PENDING,
            )
        )
        result = await self.session.execute(query)
        return (result.scalar() or 0) > 0
