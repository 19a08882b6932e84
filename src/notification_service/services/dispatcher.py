"""Notification dispatcher.

Executes due queue jobs one at a time. Each job runs in its own session:

1. claim it (pending -> processing, attempts + 1) and commit, so no other
   poller can pick it up;
2. check the subscription preconditions for the job type;
3. call the mail sender;
4. on success, apply the subscription update, reminder scheduling and the
   completion mark in a single commit; on failure, retry in 5 minutes or
   fail once attempts are exhausted.
"""

from collections.abc import Callable
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import assert_never

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notification_service.infrastructure.database.models import (
    QueueJob,
    QueueJobType,
    Subscription,
    SubscriptionStatus,
)
from notification_service.services.mail import MailSender, NotificationContext, NotificationKind
from notification_service.services.payloads import InvalidPayloadError, ProductSnapshot
from notification_service.services.queue_store import QueueStore
from notification_service.services.reminder_scheduler import ReminderScheduler
from notification_service.services.subscription_store import SubscriptionStore
from shared.constants import (
    DEFAULT_PRODUCT_TITLE,
    ERROR_MAX_ATTEMPTS,
    ERROR_RETRYING,
    ERROR_SUBSCRIPTION_NOT_FOUND,
    ERROR_UNSUPPORTED_JOB_TYPE,
    QUEUE_BATCH_SIZE,
    QUEUE_RETRY_DELAY_MINUTES,
)
from shared.timeutils import utcnow

logger = structlog.get_logger()


class JobOutcome(str, Enum):
    """What happened to a single job during a dispatch pass."""

    SENT = "sent"
    SKIPPED = "skipped"
    RETRIED = "retried"
    FAILED = "failed"
    NOT_CLAIMED = "not_claimed"


@dataclass
class DispatchSummary:
    """Counts for one dispatch pass."""

    picked: int = 0
    sent: int = 0
    skipped: int = 0
    retried: int = 0
    failed: int = 0
    not_claimed: int = 0

    def record(self, outcome: JobOutcome) -> None:
        field = outcome.value
        setattr(self, field, getattr(self, field) + 1)

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


def should_send_reminder(subscription: Subscription) -> bool:
    """Reminders stop once a purchase is detected or the subscription is cancelled."""
    if subscription.purchase_detected_at is not None:
        return False
    return subscription.status != SubscriptionStatus.CANCELLED


def preconditions_met(job_type: QueueJobType, subscription: Subscription) -> bool:
    """Whether the subscription is still in a state this job type applies to.

    Reminders fire after the subscription moved to ``notified``, so only a
    cancelled subscription stops them. Back-in-stock sends need ``active``.
    """
    match job_type:
        case QueueJobType.REMINDER_EMAIL | QueueJobType.REMINDER_SMS:
            return subscription.status != SubscriptionStatus.CANCELLED
        case QueueJobType.FIRST_NOTIFICATION | QueueJobType.THANKYOU_NOTIFICATION:
            return subscription.status == SubscriptionStatus.ACTIVE
        case _:
            assert_never(job_type)


def build_context(
    subscription: Subscription, payload: ProductSnapshot, kind: NotificationKind
) -> NotificationContext:
    """Subscription details win over the snapshot taken at enqueue time."""
    return NotificationContext(
        product_title=(
            subscription.product_title or payload.product_title or DEFAULT_PRODUCT_TITLE
        ),
        product_url=subscription.product_url or payload.resolve_product_url(),
        shop_id=subscription.shop_id,
        shop_domain=payload.shop_domain,
        reminder_number=(payload.reminder_number or 1) if kind == NotificationKind.REMINDER else None,
    )


class NotificationDispatcher:
    """Processes batches of due notification jobs."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        mail_sender: MailSender,
        *,
        batch_size: int = QUEUE_BATCH_SIZE,
        retry_delay: timedelta = timedelta(minutes=QUEUE_RETRY_DELAY_MINUTES),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.mail_sender = mail_sender
        self.batch_size = batch_size
        self.retry_delay = retry_delay
        self.clock = clock

    async def process_due_jobs(self) -> DispatchSummary:
        """
        Run one batch of due jobs, one job at a time.

        Never raises. A store error ends the batch early and is logged; the
        next tick picks up where this one stopped.

        Returns:
            DispatchSummary: Per-outcome counts for the jobs picked up
        """
        summary = DispatchSummary()
        try:
            async with self.session_factory() as session:
                jobs = await QueueStore(session).find_due_jobs(self.clock(), self.batch_size)
                job_ids = [job.id for job in jobs]

            logger.info("Processing notification queue", due_jobs=len(job_ids))

            for job_id in job_ids:
                summary.picked += 1
                summary.record(await self.process_job(job_id))
        except Exception as e:
            logger.error(
                "Error processing notification queue",
                error=str(e),
                **summary.to_dict(),
            )
            return summary

        if summary.picked:
            logger.info("Notification queue batch finished", **summary.to_dict())
        return summary

    async def process_job(self, job_id: int) -> JobOutcome:
        """Claim and execute a single job.

        Unexpected errors inside the job are recorded on the job as a
        failure. Errors while recording that failure propagate.
        """
        now = self.clock()
        async with self.session_factory() as session:
            queue = QueueStore(session)
            if not await queue.mark_processing(job_id):
                await session.rollback()
                logger.debug("Job already claimed", job_id=job_id)
                return JobOutcome.NOT_CLAIMED
            await session.commit()

            job = await queue.get(job_id)
            logger.info(
                "Processing job",
                job_id=job_id,
                type=job.type.value,
                subscription_id=job.subscription_id,
                attempts=job.attempts,
            )

            try:
                return await self._execute(session, job, now)
            except Exception as e:
                await session.rollback()
                logger.exception("Error processing job", job_id=job_id)
                await queue.mark_failed(job_id, str(e) or e.__class__.__name__, now)
                await session.commit()
                return JobOutcome.FAILED

    async def _execute(self, session: AsyncSession, job: QueueJob, now: datetime) -> JobOutcome:
        subscription = await SubscriptionStore(session).get(job.subscription_id)

        if subscription is None:
            logger.warning(
                "Subscription not found", job_id=job.id, subscription_id=job.subscription_id
            )
            return await self._fail(session, job, ERROR_SUBSCRIPTION_NOT_FOUND, now)

        if not preconditions_met(job.type, subscription):
            logger.info(
                "Subscription no longer eligible, skipping job",
                job_id=job.id,
                status=subscription.status.value,
            )
            return await self._complete(session, job, now)

        try:
            payload = ProductSnapshot.loads(job.data)
        except InvalidPayloadError as e:
            return await self._fail(session, job, str(e), now)

        match job.type:
            case QueueJobType.FIRST_NOTIFICATION:
                kind = NotificationKind.FIRST
            case QueueJobType.THANKYOU_NOTIFICATION:
                kind = NotificationKind.THANKYOU
            case QueueJobType.REMINDER_EMAIL:
                if not should_send_reminder(subscription):
                    logger.info("Reminder no longer needed", job_id=job.id)
                    return await self._complete(session, job, now)
                kind = NotificationKind.REMINDER
            case QueueJobType.REMINDER_SMS:
                # No SMS channel exists
                return await self._fail(session, job, ERROR_UNSUPPORTED_JOB_TYPE, now)
            case _:
                assert_never(job.type)

        context = build_context(subscription, payload, kind)
        # Release the read transaction before the network call
        await session.commit()

        if await self._send(kind, subscription.email, context, job.id):
            await self._on_sent(session, job, subscription, payload, context, now)
            return JobOutcome.SENT
        return await self._on_send_failed(session, job, now)

    async def _send(
        self,
        kind: NotificationKind,
        recipient: str,
        context: NotificationContext,
        job_id: int,
    ) -> bool:
        try:
            return bool(await self.mail_sender.send(kind, recipient, context))
        except Exception as e:
            logger.warning("Mail sender raised", job_id=job_id, kind=kind.value, error=str(e))
            return False

    async def _on_sent(
        self,
        session: AsyncSession,
        job: QueueJob,
        subscription: Subscription,
        payload: ProductSnapshot,
        context: NotificationContext,
        now: datetime,
    ) -> None:
        subscriptions = SubscriptionStore(session)
        scheduler = ReminderScheduler(session)

        # The row may have been cancelled or purchased while the email was in flight
        subscription = await subscriptions.get(subscription.id) or subscription

        match job.type:
            case QueueJobType.FIRST_NOTIFICATION | QueueJobType.THANKYOU_NOTIFICATION:
                notified = await subscriptions.mark_notified(subscription, now)
                await subscriptions.log_delivery(
                    subscription,
                    job.type,
                    subject="Product Back in Stock",
                    content=f"{context.product_title} is back in stock!",
                    now=now,
                )
                if notified and should_send_reminder(subscription):
                    await scheduler.schedule_first_reminder(
                        subscription.id, subscription.shop_id, payload, now
                    )
                else:
                    logger.info(
                        "Subscription changed during send, no reminders scheduled",
                        job_id=job.id,
                        status=subscription.status.value,
                    )
            case QueueJobType.REMINDER_EMAIL:
                reminder_count = await subscriptions.record_reminder_sent(subscription, now)
                if should_send_reminder(subscription):
                    await scheduler.schedule_next_reminder(
                        subscription.id, subscription.shop_id, payload, reminder_count, now
                    )
            case QueueJobType.REMINDER_SMS:
                raise ValueError("reminder_sms jobs are never sent")
            case _:
                assert_never(job.type)

        await QueueStore(session).mark_completed(job.id, now)
        await session.commit()
        logger.info("Job completed successfully", job_id=job.id, type=job.type.value)

    async def _on_send_failed(
        self, session: AsyncSession, job: QueueJob, now: datetime
    ) -> JobOutcome:
        if job.attempts >= job.max_attempts:
            logger.warning("Job failed permanently", job_id=job.id, attempts=job.attempts)
            return await self._fail(session, job, ERROR_MAX_ATTEMPTS, now)

        retry_at = now + self.retry_delay
        await QueueStore(session).reschedule_for_retry(job.id, retry_at, ERROR_RETRYING)
        await session.commit()
        logger.info(
            "Job rescheduled for retry",
            job_id=job.id,
            attempts=job.attempts,
            retry_at=retry_at.isoformat(),
        )
        return JobOutcome.RETRIED

    async def _complete(self, session: AsyncSession, job: QueueJob, now: datetime) -> JobOutcome:
        await QueueStore(session).mark_completed(job.id, now)
        await session.commit()
        return JobOutcome.SKIPPED

    async def _fail(
        self, session: AsyncSession, job: QueueJob, reason: str, now: datetime
    ) -> JobOutcome:
        await QueueStore(session).mark_failed(job.id, reason, now)
        await session.commit()
        return JobOutcome.FAILED
