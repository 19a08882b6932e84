"""Reminder cadence scheduling.

How many reminders were sent, and when, lives on the subscription row, so
"enqueue one more?" is a counter comparison that survives queue cleanup.
"""

from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from notification_service.infrastructure.database.models import (
    REMINDER_JOB_TYPES,
    QueueJob,
    QueueJobType,
)
from notification_service.services.payloads import ProductSnapshot
from notification_service.services.queue_store import QueueStore
from notification_service.services.settings_store import ShopNotificationSettingsStore
from shared.constants import DEFAULT_REMINDER_DELAY_HOURS
from shared.timeutils import utcnow

logger = structlog.get_logger()


def reminder_delay(delay_hours: float | None) -> timedelta:
    """Delay between a send and the following reminder.

    Values below one hour are rounded to whole minutes so short test
    cadences (0.083 h -> 5 min) work. Larger values count whole hours.
    """
    hours = delay_hours or DEFAULT_REMINDER_DELAY_HOURS
    if hours < 1:
        return timedelta(minutes=round(hours * 60))
    return timedelta(hours=int(hours))


class ReminderScheduler:
    """Enqueues reminder_email jobs according to each shop's settings."""

    def __init__(self, session: AsyncSession):
        self.queue = QueueStore(session)
        self.settings = ShopNotificationSettingsStore(session)

    async def schedule_first_reminder(
        self,
        subscription_id: int,
        shop_id: str,
        payload: ProductSnapshot,
        now: datetime | None = None,
    ) -> QueueJob | None:
        """
        Queue reminder #1 after a back-in-stock send, if the shop wants reminders.

        Args:
            subscription_id: Subscription that was just notified
            shop_id: Shop whose reminder settings apply
            payload: Snapshot carried over from the back-in-stock job
            now: Send time; the reminder is due one reminder delay later

        Returns:
            QueueJob | None: The new job, or None when reminders are off or
            reminder #1 already exists
        """
        now = now or utcnow()
        settings = await self.settings.get(shop_id)

        if not settings.reminder_email_enabled:
            logger.debug("Reminder emails disabled", shop_id=shop_id)
            return None

        return await self._enqueue_reminder(
            subscription_id,
            reminder_number=1,
            scheduled_for=now + reminder_delay(settings.reminder_delay_hours),
            payload=payload.for_reminder(1, original_notification_sent_at=now),
        )

    async def schedule_next_reminder(
        self,
        subscription_id: int,
        shop_id: str,
        payload: ProductSnapshot,
        reminder_count: int,
        now: datetime | None = None,
    ) -> QueueJob | None:
        """Queue the reminder after ``reminder_count`` delivered ones, up to the max."""
        now = now or utcnow()
        settings = await self.settings.get(shop_id)

        if reminder_count >= settings.reminder_max_count:
            logger.info(
                "Reminder cadence complete",
                subscription_id=subscription_id,
                reminder_count=reminder_count,
                max_count=settings.reminder_max_count,
            )
            return None

        next_number = reminder_count + 1
        return await self._enqueue_reminder(
            subscription_id,
            reminder_number=next_number,
            scheduled_for=now + reminder_delay(settings.reminder_delay_hours),
            payload=payload.for_reminder(next_number),
        )

    async def cancel_reminders(self, subscription_id: int, reason: str) -> int:
        """Cancel every pending reminder for a subscription."""
        return await self.queue.cancel_pending_by_type(
            subscription_id, REMINDER_JOB_TYPES, reason
        )

    async def _enqueue_reminder(
        self,
        subscription_id: int,
        reminder_number: int,
        scheduled_for: datetime,
        payload: ProductSnapshot,
    ) -> QueueJob | None:
        if await self.queue.has_reminder(subscription_id, reminder_number):
            logger.warning(
                "Reminder already queued",
                subscription_id=subscription_id,
                reminder_number=reminder_number,
            )
            return None

        job = await self.queue.enqueue(
            subscription_id,
            QueueJobType.REMINDER_EMAIL,
            scheduled_for,
            payload,
        )
        logger.info(
            "Reminder scheduled",
            subscription_id=subscription_id,
            reminder_number=reminder_number,
            scheduled_for=scheduled_for.isoformat(),
        )
        return job
