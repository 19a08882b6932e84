"""Unit tests for reminder cadence scheduling."""

from datetime import datetime, timedelta

import pytest

from helpers import SHOP, configure_shop, create_subscription, jobs_for
from notification_service.infrastructure.database.models import QueueJobStatus, QueueJobType
from notification_service.services.payloads import ProductSnapshot
from notification_service.services.reminder_scheduler import ReminderScheduler, reminder_delay

NOW = datetime(2026, 3, 1, 12, 0)
PAYLOAD = ProductSnapshot(product_title="Blue Mug")


class TestReminderDelay:
    @pytest.mark.parametrize(
        ("hours", "expected"),
        [
            (0.083, timedelta(minutes=5)),
            (0.5, timedelta(minutes=30)),
            (1, timedelta(hours=1)),
            (2.5, timedelta(hours=2)),
            (48, timedelta(hours=48)),
            (None, timedelta(hours=24)),
            (0, timedelta(hours=24)),
        ],
    )
    def test_delay(self, hours: float | None, expected: timedelta) -> None:
        assert reminder_delay(hours) == expected


class TestScheduleFirstReminder:
    @pytest.mark.asyncio
    async def test_noop_when_reminders_disabled(self, session_factory) -> None:
        await configure_shop(session_factory, reminder_email_enabled=False)
        subscription_id = await create_subscription(session_factory)

        async with session_factory() as session:
            job = await ReminderScheduler(session).schedule_first_reminder(
                subscription_id, SHOP, PAYLOAD, NOW
            )
            await session.commit()

        assert job is None
        assert await jobs_for(session_factory, subscription_id) == []

    @pytest.mark.asyncio
    async def test_noop_for_shop_without_settings(self, session_factory) -> None:
        subscription_id = await create_subscription(session_factory)

        async with session_factory() as session:
            job = await ReminderScheduler(session).schedule_first_reminder(
                subscription_id, SHOP, PAYLOAD, NOW
            )

        assert job is None

    @pytest.mark.asyncio
    async def test_sub_hour_delay(self, session_factory) -> None:
        await configure_shop(
            session_factory, reminder_email_enabled=True, reminder_delay_hours=0.083
        )
        subscription_id = await create_subscription(session_factory)

        async with session_factory() as session:
            await ReminderScheduler(session).schedule_first_reminder(
                subscription_id, SHOP, PAYLOAD, NOW
            )
            await session.commit()

        [job] = await jobs_for(session_factory, subscription_id)
        assert job.type == QueueJobType.REMINDER_EMAIL
        assert job.status == QueueJobStatus.PENDING
        assert job.scheduled_for == NOW + timedelta(minutes=5)

        snapshot = ProductSnapshot.loads(job.data)
        assert snapshot.reminder_number == 1
        assert snapshot.original_notification_sent_at == NOW
        assert snapshot.product_title == "Blue Mug"

    @pytest.mark.asyncio
    async def test_is_idempotent(self, session_factory) -> None:
        await configure_shop(session_factory, reminder_email_enabled=True)
        subscription_id = await create_subscription(session_factory)

        async with session_factory() as session:
            scheduler = ReminderScheduler(session)
            first = await scheduler.schedule_first_reminder(subscription_id, SHOP, PAYLOAD, NOW)
            second = await scheduler.schedule_first_reminder(subscription_id, SHOP, PAYLOAD, NOW)
            await session.commit()

        assert first is not None
        assert second is None
        assert len(await jobs_for(session_factory, subscription_id)) == 1


class TestScheduleNextReminder:
    @pytest.mark.asyncio
    async def test_enqueues_next_number(self, session_factory) -> None:
        await configure_shop(
            session_factory, reminder_email_enabled=True, reminder_delay_hours=3, reminder_max_count=3
        )
        subscription_id = await create_subscription(session_factory)

        async with session_factory() as session:
            job = await ReminderScheduler(session).schedule_next_reminder(
                subscription_id, SHOP, PAYLOAD.for_reminder(1, NOW), reminder_count=1, now=NOW
            )
            await session.commit()

        assert job is not None
        assert job.scheduled_for == NOW + timedelta(hours=3)
        assert ProductSnapshot.loads(job.data).reminder_number == 2

    @pytest.mark.asyncio
    async def test_stops_at_default_max_count(self, session_factory) -> None:
        subscription_id = await create_subscription(session_factory)

        async with session_factory() as session:
            job = await ReminderScheduler(session).schedule_next_reminder(
                subscription_id, SHOP, PAYLOAD, reminder_count=2, now=NOW
            )

        assert job is None


class TestCancelReminders:
    @pytest.mark.asyncio
    async def test_cancels_email_and_sms_reminders(self, session_factory) -> None:
        await configure_shop(session_factory, reminder_email_enabled=True)
        subscription_id = await create_subscription(session_factory)

        async with session_factory() as session:
            scheduler = ReminderScheduler(session)
            await scheduler.schedule_first_reminder(subscription_id, SHOP, PAYLOAD, NOW)
            cancelled = await scheduler.cancel_reminders(subscription_id, "Purchase detected")
            await session.commit()

        assert cancelled == 1
        [job] = await jobs_for(session_factory, subscription_id)
        assert job.status == QueueJobStatus.CANCELLED
        assert job.error_message == "Purchase detected"
