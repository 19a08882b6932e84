"""Test doubles and database helpers shared by the test suite."""

from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notification_service.infrastructure.database.models import (
    QueueJob,
    QueueJobStatus,
    QueueJobType,
    ShopNotificationSettings,
    Subscription,
    SubscriptionStatus,
)
from notification_service.services.mail import NotificationContext, NotificationKind

SHOP = "test-shop.myshopify.com"


class FakeClock:
    """Controllable naive-UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMailSender:
    """Records every send; succeeds unless told otherwise."""

    def __init__(self, result: bool = True, error: Exception | None = None):
        self.result = result
        self.error = error
        self.sent: list[tuple[NotificationKind, str, NotificationContext]] = []

    async def send(
        self,
        kind: NotificationKind,
        recipient: str,
        context: NotificationContext,
    ) -> bool:
        self.sent.append((kind, recipient, context))
        if self.error is not None:
            raise self.error
        return self.result


# =============================================================================
# Data helpers
# =============================================================================


async def configure_shop(
    session_factory: async_sessionmaker[AsyncSession],
    shop_id: str = SHOP,
    **values: Any,
) -> None:
    """Insert a settings row for ``shop_id``."""
    async with session_factory() as session:
        session.add(ShopNotificationSettings(shop_id=shop_id, **values))
        await session.commit()


async def create_subscription(
    session_factory: async_sessionmaker[AsyncSession],
    email: str = "shopper@example.com",
    product_id: str = "1001",
    shop_id: str = SHOP,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    subscribed_at: datetime | None = None,
    **values: Any,
) -> int:
    async with session_factory() as session:
        subscription = Subscription(
            email=email,
            product_id=product_id,
            shop_id=shop_id,
            status=status,
            subscribed_at=subscribed_at or datetime(2026, 2, 1),
            reactivation_count=values.pop("reactivation_count", 0),
            reminder_count=values.pop("reminder_count", 0),
            **values,
        )
        session.add(subscription)
        await session.commit()
        return subscription.id


async def create_job(
    session_factory: async_sessionmaker[AsyncSession],
    subscription_id: int,
    job_type: QueueJobType = QueueJobType.THANKYOU_NOTIFICATION,
    scheduled_for: datetime | None = None,
    status: QueueJobStatus = QueueJobStatus.PENDING,
    data: str = '{"product_title": "Blue Mug", "product_handle": "blue-mug", "shop_domain": "test-shop.myshopify.com"}',
    **values: Any,
) -> int:
    async with session_factory() as session:
        job = QueueJob(
            subscription_id=subscription_id,
            type=job_type,
            scheduled_for=scheduled_for or datetime(2026, 3, 1, 11, 0, 0),
            status=status,
            attempts=values.pop("attempts", 0),
            max_attempts=values.pop("max_attempts", 3),
            data=data,
            **values,
        )
        session.add(job)
        await session.commit()
        return job.id


async def load(
    session_factory: async_sessionmaker[AsyncSession],
    model: type[Any],
    key: Any,
) -> Any:
    async with session_factory() as session:
        return await session.get(model, key)


async def jobs_for(
    session_factory: async_sessionmaker[AsyncSession],
    subscription_id: int,
) -> list[QueueJob]:
    async with session_factory() as session:
        result = await session.execute(
            select(QueueJob)
            .where(QueueJob.subscription_id == subscription_id)
            .order_by(QueueJob.id)
        )
        return list(result.scalars().all())
