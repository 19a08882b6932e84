"""Subscription persistence and state transitions.

Status flows ``active -> notified`` when the back-in-stock message is
delivered and ``active -> cancelled`` on explicit cancellation. Rows are
never deleted here.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notification_service.infrastructure.database.models import (
    NotificationLog,
    QueueJobType,
    Subscription,
    SubscriptionStatus,
)
from shared.timeutils import utcnow

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class SubscribeResult:
    """Outcome of a subscribe call."""

    subscription: Subscription
    created: bool = False
    reactivated: bool = False

    @property
    def already_active(self) -> bool:
        return not self.created and not self.reactivated


class SubscriptionStore:
    """Data access for :class:`Subscription` rows. The caller commits."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, subscription_id: int) -> Subscription | None:
        return await self.session.get(Subscription, subscription_id, populate_existing=True)

    async def find_by_key(
        self, email: str, product_id: str, shop_id: str
    ) -> Subscription | None:
        query = select(Subscription).where(
            Subscription.email == normalize_email(email),
            Subscription.product_id == str(product_id),
            Subscription.shop_id == str(shop_id),
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def subscribe(
        self,
        email: str,
        product_id: str,
        shop_id: str,
        *,
        phone: str | None = None,
        product_title: str | None = None,
        product_url: str | None = None,
        source: str | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
        now: datetime | None = None,
    ) -> SubscribeResult:
        """Create, reactivate, or return the subscription for this key.

        An already-active subscription is returned untouched.
        """
        now = now or utcnow()
        existing = await self.find_by_key(email, product_id, shop_id)

        if existing is not None and existing.status == SubscriptionStatus.ACTIVE:
            return SubscribeResult(subscription=existing)

        details = {
            "phone": (phone or "").strip() or None,
            "product_title": (product_title or "").strip() or None,
            "product_url": (product_url or "").strip() or None,
            "source": source,
            "user_agent": user_agent,
            "ip_address": ip_address,
        }

        if existing is not None:
            for key, value in details.items():
                setattr(existing, key, value)
            existing.status = SubscriptionStatus.ACTIVE
            existing.subscribed_at = now
            existing.reactivated_at = now
            existing.reactivation_count = (existing.reactivation_count or 0) + 1
            # A new restock cycle gets a fresh reminder cadence
            existing.purchase_detected_at = None
            existing.reminder_count = 0
            await self.session.flush()
            logger.info(
                "Subscription reactivated",
                subscription_id=existing.id,
                reactivation_count=existing.reactivation_count,
            )
            return SubscribeResult(subscription=existing, reactivated=True)

        subscription = Subscription(
            email=normalize_email(email),
            product_id=str(product_id),
            shop_id=str(shop_id),
            status=SubscriptionStatus.ACTIVE,
            subscribed_at=now,
            reactivation_count=0,
            reminder_count=0,
            **details,
        )
        self.session.add(subscription)
        await self.session.flush()
        logger.info(
            "Subscription created",
            subscription_id=subscription.id,
            product_id=subscription.product_id,
            shop_id=subscription.shop_id,
        )
        return SubscribeResult(subscription=subscription, created=True)

    async def find_active_for_product(
        self, product_id: str, shop_id: str
    ) -> list[Subscription]:
        query = (
            select(Subscription)
            .where(
                Subscription.product_id == str(product_id),
                Subscription.shop_id == shop_id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .order_by(Subscription.id)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_purchase_candidates(
        self, product_id: str, email: str, shop_id: str
    ) -> list[Subscription]:
        """Live subscriptions for this buyer whose purchase is not yet recorded.

        Notified subscriptions are included: they are the ones still
        receiving reminders.
        """
        query = select(Subscription).where(
            Subscription.product_id == str(product_id),
            Subscription.email == normalize_email(email),
            Subscription.shop_id == shop_id,
            Subscription.status.in_([SubscriptionStatus.ACTIVE, SubscriptionStatus.NOTIFIED]),
            Subscription.purchase_detected_at.is_(None),
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def mark_notified(
        self, subscription: Subscription, now: datetime | None = None
    ) -> bool:
        """
        Move an active subscription to notified.

        The transition is conditional on the row still being active, so a
        cancellation committed while the email was in flight is not undone.

        Args:
            subscription: Subscription whose back-in-stock email was sent
            now: Notification timestamp (naive UTC)

        Returns:
            bool: True if this call moved the row, False if it was no longer active
        """
        result = await self.session.execute(
            update(Subscription)
            .where(
                Subscription.id == subscription.id,
                Subscription.status == SubscriptionStatus.ACTIVE,
            )
            .values(status=SubscriptionStatus.NOTIFIED, notified_at=now or utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.get(subscription.id)
        return result.rowcount == 1

    async def record_reminder_sent(
        self, subscription: Subscription, now: datetime | None = None
    ) -> int:
        """Count a delivered reminder. Returns the new reminder count."""
        subscription.reminder_count = (subscription.reminder_count or 0) + 1
        subscription.last_reminder_at = now or utcnow()
        await self.session.flush()
        return subscription.reminder_count

    async def mark_purchase_detected(
        self, subscription: Subscription, now: datetime | None = None
    ) -> None:
        # The goal of the subscription is met, so it leaves the active set
        subscription.purchase_detected_at = now or utcnow()
        subscription.status = SubscriptionStatus.NOTIFIED
        await self.session.flush()

    async def cancel(self, subscription: Subscription) -> None:
        subscription.status = SubscriptionStatus.CANCELLED
        await self.session.flush()

    async def log_delivery(
        self,
        subscription: Subscription,
        job_type: QueueJobType,
        subject: str,
        content: str,
        now: datetime | None = None,
    ) -> NotificationLog:
        entry = NotificationLog(
            subscription_id=subscription.id,
            type=job_type.value,
            status="sent",
            subject=subject,
            content=content,
            recipient=subscription.email,
            sent_at=now or utcnow(),
        )
        self.session.add(entry)
        await self.session.flush()
        return entry
