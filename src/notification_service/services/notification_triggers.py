"""Events that put work on the notification queue or take it off.

- a product comes back in stock (Shopify ``products/update`` webhook)
- an order is placed (Shopify ``orders/create`` webhook)
- a shopper subscribes from the storefront widget
- a subscription is cancelled

Every function works inside the caller's session and leaves the commit to
the caller.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from notification_service.infrastructure.database.models import (
    QueueJobType,
    Subscription,
    SubscriptionStatus,
)
from notification_service.services.payloads import ProductSnapshot
from notification_service.services.queue_store import QueueStore
from notification_service.services.reminder_scheduler import ReminderScheduler
from notification_service.services.settings_store import ShopNotificationSettingsStore
from notification_service.services.subscription_store import SubscribeResult, SubscriptionStore
from shared.constants import ERROR_PURCHASE_DETECTED, ERROR_SUBSCRIPTION_CANCELLED
from shared.timeutils import utcnow

logger = structlog.get_logger()


# =============================================================================
# Shopify webhook payloads (only the fields used here)
# =============================================================================


class ShopifyVariant(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    inventory_quantity: int | None = 0


class ShopifyProduct(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    title: str | None = None
    handle: str | None = None
    variants: list[ShopifyVariant] = Field(default_factory=list)


class ShopifyLineItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    product_id: int | str | None = None


class ShopifyOrder(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int | str
    email: str | None = None
    line_items: list[ShopifyLineItem] = Field(default_factory=list)


# =============================================================================
# Restock
# =============================================================================


@dataclass
class RestockResult:
    enabled: bool
    notifications_added: int = 0


async def handle_product_update(
    session: AsyncSession,
    shop_domain: str,
    product: ShopifyProduct,
    now: datetime | None = None,
) -> RestockResult:
    """Queue back-in-stock notifications when a product has stock again.

    Each active subscription gets at most one pending notification, however
    many variants are in stock and however often Shopify repeats the webhook.
    """
    now = now or utcnow()
    settings = await ShopNotificationSettingsStore(session).get(shop_domain)
    if not (settings.auto_notification_enabled and settings.first_email_enabled):
        logger.info("Auto notifications disabled", shop_id=shop_domain)
        return RestockResult(enabled=False)

    in_stock = next((v for v in product.variants if (v.inventory_quantity or 0) > 0), None)
    if in_stock is None:
        return RestockResult(enabled=True)

    logger.info(
        "Product back in stock",
        shop_id=shop_domain,
        product_id=str(product.id),
        variant_id=str(in_stock.id),
        inventory=in_stock.inventory_quantity,
    )

    queue = QueueStore(session)
    subscriptions = await SubscriptionStore(session).find_active_for_product(
        str(product.id), shop_domain
    )
    payload = ProductSnapshot(
        product_id=str(product.id),
        product_title=product.title,
        product_handle=product.handle,
        shop_domain=shop_domain,
        variant_id=str(in_stock.id),
        inventory=in_stock.inventory_quantity,
    )

    added = 0
    for subscription in subscriptions:
        if await queue.has_pending(subscription.id, QueueJobType.THANKYOU_NOTIFICATION):
            continue
        await queue.enqueue(subscription.id, QueueJobType.THANKYOU_NOTIFICATION, now, payload)
        added += 1

    logger.info(
        "Restock processing complete",
        shop_id=shop_domain,
        product_id=str(product.id),
        subscriptions=len(subscriptions),
        notifications_added=added,
    )
    return RestockResult(enabled=True, notifications_added=added)


# =============================================================================
# Purchase detection
# =============================================================================


async def handle_order_created(
    session: AsyncSession,
    shop_domain: str,
    order: ShopifyOrder,
    now: datetime | None = None,
) -> int:
    """Record purchases of subscribed products and stop their reminders.

    Returns the number of subscriptions marked purchase-detected.
    """
    now = now or utcnow()
    if not order.email:
        return 0

    subscriptions = SubscriptionStore(session)
    scheduler = ReminderScheduler(session)
    detected = 0

    for line_item in order.line_items:
        if line_item.product_id is None:
            continue

        matches = await subscriptions.find_purchase_candidates(
            str(line_item.product_id), order.email, shop_domain
        )
        for subscription in matches:
            await subscriptions.mark_purchase_detected(subscription, now)
            await scheduler.cancel_reminders(subscription.id, ERROR_PURCHASE_DETECTED)
            detected += 1
            logger.info(
                "Purchase detected",
                subscription_id=subscription.id,
                order_id=str(order.id),
            )

    logger.info(
        "Order processing complete",
        shop_id=shop_domain,
        order_id=str(order.id),
        purchases_detected=detected,
    )
    return detected


# =============================================================================
# Widget subscriptions
# =============================================================================


@dataclass
class RegistrationResult:
    result: SubscribeResult
    notification_queued: bool = False

    @property
    def subscription(self) -> Subscription:
        return self.result.subscription


async def register_subscription(
    session: AsyncSession,
    *,
    email: str,
    product_id: str,
    shop_id: str,
    phone: str | None = None,
    product_title: str | None = None,
    product_url: str | None = None,
    in_stock: bool = False,
    source: str | None = "widget",
    user_agent: str | None = None,
    ip_address: str | None = None,
    now: datetime | None = None,
) -> RegistrationResult:
    """Create or reactivate a subscription from the storefront.

    When the storefront reports the product as already available (the
    restock webhook beat the shopper to it) the back-in-stock message is
    queued for immediate delivery.
    """
    now = now or utcnow()
    result = await SubscriptionStore(session).subscribe(
        email,
        product_id,
        shop_id,
        phone=phone,
        product_title=product_title,
        product_url=product_url,
        source=source,
        user_agent=user_agent,
        ip_address=ip_address,
        now=now,
    )
    if result.already_active or not in_stock:
        return RegistrationResult(result=result)

    settings = await ShopNotificationSettingsStore(session).get(shop_id)
    if not settings.first_email_enabled:
        return RegistrationResult(result=result)

    subscription = result.subscription
    await QueueStore(session).enqueue(
        subscription.id,
        QueueJobType.FIRST_NOTIFICATION,
        now,
        ProductSnapshot(
            product_id=subscription.product_id,
            product_title=subscription.product_title,
            product_url=subscription.product_url,
        ),
    )
    return RegistrationResult(result=result, notification_queued=True)


async def cancel_subscription(session: AsyncSession, subscription_id: int) -> Subscription | None:
    """Cancel a subscription and everything still pending for it."""
    subscriptions = SubscriptionStore(session)
    subscription = await subscriptions.get(subscription_id)
    if subscription is None:
        return None
    if subscription.status == SubscriptionStatus.CANCELLED:
        return subscription

    await subscriptions.cancel(subscription)
    await QueueStore(session).cancel_pending_by_type(
        subscription.id, list(QueueJobType), ERROR_SUBSCRIPTION_CANCELLED
    )
    logger.info("Subscription cancelled", subscription_id=subscription.id)
    return subscription
