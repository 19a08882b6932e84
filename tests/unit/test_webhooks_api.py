"""Unit tests for the Shopify webhook endpoints."""

import orjson
import pytest
from httpx import AsyncClient

from helpers import SHOP, configure_shop, create_job, create_subscription, jobs_for, load
from notification_service.api.webhook_security import compute_shopify_hmac
from notification_service.infrastructure.database.models import (
    QueueJob,
    QueueJobStatus,
    QueueJobType,
    Subscription,
    SubscriptionStatus,
)

SECRET = "test-webhook-secret"

PRODUCT = {
    "id": 1001,
    "title": "Blue Mug",
    "handle": "blue-mug",
    "variants": [{"id": 11, "inventory_quantity": 3, "sku": "MUG-BLUE"}],
    "vendor": "ignored",
}


def signed(payload: dict, topic: str, shop: str | None = SHOP, secret: str = SECRET):
    body = orjson.dumps(payload)
    headers = {
        "Content-Type": "application/json",
        "X-Shopify-Hmac-Sha256": compute_shopify_hmac(secret, body),
        "X-Shopify-Topic": topic,
    }
    if shop:
        headers["X-Shopify-Shop-Domain"] = shop
    return body, headers


@pytest.mark.asyncio
async def test_product_update_queues_notifications(async_client: AsyncClient, session_factory) -> None:
    await configure_shop(session_factory, auto_notification_enabled=True, first_email_enabled=True)
    subscription_id = await create_subscription(session_factory)
    body, headers = signed(PRODUCT, "products/update")

    response = await async_client.post("/api/v1/webhooks/products/update", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["notifications_added"] == 1
    [job] = await jobs_for(session_factory, subscription_id)
    assert job.type == QueueJobType.THANKYOU_NOTIFICATION
    assert job.status == QueueJobStatus.PENDING


@pytest.mark.asyncio
async def test_shop_header_is_normalised(async_client: AsyncClient, session_factory) -> None:
    await configure_shop(session_factory, auto_notification_enabled=True, first_email_enabled=True)
    await create_subscription(session_factory)
    body, headers = signed(PRODUCT, "products/update", shop="Test-Shop.myshopify.com")

    response = await async_client.post("/api/v1/webhooks/products/update", content=body, headers=headers)

    assert response.json()["notifications_added"] == 1


@pytest.mark.asyncio
async def test_bad_signature_is_rejected(async_client: AsyncClient, session_factory) -> None:
    await configure_shop(session_factory, auto_notification_enabled=True, first_email_enabled=True)
    subscription_id = await create_subscription(session_factory)
    body, headers = signed(PRODUCT, "products/update", secret="wrong-secret")

    response = await async_client.post("/api/v1/webhooks/products/update", content=body, headers=headers)

    assert response.status_code == 401
    assert await jobs_for(session_factory, subscription_id) == []


@pytest.mark.asyncio
async def test_missing_shop_header(async_client: AsyncClient) -> None:
    body, headers = signed(PRODUCT, "products/update", shop=None)

    response = await async_client.post("/api/v1/webhooks/products/update", content=body, headers=headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_malformed_payload(async_client: AsyncClient) -> None:
    body = b"not json"
    headers = {
        "X-Shopify-Hmac-Sha256": compute_shopify_hmac(SECRET, body),
        "X-Shopify-Shop-Domain": SHOP,
    }

    response = await async_client.post("/api/v1/webhooks/products/update", content=body, headers=headers)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_order_create_cancels_reminders(async_client: AsyncClient, session_factory) -> None:
    subscription_id = await create_subscription(
        session_factory, email="buyer@example.com", status=SubscriptionStatus.NOTIFIED
    )
    reminder = await create_job(session_factory, subscription_id, job_type=QueueJobType.REMINDER_EMAIL)
    order = {"id": 42, "email": "buyer@example.com", "line_items": [{"product_id": 1001, "quantity": 1}]}
    body, headers = signed(order, "orders/create")

    response = await async_client.post("/api/v1/webhooks/orders/create", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["purchases_detected"] == 1
    subscription = await load(session_factory, Subscription, subscription_id)
    assert subscription.purchase_detected_at is not None
    job = await load(session_factory, QueueJob, reminder)
    assert job.status == QueueJobStatus.CANCELLED


@pytest.mark.asyncio
async def test_inventory_update_is_acknowledged(async_client: AsyncClient) -> None:
    body, headers = signed({"inventory_item_id": 7, "available": 5}, "inventory_levels/update")

    response = await async_client.post("/api/v1/webhooks/inventory/update", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["success"] is True
