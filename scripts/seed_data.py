#!/usr/bin/env python3
"""
Seed database with test data for development.

Creates a demo shop with reminders every 5 minutes and a few active
subscriptions, then simulates a restock so the queue has work.

Usage:
    python scripts/seed_data.py
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from notification_service.infrastructure.database.connection import (
    get_async_engine,
    get_db_session,
)
from notification_service.infrastructure.database.models import (
    Base,
    ShopNotificationSettings,
)
from notification_service.services.notification_triggers import (
    ShopifyProduct,
    handle_product_update,
    register_subscription,
)

SHOP = "demo-store.myshopify.com"

PRODUCTS = [
    {"id": 7001, "title": "Wireless Noise-Canceling Headphones", "handle": "wireless-headphones"},
    {"id": 7002, "title": "Mechanical Gaming Keyboard", "handle": "mechanical-keyboard"},
]

SUBSCRIBERS = ["alice@example.com", "bob@example.com", "charlie@example.com"]


async def create_schema():
    """Create tables directly (development only; use Alembic elsewhere)."""
    engine = get_async_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await engine.dispose()


async def seed_settings(session):
    """Seed the demo shop's notification settings."""
    if await session.get(ShopNotificationSettings, SHOP) is None:
        session.add(
            ShopNotificationSettings(
                shop_id=SHOP,
                auto_notification_enabled=True,
                first_email_enabled=True,
                reminder_email_enabled=True,
                reminder_delay_hours=0.083,
                reminder_max_count=2,
            )
        )
        await session.flush()
    print(f"Configured shop {SHOP}")


async def seed_subscriptions(session):
    """Subscribe every demo shopper to every demo product."""
    count = 0
    for product in PRODUCTS:
        for email in SUBSCRIBERS:
            await register_subscription(
                session,
                email=email,
                product_id=str(product["id"]),
                shop_id=SHOP,
                product_title=product["title"],
                source="seed",
            )
            count += 1
    print(f"Created {count} subscriptions")


async def simulate_restock(session):
    """Restock the first product as if Shopify had sent products/update."""
    product = PRODUCTS[0]
    result = await handle_product_update(
        session,
        SHOP,
        ShopifyProduct(
            id=product["id"],
            title=product["title"],
            handle=product["handle"],
            variants=[{"id": 1, "inventory_quantity": 5}],
        ),
    )
    print(f"Queued {result.notifications_added} back-in-stock notifications")


async def main():
    """Run seeding."""
    print("Seeding database with test data...")
    print("=" * 50)

    await create_schema()
    async with get_db_session() as session:
        await seed_settings(session)
        await seed_subscriptions(session)
        await simulate_restock(session)

    print("=" * 50)
    print("Seeding complete! Run scripts/process_queue.py to deliver.")


if __name__ == "__main__":
    asyncio.run(main())
