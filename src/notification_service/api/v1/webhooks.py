"""Shopify webhook endpoints."""

from typing import Any

import orjson
import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from notification_service.api.webhook_security import (
    SHOP_DOMAIN_HEADER,
    TOPIC_HEADER,
    verify_shopify_webhook,
)
from notification_service.config import Settings, get_settings
from notification_service.infrastructure.database.connection import get_session
from notification_service.services.notification_triggers import (
    ShopifyOrder,
    ShopifyProduct,
    handle_order_created,
    handle_product_update,
)

logger = structlog.get_logger()

router = APIRouter()


class WebhookResponse(BaseModel):
    success: bool
    notifications_added: int | None = None
    purchases_detected: int | None = None


async def verified_body(request: Request, settings: Settings = Depends(get_settings)) -> bytes:
    """Raw body of a webhook whose Shopify signature checks out."""
    body = await request.body()
    verification = verify_shopify_webhook(settings=settings, body=body, headers=request.headers)
    if not verification.verified:
        logger.warning(
            "Webhook signature rejected",
            topic=request.headers.get(TOPIC_HEADER),
            reason=verification.reason,
        )
        raise HTTPException(status_code=401, detail="Unauthorized")
    return body


def shop_domain(request: Request) -> str:
    domain = request.headers.get(SHOP_DOMAIN_HEADER)
    if not domain:
        raise HTTPException(status_code=400, detail=f"Missing {SHOP_DOMAIN_HEADER} header")
    return domain.strip().lower()


def _parse(model: type[BaseModel], body: bytes) -> Any:
    try:
        return model.model_validate(orjson.loads(body))
    except (orjson.JSONDecodeError, ValidationError) as e:
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from e


def _error_response() -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


@router.post("/products/update", response_model=WebhookResponse)
async def products_update(
    body: bytes = Depends(verified_body),
    shop: str = Depends(shop_domain),
    session: AsyncSession = Depends(get_session),
) -> Any:
    """Queue back-in-stock notifications for restocked products."""
    product: ShopifyProduct = _parse(ShopifyProduct, body)
    logger.info("Received products/update webhook", shop_id=shop, product_id=str(product.id))

    try:
        result = await handle_product_update(session, shop, product)
    except Exception as e:
        await session.rollback()
        logger.error("Error processing products/update webhook", shop_id=shop, error=str(e))
        return _error_response()

    return WebhookResponse(success=True, notifications_added=result.notifications_added)


@router.post("/orders/create", response_model=WebhookResponse)
async def orders_create(
    body: bytes = Depends(verified_body),
    shop: str = Depends(shop_domain),
    session: AsyncSession = Depends(get_session),
) -> Any:
    """Detect purchases of subscribed products and stop their reminders."""
    order: ShopifyOrder = _parse(ShopifyOrder, body)
    logger.info("Received orders/create webhook", shop_id=shop, order_id=str(order.id))

    try:
        detected = await handle_order_created(session, shop, order)
    except Exception as e:
        await session.rollback()
        logger.error("Error processing orders/create webhook", shop_id=shop, error=str(e))
        return _error_response()

    return WebhookResponse(success=True, purchases_detected=detected)


@router.post("/inventory/update", response_model=WebhookResponse)
async def inventory_update(
    body: bytes = Depends(verified_body),
    shop: str = Depends(shop_domain),
) -> WebhookResponse:
    """Acknowledged and logged only; restocks are detected from products/update."""
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        raise HTTPException(status_code=400, detail="Invalid webhook payload") from e

    logger.info(
        "Received inventory_levels/update webhook",
        shop_id=shop,
        inventory_item_id=payload.get("inventory_item_id") if isinstance(payload, dict) else None,
        available=payload.get("available") if isinstance(payload, dict) else None,
    )
    return WebhookResponse(success=True)
