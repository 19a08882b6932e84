"""Storefront widget subscription endpoints."""

import re
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from notification_service.infrastructure.database.connection import get_session
from notification_service.services.notification_triggers import (
    cancel_subscription,
    register_subscription,
)

logger = structlog.get_logger()

router = APIRouter()

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# =============================================================================
# Models
# =============================================================================


class SubscribeRequest(BaseModel):
    """Widget payload. Accepts the widget's camelCase keys as well."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str = Field(..., description="Shopper email address")
    product_id: str = Field(..., description="Shopify product id")
    shop_id: str = Field(..., description="Shop identifier (myshopify domain)")
    phone: str | None = None
    product_title: str | None = None
    product_url: str | None = None
    in_stock: bool = Field(False, description="Product already available when subscribing")

    @field_validator("product_id", "shop_id", mode="before")
    @classmethod
    def coerce_id(cls, v: object) -> object:
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("email", "product_id", "shop_id")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("shop_id")
    @classmethod
    def normalize_shop(cls, v: str) -> str:
        # Webhooks identify the shop by its lowercased myshopify domain
        return v.lower()

    @field_validator("email")
    @classmethod
    def valid_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Invalid email format")
        return v.lower()


class SubscriptionData(BaseModel):
    email: str
    product_id: str
    product_title: str | None
    subscribed_at: datetime


class SubscribeResponse(BaseModel):
    success: bool
    message: str
    subscription_id: int
    created: bool = False
    reactivated: bool = False
    notification_queued: bool = False
    data: SubscriptionData | None = None


class CancelResponse(BaseModel):
    success: bool
    subscription_id: int
    status: str


# =============================================================================
# Helpers
# =============================================================================


def client_ip(request: Request) -> str | None:
    """First hop from proxy headers, falling back to the socket peer."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()

    return request.client.host if request.client else None


# =============================================================================
# Endpoints
# =============================================================================


@router.post("", response_model=SubscribeResponse)
async def subscribe(
    body: SubscribeRequest,
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> SubscribeResponse:
    """
    Subscribe a shopper to back-in-stock notifications for a product.

    Idempotent per (email, product, shop): an active subscription is
    returned as is, an inactive one is reactivated.
    """
    registration = await register_subscription(
        session,
        email=body.email,
        product_id=body.product_id,
        shop_id=body.shop_id,
        phone=body.phone,
        product_title=body.product_title,
        product_url=body.product_url,
        in_stock=body.in_stock,
        user_agent=request.headers.get("user-agent"),
        ip_address=client_ip(request),
    )
    subscription = registration.subscription

    if registration.result.already_active:
        return SubscribeResponse(
            success=True,
            message="You are already subscribed to notifications for this product",
            subscription_id=subscription.id,
        )

    logger.info(
        "Widget subscription",
        subscription_id=subscription.id,
        shop_id=subscription.shop_id,
        reactivated=registration.result.reactivated,
    )
    return SubscribeResponse(
        success=True,
        message="Successfully subscribed! You will be notified when this item is back in stock.",
        subscription_id=subscription.id,
        created=registration.result.created,
        reactivated=registration.result.reactivated,
        notification_queued=registration.notification_queued,
        data=SubscriptionData(
            email=subscription.email,
            product_id=subscription.product_id,
            product_title=subscription.product_title,
            subscribed_at=subscription.subscribed_at,
        ),
    )


@router.delete("/{subscription_id}", response_model=CancelResponse)
async def cancel(
    subscription_id: int,
    session: AsyncSession = Depends(get_session),
) -> CancelResponse:
    """Cancel a subscription and its pending notifications."""
    subscription = await cancel_subscription(session, subscription_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="Subscription not found")

    return CancelResponse(
        success=True,
        subscription_id=subscription.id,
        status=subscription.status.value,
    )
