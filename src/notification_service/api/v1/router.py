"""API v1 router that aggregates all endpoint routers."""

from fastapi import APIRouter

from notification_service.api.v1 import (
    health,
    queue,
    subscriptions,
    webhooks,
)

api_router = APIRouter()

# Include all routers
api_router.include_router(
    health.router,
    tags=["Health"],
)

api_router.include_router(
    queue.router,
    prefix="/queue",
    tags=["Queue"],
)

api_router.include_router(
    subscriptions.router,
    prefix="/subscriptions",
    tags=["Subscriptions"],
)

api_router.include_router(
    webhooks.router,
    prefix="/webhooks",
    tags=["Webhooks"],
)
