"""Notification queue trigger and status endpoints.

``POST /queue/process`` is the external-cron entry point: it runs one
dispatch pass through the same driver the lifespan owns.
"""

import hmac
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from email_worker.driver import QueueDriver
from notification_service.config import Settings, get_settings

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# Models
# =============================================================================


class ProcessQueueResponse(BaseModel):
    """Result of a triggered dispatch pass."""

    success: bool
    timestamp: str
    stats: dict[str, int]
    processed: dict[str, int]
    cleaned_up: int | None = None


class QueueStatusResponse(BaseModel):
    message: str
    method: str
    stats: dict[str, int]
    timestamp: str


class WorkerStatusResponse(BaseModel):
    is_running: bool
    started_at: str | None


# =============================================================================
# Dependencies
# =============================================================================


def get_queue_driver(request: Request) -> QueueDriver:
    """The driver created by the application lifespan."""
    driver = getattr(request.app.state, "queue_driver", None)
    if driver is None:
        raise HTTPException(status_code=503, detail="Queue driver not initialized")
    return driver


def verify_cron_secret(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` in production."""
    if settings.app_env != "production":
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/process",
    response_model=ProcessQueueResponse,
    dependencies=[Depends(verify_cron_secret)],
)
async def process_queue(
    driver: QueueDriver = Depends(get_queue_driver),
    settings: Settings = Depends(get_settings),
) -> Any:
    """
    Run one dispatch pass.

    Also garbage-collects old jobs when called during the configured
    cleanup hour (UTC), so a single cron entry covers both.
    """
    logger.info("Queue processing triggered")
    try:
        result = await driver.run_once()
        if driver.clock().hour == settings.queue_cron_cleanup_hour:
            result["cleaned_up"] = await driver.cleanup_old_jobs()
    except Exception as e:
        logger.error("Error processing queue", error=str(e))
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    logger.info("Queue processing completed", stats=result["stats"])
    return result


@router.get("/process", response_model=QueueStatusResponse)
async def queue_status(driver: QueueDriver = Depends(get_queue_driver)) -> Any:
    """Queue stats without side effects."""
    try:
        stats = await driver.stats()
    except Exception as e:
        logger.error("Failed to get queue stats", error=str(e))
        return JSONResponse(status_code=500, content={"error": "Failed to get queue stats"})

    return QueueStatusResponse(
        message="Notification queue processor",
        method="POST to trigger processing",
        stats=stats,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/worker", response_model=WorkerStatusResponse)
async def worker_status(driver: QueueDriver = Depends(get_queue_driver)) -> WorkerStatusResponse:
    return WorkerStatusResponse(**driver.status())
