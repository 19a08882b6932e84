"""Health check endpoints."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notification_service import __version__
from notification_service.config import get_settings
from notification_service.infrastructure.database.connection import (
    check_database,
    get_session_factory,
)

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    version: str
    environment: str
    timestamp: str
    dependencies: dict[str, Any]


class ReadinessResponse(BaseModel):
    """Readiness check response model."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """
    Basic health check endpoint.

    Returns the service status, version and whether the in-process
    queue driver is polling.
    """
    settings = get_settings()
    driver = getattr(request.app.state, "queue_driver", None)

    return HealthResponse(
        status="healthy",
        version=__version__,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc).isoformat(),
        dependencies={
            "database": "configured",
            "email": settings.email_service,
            "queue_driver": "running" if driver and driver.is_running else "stopped",
        },
    )


@router.get("/health/ready", response_model=ReadinessResponse)
async def readiness_check(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> ReadinessResponse:
    """
    Readiness check endpoint.

    Verifies the database answers. Used by Kubernetes readiness probes.
    """
    checks = {"database": await check_database(session_factory)}

    return ReadinessResponse(
        ready=all(checks.values()),
        checks=checks,
    )


@router.get("/health/live")
async def liveness_check() -> dict[str, str]:
    """Returns 200 while the process is up."""
    return {"status": "alive"}
