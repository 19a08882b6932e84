"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from email_worker.driver import build_driver
from notification_service import __version__
from notification_service.api.v1.router import api_router
from notification_service.config import get_settings
from notification_service.infrastructure.database.connection import (
    close_session_factory,
    get_session_factory,
)
from shared.log_config import configure_logging

configure_logging()

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the queue driver on startup; stop it and the engine on shutdown."""
    settings = get_settings()
    driver = build_driver(get_session_factory(), settings)
    app.state.queue_driver = driver

    logger.info(
        "Starting Restock Notifier",
        app_env=settings.app_env,
        email_service=settings.email_service,
        queue_autostart=settings.should_autostart_worker,
    )
    if settings.should_autostart_worker:
        driver.start()

    yield

    await driver.stop()
    await close_session_factory()
    logger.info("Restock Notifier stopped")


async def bind_request_context(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """Tag every log line emitted while handling a request with its id and path."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)

    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Restock Notifier API",
        description="Back-in-stock subscriptions and notification delivery queue for Shopify stores",
        version=__version__,
        lifespan=lifespan,
    )

    app.middleware("http")(bind_request_context)
    # The storefront widget posts cross-origin from the shop domain
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "notification_service.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        # One process: the lifespan owns a single queue driver
        workers=1,
    )


if __name__ == "__main__":
    run()
