"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from email_worker.driver import QueueDriver
from helpers import FakeClock, FakeMailSender
from notification_service.config import Settings, get_settings
from notification_service.infrastructure.database.connection import (
    get_session,
    get_session_factory,
    make_session_factory,
)
from notification_service.infrastructure.database.models import Base
from notification_service.main import create_app
from notification_service.services.dispatcher import NotificationDispatcher


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        database_url_override=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        shopify_webhook_secret="test-webhook-secret",
        shopify_webhook_verification=True,
        email_service="mock",
        mock_email_storage_path=str(tmp_path / "emails"),
        cron_secret="test-cron-secret",
    )


@pytest_asyncio.fixture
async def engine(test_settings: Settings) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed sqlite database with the schema created."""
    engine = create_async_engine(test_settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
def mail_sender() -> FakeMailSender:
    return FakeMailSender()


@pytest.fixture
def dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
    mail_sender: FakeMailSender,
    clock: FakeClock,
) -> NotificationDispatcher:
    return NotificationDispatcher(session_factory, mail_sender, clock=clock)


@pytest.fixture
def driver(
    dispatcher: NotificationDispatcher,
    session_factory: async_sessionmaker[AsyncSession],
    clock: FakeClock,
) -> QueueDriver:
    return QueueDriver(dispatcher, session_factory, clock=clock)


@pytest.fixture
def app(
    test_settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    driver: QueueDriver,
) -> Any:
    """Create test application wired to the test database and driver."""

    def get_test_settings() -> Settings:
        return test_settings

    async def get_test_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_session] = get_test_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.state.queue_driver = driver
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client (endpoints that do not touch the database)."""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client(app: Any) -> AsyncGenerator[AsyncClient, None]:
    """Create asynchronous test client."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
