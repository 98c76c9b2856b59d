"""Common test fixtures and configuration for pytest.

Integration tests run against an in-memory SQLite database through aiosqlite and
drive the application in-process through httpx's ASGI transport.
"""

from typing import AsyncGenerator

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from smallbizagent import models  # noqa: F401
from smallbizagent.api import deps
from smallbizagent.integrations.billing_provider import BillingProvider
from smallbizagent.main import create_app
from smallbizagent.models._base import Base
from tests.fixtures.common import FakeBillingProvider


@pytest.fixture
async def db_engine():
    """Create a fresh in-memory database for each test function."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return async_sessionmaker(db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a new database session for a test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_provider() -> FakeBillingProvider:
    """Provide an in-memory billing provider."""
    return FakeBillingProvider()


def _build_app(provider: BillingProvider, session_factory):
    app = create_app(billing_provider=provider)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[deps.get_db] = override_get_db
    return app


@pytest.fixture
def app(fake_provider, session_factory):
    """Application wired to the fake provider and the test database."""
    return _build_app(fake_provider, session_factory)


@pytest.fixture
async def client(app) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client calling the application in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def build_client(session_factory):
    """Build a client for an application using a given billing provider."""

    def _build(provider: BillingProvider) -> httpx.AsyncClient:
        app = _build_app(provider, session_factory)
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver")

    return _build
