"""Root conftest for API, repository and SQL store tests.

Provides:
- In-memory SQLite database (replaces the production engine)
- Services wired to the test database, a scripted agent and a local status pusher
- Async HTTP client against the FastAPI app
"""

from __future__ import annotations

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from app.database import Base
from app.services import Services, build_services
from tests.workflow.fakes import FakeAgent, InterviewResponder
from workflow.automation.status import LocalStatusPusher

# Import all ORM models so they register with Base.metadata
import app.models.db  # noqa: F401


# ---------------------------------------------------------------------------
# In-memory async SQLite engine (StaticPool shares one connection)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory SQLite database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Per-test database session with automatic rollback."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_agent() -> FakeAgent:
    """Answers the interview's question / follow-up / completeness requests."""
    return FakeAgent(responder=InterviewResponder(follow_up=False))


@pytest.fixture
def status_pusher() -> LocalStatusPusher:
    return LocalStatusPusher()


@pytest_asyncio.fixture
async def services(session_factory, fake_agent, status_pusher) -> AsyncGenerator[Services, None]:
    services = build_services(session_factory, agent=fake_agent, status_pusher=status_pusher)
    await services.catalog.seed_builtins()
    yield services
    await services.aclose()


# ---------------------------------------------------------------------------
# FastAPI test client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(services: Services) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI routes.

    ASGITransport does not run the lifespan, so the test services are
    installed on app.state directly.
    """
    from app.main import app

    original = getattr(app.state, "services", None)
    app.state.services = services
    try:
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.state.services = original
