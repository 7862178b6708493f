"""
Fakturo - Test Configuration

Pytest fixtures and configuration.
"""

import os

# Settings are read at import time; point them at test resources first
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_CACHE_ENABLED", "false")
os.environ.setdefault("ACCOUNT_CURRENCY", "CHF")

from datetime import date, timedelta
from decimal import Decimal
from typing import AsyncGenerator, Dict, Optional
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from fakturo.database import Base, get_async_session
from fakturo.dependencies import get_exchange_rate_service
from fakturo.models.time_entry import TimeEntry, TimeEntryStatus
from fakturo.services.cache_service import CacheService
from fakturo.services.fx_service import ExchangeRateService
from fakturo.utils.clock import FixedClock, get_clock
from main import app

from tests.fixtures.rate_provider_mock import MockRateProvider


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TODAY = date(2026, 3, 16)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(TODAY)


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def project_id() -> UUID:
    return uuid4()


@pytest.fixture
def disabled_cache() -> CacheService:
    return CacheService(enabled=False)


@pytest.fixture
def rate_provider():
    """Mocked rate provider HTTP API serving USD and EUR against CHF."""
    provider = MockRateProvider(today=TODAY)
    provider.set_rate("USD", "CHF", "0.92")
    provider.set_rate("EUR", "CHF", "0.95")
    with provider.activate():
        yield provider


@pytest.fixture
def rate_service(db_session, disabled_cache, rate_provider, clock) -> ExchangeRateService:
    return ExchangeRateService(
        db_session,
        cache=disabled_cache,
        clock=clock,
        base_url=MockRateProvider.BASE_URL,
    )


@pytest_asyncio.fixture(scope="function")
async def client(db_session, clock, rate_service) -> AsyncGenerator[AsyncClient, None]:
    """Test client with database, clock and rate provider overrides."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_exchange_rate_service] = lambda: rate_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user_id) -> Dict[str, str]:
    return {"X-User-ID": str(user_id)}


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def make_time_entry(db_session, user_id, project_id):
    """Factory adding a stopped, billable, unbilled entry."""

    async def _make(
        minutes: int = 90,
        hourly_rate: Optional[Decimal] = Decimal("120.00"),
        description: str = "Consulting",
        entry_date: date = TODAY - timedelta(days=1),
        **overrides,
    ) -> TimeEntry:
        entry = TimeEntry(
            user_id=overrides.pop("user_id", user_id),
            project_id=overrides.pop("project_id", project_id),
            description=description,
            entry_date=entry_date,
            duration_minutes=minutes,
            hourly_rate=hourly_rate,
            is_billable=overrides.pop("is_billable", True),
            is_running=overrides.pop("is_running", False),
            status=overrides.pop("status", TimeEntryStatus.UNBILLED),
            **overrides,
        )
        db_session.add(entry)
        await db_session.commit()
        await db_session.refresh(entry)
        return entry

    return _make
