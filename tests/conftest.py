"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  SQLite ignores ``FOR UPDATE``, so same-ride
ordering in these tests comes from the in-process ride locks and the
optimistic version check.  Every service runs on a ``FrozenClock`` so
departure lead times and pending-booking expiry are deterministic.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from rideshare.config import Settings
from rideshare.domain.entities import Ride
from rideshare.infrastructure import models  # noqa: F401  (registers tables)
from rideshare.infrastructure.database import Base, build_session_factory
from rideshare.services.marketplace import RideMarketplace

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

NOW = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)
TOMORROW = NOW + timedelta(days=1, hours=1, minutes=30)

DRIVER = "driver-kouassi"
OTHER_DRIVER = "driver-traore"


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now += timedelta(**delta)


def build_settings(**overrides) -> Settings:
    values = dict(
        database_url=TEST_DB_URL,
        sweep_enabled=False,
        pending_booking_ttl_seconds=1800,
        booking_max_attempts=3,
        booking_retry_backoff_ms=1,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(NOW)


@pytest.fixture
def test_settings() -> Settings:
    return build_settings()


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables on a fresh in-memory database, then drop everything."""
    engine = create_async_engine(TEST_DB_URL, poolclass=StaticPool, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def marketplace(session_factory, test_settings, clock) -> RideMarketplace:
    return RideMarketplace.from_settings(session_factory, test_settings, clock)


@pytest.fixture
def make_marketplace(session_factory, clock):
    """Build a marketplace over the same database with different policies."""

    def _make(**overrides) -> RideMarketplace:
        return RideMarketplace.from_settings(
            session_factory, build_settings(**overrides), clock
        )

    return _make


@pytest_asyncio.fixture
async def ride(marketplace: RideMarketplace) -> Ride:
    """Abidjan -> Bouaké tomorrow morning, 3 seats at 2000 FCFA."""
    return await marketplace.create_ride(
        DRIVER, "Abidjan", "Bouaké", TOMORROW, 3, 2000, "Climatisé, 1 bagage"
    )
