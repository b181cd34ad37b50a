"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  The production models carry no
PostgreSQL-only column types, so the real metadata is created directly.
``FOR UPDATE`` clauses are simply not rendered by the SQLite dialect.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.domain.entities import utcnow
from src.domain.enums import ApprovalStatus, BookingStatus, RideStatus
from src.infrastructure.database import Base
from src.infrastructure.models import BookingModel, RideModel, UserModel
from src.services.notifications import NotificationDispatcher
from src.services.recalculator import AvailabilityRecalculator


# ── Test DB (SQLite in-memory) ────────────────────────────────────────

TEST_DB_URL = "sqlite+aiosqlite://"


class RecordingNotifier(NotificationDispatcher):
    """Collects events instead of delivering them."""

    def __init__(self, fail: bool = False):
        self.events: list[tuple[str, dict]] = []
        self.fail = fail

    async def send(self, event: str, **data) -> None:
        self.events.append((event, data))
        if self.fail:
            raise RuntimeError("transport down")

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def now() -> datetime:
    return utcnow()


# ── Factories ─────────────────────────────────────────────────────────


class Factory:
    def __init__(self, session: AsyncSession):
        self.session = session
        self._n = 0

    async def user(self, *, is_driver: bool = False, name: Optional[str] = None) -> UserModel:
        self._n += 1
        user = UserModel(
            name=name or f"user-{self._n}",
            email=f"user-{self._n}@example.com",
            is_driver=is_driver,
        )
        self.session.add(user)
        await self.session.flush()
        return user

    async def ride(
        self,
        driver: UserModel,
        *,
        seats_total: int = 4,
        departure: Optional[datetime] = None,
        status: RideStatus = RideStatus.OPEN,
        price: float = 10.0,
    ) -> RideModel:
        ride = RideModel(
            driver_id=driver.id,
            origin_label="A",
            destination_label="B",
            seats_total=seats_total,
            seats_available=seats_total,
            status=status,
            departure_time=departure or utcnow() + timedelta(days=1),
            price=price,
            currency="USD",
            auto_completed=False,
        )
        self.session.add(ride)
        await self.session.flush()
        return ride

    async def booking(
        self,
        ride: RideModel,
        rider: UserModel,
        *,
        seats: int = 1,
        status: BookingStatus = BookingStatus.PENDING,
        approval: ApprovalStatus = ApprovalStatus.PENDING,
        recompute: bool = True,
    ) -> BookingModel:
        booking = BookingModel(
            ride_id=ride.id,
            rider_id=rider.id,
            seats_booked=seats,
            status=status,
            approval_status=approval,
            price_per_seat=ride.price,
            total_price=seats * ride.price,
            currency=ride.currency,
        )
        self.session.add(booking)
        await self.session.flush()
        if recompute:
            await AvailabilityRecalculator(self.session).recompute_ride(ride)
        return booking


@pytest_asyncio.fixture
async def factory(db_session) -> Factory:
    return Factory(db_session)


# ── API client ────────────────────────────────────────────────────────


@pytest.fixture
def redis_mock() -> AsyncMock:
    redis = AsyncMock()
    redis.set = AsyncMock(return_value=True)
    redis.eval = AsyncMock(return_value=1)
    return redis


@pytest_asyncio.fixture
async def client(session_factory, notifier, redis_mock):
    """AsyncClient backed by SQLite, a recording notifier and a mocked Redis."""
    with (
        patch("src.workers.sweeper.start_sweeper_loop", new_callable=AsyncMock),
        patch("src.workers.sweeper.stop_sweeper_loop", new_callable=AsyncMock),
        patch("src.api.app.close_redis", new_callable=AsyncMock),
    ):

        async def _test_db():
            async with session_factory() as session:
                try:
                    yield session
                    await session.commit()
                except Exception:
                    await session.rollback()
                    raise

        async def _test_redis():
            return redis_mock

        from src.api.app import create_app
        from src.api.dependencies import get_db, get_notifier, get_redis_client
        from src.api.middleware import limiter

        limiter.reset()
        app = create_app()
        app.dependency_overrides[get_db] = _test_db
        app.dependency_overrides[get_notifier] = lambda: notifier
        app.dependency_overrides[get_redis_client] = _test_redis

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


async def seed_ride(
    session_factory,
    *,
    seats_total: int = 4,
    departure: Optional[datetime] = None,
    riders: int = 2,
) -> dict:
    """Commit a driver, *riders* riders and one ride; return their ids."""
    async with session_factory() as session:
        f = Factory(session)
        driver = await f.user(is_driver=True, name="driver")
        rider_models = [await f.user(name=f"rider-{i}") for i in range(riders)]
        ride = await f.ride(driver, seats_total=seats_total, departure=departure)
        await session.commit()
        return {
            "driver_id": driver.id,
            "rider_ids": [r.id for r in rider_models],
            "ride_id": ride.id,
        }
