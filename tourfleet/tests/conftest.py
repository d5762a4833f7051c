"""
Centralized Test Configuration.
"""

import fnmatch
import pytest
from datetime import date, datetime, time, timedelta
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from tourfleet.app.main import app
from tourfleet.app.db.session import get_db, Base
from tourfleet.app.core.dependencies import get_hos_client
from tourfleet.app.core.redis_client import get_redis
import tourfleet.app.core.redis_client as redis_client_module
from tourfleet.app.models.fleet_vehicle import FleetVehicle, SharedPool
from tourfleet.app.services.allocation_service import AllocationService
from tourfleet.app.services.allocation_types import BookingDraft
from tourfleet.app.services.arbitration import PriorityOrderPolicy
from tourfleet.app.services.compliance import AirMileExemptionStatus, ComplianceOverlay, HOSClient, HOSServiceError

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# All service-level tests run against a frozen clock well before the tour day
START_OF_TESTS = datetime(2030, 6, 1, 7, 0)
TOUR_DAY = date(2030, 6, 10)

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)).lower():
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.sets = {}
        self._closed = False

    async def ping(self):
        if self._closed:
            return False
        return True

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, key):
        if self._closed:
            return 0
        removed = 0
        if key in self.store:
            del self.store[key]
            removed = 1
        if key in self.sets:
            del self.sets[key]
            removed = 1
        return removed

    async def sadd(self, key, *members):
        self.sets.setdefault(key, set()).update(members)
        return len(members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    async def expire(self, key, seconds):
        return 1

    async def scan_iter(self, match=None):
        for key in list(self.store) + list(self.sets):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.sets = {}

    async def aclose(self):
        self._closed = True
        self.store = {}
        self.sets = {}


class FakeHOSClient(HOSClient):
    """Scriptable stand-in for the external HOS / trip-distance service."""

    def __init__(self):
        self.remaining_hours = {}
        self.default_remaining_hours = 10.0
        self.exceeding_days = {}
        self.fail = False
        self.calls = []

    async def remaining_hours_of_service(self, driver_id, at_time):
        self.calls.append(("remaining", driver_id, at_time))
        if self.fail:
            raise HOSServiceError("HOS service timed out")
        return self.remaining_hours.get(driver_id, self.default_remaining_hours)

    async def air_mile_exemption_status(self, driver_id, year_month):
        self.calls.append(("exemption", driver_id, year_month))
        if self.fail:
            raise HOSServiceError("HOS service timed out")
        days = self.exceeding_days.get(driver_id, 0)
        return AirMileExemptionStatus(days_exceeding_150=days, is_exempt=days <= 8)


class FrozenClock:
    """Deterministic clock for hold TTL tests."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
def hos_client():
    return FakeHOSClient()


@pytest.fixture
def clock():
    return FrozenClock(START_OF_TESTS)


@pytest.fixture
def policy():
    return PriorityOrderPolicy([1, 2, 3])


@pytest.fixture
def service(db_session, policy, hos_client, clock):
    return AllocationService(
        db_session,
        policy,
        compliance=ComplianceOverlay(hos_client, fail_open=False),
        clock=clock,
    )


@pytest.fixture
def make_vehicle(db_session):
    counter = {"n": 0}

    async def _make(capacity=14, scope=None, is_active=True, name=None):
        counter["n"] += 1
        vehicle = FleetVehicle(
            vehicle_number=f"TF-{counter['n']:03d}",
            name=name or f"Sprinter {counter['n']}",
            vehicle_type="Sprinter",
            capacity=capacity,
            is_active=is_active,
        )
        vehicle.set_scope(scope or SharedPool())
        db_session.add(vehicle)
        await db_session.commit()
        await db_session.refresh(vehicle)
        return vehicle

    return _make


@pytest.fixture
def make_draft():
    def _make(brand_id=1, start="10:00", end="12:00", party_size=4, day=TOUR_DAY, requested_at=None):
        return BookingDraft(
            brand_id=brand_id,
            day=day,
            start_time=time.fromisoformat(start),
            end_time=time.fromisoformat(end),
            party_size=party_size,
            requested_at=requested_at,
        )

    return _make


@pytest.fixture
async def client(session_factory, mock_redis, hos_client):
    """Async client for testing, wired to the per-test database and fakes."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_hos_client] = lambda: hos_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client
