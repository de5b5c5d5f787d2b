"""
Centralized Test Configuration.
"""

import uuid

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import Pool, StaticPool

from tracking_backend.app.main import app
from tracking_backend.app.core.jwt import create_access_token
from tracking_backend.app.core.reliability import ResubscribePolicy
from tracking_backend.app.core.store import TrackingStore
from tracking_backend.app.db.session import Base, build_session_factory
from tracking_backend.app.models.enums import BookingStatus, UserRole
from tracking_backend.app.models.priest_booking import PriestBooking
from tracking_backend.app.services.change_feed import InMemoryChangeFeed
from tracking_backend.app.services.geolocation import Position, PositionError, PositionErrorCode
from tracking_backend.app.services.journey_service import JourneyService
from tracking_backend.app.services.location_service import LocationService
from tracking_backend.app.services.snapshot_service import SnapshotService
from tracking_backend.app.services.tracking_subscriber import TrackingSubscriber

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PRIEST_ID = "11111111-1111-1111-1111-111111111111"
CUSTOMER_ID = "22222222-2222-2222-2222-222222222222"
OTHER_ID = "33333333-3333-3333-3333-333333333333"


@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = build_session_factory(engine)


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def feed():
    return InMemoryChangeFeed()


@pytest.fixture
def store(feed):
    return TrackingStore(TestingSessionLocal, feed)


@pytest.fixture
def journey_service(store):
    return JourneyService(store)


@pytest.fixture
def location_service(store):
    return LocationService(store)


@pytest.fixture
def snapshot_service(store):
    return SnapshotService(store)


@pytest.fixture
def subscriber(feed):
    return TrackingSubscriber(feed, policy=ResubscribePolicy(enabled=False))


@pytest.fixture
async def client(store):
    """Async client for testing; the app uses the test store."""
    app.state.store = store
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.state.store = None


# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


async def create_booking(
    status: str = BookingStatus.CONFIRMED.value,
    journey_started: bool = False,
    user_id: str = CUSTOMER_ID,
    priest_id: str = PRIEST_ID,
    latitude: float = None,
    longitude: float = None
) -> PriestBooking:
    booking = PriestBooking(
        id=str(uuid.uuid4()),
        user_id=user_id,
        priest_id=priest_id,
        purpose="Griha Pravesh",
        address="12 Temple Road, Pune",
        price=5100,
        status=status,
        priest_started_journey=journey_started,
        priest_current_latitude=latitude,
        priest_current_longitude=longitude,
    )
    async with TestingSessionLocal() as session:
        session.add(booking)
        await session.commit()
        await session.refresh(booking)
    return booking


@pytest.fixture
async def booking():
    """A confirmed booking whose journey has not started."""
    return await create_booking()


@pytest.fixture
async def started_booking():
    return await create_booking(journey_started=True)


def token_for(user_id: str, role: UserRole) -> str:
    return create_access_token({"sub": f"user-{user_id[:8]}", "user_id": user_id, "role": role.value})


@pytest.fixture
def priest_headers():
    return {"Authorization": f"Bearer {token_for(PRIEST_ID, UserRole.PRIEST)}"}


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {token_for(CUSTOMER_ID, UserRole.CUSTOMER)}"}


class FakeGeolocation:
    """Provider driven by hand: tests push fixes and errors to live callbacks."""

    def __init__(self):
        self.requests = []
        self.watches = {}
        self.cleared = []
        self._next_id = 0

    def get_current_position(self, on_success, on_error, options):
        self.requests.append((on_success, on_error, options))

    def watch_position(self, on_success, on_error, options):
        self._next_id += 1
        self.watches[self._next_id] = (on_success, on_error, options)
        return self._next_id

    def clear_watch(self, watch_id):
        self.cleared.append(watch_id)
        self.watches.pop(watch_id, None)

    def push(self, latitude, longitude, **kwargs):
        for on_success, _, _ in list(self.watches.values()):
            on_success(Position(latitude=latitude, longitude=longitude, **kwargs))

    def push_error(self, code=PositionErrorCode.POSITION_UNAVAILABLE, message="Position unavailable"):
        for _, on_error, _ in list(self.watches.values()):
            on_error(PositionError(code, message))


@pytest.fixture
def geolocation():
    return FakeGeolocation()
