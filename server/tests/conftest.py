"""Test configuration and fixtures."""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from lodging.core.config import Settings
from lodging.core.database import build_engine, build_session_factory, init_db
from lodging.core.locking import KeyedLockRegistry
from lodging.models.booking import BookingSource, BookingStatus
from lodging.schemas.booking import (
    CancelBookingRequest,
    CheckInRequest,
    CheckOutRequest,
    CreateBookingRequest,
    GuestDetails,
    MarkPendingRequest,
    RejectBookingRequest,
)
from lodging.schemas.catalog import CreatePropertyRequest, CreateRoomTypeRequest
from lodging.services.booking_service import BookingService
from lodging.services.catalog_service import CatalogService

# Tests run at a fixed instant a few days before the stays they book
START_TIME = datetime(2025, 11, 1, 10, 0, 0)
STAY_START = date(2025, 11, 5)


class FixedClock:
    """Settable clock injected wherever services ask for "now"."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> datetime:
        self.now = now
        return now


class RecordingGateway:
    def __init__(self):
        self.charges = []
        self.refunds = []

    async def issue_charge(self, booking, amount, currency):
        self.charges.append((booking.id, amount, currency))
        return f"ch_{len(self.charges)}"

    async def issue_refund(self, payment, amount):
        self.refunds.append((payment.id, amount))
        return None


class RecordingChannelManager:
    def __init__(self):
        self.events = []

    async def push_booking(self, booking, event):
        self.events.append((booking.id, event))


class RecordingNotifier:
    def __init__(self, fail: bool = False):
        self.events = []
        self.fail = fail

    async def dispatch(self, booking, event, payload=None):
        self.events.append((booking.id, event))
        if self.fail:
            raise RuntimeError("messaging layer unavailable")


@dataclass
class Catalog:
    property_id: object
    room_type_id: object
    base_rate: int
    currency: str


@pytest.fixture
def test_settings():
    """Settings tuned for fast, deterministic tests."""
    return Settings(
        environment="test",
        database_url="sqlite+aiosqlite:///:memory:",
        hold_ttl_seconds=900,
        pending_hold_ttl_seconds=3600,
        lock_timeout_seconds=10.0,
        concurrency_max_attempts=3,
        concurrency_backoff_seconds=0.01,
        check_in_hour=14,
    )


@pytest.fixture
def clock():
    return FixedClock()


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a file-backed SQLite database so concurrent sessions see each other's commits."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'lodging.db'}")
    await init_db(bind=engine)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return build_session_factory(test_engine)


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def channel_manager():
    return RecordingChannelManager()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def booking_service(session_factory, test_settings, clock, gateway, channel_manager, notifier):
    return BookingService(
        session_factory,
        settings=test_settings,
        clock=clock,
        locks=KeyedLockRegistry(test_settings.lock_timeout_seconds),
        gateway=gateway,
        channel_manager=channel_manager,
        notifier=notifier,
    )


async def create_catalog(session_factory, clock, capacity: int = 5, base_rate: int = 10000) -> Catalog:
    async with session_factory() as session:
        catalog_service = CatalogService(session, clock=clock)
        prop = await catalog_service.create_property(CreatePropertyRequest(name="Harbour View Inn", currency="INR"))
        room_type = await catalog_service.create_room_type(
            CreateRoomTypeRequest(
                property_id=prop.id,
                name="Deluxe Double",
                base_capacity=capacity,
                base_rate=base_rate,
                max_occupancy=2,
            )
        )
    return Catalog(prop.id, room_type.id, base_rate, room_type.currency)


@pytest_asyncio.fixture
async def catalog(session_factory, clock):
    """A property with one room type of five rooms at 100.00 INR a night."""
    return await create_catalog(session_factory, clock)


def booking_request(
    catalog: Catalog,
    check_in: date = STAY_START,
    nights: int = 2,
    rooms: int = 1,
    guests: int = 1,
    **overrides,
) -> CreateBookingRequest:
    fields = dict(
        property_id=catalog.property_id,
        room_type_id=catalog.room_type_id,
        check_in=check_in,
        check_out=check_in + timedelta(days=nights),
        rooms=rooms,
        guests=guests,
        guest=GuestDetails(name="Asha Rao", email="asha@example.com"),
    )
    fields.update(overrides)
    return CreateBookingRequest(**fields)


def ota_request(catalog: Catalog, external_id: str = "BDC-1001", **overrides) -> CreateBookingRequest:
    return booking_request(
        catalog,
        source=BookingSource.OTA_BOOKING_COM,
        external_reservation_id=external_id,
        **overrides,
    )


async def drive_to(
    booking_service: BookingService,
    clock: FixedClock,
    catalog: Catalog,
    status: BookingStatus,
    request: Optional[CreateBookingRequest] = None,
):
    """Create a booking and walk it along allowed transitions until it reaches ``status``."""
    booking = await booking_service.create(request or booking_request(catalog))
    if status is BookingStatus.HOLD:
        return booking
    if status is BookingStatus.PENDING:
        return await booking_service.mark_pending(MarkPendingRequest(booking_id=booking.id))
    if status is BookingStatus.CANCELLED:
        return await booking_service.cancel(CancelBookingRequest(booking_id=booking.id, reason="changed plans"))
    if status is BookingStatus.REJECTED:
        return await booking_service.reject(RejectBookingRequest(booking_id=booking.id, reason="overbooked"))

    booking = await booking_service.confirm(booking.id)
    if status is BookingStatus.CONFIRMED:
        return booking
    if status is BookingStatus.NO_SHOW:
        clock.set(datetime.combine(booking.check_in + timedelta(days=1), datetime.min.time()))
        return await booking_service.mark_no_show(booking.id)

    clock.set(datetime.combine(booking.check_in, datetime.min.time()) + timedelta(hours=15))
    booking = await booking_service.check_in(CheckInRequest(booking_id=booking.id, room_numbers=["101"]))
    if status is BookingStatus.CHECKED_IN:
        return booking
    return await booking_service.check_out(CheckOutRequest(booking_id=booking.id))


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory, clock):
    """Create the FastAPI application wired to the scratch database and fixed clock."""
    from lodging.core.dependencies import get_clock, get_session_factory
    from lodging.main import create_app

    app = create_app(with_lifespan=False)
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_clock] = lambda: clock

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
