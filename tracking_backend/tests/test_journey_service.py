"""
Journey service tests.

Starting a journey, the caller-side start gate, and failure reporting.
"""

from datetime import datetime, timedelta, timezone

import pytest

from tracking_backend.app.core.exceptions import JourneyNotStartableError, JourneyStartError
from tracking_backend.app.db.session import Base
from tracking_backend.app.models.enums import BookingStatus
from tracking_backend.app.schemas.tracking import BookingJourneyState
from tracking_backend.app.services.journey_service import (
    can_start_tracking, default_estimated_arrival, ensure_can_start_tracking
)

from conftest import PRIEST_ID, create_booking, engine


def journey_state(status="confirmed", journey_started=False):
    return BookingJourneyState(
        booking_id="b-1", priest_id=PRIEST_ID, status=status, journey_started=journey_started
    )


@pytest.mark.parametrize("status, started, allowed", [
    ("confirmed", False, True),
    ("confirmed", True, False),
    ("pending", False, False),
    ("completed", False, False),
    ("cancelled", False, False),
])
def test_can_start_tracking(status, started, allowed):
    assert can_start_tracking(journey_state(status, started)) is allowed


def test_ensure_can_start_tracking_raises_with_context():
    with pytest.raises(JourneyNotStartableError) as exc_info:
        ensure_can_start_tracking(journey_state("pending"))

    assert exc_info.value.status_code == 409
    assert exc_info.value.details["status"] == "pending"


def test_default_estimated_arrival_is_thirty_minutes_out():
    now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    assert default_estimated_arrival(now) == now + timedelta(minutes=30)


@pytest.mark.asyncio
async def test_start_journey_sets_flag_and_eta(journey_service, booking):
    eta = datetime.now(timezone.utc) + timedelta(minutes=25)

    state = await journey_service.start_journey(booking.id, eta)

    assert state.journey_started is True
    assert state.status == BookingStatus.CONFIRMED.value
    stored = await journey_service.get_journey_state(booking.id)
    assert stored.journey_started is True
    assert stored.estimated_arrival is not None
    assert stored.estimated_arrival.replace(tzinfo=None) == eta.replace(tzinfo=None)


@pytest.mark.asyncio
async def test_start_journey_without_eta_leaves_it_unset(journey_service, booking):
    state = await journey_service.start_journey(booking.id)

    assert state.journey_started is True
    assert state.estimated_arrival is None


@pytest.mark.asyncio
async def test_redundant_start_keeps_flag_set(journey_service, booking, feed):
    channel = feed.channel("priest_bookings", "id", booking.id)
    async with feed.listen(channel) as events:
        await journey_service.start_journey(booking.id)
        state = await journey_service.start_journey(booking.id)

        first = await events.__anext__()
        second = await events.__anext__()

    assert state.journey_started is True
    # The write is issued again and published again
    assert first.new["priest_started_journey"] is True
    assert second.new["priest_started_journey"] is True


@pytest.mark.asyncio
async def test_start_journey_on_missing_booking(journey_service):
    with pytest.raises(JourneyStartError) as exc_info:
        await journey_service.start_journey("does-not-exist")

    assert "not found" in exc_info.value.message


@pytest.mark.asyncio
async def test_start_journey_reports_store_failure(journey_service, booking):
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    with pytest.raises(JourneyStartError) as exc_info:
        await journey_service.start_journey(booking.id)

    assert "no such table" in exc_info.value.message


@pytest.mark.asyncio
async def test_get_journey_state_missing(journey_service):
    assert await journey_service.get_journey_state("missing") is None


@pytest.mark.asyncio
async def test_start_journey_publishes_booking_update(journey_service, booking, feed):
    channel = feed.channel("priest_bookings", "id", booking.id)
    async with feed.listen(channel) as events:
        await journey_service.start_journey(booking.id)
        event = await events.__anext__()

    assert event.event.value == "UPDATE"
    assert event.table == "priest_bookings"
    assert event.new["id"] == booking.id


@pytest.mark.asyncio
async def test_gated_start_does_not_write(journey_service):
    pending = await create_booking(status=BookingStatus.PENDING.value)
    state = await journey_service.get_journey_state(pending.id)

    with pytest.raises(JourneyNotStartableError):
        ensure_can_start_tracking(state)

    assert (await journey_service.get_journey_state(pending.id)).journey_started is False
