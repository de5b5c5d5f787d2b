"""
Journey service.

Starts a priest's journey for a booking and holds the caller-side gate
that decides whether tracking may start.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from tracking_backend.app.core.config import settings
from tracking_backend.app.core.exceptions import JourneyNotStartableError, JourneyStartError
from tracking_backend.app.core.store import TrackingStore, row_image
from tracking_backend.app.models.enums import BookingStatus, ChangeEventType
from tracking_backend.app.models.priest_booking import PriestBooking
from tracking_backend.app.schemas.tracking import BookingJourneyState

logger = logging.getLogger("tracking.journey")


def can_start_tracking(state: BookingJourneyState) -> bool:
    """Tracking may start only for a confirmed booking whose journey has not started."""
    return state.status == BookingStatus.CONFIRMED.value and not state.journey_started


def ensure_can_start_tracking(state: BookingJourneyState) -> None:
    """
    Raise JourneyNotStartableError unless can_start_tracking(state).

    The journey service itself does not re-check this; callers gate
    before invoking start_journey.
    """
    if not can_start_tracking(state):
        raise JourneyNotStartableError(
            booking_id=state.booking_id,
            booking_status=state.status,
            journey_started=state.journey_started
        )


def default_estimated_arrival(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(minutes=settings.default_eta_minutes)


class JourneyService:

    def __init__(self, store: TrackingStore):
        self.store = store

    async def get_journey_state(self, booking_id: str) -> Optional[BookingJourneyState]:
        """Read the booking's journey state, or None if the booking does not exist."""
        async with self.store.session() as db:
            result = await db.execute(
                select(PriestBooking).where(PriestBooking.id == booking_id)
            )
            booking = result.scalar_one_or_none()
            if booking is None:
                return None
            return journey_state_of(booking)

    async def start_journey(
        self,
        booking_id: str,
        estimated_arrival: Optional[datetime] = None
    ) -> BookingJourneyState:
        """
        Mark the journey started and record the estimated arrival if given.

        The write is issued even when the flag is already set; the flag is
        only ever written as True.

        Raises:
            JourneyStartError: the booking is missing or the write failed
        """
        async with self.store.session() as db:
            try:
                result = await db.execute(
                    select(PriestBooking).where(PriestBooking.id == booking_id)
                )
                booking = result.scalar_one_or_none()
                if booking is None:
                    raise JourneyStartError(f"Booking {booking_id} not found", booking_id=booking_id)

                booking.priest_started_journey = True
                if estimated_arrival is not None:
                    booking.estimated_arrival = estimated_arrival

                await db.commit()
                await db.refresh(booking)
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(
                    "Error starting journey",
                    extra={"booking_id": booking_id, "error": str(e)}
                )
                raise JourneyStartError(str(e.orig) if getattr(e, "orig", None) else str(e), booking_id=booking_id) from e

        await self.store.notify(ChangeEventType.UPDATE, booking)
        logger.info("Journey started", extra={"booking_id": booking_id})
        return journey_state_of(booking)


def journey_state_of(booking: PriestBooking) -> BookingJourneyState:
    return BookingJourneyState.from_row(row_image(booking))
