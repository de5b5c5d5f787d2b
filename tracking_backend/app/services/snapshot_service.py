"""
Snapshot service.

Assembles the current tracking view for a booking by joining the
booking's journey state with its newest location sample.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from tracking_backend.app.core.exceptions import SnapshotFetchError
from tracking_backend.app.core.store import TrackingStore, row_image
from tracking_backend.app.models.priest_booking import PriestBooking
from tracking_backend.app.models.priest_location import PriestLocation
from tracking_backend.app.schemas.tracking import (
    BookingJourneyState, LocationSample, SnapshotResult, TrackingSnapshot
)

logger = logging.getLogger("tracking.snapshot")


class SnapshotService:

    def __init__(self, store: TrackingStore):
        self.store = store

    async def fetch_snapshot(self, booking_id: str, customer_id: str) -> SnapshotResult:
        """
        Fetch the tracking snapshot for a booking owned by ``customer_id``.

        The location lookup is best effort: if samples cannot be read the
        snapshot is returned without a sample.

        Raises:
            SnapshotFetchError: booking missing, unreadable, or owned by someone else
        """
        if not booking_id:
            raise SnapshotFetchError("Booking ID is required", booking_id=booking_id)

        async with self.store.session() as db:
            try:
                result = await db.execute(
                    select(PriestBooking).where(PriestBooking.id == booking_id)
                )
                booking = result.scalar_one_or_none()
            except SQLAlchemyError as e:
                logger.error("Error fetching tracking data", extra={"booking_id": booking_id, "error": str(e)})
                raise SnapshotFetchError(
                    "Failed to load tracking data", booking_id=booking_id, reason="unreadable"
                ) from e

            if booking is None:
                raise SnapshotFetchError(f"Booking {booking_id} not found", booking_id=booking_id)

            if booking.user_id != customer_id:
                # Same outward answer as a missing booking
                raise SnapshotFetchError(
                    f"Booking {booking_id} not found", booking_id=booking_id, reason="access_denied"
                )

            state = BookingJourneyState.from_row(row_image(booking))
            location = await self._latest_location(db, booking_id)

        return SnapshotResult(snapshot=build_snapshot(state, location), location=location)

    async def _latest_location(self, db, booking_id: str) -> Optional[LocationSample]:
        try:
            result = await db.execute(
                select(PriestLocation)
                .where(PriestLocation.booking_id == booking_id)
                .order_by(PriestLocation.updated_at.desc(), PriestLocation.created_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.info(
                "priest_locations not readable, returning snapshot without location",
                extra={"booking_id": booking_id, "error": str(e)}
            )
            return None
        return LocationSample.model_validate(row) if row is not None else None


def build_snapshot(state: BookingJourneyState, location: Optional[LocationSample]) -> TrackingSnapshot:
    """Newest sample wins; otherwise the booking's denormalized location."""
    current_location = location.coordinates if location is not None else state.current_location
    return TrackingSnapshot(
        booking_id=state.booking_id,
        priest_id=state.priest_id,
        current_location=current_location,
        estimated_arrival=state.estimated_arrival,
        journey_started=state.journey_started,
        status=state.status,
    )
