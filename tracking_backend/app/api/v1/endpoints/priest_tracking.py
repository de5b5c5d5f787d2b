"""
Priest Journey Tracking API Endpoints.

The assigned priest starts the journey and forwards location samples.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path, status

from tracking_backend.app.core.dependencies import get_journey_service, get_location_service
from tracking_backend.app.core.guards import require_role
from tracking_backend.app.models.enums import UserRole
from tracking_backend.app.schemas.tracking import (
    BookingJourneyState, JourneyStartRequest, JourneyStartResponse,
    LocationRecordResponse, LocationUpdate
)
from tracking_backend.app.services.journey_service import (
    JourneyService, default_estimated_arrival, ensure_can_start_tracking
)
from tracking_backend.app.services.location_service import LocationService

router = APIRouter(prefix="/priest", tags=["Priest - Journey Tracking"])


async def load_assigned_booking(
    journeys: JourneyService,
    booking_id: str,
    current_user: dict
) -> BookingJourneyState:
    state = await journeys.get_journey_state(booking_id)

    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found"
        )

    if state.priest_id != current_user["user_id"]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This booking is not assigned to you"
        )

    return state


@router.post("/bookings/{booking_id}/journey/start", response_model=JourneyStartResponse)
async def start_journey(
    booking_id: str = Path(..., description="Booking ID"),
    payload: Optional[JourneyStartRequest] = Body(None),
    current_user: dict = Depends(require_role([UserRole.PRIEST])),
    journeys: JourneyService = Depends(get_journey_service)
):
    """
    Start the journey for a booking (Priest only).

    Validates:
    - Booking exists and is assigned to the caller
    - Booking is confirmed and the journey has not started

    Sets the estimated arrival to the given time, or now + the default ETA.
    """
    state = await load_assigned_booking(journeys, booking_id, current_user)
    ensure_can_start_tracking(state)

    estimated_arrival = payload.estimated_arrival if payload and payload.estimated_arrival else None
    state = await journeys.start_journey(
        booking_id,
        estimated_arrival or default_estimated_arrival()
    )

    return JourneyStartResponse(
        booking_id=state.booking_id,
        journey_started=state.journey_started,
        estimated_arrival=state.estimated_arrival
    )


@router.post("/bookings/{booking_id}/location", response_model=LocationRecordResponse)
async def record_location(
    booking_id: str = Path(..., description="Booking ID"),
    location: LocationUpdate = Body(...),
    current_user: dict = Depends(require_role([UserRole.PRIEST])),
    journeys: JourneyService = Depends(get_journey_service),
    locations: LocationService = Depends(get_location_service)
):
    """
    Record the priest's position for a booking (Priest only).

    Appends to the breadcrumb trail customers follow live.
    """
    state = await load_assigned_booking(journeys, booking_id, current_user)

    if not state.journey_started:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Journey has not started for this booking"
        )

    stored = await locations.update_location(current_user["user_id"], booking_id, location)

    return LocationRecordResponse(
        booking_id=booking_id,
        location_id=stored.id,
        recorded=True
    )
