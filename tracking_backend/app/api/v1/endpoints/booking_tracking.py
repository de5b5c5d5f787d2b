"""
Customer Live Tracking API Endpoints.

Customers read the tracking snapshot for their booking and can follow it
live over a WebSocket.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Path, Query, WebSocket, WebSocketDisconnect, status

from tracking_backend.app.core.dependencies import get_snapshot_service, user_from_token
from tracking_backend.app.core.exceptions import SnapshotFetchError, SubscriptionError
from tracking_backend.app.core.guards import check_role, require_role
from tracking_backend.app.models.enums import UserRole
from tracking_backend.app.schemas.tracking import SnapshotResult
from tracking_backend.app.services.booking_tracker import BookingTracker
from tracking_backend.app.services.snapshot_service import SnapshotService
from tracking_backend.app.services.tracking_reducer import TrackingState
from tracking_backend.app.services.tracking_subscriber import TrackingSubscriber

router = APIRouter(prefix="/bookings", tags=["Customer - Live Tracking"])
logger = logging.getLogger("tracking.api")


@router.get("/{booking_id}/tracking", response_model=SnapshotResult)
async def get_booking_tracking(
    booking_id: str = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role([UserRole.CUSTOMER])),
    snapshots: SnapshotService = Depends(get_snapshot_service)
):
    """
    Get the tracking snapshot for a booking (Customer only).

    Returns the journey state and the priest's newest location sample.
    """
    return await snapshots.fetch_snapshot(booking_id, current_user["user_id"])


def tracking_message(state: TrackingState) -> dict:
    return {
        "type": "tracking",
        "snapshot": state.snapshot.model_dump(mode="json") if state.snapshot else None,
        "location": state.location.model_dump(mode="json") if state.location else None,
    }


@router.websocket("/{booking_id}/tracking/live")
async def live_booking_tracking(
    websocket: WebSocket,
    booking_id: str,
    token: str = Query(..., description="Bearer token")
):
    """
    Follow a booking live (Customer only).

    Sends the merged tracking state once the snapshot loads and again after
    every journey or location change, until the client disconnects.
    """
    try:
        current_user = check_role(user_from_token(token), [UserRole.CUSTOMER])
    except HTTPException as e:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=str(e.detail))
        return

    store = websocket.app.state.store
    outbox: asyncio.Queue = asyncio.Queue()
    tracker = BookingTracker(
        SnapshotService(store),
        TrackingSubscriber(store.feed),
        booking_id,
        current_user["user_id"],
        on_change=outbox.put_nowait,
        on_error=outbox.put_nowait,
    )

    await websocket.accept()
    try:
        await tracker.start()
    except SnapshotFetchError as e:
        await websocket.send_json({"type": "error", "error_code": e.error_code, "message": e.message})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    async def pump():
        while True:
            item = await outbox.get()
            if isinstance(item, SubscriptionError):
                await websocket.send_json({"type": "error", "error_code": item.error_code, "message": item.message})
            else:
                await websocket.send_json(tracking_message(item))

    sender = asyncio.create_task(pump())
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("Live tracking client disconnected", extra={"booking_id": booking_id})
    finally:
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, WebSocketDisconnect):
            pass
        await tracker.close()
