"""
Customer-side booking tracker.

Fetches the snapshot, listens to both feeds, and folds everything through
the reducer into one TrackingState.
"""

import logging
from typing import Callable, Optional

from tracking_backend.app.core.exceptions import SubscriptionError
from tracking_backend.app.schemas.tracking import JourneyPatch, LocationSample
from tracking_backend.app.services.snapshot_service import SnapshotService
from tracking_backend.app.services.tracking_reducer import (
    LocationPatch, SnapshotLoaded, TornDown, TrackingAction, TrackingState, reduce
)
from tracking_backend.app.services.tracking_subscriber import Subscription, TrackingSubscriber

logger = logging.getLogger("tracking.tracker")


class BookingTracker:
    """
    Usage:
        async with BookingTracker(snapshots, subscriber, booking_id, customer_id) as tracker:
            tracker.state.snapshot.current_location
    """

    def __init__(
        self,
        snapshot_service: SnapshotService,
        subscriber: TrackingSubscriber,
        booking_id: str,
        customer_id: str,
        on_change: Optional[Callable[[TrackingState], None]] = None,
        on_error: Optional[Callable[[SubscriptionError], None]] = None
    ):
        self.snapshot_service = snapshot_service
        self.subscriber = subscriber
        self.booking_id = booking_id
        self.customer_id = customer_id
        self.on_change = on_change
        self.on_error = on_error
        self.state = TrackingState()
        self.loading = False
        self._subscription: Optional[Subscription] = None

    async def start(self) -> TrackingState:
        """
        Subscribe, then load the snapshot.

        Subscribing first means location patches that race the fetch are
        kept; the newer of patched and fetched sample wins. A journey patch
        that lands before the snapshot is installed is dropped, so booking
        fields can stay stale until the next booking change.

        Raises:
            SnapshotFetchError: the booking cannot be shown to this customer
        """
        self._subscription = await self.subscriber.subscribe(
            self.booking_id,
            self._on_journey,
            self._on_location,
            on_error=self._on_subscription_error,
        )
        self.loading = True
        try:
            result = await self.snapshot_service.fetch_snapshot(self.booking_id, self.customer_id)
        except Exception:
            await self.close()
            raise
        finally:
            self.loading = False

        self.dispatch(SnapshotLoaded(snapshot=result.snapshot, location=result.location))
        return self.state

    def dispatch(self, action: TrackingAction) -> None:
        new_state = reduce(self.state, action)
        if new_state is self.state:
            return
        self.state = new_state
        if self.on_change is not None and not isinstance(action, TornDown):
            self.on_change(new_state)

    async def close(self) -> None:
        self.dispatch(TornDown())
        if self._subscription is not None:
            await self._subscription.aclose()

    def _on_journey(self, patch: JourneyPatch) -> None:
        self.dispatch(patch)

    def _on_location(self, sample: LocationSample) -> None:
        self.dispatch(LocationPatch(sample))

    def _on_subscription_error(self, error: SubscriptionError) -> None:
        logger.warning("Tracking feed error", extra={"booking_id": self.booking_id, "error": error.message})
        if self.on_error is not None:
            self.on_error(error)

    async def __aenter__(self) -> "BookingTracker":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
