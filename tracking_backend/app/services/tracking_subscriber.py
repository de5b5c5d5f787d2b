"""
Tracking subscriber.

Opens the two push feeds for one booking: booking row updates (journey
state) and location row inserts. The feeds are independent; each delivers
its own events in store order and nothing orders one against the other.
"""

import asyncio
import logging
from typing import Callable, List, Optional

from pydantic import ValidationError

from tracking_backend.app.core.exceptions import SubscriptionError
from tracking_backend.app.core.reliability import ResubscribePolicy
from tracking_backend.app.models.enums import ChangeEventType
from tracking_backend.app.schemas.tracking import JourneyPatch, LocationSample
from tracking_backend.app.services.change_feed import ChangeFeed

logger = logging.getLogger("tracking.realtime")

JourneyHandler = Callable[[JourneyPatch], None]
LocationHandler = Callable[[LocationSample], None]
ErrorHandler = Callable[[SubscriptionError], None]


class Subscription:
    """
    Handle for a booking's two feeds.

    unsubscribe() sets the teardown flag and cancels both readers; no
    callback runs after it returns. aclose() also waits until the
    channels are released.
    """

    def __init__(self, booking_id: Optional[str]):
        self.booking_id = booking_id
        self.errors: List[SubscriptionError] = []
        self._tasks: List[asyncio.Task] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        for task in self._tasks:
            task.cancel()
        logger.debug("Unsubscribed from booking %s", self.booking_id)

    async def aclose(self) -> None:
        self.unsubscribe()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class TrackingSubscriber:

    BOOKINGS_TABLE = "priest_bookings"
    LOCATIONS_TABLE = "priest_locations"

    def __init__(self, feed: ChangeFeed, policy: Optional[ResubscribePolicy] = None):
        self.feed = feed
        self.policy = policy or ResubscribePolicy.from_settings()

    async def subscribe(
        self,
        booking_id: Optional[str],
        on_journey_change: JourneyHandler,
        on_location_change: LocationHandler,
        on_error: Optional[ErrorHandler] = None
    ) -> Subscription:
        """
        Open both feeds for ``booking_id``.

        Returns once both channels are listening (or have given up). With
        no booking id the returned subscription is already closed.
        """
        subscription = Subscription(booking_id)
        if not booking_id:
            subscription.unsubscribe()
            return subscription

        feeds = [
            (
                self.feed.channel(self.BOOKINGS_TABLE, "id", booking_id),
                ChangeEventType.UPDATE,
                lambda row: on_journey_change(JourneyPatch.from_row(row)),
            ),
            (
                self.feed.channel(self.LOCATIONS_TABLE, "booking_id", booking_id),
                ChangeEventType.INSERT,
                lambda row: on_location_change(LocationSample.model_validate(row)),
            ),
        ]

        ready = []
        for channel, event_type, deliver in feeds:
            listening = asyncio.Event()
            ready.append(listening)
            subscription._tasks.append(asyncio.create_task(
                self._run_feed(subscription, channel, event_type, deliver, on_error, listening)
            ))

        await asyncio.gather(*(event.wait() for event in ready))
        return subscription

    async def _run_feed(
        self,
        subscription: Subscription,
        channel: str,
        event_type: ChangeEventType,
        deliver: Callable[[dict], None],
        on_error: Optional[ErrorHandler],
        listening: asyncio.Event
    ) -> None:
        attempt = 0
        try:
            while not subscription.closed:
                try:
                    async with self.feed.listen(channel) as events:
                        attempt = 0
                        listening.set()
                        async for event in events:
                            if subscription.closed:
                                return
                            if event.event != event_type:
                                continue
                            try:
                                deliver(event.new)
                            except ValidationError as e:
                                logger.warning("Dropping malformed row on %s: %s", channel, e)
                    return
                except SubscriptionError as e:
                    if subscription.closed:
                        return
                    delay = self.policy.next_delay(attempt)
                    attempt += 1
                    if delay is None:
                        logger.error(
                            "Realtime feed stopped",
                            extra={"channel": channel, "error": e.message}
                        )
                        subscription.errors.append(e)
                        if on_error is not None:
                            on_error(e)
                        return
                    logger.warning(
                        "Realtime feed dropped, resubscribing",
                        extra={"channel": channel, "attempt": attempt, "delay": delay}
                    )
                    await asyncio.sleep(delay)
        finally:
            listening.set()
