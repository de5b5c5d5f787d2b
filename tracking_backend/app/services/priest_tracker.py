"""
Priest-side tracking loop.

Starts the journey, keeps the sampler watching, and forwards the latest
fix on a fixed cadence. Any failed tick is logged and counted and the loop
carries on; the next tick supersedes the lost sample.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from tracking_backend.app.core.config import settings
from tracking_backend.app.core.exceptions import LocationUpdateError
from tracking_backend.app.schemas.tracking import BookingJourneyState
from tracking_backend.app.services.journey_service import (
    JourneyService, default_estimated_arrival, ensure_can_start_tracking
)
from tracking_backend.app.services.location_sampler import LocationSampler, SamplerOptions
from tracking_backend.app.services.location_service import LocationService

logger = logging.getLogger("tracking.priest")


def tracking_sampler_options() -> SamplerOptions:
    return SamplerOptions(
        enable_high_accuracy=settings.sampler_high_accuracy,
        timeout=settings.sampler_timeout_seconds,
        maximum_age=settings.sampler_maximum_age_seconds,
        watch=True,
    )


class PriestTracker:
    """
    Usage:
        tracker = PriestTracker(journeys, locations, sampler, booking_state, priest_id)
        async with tracker:
            ...  # location is forwarded every interval until exit
    """

    def __init__(
        self,
        journey_service: JourneyService,
        location_service: LocationService,
        sampler: LocationSampler,
        booking: BookingJourneyState,
        priest_id: str,
        interval: Optional[float] = None,
        sampler_options: Optional[SamplerOptions] = None,
        block_writes_on_sampler_error: Optional[bool] = None
    ):
        self.journey_service = journey_service
        self.location_service = location_service
        self.sampler = sampler
        self.booking = booking
        self.priest_id = priest_id
        self.interval = interval if interval is not None else settings.location_update_interval_seconds
        self.sampler_options = sampler_options or tracking_sampler_options()
        self.block_writes_on_sampler_error = (
            settings.block_writes_on_sampler_error
            if block_writes_on_sampler_error is None
            else block_writes_on_sampler_error
        )
        self.sent_updates = 0
        self.failed_updates = 0
        self.skipped_ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def is_tracking(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self, estimated_arrival: Optional[datetime] = None) -> None:
        """
        Start the journey and the forwarding loop.

        Raises:
            JourneyNotStartableError: booking not confirmed or journey already started
            JourneyStartError: the journey write failed; nothing is started
        """
        if self.is_tracking:
            return
        ensure_can_start_tracking(self.booking)

        self.booking = await self.journey_service.start_journey(
            self.booking.booking_id,
            estimated_arrival or default_estimated_arrival()
        )
        self.sampler.begin_sampling(self.sampler_options)
        self._task = asyncio.create_task(self._run())
        logger.info("Location tracking started", extra={"booking_id": self.booking.booking_id})

    async def stop(self) -> None:
        """Stop forwarding and release the sampler."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.sampler.stop()
        logger.info("Location tracking stopped", extra={"booking_id": self.booking.booking_id})

    async def tick(self) -> bool:
        """Forward the sampler's latest fix once. Returns True if a row was written."""
        state = self.sampler.state
        if state.error and self.block_writes_on_sampler_error:
            self.skipped_ticks += 1
            return False

        sample = state.to_location_update()
        if sample is None:
            self.skipped_ticks += 1
            return False

        try:
            await self.location_service.update_location(self.priest_id, self.booking.booking_id, sample)
        except LocationUpdateError as e:
            self.failed_updates += 1
            logger.warning(
                "Location update failed",
                extra={"booking_id": self.booking.booking_id, "errors": e.details.get("errors")}
            )
            return False
        except Exception:
            self.failed_updates += 1
            logger.exception(
                "Unexpected error forwarding location",
                extra={"booking_id": self.booking.booking_id}
            )
            return False

        self.sent_updates += 1
        return True

    async def _run(self) -> None:
        while True:
            await self.tick()
            await asyncio.sleep(self.interval)

    async def __aenter__(self) -> "PriestTracker":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
