"""
Location sampler.

Turns the platform positioning capability into a live position state.
The sampler emits as fast as the platform delivers; rate limiting of
forwarded writes belongs to the caller.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from tracking_backend.app.core.exceptions import PositioningFailure, PositioningUnavailable
from tracking_backend.app.schemas.tracking import LocationUpdate
from tracking_backend.app.services.geolocation import (
    GeolocationProvider, Position, PositionError, PositionOptions
)

logger = logging.getLogger("tracking.sampler")


@dataclass(frozen=True)
class SamplerOptions:
    enable_high_accuracy: bool = True
    timeout: float = 10.0  # seconds
    maximum_age: float = 60.0  # seconds
    watch: bool = False

    def position_options(self) -> PositionOptions:
        return PositionOptions(
            enable_high_accuracy=self.enable_high_accuracy,
            timeout=self.timeout,
            maximum_age=self.maximum_age,
        )


@dataclass
class SamplerState:
    """Live position state; updated in place by the sampler."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    accuracy: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    error: Optional[str] = None
    loading: bool = True

    @property
    def has_fix(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_location_update(self) -> Optional[LocationUpdate]:
        """Current coordinates as a write-path sample, or None without a fix."""
        if not self.has_fix:
            return None
        return LocationUpdate(
            latitude=self.latitude,
            longitude=self.longitude,
            heading=self.heading,
            speed=self.speed,
            accuracy=self.accuracy,
        )


class LocationSampler:
    """
    Samples device position through a GeolocationProvider.

    Usage:
        sampler = LocationSampler(provider)
        with sampler.sampling(SamplerOptions(watch=True)) as state:
            ...  # read state.latitude / state.error at any time

    Every begin_sampling() call releases the previous platform
    subscription first, and stop() releases it on teardown. Callbacks
    from a released subscription are discarded.
    """

    UNSUPPORTED_MESSAGE = "Geolocation is not supported by this platform"

    def __init__(self, provider: Optional[GeolocationProvider]):
        self.provider = provider
        self.state = SamplerState()
        self.last_error: Optional[Union[PositioningFailure, PositioningUnavailable]] = None
        self._watch_id: Optional[int] = None
        self._generation = 0
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def begin_sampling(self, options: Optional[SamplerOptions] = None) -> SamplerState:
        options = options or SamplerOptions()
        self.stop()

        if self.provider is None:
            self.last_error = PositioningUnavailable(self.UNSUPPORTED_MESSAGE)
            self.state.error = self.UNSUPPORTED_MESSAGE
            self.state.loading = False
            logger.warning(self.UNSUPPORTED_MESSAGE)
            return self.state

        self._generation += 1
        generation = self._generation
        self._active = True

        on_success = lambda position: self._handle_success(generation, position)
        on_error = lambda error: self._handle_error(generation, error)

        if options.watch:
            self._watch_id = self.provider.watch_position(on_success, on_error, options.position_options())
        else:
            self.provider.get_current_position(on_success, on_error, options.position_options())

        return self.state

    def stop(self) -> None:
        """Release the platform subscription. Safe to call repeatedly."""
        self._active = False
        self._generation += 1
        if self._watch_id is not None and self.provider is not None:
            watch_id, self._watch_id = self._watch_id, None
            self.provider.clear_watch(watch_id)

    @contextmanager
    def sampling(self, options: Optional[SamplerOptions] = None) -> Iterator[SamplerState]:
        state = self.begin_sampling(options)
        try:
            yield state
        finally:
            self.stop()

    def _handle_success(self, generation: int, position: Position) -> None:
        if not self._accepts(generation):
            return
        self.state.latitude = position.latitude
        self.state.longitude = position.longitude
        self.state.accuracy = position.accuracy
        self.state.heading = position.heading
        self.state.speed = position.speed
        self.state.error = None
        self.state.loading = False
        self.last_error = None

    def _handle_error(self, generation: int, error: PositionError) -> None:
        if not self._accepts(generation):
            return
        # previous coordinates stay in place
        self.state.error = error.message
        self.state.loading = False
        self.last_error = PositioningFailure(error.message, code=error.code.value)
        logger.warning("Position request failed", extra={"code": error.code.value, "error": error.message})

    def _accepts(self, generation: int) -> bool:
        return self._active and generation == self._generation
