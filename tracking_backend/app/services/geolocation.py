"""
Geolocation capability.

Shapes for the platform positioning interface the sampler consumes, plus a
scripted asyncio provider that replays fixes for simulation and tests.
"""

import asyncio
import enum
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Union

logger = logging.getLogger("tracking.geolocation")


class PositionErrorCode(str, enum.Enum):
    PERMISSION_DENIED = "PERMISSION_DENIED"
    POSITION_UNAVAILABLE = "POSITION_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    heading: Optional[float] = None
    speed: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class PositionError:
    code: PositionErrorCode
    message: str


@dataclass(frozen=True)
class PositionOptions:
    enable_high_accuracy: bool = True
    timeout: float = 10.0  # seconds
    maximum_age: float = 60.0  # seconds


SuccessCallback = Callable[[Position], None]
ErrorCallback = Callable[[PositionError], None]


class GeolocationProvider(Protocol):
    """Platform positioning capability."""

    def get_current_position(
        self, on_success: SuccessCallback, on_error: ErrorCallback, options: PositionOptions
    ) -> None:
        ...

    def watch_position(
        self, on_success: SuccessCallback, on_error: ErrorCallback, options: PositionOptions
    ) -> int:
        ...

    def clear_watch(self, watch_id: int) -> None:
        ...


# A script step: a fix, an explicit error, or None for "no fix arrives" (times out)
ScriptStep = Union[Position, PositionError, None]

_EXHAUSTED = object()


class ScriptedGeolocationProvider:
    """
    Replays a fixed sequence of steps on the running event loop.

    Each step takes ``interval`` seconds. A ``None`` step produces no fix,
    so the request times out after ``options.timeout``. Watches stop at the
    end of the script unless ``loop_script`` is set.
    """

    def __init__(self, steps: Iterable[ScriptStep], interval: float = 1.0, loop_script: bool = False):
        self.steps: List[ScriptStep] = list(steps)
        self.interval = interval
        self.loop_script = loop_script
        self._cursor = 0
        self._last_fix: Optional[Position] = None
        self._watch_ids = itertools.count(1)
        self._watches: Dict[int, asyncio.Task] = {}

    @property
    def active_watches(self) -> int:
        return sum(1 for task in self._watches.values() if not task.done())

    def get_current_position(self, on_success, on_error, options: PositionOptions) -> None:
        cached = self._cached_fix(options)
        if cached is not None:
            asyncio.get_running_loop().call_soon(on_success, cached)
            return
        asyncio.get_running_loop().create_task(self._one_shot(on_success, on_error, options))

    def watch_position(self, on_success, on_error, options: PositionOptions) -> int:
        watch_id = next(self._watch_ids)
        self._watches[watch_id] = asyncio.get_running_loop().create_task(
            self._watch(on_success, on_error, options)
        )
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        task = self._watches.pop(watch_id, None)
        if task is not None:
            task.cancel()

    def _cached_fix(self, options: PositionOptions) -> Optional[Position]:
        if self._last_fix is None:
            return None
        age = (datetime.now(timezone.utc) - self._last_fix.timestamp).total_seconds()
        return self._last_fix if age <= options.maximum_age else None

    def _next_step(self):
        if self._cursor >= len(self.steps):
            if not self.loop_script or not self.steps:
                return _EXHAUSTED
            self._cursor = 0
        step = self.steps[self._cursor]
        self._cursor += 1
        return step

    async def _resolve(self, step: ScriptStep, options: PositionOptions):
        if step is None:
            await asyncio.sleep(options.timeout)
            return PositionError(PositionErrorCode.TIMEOUT, "Timeout expired")
        await asyncio.sleep(self.interval)
        if isinstance(step, Position):
            # Stamp replayed fixes with the time they are delivered
            fix = Position(
                latitude=step.latitude,
                longitude=step.longitude,
                accuracy=step.accuracy,
                heading=step.heading,
                speed=step.speed,
            )
            self._last_fix = fix
            return fix
        return step

    async def _one_shot(self, on_success, on_error, options: PositionOptions) -> None:
        step = self._next_step()
        if step is _EXHAUSTED:
            on_error(PositionError(PositionErrorCode.POSITION_UNAVAILABLE, "Position unavailable"))
            return
        outcome = await self._resolve(step, options)
        _deliver(outcome, on_success, on_error)

    async def _watch(self, on_success, on_error, options: PositionOptions) -> None:
        while True:
            step = self._next_step()
            if step is _EXHAUSTED:
                logger.debug("Geolocation script exhausted")
                return
            outcome = await self._resolve(step, options)
            _deliver(outcome, on_success, on_error)


def _deliver(outcome, on_success, on_error) -> None:
    if isinstance(outcome, Position):
        on_success(outcome)
    else:
        on_error(outcome)
