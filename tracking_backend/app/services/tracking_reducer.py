"""
Tracking state reducer.

Pure merge of the snapshot and the two change feeds into one view.
Journey patches merge into an existing snapshot or are dropped; location
patches always replace the held sample. Once torn down, the state no
longer changes.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Optional, Union

from tracking_backend.app.schemas.tracking import JourneyPatch, LocationSample, TrackingSnapshot

JOURNEY_FIELDS = ("status", "journey_started", "estimated_arrival")


@dataclass(frozen=True)
class TrackingState:
    snapshot: Optional[TrackingSnapshot] = None
    location: Optional[LocationSample] = None
    closed: bool = False


@dataclass(frozen=True)
class SnapshotLoaded:
    snapshot: TrackingSnapshot
    location: Optional[LocationSample] = None


@dataclass(frozen=True)
class LocationPatch:
    sample: LocationSample


@dataclass(frozen=True)
class TornDown:
    pass


TrackingAction = Union[SnapshotLoaded, JourneyPatch, LocationPatch, TornDown]


def reduce(state: TrackingState, action: TrackingAction) -> TrackingState:
    if state.closed:
        return state
    if isinstance(action, TornDown):
        return replace(state, closed=True)
    if isinstance(action, SnapshotLoaded):
        return _apply_snapshot(state, action)
    if isinstance(action, JourneyPatch):
        return _apply_journey(state, action)
    if isinstance(action, LocationPatch):
        return _apply_location(state, action.sample)
    raise TypeError(f"Unknown tracking action: {type(action).__name__}")


def _apply_snapshot(state: TrackingState, action: SnapshotLoaded) -> TrackingState:
    location = newest(state.location, action.location)
    if location is not None and location.booking_id != action.snapshot.booking_id:
        location = action.location
    snapshot = action.snapshot
    if location is not None:
        snapshot = snapshot.model_copy(update={"current_location": location.coordinates})
    return replace(state, snapshot=snapshot, location=location)


def _apply_journey(state: TrackingState, patch: JourneyPatch) -> TrackingState:
    snapshot = state.snapshot
    if snapshot is None or snapshot.booking_id != patch.booking_id:
        return state

    updates = {
        name: getattr(patch, name)
        for name in JOURNEY_FIELDS
        if name in patch.model_fields_set
    }
    # The booking's denormalized pair only stands in until a sample is known
    if (
        "current_location" in patch.model_fields_set
        and patch.current_location is not None
        and state.location is None
    ):
        updates["current_location"] = patch.current_location

    if not updates:
        return state
    return replace(state, snapshot=snapshot.model_copy(update=updates))


def _apply_location(state: TrackingState, sample: LocationSample) -> TrackingState:
    snapshot = state.snapshot
    if snapshot is not None:
        if snapshot.booking_id != sample.booking_id:
            return state
        snapshot = snapshot.model_copy(update={"current_location": sample.coordinates})
    return replace(state, snapshot=snapshot, location=sample)


def newest(a: Optional[LocationSample], b: Optional[LocationSample]) -> Optional[LocationSample]:
    """The sample with the later updated_at; ``a`` wins ties."""
    if a is None:
        return b
    if b is None:
        return a
    return b if _as_utc(b.updated_at) > _as_utc(a.updated_at) else a


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
