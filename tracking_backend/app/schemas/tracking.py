"""
Tracking schemas.

Typed shapes for the rows the tracking core reads from the store, the
snapshot handed to customers, and the partial patches pushed by the
change feed.
"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Any, Dict, Optional


class CurrentLocation(BaseModel):
    """Latitude/longitude pair."""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class LocationUpdate(BaseModel):
    """A device reading forwarded to the write path."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    heading: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = Field(None, ge=0)


class LocationSample(BaseModel):
    """Stored priest location row."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: str
    priest_id: str
    booking_id: str
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    heading: Optional[float] = None
    speed: Optional[float] = None
    accuracy: Optional[float] = None
    created_at: datetime
    updated_at: datetime

    @property
    def coordinates(self) -> CurrentLocation:
        return CurrentLocation(latitude=self.latitude, longitude=self.longitude)


class BookingJourneyState(BaseModel):
    """Tracking-relevant subset of a booking row."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    booking_id: str
    priest_id: str
    user_id: Optional[str] = None
    status: str
    journey_started: bool = False
    estimated_arrival: Optional[datetime] = None
    current_location: Optional[CurrentLocation] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "BookingJourneyState":
        """Build from a booking row image (ORM object attributes or change-feed dict)."""
        return cls(
            booking_id=row["id"],
            priest_id=row["priest_id"],
            user_id=row.get("user_id"),
            status=row["status"],
            journey_started=bool(row.get("priest_started_journey") or False),
            estimated_arrival=row.get("estimated_arrival"),
            current_location=_current_location_from_row(row),
        )


class TrackingSnapshot(BaseModel):
    """Assembled view delivered to the customer."""
    model_config = ConfigDict(frozen=True)

    booking_id: str
    priest_id: str
    current_location: Optional[CurrentLocation] = None
    estimated_arrival: Optional[datetime] = None
    journey_started: bool = False
    status: str


class SnapshotResult(BaseModel):
    """Snapshot plus the newest location sample, if one could be read."""
    snapshot: TrackingSnapshot
    location: Optional[LocationSample] = None


class JourneyPatch(BaseModel):
    """
    Partial booking update from the journey feed.

    Only fields explicitly present in the notification are merged;
    use ``model_fields_set`` to tell absent from null.
    """
    model_config = ConfigDict(frozen=True)

    booking_id: str
    status: Optional[str] = None
    journey_started: Optional[bool] = None
    estimated_arrival: Optional[datetime] = None
    current_location: Optional[CurrentLocation] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "JourneyPatch":
        fields: Dict[str, Any] = {"booking_id": row["id"]}
        if "status" in row:
            fields["status"] = row["status"]
        if "priest_started_journey" in row:
            fields["journey_started"] = bool(row["priest_started_journey"])
        if "estimated_arrival" in row:
            fields["estimated_arrival"] = row["estimated_arrival"]
        if "priest_current_latitude" in row or "priest_current_longitude" in row:
            fields["current_location"] = _current_location_from_row(row)
        return cls(**fields)


class JourneyStartRequest(BaseModel):
    estimated_arrival: Optional[datetime] = None


class JourneyStartResponse(BaseModel):
    booking_id: str
    journey_started: bool
    estimated_arrival: Optional[datetime] = None


class LocationRecordResponse(BaseModel):
    """Response after recording location."""
    booking_id: str
    location_id: str
    recorded: bool


def _current_location_from_row(row: Dict[str, Any]) -> Optional[CurrentLocation]:
    lat = row.get("priest_current_latitude")
    lng = row.get("priest_current_longitude")
    if lat is None or lng is None:
        return None
    return CurrentLocation(latitude=lat, longitude=lng)
