"""
Location write service.

Appends priest location samples. The store schema may lag behind the
application, so a write tries the store procedure first and falls back
to a direct insert into the same table before giving up.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, text, update
from sqlalchemy.exc import SQLAlchemyError

from tracking_backend.app.core.config import settings
from tracking_backend.app.core.exceptions import LocationUpdateError
from tracking_backend.app.core.store import TrackingStore
from tracking_backend.app.models.enums import ChangeEventType
from tracking_backend.app.models.priest_booking import PriestBooking
from tracking_backend.app.models.priest_location import PriestLocation
from tracking_backend.app.schemas.tracking import LocationSample, LocationUpdate

logger = logging.getLogger("tracking.location")

PRIMARY = "rpc"
FALLBACK = "direct"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class WriteResult:
    """Outcome of one write tier."""
    path: str
    ok: bool
    row: Optional[PriestLocation] = None
    error: Optional[str] = None


class LocationService:

    def __init__(
        self,
        store: TrackingStore,
        rpc_name: Optional[str] = None,
        rpc_enabled: Optional[bool] = None
    ):
        self.store = store
        self.rpc_name = rpc_name or settings.location_rpc_name
        self.rpc_enabled = settings.location_rpc_enabled if rpc_enabled is None else rpc_enabled
        if not _IDENTIFIER.match(self.rpc_name):
            raise ValueError(f"Invalid store procedure name: {self.rpc_name!r}")

    async def update_location(
        self,
        priest_id: str,
        booking_id: str,
        sample: LocationUpdate
    ) -> LocationSample:
        """
        Append one location sample for a booking.

        Every call appends a new row, even for identical samples.

        Raises:
            LocationUpdateError: both the primary and the fallback write failed
        """
        now = datetime.now(timezone.utc)
        errors = []

        result = None
        if self.rpc_enabled:
            result = await self._write_primary(priest_id, booking_id, sample, now)
            if not result.ok:
                errors.append({"path": result.path, "error": result.error})
                logger.warning(
                    "Primary location write failed, trying direct insert",
                    extra={"booking_id": booking_id, "error": result.error}
                )

        if result is None or not result.ok:
            result = await self._write_fallback(priest_id, booking_id, sample, now)
            if not result.ok:
                errors.append({"path": result.path, "error": result.error})

        if not result.ok:
            logger.error(
                "Error updating priest location",
                extra={"booking_id": booking_id, "priest_id": priest_id, "errors": errors}
            )
            raise LocationUpdateError(booking_id=booking_id, errors=errors)

        await self._notify(result.row)
        logger.debug(
            "Priest location updated",
            extra={"booking_id": booking_id, "write_path": result.path}
        )
        return LocationSample.model_validate(result.row)

    async def _write_primary(
        self,
        priest_id: str,
        booking_id: str,
        sample: LocationUpdate,
        recorded_at: datetime
    ) -> WriteResult:
        location_id = str(uuid.uuid4())
        async with self.store.session() as db:
            try:
                await db.execute(
                    text(
                        f"SELECT {self.rpc_name}(:p_id, :p_priest_id, :p_booking_id, :p_latitude, "
                        ":p_longitude, :p_heading, :p_speed, :p_accuracy, :p_recorded_at)"
                    ),
                    {
                        "p_id": location_id,
                        "p_priest_id": priest_id,
                        "p_booking_id": booking_id,
                        "p_latitude": sample.latitude,
                        "p_longitude": sample.longitude,
                        "p_heading": sample.heading,
                        "p_speed": sample.speed,
                        "p_accuracy": sample.accuracy,
                        "p_recorded_at": recorded_at,
                    }
                )
                await self._set_current_location(db, booking_id, sample)
                await db.commit()
                row = (await db.execute(
                    select(PriestLocation).where(PriestLocation.id == location_id)
                )).scalar_one()
            except SQLAlchemyError as e:
                await db.rollback()
                return WriteResult(path=PRIMARY, ok=False, error=_describe(e))
        return WriteResult(path=PRIMARY, ok=True, row=row)

    async def _write_fallback(
        self,
        priest_id: str,
        booking_id: str,
        sample: LocationUpdate,
        recorded_at: datetime
    ) -> WriteResult:
        row = PriestLocation(
            id=str(uuid.uuid4()),
            priest_id=priest_id,
            booking_id=booking_id,
            latitude=sample.latitude,
            longitude=sample.longitude,
            heading=sample.heading,
            speed=sample.speed,
            accuracy=sample.accuracy,
            created_at=recorded_at,
            updated_at=recorded_at,
        )
        async with self.store.session() as db:
            try:
                db.add(row)
                await db.flush()
                await self._set_current_location(db, booking_id, sample)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                return WriteResult(path=FALLBACK, ok=False, error=_describe(e))
        return WriteResult(path=FALLBACK, ok=True, row=row)

    async def _set_current_location(self, db, booking_id: str, sample: LocationUpdate) -> None:
        # Denormalized summary for quick reads of the booking row
        await db.execute(
            update(PriestBooking)
            .where(PriestBooking.id == booking_id)
            .values(
                priest_current_latitude=sample.latitude,
                priest_current_longitude=sample.longitude,
            )
        )

    async def _notify(self, row: PriestLocation) -> None:
        # The sample is committed; nothing here may fail the write
        await self.store.notify(ChangeEventType.INSERT, row)
        try:
            booking = await self._load_booking(row.booking_id)
        except SQLAlchemyError as e:
            logger.warning(
                "Booking change notification skipped",
                extra={"booking_id": row.booking_id, "error": _describe(e)}
            )
            return
        if booking is not None:
            await self.store.notify(ChangeEventType.UPDATE, booking)

    async def _load_booking(self, booking_id: str) -> Optional[PriestBooking]:
        async with self.store.session() as db:
            return (await db.execute(
                select(PriestBooking).where(PriestBooking.id == booking_id)
            )).scalar_one_or_none()


def _describe(error: SQLAlchemyError) -> str:
    orig = getattr(error, "orig", None)
    return str(orig) if orig is not None else str(error)
