"""
Priest Booking database model.

The booking row is owned by the booking subsystem. The tracking core
reads id/status/ownership and writes only the journey columns.
"""

import uuid
from sqlalchemy import Column, String, Float, Boolean, DateTime, Text, Numeric
from sqlalchemy.sql import func
from tracking_backend.app.db.session import Base
from tracking_backend.app.models.enums import BookingStatus


class PriestBooking(Base):
    """
    Priest Booking model.

    Journey columns: priest_started_journey (monotonic), estimated_arrival,
    and the denormalized priest_current_latitude/longitude pair.
    """
    __tablename__ = "priest_bookings"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Ownership
    user_id = Column(String(36), nullable=False, index=True)
    priest_id = Column(String(36), nullable=False, index=True)

    # Booking subsystem fields
    purpose = Column(String(255), nullable=False, default="")
    address = Column(Text, nullable=False, default="")
    booking_date = Column(DateTime(timezone=True), nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)

    # Journey fields (written by the tracking core only)
    priest_started_journey = Column(Boolean, nullable=False, default=False)
    estimated_arrival = Column(DateTime(timezone=True), nullable=True)
    priest_current_latitude = Column(Float, nullable=True)
    priest_current_longitude = Column(Float, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<PriestBooking(id={self.id}, status='{self.status}', "
            f"journey_started={self.priest_started_journey})>"
        )
