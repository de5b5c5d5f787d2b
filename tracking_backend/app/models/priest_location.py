"""
Priest Location database model.

Append-only breadcrumb trail of the priest's position during a journey.
"""

import uuid
from sqlalchemy import Column, String, Float, DateTime, ForeignKey
from tracking_backend.app.db.session import Base


class PriestLocation(Base):
    """
    Priest Location model.

    One row per forwarded sample. Rows are never updated or deleted here;
    the newest row by updated_at is the priest's current location.
    """
    __tablename__ = "priest_locations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # References
    priest_id = Column(String(36), nullable=False, index=True)
    booking_id = Column(String(36), ForeignKey('priest_bookings.id'), nullable=False, index=True)

    # GPS reading
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    heading = Column(Float, nullable=True)  # degrees
    speed = Column(Float, nullable=True)
    accuracy = Column(Float, nullable=True)  # meters

    # Timing (assigned by the application, microsecond precision)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False, index=True)

    def __repr__(self):
        return f"<PriestLocation(booking_id={self.booking_id}, lat={self.latitude}, lng={self.longitude})>"
