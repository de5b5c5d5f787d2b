"""
Role and booking status enumerations.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Supreme user with system-level access
        PRIEST: Travels to bookings and shares location while tracking
        CUSTOMER: Owns bookings and follows the priest's journey
    """
    ADMIN = "ADMIN"
    PRIEST = "PRIEST"
    CUSTOMER = "CUSTOMER"


class BookingStatus(str, enum.Enum):
    """Booking status as written by the booking subsystem."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ChangeEventType(str, enum.Enum):
    """Row change kinds delivered by the change feed."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
