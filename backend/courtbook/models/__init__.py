# backend/courtbook/models/__init__.py
"""
SQLAlchemy models for the court booking platform.

Importing this package registers every table on ``Base.metadata``.
"""

from .audit_log import AuditLog
from .availability import Availability
from .booking import Booking, BookingStatus, RecurringBooking, RecurringType
from .external_block import ExternalAvailabilityBlock
from .payment import Payment, PaymentStatus
from .slot import SlotInstance, SlotModalContent, SlotPricing, SlotTemplate
from .user import User
from .venue import Venue, VenueAdminConfig

__all__ = [
    "AuditLog",
    "Availability",
    "Booking",
    "BookingStatus",
    "ExternalAvailabilityBlock",
    "Payment",
    "PaymentStatus",
    "RecurringBooking",
    "RecurringType",
    "SlotInstance",
    "SlotModalContent",
    "SlotPricing",
    "SlotTemplate",
    "User",
    "Venue",
    "VenueAdminConfig",
]
