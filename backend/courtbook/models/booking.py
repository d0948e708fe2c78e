# backend/courtbook/models/booking.py
"""
Booking models for the court booking platform.

A Booking is a self-contained record of a renter's reserved interval at
a venue. Recurring series store their future occurrences as
RecurringBooking rows linked to the parent, each with its own lifecycle.

Active bookings (anything not cancelled) are unique per exact
(venue, date, start, end); concurrent check-then-insert races surface
as an IntegrityError on that index.
"""

from enum import Enum
import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import RecurringType
from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

BOOKING_STATUS_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


_ACTIVE_SLOT_PREDICATE = text("status <> 'cancelled'")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), ForeignKey("venues.id"), nullable=False, index=True)
    renter_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)

    date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    total_amount = Column(Numeric(10, 2), nullable=False)
    insurance_required = Column(Boolean, nullable=False, default=False)
    insurance_approved = Column(Boolean, nullable=False, default=False)

    recurring_type = Column(String(10), nullable=False, default=RecurringType.NONE.value)
    recurring_end_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    venue = relationship("Venue")
    renter = relationship("User", foreign_keys=[renter_id])
    recurring_instances = relationship(
        "RecurringBooking",
        back_populates="parent_booking",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_booking_time_order"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        CheckConstraint(
            "recurring_type IN ('none', 'weekly', 'monthly')", name="check_booking_recurring_type"
        ),
        CheckConstraint("total_amount >= 0", name="check_booking_total_amount"),
        Index(
            "uq_bookings_active_slot",
            "venue_id",
            "date",
            "start_time",
            "end_time",
            unique=True,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index("ix_bookings_venue_date_status", "venue_id", "date", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    def can_transition_to(self, new_status: BookingStatus) -> bool:
        return new_status in BOOKING_STATUS_TRANSITIONS.get(BookingStatus(self.status), frozenset())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "venue_id": self.venue_id,
            "renter_id": self.renter_id,
            "date": self.date.isoformat() if self.date else None,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "insurance_required": self.insurance_required,
            "insurance_approved": self.insurance_approved,
            "recurring_type": self.recurring_type,
            "recurring_end_date": (
                self.recurring_end_date.isoformat() if self.recurring_end_date else None
            ),
            "notes": self.notes,
        }

    def __repr__(self) -> str:
        return f"<Booking {self.id} {self.date} {self.start_time}-{self.end_time} {self.status}>"


class RecurringBooking(Base):
    """One future occurrence of a recurring series."""

    __tablename__ = "recurring_bookings"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    parent_booking_id = Column(
        String(26), ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    venue_id = Column(String(26), ForeignKey("venues.id"), nullable=False)
    renter_id = Column(String(26), ForeignKey("users.id"), nullable=False)

    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value)
    total_amount = Column(Numeric(10, 2), nullable=False)
    insurance_required = Column(Boolean, nullable=False, default=False)
    insurance_approved = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    parent_booking = relationship("Booking", back_populates="recurring_instances")

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_recurring_booking_time_order"),
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_recurring_booking_status",
        ),
        Index("ix_recurring_bookings_venue_date_status", "venue_id", "date", "status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "parent_booking_id": self.parent_booking_id,
            "venue_id": self.venue_id,
            "renter_id": self.renter_id,
            "date": self.date.isoformat() if self.date else None,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.status,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "insurance_approved": self.insurance_approved,
        }
