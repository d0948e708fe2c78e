# backend/courtbook/models/venue.py
"""
Venue and per-venue booking policy models.

A venue's ``instant_booking`` flag selects both the slot action type
(``instant_book`` vs ``request_private``) and the payment flow. The
admin config row is optional; its absence means every policy check passes.
"""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
import ulid

from ..database import Base


class Venue(Base):
    __tablename__ = "venues"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))
    owner_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)

    hourly_rate = Column(Numeric(10, 2), nullable=False)
    instant_booking = Column(Boolean, nullable=False, default=False)
    insurance_required = Column(Boolean, nullable=False, default=False)
    max_advance_booking_days = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    owner = relationship("User", back_populates="venues")
    admin_config = relationship(
        "VenueAdminConfig", back_populates="venue", uselist=False, cascade="all, delete-orphan"
    )

    __table_args__ = (CheckConstraint("hourly_rate >= 0", name="check_venue_hourly_rate"),)

    def __repr__(self) -> str:
        return f"<Venue {self.name} instant={self.instant_booking}>"


class VenueAdminConfig(Base):
    """
    Raw booking-policy row as edited by admins.

    Values are normalized into ``domain.booking_policy.BookingPolicy``
    before use; nothing reads these columns directly for decisions.
    """

    __tablename__ = "venue_admin_configs"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(
        String(26), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, unique=True
    )

    min_advance_booking_days = Column(Integer, nullable=False, default=0)
    min_advance_lead_time_hours = Column(Integer, nullable=False, default=0)
    same_day_cutoff_time = Column(Time, nullable=True)

    # ISO date strings
    blackout_dates = Column(JSON, nullable=False, default=list)
    holiday_dates = Column(JSON, nullable=False, default=list)
    # [{"day_of_week": 0-6 (0=Sunday), "start_time": "HH:MM", "end_time": "HH:MM"}]
    operating_hours = Column(JSON, nullable=False, default=list)

    drop_in_enabled = Column(Boolean, nullable=False, default=False)
    drop_in_price = Column(Numeric(10, 2), nullable=True)

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    venue = relationship("Venue", back_populates="admin_config")
