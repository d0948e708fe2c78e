# backend/courtbook/models/availability.py
"""
Availability windows: the times a venue could be open on a given date.

Bookings are subtracted from these windows to produce bookable slots;
the rows themselves are never modified by bookings.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, ForeignKey, Index, String, Time
import ulid

from ..database import Base


class Availability(Base):
    __tablename__ = "availability"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_availability_venue_date", "venue_id", "date"),
        CheckConstraint("start_time < end_time", name="check_availability_time_order"),
    )

    def __repr__(self) -> str:
        return f"<Availability {self.venue_id} {self.date} {self.start_time}-{self.end_time}>"
