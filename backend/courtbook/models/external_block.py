# backend/courtbook/models/external_block.py
"""
Busy intervals imported from third-party calendars.

Unlike bookings these carry absolute timestamps, so they must be converted
into venue-local time before being compared with local slot times.
"""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, String
from sqlalchemy.sql import func
import ulid

from ..core.constants import EXTERNAL_BLOCK_ACTIVE
from ..database import Base


class ExternalAvailabilityBlock(Base):
    __tablename__ = "external_availability_blocks"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    venue_id = Column(String(26), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False)
    source = Column(String(50), nullable=False)
    source_event_id = Column(String(255), nullable=True)
    start_at = Column(DateTime(timezone=True), nullable=False)
    end_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), nullable=False, default=EXTERNAL_BLOCK_ACTIVE)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("ix_external_blocks_venue_status", "venue_id", "status"),
        CheckConstraint("start_at < end_at", name="check_external_block_time_order"),
        CheckConstraint("status IN ('active', 'cancelled')", name="check_external_block_status"),
    )
