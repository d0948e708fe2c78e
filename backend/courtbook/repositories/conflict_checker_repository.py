# backend/courtbook/repositories/conflict_checker_repository.py
"""
ConflictChecker Repository for the court booking platform.

Queries backing the booking gate: overlapping bookings, exact slot
instances and external calendar blocks. Time overlap is the half-open
test ``existing.start < requested.end AND existing.end > requested.start``.
"""

from datetime import date, time
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.constants import BOOKABLE_ACTION_TYPES, EXTERNAL_BLOCK_ACTIVE
from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking, RecurringBooking
from ..models.external_block import ExternalAvailabilityBlock
from ..models.slot import SlotInstance
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ConflictCheckerRepository(BaseRepository[Booking]):
    """
    Repository for conflict checking data access.

    Uses Booking as its primary model; the other tables are read-only here.
    """

    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    # Booking Conflict Queries

    def get_overlapping_bookings(
        self,
        venue_id: str,
        check_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[Booking]:
        query = self.db.query(Booking).filter(
            Booking.venue_id == venue_id,
            Booking.date == check_date,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            Booking.start_time < end_time,
            Booking.end_time > start_time,
        )
        if exclude_booking_id:
            query = query.filter(Booking.id != exclude_booking_id)
        return self._execute_query(query.order_by(Booking.start_time.asc()))

    def get_overlapping_recurring(
        self,
        venue_id: str,
        check_date: date,
        start_time: time,
        end_time: time,
        exclude_booking_id: Optional[str] = None,
    ) -> List[RecurringBooking]:
        """
        Recurring occurrences overlapping the range.

        ``exclude_booking_id`` excludes both an occurrence with that id and
        the occurrences of a parent with that id.
        """
        query = self.db.query(RecurringBooking).filter(
            RecurringBooking.venue_id == venue_id,
            RecurringBooking.date == check_date,
            RecurringBooking.status.in_(ACTIVE_BOOKING_STATUSES),
            RecurringBooking.start_time < end_time,
            RecurringBooking.end_time > start_time,
        )
        if exclude_booking_id:
            query = query.filter(
                RecurringBooking.id != exclude_booking_id,
                RecurringBooking.parent_booking_id != exclude_booking_id,
            )
        return self._execute_query(query.order_by(RecurringBooking.start_time.asc()))

    # Slot instance gate

    def get_exact_bookable_instances(
        self, venue_id: str, check_date: date, start_time: time, end_time: time
    ) -> List[SlotInstance]:
        """Active bookable instances with exactly this interval (no containment)."""
        query = self.db.query(SlotInstance).filter(
            SlotInstance.venue_id == venue_id,
            SlotInstance.date == check_date,
            SlotInstance.start_time == start_time,
            SlotInstance.end_time == end_time,
            SlotInstance.is_active.is_(True),
            SlotInstance.action_type.in_(BOOKABLE_ACTION_TYPES),
        )
        return self._execute_query(query)

    # External calendar blocks

    def get_active_external_blocks(self, venue_id: str) -> List[ExternalAvailabilityBlock]:
        query = (
            self.db.query(ExternalAvailabilityBlock)
            .filter(
                ExternalAvailabilityBlock.venue_id == venue_id,
                ExternalAvailabilityBlock.status == EXTERNAL_BLOCK_ACTIVE,
            )
            .order_by(ExternalAvailabilityBlock.start_at.asc())
        )
        return self._execute_query(query)
