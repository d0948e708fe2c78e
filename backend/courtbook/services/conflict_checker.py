# backend/courtbook/services/conflict_checker.py
"""
Conflict Checker Service for the court booking platform

Decides whether a booking may be created for a requested
venue/date/time range. The gates run in a fixed order:

1. Slot-instance gate: an active, exactly matching slot instance of the
   venue's booking mode must exist. A slot that was never generated is
   rejected regardless of what else is booked.
2. Overlap gate: no pending/confirmed booking or recurring occurrence may
   overlap the range.
3. External block gate: no active external calendar block may overlap the
   range once both are placed on the same absolute timeline.
"""

from dataclasses import dataclass
from datetime import date, time
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import ACTION_INSTANT_BOOK, ACTION_REQUEST_PRIVATE
from ..core.enums import ConflictType
from ..core.timezone_utils import combine_local, to_local
from ..domain.time_ranges import TimeLike, minutes_to_clock, ranges_overlap, time_to_minutes
from ..models.external_block import ExternalAvailabilityBlock
from ..repositories import RepositoryFactory
from ..repositories.conflict_checker_repository import ConflictCheckerRepository
from .base import BaseService

logger = logging.getLogger(__name__)

MSG_SLOT_UNAVAILABLE = "Requested time slot is not available"
MSG_EXTERNAL_BLOCK = "Requested time slot is blocked by an external calendar event"
MSG_BOOKING_OVERLAP = "Booking time conflicts with existing booking"
MSG_RECURRING_OVERLAP = "Booking time conflicts with existing recurring booking"
MSG_VENUE_MISSING = "Venue not found while validating slot availability"


@dataclass(frozen=True)
class ConflictCheckResult:
    has_conflict: bool
    conflict_type: Optional[ConflictType] = None
    message: Optional[str] = None
    conflicting_booking_id: Optional[str] = None

    @classmethod
    def clear(cls) -> "ConflictCheckResult":
        return cls(has_conflict=False)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"has_conflict": self.has_conflict}
        if self.conflict_type is not None:
            payload["conflict_type"] = self.conflict_type.value
        if self.message:
            payload["message"] = self.message
        if self.conflicting_booking_id:
            payload["conflicting_booking_id"] = self.conflicting_booking_id
        return payload


def booking_action_type(instant_booking: bool) -> str:
    """Slot action type a venue's regular bookings use."""
    return ACTION_INSTANT_BOOK if instant_booking else ACTION_REQUEST_PRIVATE


def overlaps_external_block(
    slot_date: date,
    start_time: TimeLike,
    end_time: TimeLike,
    block: ExternalAvailabilityBlock,
    tz_name: Optional[str] = None,
) -> bool:
    """
    True when a venue-local slot overlaps an absolute-time external block.

    The slot is localized in the venue timezone (DST-aware); naive block
    timestamps are taken as UTC.
    """
    slot_start = combine_local(slot_date, _as_clock(start_time), tz_name)
    slot_end = combine_local(slot_date, _as_clock(end_time), tz_name)
    block_start = to_local(block.start_at, tz_name)
    block_end = to_local(block.end_at, tz_name)
    return ranges_overlap(slot_start, slot_end, block_start, block_end)


def _as_clock(value: TimeLike) -> time:
    if isinstance(value, time):
        return value.replace(tzinfo=None)
    return minutes_to_clock(time_to_minutes(value))


class ConflictChecker(BaseService):
    """
    Service for checking booking conflicts.

    Shared by the booking state machine and exposed directly so the UI can
    pre-validate a slot before submitting.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[ConflictCheckerRepository] = None,
        *,
        tz_name: Optional[str] = None,
    ):
        """
        Initialize conflict checker service.

        Args:
            db: Database session
            repository: Optional ConflictCheckerRepository instance
            tz_name: Venue-local timezone; defaults to the platform zone
        """
        super().__init__(db)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_conflict_checker_repository(db)
        self.venue_repository = RepositoryFactory.create_venue_repository(db)
        self.tz_name = tz_name or settings.platform_timezone

    @BaseService.measure_operation("check_conflicts")
    def check_conflicts(
        self,
        venue_id: str,
        check_date: date,
        start_time: TimeLike,
        end_time: TimeLike,
        exclude_booking_id: Optional[str] = None,
    ) -> ConflictCheckResult:
        """
        Run every gate for the requested range.

        Returns:
            The first failing gate's result, or a clear result
        """
        start = _as_clock(start_time)
        end = _as_clock(end_time)

        venue = self.venue_repository.get_by_id(venue_id)
        if venue is None:
            return ConflictCheckResult(
                has_conflict=True,
                conflict_type=ConflictType.SLOT_UNAVAILABLE,
                message=MSG_VENUE_MISSING,
            )

        expected_action = booking_action_type(bool(venue.instant_booking))
        instances = self.repository.get_exact_bookable_instances(venue_id, check_date, start, end)
        if not any(instance.action_type == expected_action for instance in instances):
            self.logger.info(
                "No active %s slot instance for venue %s on %s %s-%s",
                expected_action,
                venue_id,
                check_date,
                start,
                end,
            )
            return ConflictCheckResult(
                has_conflict=True,
                conflict_type=ConflictType.SLOT_UNAVAILABLE,
                message=MSG_SLOT_UNAVAILABLE,
            )

        bookings = self.repository.get_overlapping_bookings(
            venue_id, check_date, start, end, exclude_booking_id
        )
        if bookings:
            self.logger.warning(
                f"Booking conflict for venue {venue_id} on {check_date} "
                f"{start}-{end}: {bookings[0].id}"
            )
            return ConflictCheckResult(
                has_conflict=True,
                conflict_type=ConflictType.TIME_OVERLAP,
                message=MSG_BOOKING_OVERLAP,
                conflicting_booking_id=bookings[0].id,
            )

        recurring = self.repository.get_overlapping_recurring(
            venue_id, check_date, start, end, exclude_booking_id
        )
        if recurring:
            return ConflictCheckResult(
                has_conflict=True,
                conflict_type=ConflictType.TIME_OVERLAP,
                message=MSG_RECURRING_OVERLAP,
                conflicting_booking_id=recurring[0].id,
            )

        for block in self.repository.get_active_external_blocks(venue_id):
            if overlaps_external_block(check_date, start, end, block, self.tz_name):
                self.logger.info(
                    "Slot %s %s-%s at venue %s blocked by external event %s",
                    check_date,
                    start,
                    end,
                    venue_id,
                    block.source_event_id or block.id,
                )
                return ConflictCheckResult(
                    has_conflict=True,
                    conflict_type=ConflictType.SLOT_UNAVAILABLE,
                    message=MSG_EXTERNAL_BLOCK,
                )

        return ConflictCheckResult.clear()

