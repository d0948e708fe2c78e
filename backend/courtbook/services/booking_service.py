# backend/courtbook/services/booking_service.py
"""
Booking Service for the court booking platform

Owns the booking lifecycle:

- create: advance window, venue policy gate, conflict check, insert,
  recurring series expansion
- reschedule, re-running the same gates with the booking excluded from
  the overlap test
- cancel / confirm / approve insurance with role checks and the status
  transition table
- hard delete of abandoned, unpaid bookings
- role-scoped listing and lookup

Every state change writes an audit entry; audit failures never abort the
operation.
"""

from dataclasses import dataclass, field
from datetime import date, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import RoleName, RoleView, TimeView
from ..core.exceptions import (
    BookingConflictException,
    NotFoundException,
    PolicyViolationException,
    ServiceException,
    ValidationException,
)
from ..core.timezone_utils import combine_local, local_today
from ..domain.booking_policy import BookingPolicy, find_policy_violation
from ..domain.recurrence import occurrence_dates
from ..domain.time_ranges import minutes_to_clock, time_to_minutes
from ..models.booking import Booking, BookingStatus, RecurringBooking
from ..models.user import User
from ..models.venue import Venue
from ..repositories import RepositoryFactory
from ..schemas.booking import BookingCreate, BookingFilters, BookingUpdate
from ..schemas.payment import RefundResponse
from .audit_service import AuditService
from .base import BaseService, NowProvider
from .conflict_checker import MSG_BOOKING_OVERLAP, ConflictChecker, ConflictCheckResult
from .payment_service import PaymentService, requires_immediate_payment

logger = logging.getLogger(__name__)

GENERIC_CONFLICT_MESSAGE = MSG_BOOKING_OVERLAP
ACTIVE_SLOT_INDEX = "uq_bookings_active_slot"


@dataclass
class CreatedBooking:
    booking: Booking
    requires_immediate_payment: bool
    awaiting_owner_approval: bool
    awaiting_insurance_approval: bool
    recurring_bookings: List[RecurringBooking] = field(default_factory=list)


@dataclass
class CancellationResult:
    booking: Booking
    refund: Optional[RefundResponse] = None


class BookingService(BaseService):
    """
    Service layer for booking operations.

    Collaborators are injectable so tests can substitute the payment
    gateway and control the clock.
    """

    def __init__(
        self,
        db: Session,
        conflict_checker: Optional[ConflictChecker] = None,
        payment_service: Optional[PaymentService] = None,
        audit_service: Optional[AuditService] = None,
        *,
        now_provider: Optional[NowProvider] = None,
        tz_name: Optional[str] = None,
    ):
        super().__init__(db, now_provider)
        self.tz_name = tz_name or settings.platform_timezone
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.venue_repository = RepositoryFactory.create_venue_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(db, tz_name=self.tz_name)
        self.payment_service = payment_service or PaymentService(db, now_provider=now_provider)
        self.audit_service = audit_service or AuditService(db)

    # ------------------------------------------------------------------ #
    # Creation
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("create_booking")
    def create_booking(self, data: BookingCreate, user_id: str) -> CreatedBooking:
        """
        Create a pending booking, plus its recurring occurrences.

        Args:
            data: Validated booking request
            user_id: Renter making the booking

        Returns:
            The booking with the payment-flow flags the caller needs

        Raises:
            NotFoundException: If the venue does not exist
            ValidationException: If the date is outside the booking window
            PolicyViolationException: If a venue policy rule rejects the slot
            BookingConflictException: If the slot is unavailable or taken
        """
        venue = self.venue_repository.get_by_id(data.venue_id)
        if venue is None:
            raise NotFoundException("Venue not found")

        start = minutes_to_clock(time_to_minutes(data.start_time))
        end = minutes_to_clock(time_to_minutes(data.end_time))

        self._check_advance_window(venue, data.date)
        self._check_policy(venue, data.date, start)

        conflict = self.conflict_checker.check_conflicts(data.venue_id, data.date, start, end)
        if conflict.has_conflict:
            raise BookingConflictException(
                conflict.message,
                conflict_type=conflict.conflict_type.value,
                conflicting_booking_id=conflict.conflicting_booking_id,
            )

        total_amount = self._calculate_total(venue, start, end)
        with self.transaction():
            try:
                booking = self.booking_repository.create_booking(
                    venue_id=venue.id,
                    renter_id=user_id,
                    date=data.date,
                    start_time=start,
                    end_time=end,
                    status=BookingStatus.PENDING.value,
                    total_amount=total_amount,
                    insurance_required=bool(venue.insurance_required),
                    insurance_approved=not venue.insurance_required,
                    recurring_type=data.recurring_type.value,
                    recurring_end_date=data.recurring_end_date,
                    notes=data.notes,
                )
            except IntegrityError as exc:
                message = self._resolve_integrity_conflict_message(exc)
                raise BookingConflictException(message, conflict_type="time_overlap") from exc

            self.audit_service.log_create("bookings", booking.id, user_id, booking.to_dict())
            recurring = self._generate_recurring_bookings(booking)

        self.logger.info(
            f"Created booking {booking.id} for venue {venue.id} on {booking.date} "
            f"{booking.start_time}-{booking.end_time} ({len(recurring)} recurring)"
        )

        return CreatedBooking(
            booking=booking,
            requires_immediate_payment=requires_immediate_payment(venue),
            awaiting_owner_approval=not venue.instant_booking,
            awaiting_insurance_approval=bool(venue.insurance_required)
            and not booking.insurance_approved,
            recurring_bookings=recurring,
        )

    def check_conflicts(
        self,
        venue_id: str,
        check_date,
        start_time,
        end_time,
        exclude_booking_id: Optional[str] = None,
    ) -> ConflictCheckResult:
        return self.conflict_checker.check_conflicts(
            venue_id, check_date, start_time, end_time, exclude_booking_id
        )

    def _check_advance_window(self, venue: Venue, day: date) -> None:
        today = local_today(self.now(), self.tz_name)
        if day < today:
            raise ValidationException("Cannot book a date in the past")

        horizon = venue.max_advance_booking_days or settings.max_advance_booking_days
        if day > today + timedelta(days=horizon):
            raise ValidationException(
                f"Bookings can only be made up to {horizon} days in advance"
            )

    def _check_policy(self, venue: Venue, day: date, start_time: time) -> None:
        policy = BookingPolicy.from_config(venue.id, self.venue_repository.get_admin_config(venue.id))
        violation = find_policy_violation(
            day, start_time, policy, self.now(), tz_name=self.tz_name
        )
        if violation is not None:
            self.logger.info(
                f"Booking for venue {venue.id} on {day} rejected by {violation.rule.value}"
            )
            raise PolicyViolationException(violation.rule.value, violation.message)

    @staticmethod
    def _calculate_total(venue: Venue, start_time: time, end_time: time) -> Decimal:
        minutes = time_to_minutes(end_time) - time_to_minutes(start_time)
        amount = Decimal(minutes) / Decimal(60) * Decimal(venue.hourly_rate)
        return amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def _resolve_integrity_conflict_message(self, integrity_error: IntegrityError) -> str:
        """Conflict message for a uniqueness violation raised by the booking insert."""
        orig = getattr(integrity_error, "orig", None)
        diag = getattr(orig, "diag", None)
        constraint_name = ""
        if diag is not None:
            constraint_name = getattr(diag, "constraint_name", "") or ""
        if not constraint_name and orig is not None:
            text = str(orig)
            if ACTIVE_SLOT_INDEX in text or "bookings.venue_id" in text:
                constraint_name = ACTIVE_SLOT_INDEX
        if constraint_name != ACTIVE_SLOT_INDEX:
            self.logger.warning(f"Unexpected integrity error on booking insert: {integrity_error}")
        return GENERIC_CONFLICT_MESSAGE

    def _generate_recurring_bookings(self, parent: Booking) -> List[RecurringBooking]:
        dates = occurrence_dates(
            parent.date,
            parent.recurring_type,
            parent.recurring_end_date,
            weekly_max_months=settings.recurring_weekly_max_months,
            monthly_max_months=settings.recurring_monthly_max_months,
        )
        occurrences = []
        for occurrence_date in dates:
            occurrence = self.booking_repository.create_recurring(
                parent_booking_id=parent.id,
                venue_id=parent.venue_id,
                renter_id=parent.renter_id,
                date=occurrence_date,
                start_time=parent.start_time,
                end_time=parent.end_time,
                status=BookingStatus.PENDING.value,
                total_amount=parent.total_amount,
                insurance_required=parent.insurance_required,
                insurance_approved=parent.insurance_approved,
            )
            self.audit_service.log_create(
                "recurring_bookings", occurrence.id, parent.renter_id, occurrence.to_dict()
            )
            occurrences.append(occurrence)
        return occurrences

    # ------------------------------------------------------------------ #
    # Authorization helpers
    # ------------------------------------------------------------------ #

    def _get_booking_or_404(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    def _is_owner_or_admin(self, booking: Booking, user_id: str) -> bool:
        return booking.venue.owner_id == user_id or self.user_repository.is_admin(user_id)

    def _can_view(self, booking: Booking, user_id: str) -> bool:
        return booking.renter_id == user_id or self._is_owner_or_admin(booking, user_id)

    def _starts_at(self, booking: Booking):
        return combine_local(booking.date, booking.start_time, self.tz_name)

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(self, booking_id: str, user_id: str) -> CancellationResult:
        """
        Cancel a booking and refund it if it was paid.

        Raises:
            NotFoundException: If booking not found
            ValidationException: If the user cannot cancel, the booking is
                not cancellable, or the cancellation window has closed
        """
        booking = self._get_booking_or_404(booking_id)
        if not self._can_view(booking, user_id):
            raise ValidationException("You do not have permission to cancel this booking")
        if not booking.can_transition_to(BookingStatus.CANCELLED):
            raise ValidationException(f"Cannot cancel a booking with status '{booking.status}'")

        notice = timedelta(hours=settings.cancellation_notice_hours)
        if not self.now() < self._starts_at(booking) - notice:
            raise ValidationException(
                "Bookings can only be cancelled at least "
                f"{settings.cancellation_notice_hours} hours before the start time"
            )

        with self.transaction():
            old_values = booking.to_dict()
            booking.status = BookingStatus.CANCELLED.value
            self.booking_repository.flush()
            self.audit_service.log_update(
                "bookings", booking.id, user_id, old_values, booking.to_dict()
            )

        refund = self.payment_service.process_refund(booking.id, user_id)
        self.logger.info(f"Booking {booking.id} cancelled by {user_id} (refunded={bool(refund)})")
        return CancellationResult(booking=booking, refund=refund)

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(self, booking_id: str, user_id: str) -> Booking:
        booking = self._get_booking_or_404(booking_id)
        if not self._is_owner_or_admin(booking, user_id):
            raise ValidationException("Only venue owner or admin can confirm bookings")
        if booking.venue.insurance_required and not booking.insurance_approved:
            raise ValidationException("Insurance approval required before confirming booking")
        if not booking.can_transition_to(BookingStatus.CONFIRMED):
            raise ValidationException(f"Cannot confirm a booking with status '{booking.status}'")

        with self.transaction():
            old_values = booking.to_dict()
            booking.status = BookingStatus.CONFIRMED.value
            self.booking_repository.flush()
            self.audit_service.log_update(
                "bookings", booking.id, user_id, old_values, booking.to_dict()
            )
        return booking

    @BaseService.measure_operation("approve_insurance")
    def approve_insurance(self, booking_id: str, user_id: str) -> Booking:
        """Mark insurance approved on a booking and its recurring occurrences."""
        booking = self._get_booking_or_404(booking_id)
        if not self._is_owner_or_admin(booking, user_id):
            raise ValidationException("Only venue owner or admin can approve insurance")
        if booking.status in (BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value):
            raise ValidationException(
                f"Cannot approve insurance for a booking with status '{booking.status}'"
            )

        with self.transaction():
            old_values = booking.to_dict()
            booking.insurance_approved = True
            for occurrence in self.booking_repository.get_recurring_for_parent(booking.id):
                occurrence.insurance_approved = True
            self.booking_repository.flush()
            self.audit_service.log_update(
                "bookings", booking.id, user_id, old_values, booking.to_dict()
            )
        return booking

    @BaseService.measure_operation("update_booking")
    def update_booking(self, booking_id: str, data: BookingUpdate, user_id: str) -> Booking:
        """
        Reschedule a booking or edit its notes.

        A new date or time goes through the same advance window, policy gate
        and conflict check as a new booking, with the booking itself excluded
        from the overlap test. The price follows the new duration.

        Raises:
            NotFoundException: If booking not found
            ValidationException: If the user cannot update the booking, it is
                closed, or the new slot is invalid
            BookingConflictException: If the new slot is unavailable or taken
        """
        booking = self._get_booking_or_404(booking_id)
        if not self._can_view(booking, user_id):
            raise ValidationException("You do not have permission to update this booking")
        if booking.status in (BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value):
            raise ValidationException("Cannot update completed or cancelled bookings")

        day = data.date or booking.date
        start = (
            minutes_to_clock(time_to_minutes(data.start_time))
            if data.start_time
            else booking.start_time
        )
        end = minutes_to_clock(time_to_minutes(data.end_time)) if data.end_time else booking.end_time
        rescheduled = (day, start, end) != (booking.date, booking.start_time, booking.end_time)

        venue = booking.venue
        if rescheduled:
            if time_to_minutes(end) <= time_to_minutes(start):
                raise ValidationException("end_time must be after start_time")
            self._check_advance_window(venue, day)
            self._check_policy(venue, day, start)
            conflict = self.conflict_checker.check_conflicts(
                venue.id, day, start, end, exclude_booking_id=booking.id
            )
            if conflict.has_conflict:
                raise BookingConflictException(
                    conflict.message,
                    conflict_type=conflict.conflict_type.value,
                    conflicting_booking_id=conflict.conflicting_booking_id,
                )

        with self.transaction():
            old_values = booking.to_dict()
            if rescheduled:
                booking.date = day
                booking.start_time = start
                booking.end_time = end
                booking.total_amount = self._calculate_total(venue, start, end)
            if data.notes is not None:
                booking.notes = data.notes
            try:
                self.booking_repository.flush()
            except IntegrityError as exc:
                message = self._resolve_integrity_conflict_message(exc)
                raise BookingConflictException(message, conflict_type="time_overlap") from exc
            self.audit_service.log_update(
                "bookings", booking.id, user_id, old_values, booking.to_dict()
            )

        if rescheduled:
            self.logger.info(f"Booking {booking.id} moved to {day} {start}-{end} by {user_id}")
        return booking

    @BaseService.measure_operation("delete_unpaid_booking")
    def delete_unpaid_booking(self, booking_id: str, user_id: str) -> None:
        """
        Hard delete a pending booking whose renter abandoned payment.

        An authorized card hold is released first. The audit entry is
        written before the row is removed.
        """
        booking = self._get_booking_or_404(booking_id)
        if booking.renter_id != user_id:
            raise ValidationException("You do not have permission to delete this booking")
        if booking.status != BookingStatus.PENDING.value:
            raise ValidationException("Only pending bookings can be deleted")

        payment = self.payment_service.get_payment_by_booking_id(booking_id)
        if payment is not None and payment.status == "paid":
            raise ValidationException("Cannot delete a paid booking. Use cancel instead.")
        if payment is not None and payment.status == "authorized":
            self.payment_service.cancel_setup_intent(booking_id, user_id)

        with self.transaction():
            self.audit_service.log_delete("bookings", booking.id, user_id, booking.to_dict())
            self.booking_repository.delete(booking.id)
        self.logger.info(f"Deleted unpaid booking {booking_id}")

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: str, user_id: str) -> Booking:
        """Bookings the caller may not see are reported as missing."""
        booking = self._get_booking_or_404(booking_id)
        if not self._can_view(booking, user_id):
            raise NotFoundException("Booking not found")
        return booking

    @BaseService.measure_operation("list_bookings")
    def list_bookings(self, filters: BookingFilters, user_id: str) -> List[Booking]:
        """
        Bookings visible to the caller.

        ``role_view`` pins the perspective (renter: own bookings; host:
        bookings at owned venues). Without it the broadest role wins: admin,
        then venue owner, then renter.
        """
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            return []

        renter_id, venue_ids = self._resolve_scope(user, filters)
        if venue_ids is not None and filters.venue_id:
            venue_ids = [v for v in venue_ids if v == filters.venue_id]
        elif venue_ids is None and filters.venue_id:
            venue_ids = [filters.venue_id]

        bookings = self.booking_repository.find_bookings(
            renter_id=renter_id,
            venue_ids=venue_ids,
            status=filters.status.value if filters.status else None,
            date_from=filters.date_from,
            date_to=filters.date_to,
        )
        if filters.time_view:
            now = self.now()
            if TimeView(filters.time_view) == TimeView.UPCOMING:
                bookings = [b for b in bookings if self._starts_at(b) >= now]
            else:
                bookings = [b for b in bookings if self._starts_at(b) < now]
        return bookings

    def _resolve_scope(
        self, user: User, filters: BookingFilters
    ) -> Tuple[Optional[str], Optional[List[str]]]:
        """(renter_id, venue_ids) restricting the listing; both None means unrestricted."""
        if filters.role_view:
            if RoleView(filters.role_view) == RoleView.RENTER:
                return user.id, None
            if not user.is_venue_owner:
                return None, []
            return None, self.venue_repository.get_owned_venue_ids(user.id)

        role = user.role
        if role == RoleName.ADMIN:
            return None, None
        if role == RoleName.VENUE_OWNER:
            return None, self.venue_repository.get_owned_venue_ids(user.id)
        if role == RoleName.RENTER:
            return user.id, None
        if role is None:
            return None, []
        raise ServiceException(f"Unsupported role for booking listing: {role}")
