# backend/courtbook/repositories/booking_repository.py
"""
Booking Repository for the court booking platform.

Data access for bookings and their recurring occurrences. Filtering by
role happens in the service; this layer only knows venue/renter/status/date
criteria.
"""

from datetime import date
import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.booking import ACTIVE_BOOKING_STATUSES, Booking, RecurringBooking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class BookingRepository(BaseRepository[Booking]):
    def __init__(self, db: Session):
        super().__init__(db, Booking)
        self.logger = logging.getLogger(__name__)

    def create_booking(self, **fields) -> Booking:
        """
        Insert a booking inside a savepoint.

        A uniqueness violation rolls back only the savepoint and is re-raised
        as ``IntegrityError`` for the service to translate.
        """
        try:
            with self.db.begin_nested():
                booking = Booking(**fields)
                self.db.add(booking)
                self.db.flush()
            return booking
        except IntegrityError:
            self.logger.info(
                "Booking insert rejected by constraint for venue %s on %s",
                fields.get("venue_id"),
                fields.get("date"),
            )
            raise
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating booking: {str(e)}")
            raise RepositoryException(f"Failed to create booking: {str(e)}")

    def create_recurring(self, **fields) -> RecurringBooking:
        try:
            instance = RecurringBooking(**fields)
            self.db.add(instance)
            self.db.flush()
            return instance
        except SQLAlchemyError as e:
            self.logger.error(f"Error creating recurring booking: {str(e)}")
            raise RepositoryException(f"Failed to create recurring booking: {str(e)}")

    def get_active_bookings_in_range(
        self, venue_id: str, date_from: date, date_to: date
    ) -> List[Booking]:
        """Pending and confirmed bookings for a venue between two dates inclusive."""
        query = self.db.query(Booking).filter(
            Booking.venue_id == venue_id,
            Booking.date >= date_from,
            Booking.date <= date_to,
            Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        return self._execute_query(query)

    def get_active_recurring_in_range(
        self, venue_id: str, date_from: date, date_to: date
    ) -> List[RecurringBooking]:
        query = self.db.query(RecurringBooking).filter(
            RecurringBooking.venue_id == venue_id,
            RecurringBooking.date >= date_from,
            RecurringBooking.date <= date_to,
            RecurringBooking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        return self._execute_query(query)

    def find_bookings(
        self,
        *,
        renter_id: Optional[str] = None,
        venue_ids: Optional[Iterable[str]] = None,
        status: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[Booking]:
        """
        Bookings matching every supplied criterion, oldest slot first.

        An explicitly empty ``venue_ids`` matches nothing.
        """
        query = self.db.query(Booking)
        if renter_id is not None:
            query = query.filter(Booking.renter_id == renter_id)
        if venue_ids is not None:
            venue_ids = list(venue_ids)
            if not venue_ids:
                return []
            query = query.filter(Booking.venue_id.in_(venue_ids))
        if status:
            query = query.filter(Booking.status == status)
        if date_from:
            query = query.filter(Booking.date >= date_from)
        if date_to:
            query = query.filter(Booking.date <= date_to)
        query = query.order_by(Booking.date.asc(), Booking.start_time.asc())
        return self._execute_query(query)

    def get_recurring_for_parent(self, parent_booking_id: str) -> List[RecurringBooking]:
        query = (
            self.db.query(RecurringBooking)
            .filter(RecurringBooking.parent_booking_id == parent_booking_id)
            .order_by(RecurringBooking.date.asc())
        )
        return self._execute_query(query)
