# backend/courtbook/repositories/payment_repository.py
"""
Payment Repository for the court booking platform.

At most one payment row exists per booking; ``upsert_for_booking`` is the
only way new rows are created.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.payment import Payment
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class PaymentRepository(BaseRepository[Payment]):
    def __init__(self, db: Session):
        super().__init__(db, Payment)
        self.logger = logging.getLogger(__name__)

    def get_by_booking_id(self, booking_id: str) -> Optional[Payment]:
        return self.find_one_by(booking_id=booking_id)

    def get_by_payment_intent_id(self, payment_intent_id: str) -> Optional[Payment]:
        return self.find_one_by(stripe_payment_intent_id=payment_intent_id)

    def upsert_for_booking(
        self,
        booking_id: str,
        *,
        create_fields: Dict[str, Any],
        update_fields: Dict[str, Any],
    ) -> Payment:
        """
        Update the booking's payment if one exists, otherwise insert it.

        A concurrent insert for the same booking loses on the unique
        ``booking_id`` constraint; the row that won is then updated instead.
        """
        existing = self.get_by_booking_id(booking_id)
        if existing is not None:
            return self._apply(existing, update_fields)

        try:
            with self.db.begin_nested():
                payment = Payment(booking_id=booking_id, **create_fields, **update_fields)
                self.db.add(payment)
                self.db.flush()
            return payment
        except IntegrityError:
            self.logger.info("Payment for booking %s created concurrently; updating", booking_id)
            winner = self.get_by_booking_id(booking_id)
            if winner is None:
                raise RepositoryException(f"Failed to upsert payment for booking {booking_id}")
            return self._apply(winner, update_fields)
        except SQLAlchemyError as e:
            self.logger.error(f"Error upserting payment for booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to upsert payment: {str(e)}")

    def _apply(self, payment: Payment, fields: Dict[str, Any]) -> Payment:
        for key, value in fields.items():
            setattr(payment, key, value)
        self.db.flush()
        return payment
