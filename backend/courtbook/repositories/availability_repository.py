# backend/courtbook/repositories/availability_repository.py
"""
Availability Repository for the court booking platform.

Reads open windows only; availability is written by venue tooling
outside this service.
"""

from datetime import date
import logging
from typing import List

from sqlalchemy.orm import Session

from ..models.availability import Availability
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[Availability]):
    def __init__(self, db: Session):
        super().__init__(db, Availability)

    def get_open_windows(self, venue_id: str, date_from: date, date_to: date) -> List[Availability]:
        """Windows with ``is_available`` set, ordered by date then start."""
        query = (
            self.db.query(Availability)
            .filter(
                Availability.venue_id == venue_id,
                Availability.date >= date_from,
                Availability.date <= date_to,
                Availability.is_available.is_(True),
            )
            .order_by(Availability.date.asc(), Availability.start_time.asc())
        )
        return self._execute_query(query)
