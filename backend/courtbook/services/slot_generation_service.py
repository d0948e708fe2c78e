# backend/courtbook/services/slot_generation_service.py
"""
Materializes weekly slot templates into dated slot instances.

Instances are cut with the same 30-minute rounding used for computed gap
slots, so a regular booking made from the availability engine lands on
an instance boundary exactly.
"""

from datetime import date, timedelta
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import NotFoundException, ValidationException
from ..domain.recurrence import iter_dates
from ..domain.time_ranges import minutes_to_clock, split_into_intervals, to_range
from ..models.slot import SlotInstance
from ..repositories import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

MAX_GENERATION_DAYS = 366


def template_weekday(day: date) -> int:
    """Weekday numbered the way templates store it (0 = Sunday)."""
    return (day.weekday() + 1) % 7


class SlotGenerationService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.venue_repository = RepositoryFactory.create_venue_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)

    @BaseService.measure_operation("generate_slot_instances")
    def generate_slot_instances(
        self,
        venue_id: str,
        date_from: date,
        date_to: date,
        *,
        requested_by: Optional[str] = None,
    ) -> List[SlotInstance]:
        """
        Create the missing instances for every active template in range.

        Existing instances (active or not) are left untouched, so running
        this twice over the same range creates nothing the second time.

        Returns:
            The newly created instances
        """
        if date_to < date_from:
            raise ValidationException("date_to must be on or after date_from")
        if date_to - date_from > timedelta(days=MAX_GENERATION_DAYS):
            raise ValidationException(
                f"Slot generation range cannot exceed {MAX_GENERATION_DAYS} days"
            )

        venue = self.venue_repository.get_by_id(venue_id)
        if venue is None:
            raise NotFoundException("Venue not found")
        if requested_by is not None and not (
            venue.owner_id == requested_by or self.user_repository.is_admin(requested_by)
        ):
            raise ValidationException("Only venue owner or admin can generate slots")

        templates = self.slot_repository.get_active_templates(venue_id)
        if not templates:
            return []

        existing = self.slot_repository.get_instance_keys(venue_id, date_from, date_to)
        new_instances: List[SlotInstance] = []
        for day in iter_dates(date_from, date_to):
            weekday = template_weekday(day)
            for template in templates:
                if template.day_of_week != weekday:
                    continue
                window = to_range(template.start_time, template.end_time)
                for piece in split_into_intervals(window, template.slot_interval_minutes):
                    start = minutes_to_clock(piece.start)
                    end = minutes_to_clock(piece.end)
                    key = (day, start, end, template.action_type)
                    if key in existing:
                        continue
                    existing.add(key)
                    new_instances.append(
                        SlotInstance(
                            venue_id=venue_id,
                            template_id=template.id,
                            date=day,
                            start_time=start,
                            end_time=end,
                            action_type=template.action_type,
                            blocks_inventory=template.blocks_inventory,
                            is_active=True,
                        )
                    )

        with self.transaction():
            self.slot_repository.add_instances(new_instances)

        self.logger.info(
            f"Generated {len(new_instances)} slot instances for venue {venue_id} "
            f"{date_from}..{date_to}"
        )
        return new_instances
