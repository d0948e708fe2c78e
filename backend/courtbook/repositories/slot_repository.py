# backend/courtbook/repositories/slot_repository.py
"""
Slot Repository for the court booking platform.

Slot templates, generated instances, and the drop-in pricing and modal
content that decorate them.
"""

from datetime import date, time
import logging
from typing import Dict, Iterable, List, Set, Tuple

from sqlalchemy.orm import Session, selectinload

from ..core.constants import ACTION_INFO_ONLY_OPEN_GYM
from ..models.slot import SlotInstance, SlotModalContent, SlotTemplate
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

InstanceKey = Tuple[date, time, time, str]


class SlotRepository(BaseRepository[SlotInstance]):
    def __init__(self, db: Session):
        super().__init__(db, SlotInstance)

    def get_active_info_only_instances(
        self, venue_id: str, date_from: date, date_to: date
    ) -> List[SlotInstance]:
        """Active drop-in instances in range, with pricing eagerly loaded."""
        query = (
            self.db.query(SlotInstance)
            .options(selectinload(SlotInstance.pricing))
            .filter(
                SlotInstance.venue_id == venue_id,
                SlotInstance.date >= date_from,
                SlotInstance.date <= date_to,
                SlotInstance.is_active.is_(True),
                SlotInstance.action_type == ACTION_INFO_ONLY_OPEN_GYM,
            )
            .order_by(SlotInstance.date.asc(), SlotInstance.start_time.asc())
        )
        return self._execute_query(query)

    def get_modal_content(self, action_types: Iterable[str]) -> Dict[str, SlotModalContent]:
        action_types = list(set(action_types))
        if not action_types:
            return {}
        query = self.db.query(SlotModalContent).filter(
            SlotModalContent.action_type.in_(action_types)
        )
        return {row.action_type: row for row in self._execute_query(query)}

    def get_active_templates(self, venue_id: str) -> List[SlotTemplate]:
        query = (
            self.db.query(SlotTemplate)
            .filter(SlotTemplate.venue_id == venue_id, SlotTemplate.is_active.is_(True))
            .order_by(SlotTemplate.day_of_week.asc(), SlotTemplate.start_time.asc())
        )
        return self._execute_query(query)

    def get_instance_keys(self, venue_id: str, date_from: date, date_to: date) -> Set[InstanceKey]:
        """Identity of every instance in range, active or not."""
        query = self.db.query(
            SlotInstance.date,
            SlotInstance.start_time,
            SlotInstance.end_time,
            SlotInstance.action_type,
        ).filter(
            SlotInstance.venue_id == venue_id,
            SlotInstance.date >= date_from,
            SlotInstance.date <= date_to,
        )
        return {tuple(row) for row in self._execute_query(query)}

    def add_instances(self, instances: List[SlotInstance]) -> List[SlotInstance]:
        if not instances:
            return []
        self.db.add_all(instances)
        self.db.flush()
        return instances
