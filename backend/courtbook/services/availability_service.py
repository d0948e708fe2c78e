# backend/courtbook/services/availability_service.py
"""
Availability Computation Engine for the court booking platform

Produces the authoritative list of slots a renter may pick for a venue
over a date range. Regular slots are computed by subtracting active
bookings from open availability windows; drop-in sessions come from
generated ``info_only_open_gym`` slot instances and are always shown.
"""

from collections import defaultdict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import DISALLOWED_MODAL_BULLETS
from ..core.exceptions import NotFoundException, ValidationException
from ..domain.booking_policy import BookingPolicy, is_slot_allowed
from ..domain.time_ranges import (
    TimeRange,
    filter_and_round_gaps,
    minutes_to_time,
    subtract_busy_from_free,
    time_to_minutes,
)
from ..models.slot import SlotInstance, SlotModalContent
from ..repositories import RepositoryFactory
from ..schemas.availability import ModalContentOut, SlotPricingOut, UnifiedSlot
from .base import BaseService, NowProvider
from .conflict_checker import booking_action_type, overlaps_external_block

logger = logging.getLogger(__name__)


class AvailabilityService(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        now_provider: Optional[NowProvider] = None,
        tz_name: Optional[str] = None,
    ):
        super().__init__(db, now_provider)
        self.venue_repository = RepositoryFactory.create_venue_repository(db)
        self.availability_repository = RepositoryFactory.create_availability_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.slot_repository = RepositoryFactory.create_slot_repository(db)
        self.conflict_repository = RepositoryFactory.create_conflict_checker_repository(db)
        self.tz_name = tz_name or settings.platform_timezone

    @BaseService.measure_operation("get_available_slots")
    def get_available_slots(
        self, venue_id: str, date_from: date, date_to: date
    ) -> List[UnifiedSlot]:
        """
        Bookable and drop-in slots for a venue, sorted by date then start.

        Raises:
            NotFoundException: If the venue does not exist
            ValidationException: If the range is inverted
        """
        if date_to < date_from:
            raise ValidationException("date_to must be on or after date_from")

        venue = self.venue_repository.get_by_id(venue_id)
        if venue is None:
            raise NotFoundException("Venue not found")

        policy = BookingPolicy.from_config(venue_id, self.venue_repository.get_admin_config(venue_id))
        windows = self.availability_repository.get_open_windows(venue_id, date_from, date_to)
        busy_by_date = self._collect_busy_ranges(venue_id, date_from, date_to)
        drop_in_instances = self.slot_repository.get_active_info_only_instances(
            venue_id, date_from, date_to
        )

        action_type = booking_action_type(bool(venue.instant_booking))
        regular: List[UnifiedSlot] = []
        for window in windows:
            free = TimeRange(time_to_minutes(window.start_time), time_to_minutes(window.end_time))
            busy = sorted(busy_by_date.get(window.date, []))
            for gap in filter_and_round_gaps(subtract_busy_from_free(free, busy)):
                regular.append(
                    UnifiedSlot(
                        date=window.date,
                        start_time=minutes_to_time(gap.start),
                        end_time=minutes_to_time(gap.end),
                        venue_id=venue_id,
                        availability_id=window.id,
                        action_type=action_type,
                    )
                )

        now = self.now()
        regular = [
            slot
            for slot in regular
            if is_slot_allowed(slot.date, slot.start_time, policy, now, tz_name=self.tz_name)
        ]

        external_blocks = self.conflict_repository.get_active_external_blocks(venue_id)
        if external_blocks:
            regular = [
                slot
                for slot in regular
                if not any(
                    overlaps_external_block(
                        slot.date, slot.start_time, slot.end_time, block, self.tz_name
                    )
                    for block in external_blocks
                )
            ]

        regular = self._drop_inventory_blocked(regular, drop_in_instances)
        drop_ins = self._map_drop_in_slots(venue_id, drop_in_instances, policy)

        slots = regular + drop_ins
        slots.sort(key=lambda slot: (slot.date, slot.start_time))
        self.logger.debug(
            "Computed %d slots (%d drop-in) for venue %s %s..%s",
            len(slots),
            len(drop_ins),
            venue_id,
            date_from,
            date_to,
        )
        return slots

    def _collect_busy_ranges(
        self, venue_id: str, date_from: date, date_to: date
    ) -> Dict[date, List[TimeRange]]:
        busy: Dict[date, List[TimeRange]] = defaultdict(list)
        bookings = self.booking_repository.get_active_bookings_in_range(venue_id, date_from, date_to)
        recurring = self.booking_repository.get_active_recurring_in_range(
            venue_id, date_from, date_to
        )
        for row in [*bookings, *recurring]:
            busy[row.date].append(
                TimeRange(time_to_minutes(row.start_time), time_to_minutes(row.end_time))
            )
        return busy

    @staticmethod
    def _drop_inventory_blocked(
        regular: List[UnifiedSlot], instances: Iterable[SlotInstance]
    ) -> List[UnifiedSlot]:
        """Remove regular slots overlapping a drop-in instance that blocks inventory."""
        blocking: Dict[date, List[TimeRange]] = defaultdict(list)
        for instance in instances:
            if instance.blocks_inventory:
                blocking[instance.date].append(
                    TimeRange(
                        time_to_minutes(instance.start_time), time_to_minutes(instance.end_time)
                    )
                )
        if not blocking:
            return regular

        kept = []
        for slot in regular:
            slot_range = TimeRange(time_to_minutes(slot.start_time), time_to_minutes(slot.end_time))
            if any(slot_range.overlaps(block) for block in blocking.get(slot.date, ())):
                continue
            kept.append(slot)
        return kept

    def _map_drop_in_slots(
        self, venue_id: str, instances: List[SlotInstance], policy: BookingPolicy
    ) -> List[UnifiedSlot]:
        if not instances:
            return []
        modal_by_action = self.slot_repository.get_modal_content(i.action_type for i in instances)

        slots = []
        for instance in instances:
            slots.append(
                UnifiedSlot(
                    date=instance.date,
                    start_time=minutes_to_time(time_to_minutes(instance.start_time)),
                    end_time=minutes_to_time(time_to_minutes(instance.end_time)),
                    venue_id=venue_id,
                    slot_instance_id=instance.id,
                    action_type=instance.action_type,
                    modal_content=_modal_content(modal_by_action.get(instance.action_type)),
                    slot_pricing=_slot_pricing(instance, policy),
                )
            )
        return slots


def _modal_content(row: Optional[SlotModalContent]) -> Optional[ModalContentOut]:
    if row is None:
        return None
    bullets = [
        bullet
        for bullet in (row.bullet_points or [])
        if isinstance(bullet, str)
        and bullet.strip().rstrip(".!").lower() not in DISALLOWED_MODAL_BULLETS
    ]
    return ModalContentOut(
        title=row.title, body=row.body, bullet_points=bullets, cta_label=row.cta_label
    )


def _slot_pricing(instance: SlotInstance, policy: BookingPolicy) -> Optional[SlotPricingOut]:
    """Per-instance pricing, else the venue's drop-in price when drop-in is enabled."""
    pricing = instance.pricing
    if pricing is not None:
        return SlotPricingOut(
            amount_cents=pricing.amount_cents,
            currency=pricing.currency,
            unit=pricing.unit,
            payment_method=pricing.payment_method,
        )
    if policy.drop_in_enabled and policy.drop_in_price is not None:
        cents = (policy.drop_in_price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return SlotPricingOut(
            amount_cents=int(cents),
            currency=settings.stripe_currency,
            unit="person",
            payment_method="on_site",
        )
    return None
