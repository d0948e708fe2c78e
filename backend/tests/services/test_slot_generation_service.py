"""Tests for materializing slot templates into dated instances."""

from datetime import date, time

import pytest

from courtbook.core.constants import ACTION_INFO_ONLY_OPEN_GYM, ACTION_INSTANT_BOOK
from courtbook.core.exceptions import NotFoundException, ValidationException
from courtbook.models.slot import SlotInstance, SlotTemplate
from courtbook.services.slot_generation_service import SlotGenerationService, template_weekday

from testkit import NINE, NOON

pytestmark = pytest.mark.integration

MONDAY = date(2025, 6, 9)
SUNDAY = date(2025, 6, 15)
MONDAY_WEEKDAY = 1


@pytest.fixture
def service(db):
    return SlotGenerationService(db)


@pytest.fixture
def make_template(db, venue):
    def _make(**overrides) -> SlotTemplate:
        fields = {
            "venue_id": venue.id,
            "action_type": ACTION_INSTANT_BOOK,
            "day_of_week": MONDAY_WEEKDAY,
            "start_time": NINE,
            "end_time": NOON,
            "slot_interval_minutes": 60,
        }
        fields.update(overrides)
        template = SlotTemplate(**fields)
        db.add(template)
        db.commit()
        return template

    return _make


def _times(instances):
    return [(i.date, i.start_time, i.end_time) for i in instances]


@pytest.mark.unit
def test_template_weekday_counts_from_sunday():
    assert template_weekday(date(2025, 6, 8)) == 0
    assert template_weekday(MONDAY) == 1
    assert template_weekday(date(2025, 6, 14)) == 6


class TestGeneration:
    def test_monday_template_produces_hourly_instances(self, service, venue, make_template):
        template = make_template()

        created = service.generate_slot_instances(venue.id, MONDAY, SUNDAY)

        assert _times(created) == [
            (MONDAY, time(9, 0), time(10, 0)),
            (MONDAY, time(10, 0), time(11, 0)),
            (MONDAY, time(11, 0), time(12, 0)),
        ]
        assert {i.template_id for i in created} == {template.id}
        assert all(i.is_active and i.action_type == ACTION_INSTANT_BOOK for i in created)

    def test_rerun_creates_nothing(self, db, service, venue, make_template):
        make_template()
        service.generate_slot_instances(venue.id, MONDAY, SUNDAY)

        assert service.generate_slot_instances(venue.id, MONDAY, SUNDAY) == []
        assert db.query(SlotInstance).count() == 3

    def test_deactivated_instance_is_not_recreated(
        self, db, service, venue, make_template, make_slot_instance
    ):
        make_template()
        make_slot_instance(venue, MONDAY, NINE, time(10, 0), is_active=False)

        created = service.generate_slot_instances(venue.id, MONDAY, SUNDAY)

        assert [i.start_time for i in created] == [time(10, 0), time(11, 0)]
        assert db.query(SlotInstance).filter(SlotInstance.is_active.is_(False)).count() == 1

    def test_trailing_remainder_is_dropped(self, service, venue, make_template):
        make_template(slot_interval_minutes=90)

        created = service.generate_slot_instances(venue.id, MONDAY, MONDAY)
        assert _times(created) == [
            (MONDAY, time(9, 0), time(10, 30)),
            (MONDAY, time(10, 30), time(12, 0)),
        ]

    def test_template_window_is_snapped_to_half_hours(self, service, venue, make_template):
        make_template(start_time=time(9, 10), end_time=time(11, 0))

        created = service.generate_slot_instances(venue.id, MONDAY, MONDAY)
        assert _times(created) == [(MONDAY, time(9, 30), time(10, 30))]

    def test_inactive_templates_are_ignored(self, service, venue, make_template):
        make_template(is_active=False)

        assert service.generate_slot_instances(venue.id, MONDAY, SUNDAY) == []

    def test_drop_in_template_copies_blocking_flag(self, service, venue, make_template):
        make_template(
            action_type=ACTION_INFO_ONLY_OPEN_GYM,
            day_of_week=0,
            start_time=time(18, 0),
            end_time=time(20, 0),
            slot_interval_minutes=120,
            blocks_inventory=True,
        )

        created = service.generate_slot_instances(venue.id, MONDAY, SUNDAY)

        assert _times(created) == [(SUNDAY, time(18, 0), time(20, 0))]
        assert created[0].blocks_inventory is True
        assert created[0].action_type == ACTION_INFO_ONLY_OPEN_GYM

    def test_venue_without_templates(self, service, venue):
        assert service.generate_slot_instances(venue.id, MONDAY, SUNDAY) == []


class TestPermissionsAndErrors:
    def test_owner_and_admin_may_generate(self, service, venue, owner, admin, make_template):
        make_template()

        by_owner = service.generate_slot_instances(venue.id, MONDAY, MONDAY, requested_by=owner.id)
        by_admin = service.generate_slot_instances(venue.id, MONDAY, MONDAY, requested_by=admin.id)

        assert len(by_owner) == 3
        assert by_admin == []

    def test_stranger_rejected(self, service, venue, renter, make_template):
        make_template()

        with pytest.raises(ValidationException, match="Only venue owner or admin"):
            service.generate_slot_instances(venue.id, MONDAY, SUNDAY, requested_by=renter.id)

    def test_inverted_range(self, service, venue):
        with pytest.raises(ValidationException, match="on or after"):
            service.generate_slot_instances(venue.id, SUNDAY, MONDAY)

    def test_range_too_long(self, service, venue):
        with pytest.raises(ValidationException, match="cannot exceed"):
            service.generate_slot_instances(venue.id, MONDAY, date(2026, 12, 31))

    def test_unknown_venue(self, service):
        with pytest.raises(NotFoundException):
            service.generate_slot_instances("missing", MONDAY, SUNDAY)
