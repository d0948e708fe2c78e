"""HTTP tests for /api/v1/bookings."""

from datetime import date

import pytest

from courtbook.models.booking import Booking

from testkit import ELEVEN, FUTURE, NINE, TEN, auth_headers

pytestmark = pytest.mark.integration

BASE = "/api/v1/bookings"


def _payload(venue, **overrides):
    body = {
        "venue_id": venue.id,
        "date": FUTURE.isoformat(),
        "start_time": "09:00",
        "end_time": "10:00",
    }
    body.update(overrides)
    return body


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestAuthentication:
    def test_missing_identity(self, client, venue):
        response = client.post(BASE, json=_payload(venue))

        assert response.status_code == 401
        body = response.json()
        assert body["code"] == "UNAUTHENTICATED"
        assert body["instance"] == BASE

    def test_unknown_user(self, client, venue):
        response = client.post(BASE, json=_payload(venue), headers={"X-User-Id": "ghost"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Unknown user"


class TestCreate:
    def test_created_with_payment_flags(self, client, venue, renter, make_slot_instance):
        make_slot_instance(venue, FUTURE, NINE, TEN)

        response = client.post(BASE, json=_payload(venue), headers=auth_headers(renter))

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["start_time"] == "09:00:00"
        assert body["end_time"] == "10:00:00"
        assert body["total_amount"] == "40.00"
        assert body["recurring_type"] == "none"
        assert body["requires_immediate_payment"] is True
        assert body["awaiting_owner_approval"] is False
        assert body["awaiting_insurance_approval"] is False
        assert body["recurring_booking_ids"] == []

    def test_recurring_series_ids_returned(self, client, venue, renter, make_slot_instance):
        make_slot_instance(venue, FUTURE, NINE, TEN)

        response = client.post(
            BASE,
            json=_payload(venue, recurring_type="weekly", recurring_end_date="2025-06-24"),
            headers=auth_headers(renter),
        )

        assert response.status_code == 201
        assert len(response.json()["recurring_booking_ids"]) == 2

    def test_conflict_is_409(
        self, client, venue, renter, make_user, make_slot_instance, make_booking
    ):
        make_slot_instance(venue, FUTURE, NINE, TEN)
        existing = make_booking(venue, make_user(), FUTURE, NINE, TEN)

        response = client.post(BASE, json=_payload(venue), headers=auth_headers(renter))

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "BOOKING_CONFLICT"
        assert body["errors"]["conflict_type"] == "time_overlap"
        assert body["errors"]["conflicting_booking_id"] == existing.id

    def test_unavailable_slot_is_409(self, client, venue, renter):
        response = client.post(BASE, json=_payload(venue), headers=auth_headers(renter))

        assert response.status_code == 409
        assert response.json()["errors"]["conflict_type"] == "slot_unavailable"

    def test_policy_violation_is_400(
        self, client, venue, renter, make_slot_instance, make_admin_config
    ):
        make_slot_instance(venue, FUTURE, NINE, TEN)
        make_admin_config(venue, blackout_dates=[FUTURE.isoformat()])

        response = client.post(BASE, json=_payload(venue), headers=auth_headers(renter))

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "POLICY_VIOLATION"
        assert body["errors"] == {"rule": "blackout"}

    def test_past_date_is_400(self, client, venue, renter):
        response = client.post(
            BASE, json=_payload(venue, date="2025-06-01"), headers=auth_headers(renter)
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot book a date in the past"

    def test_unknown_venue_is_404(self, client, venue, renter):
        response = client.post(
            BASE, json=_payload(venue, venue_id="missing"), headers=auth_headers(renter)
        )
        assert response.status_code == 404

    @pytest.mark.parametrize(
        "overrides",
        [
            {"surprise": True},
            {"start_time": "10:00", "end_time": "09:00"},
            {"start_time": "9am"},
        ],
    )
    def test_invalid_body_is_422(self, client, venue, renter, overrides):
        response = client.post(
            BASE, json=_payload(venue, **overrides), headers=auth_headers(renter)
        )

        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"


class TestConflictCheck:
    def test_clear_slot(self, client, venue, renter, make_slot_instance):
        make_slot_instance(venue, FUTURE, NINE, TEN)

        response = client.post(
            f"{BASE}/conflicts", json=_payload(venue), headers=auth_headers(renter)
        )

        assert response.status_code == 200
        assert response.json()["has_conflict"] is False

    def test_taken_slot(self, client, venue, renter, make_slot_instance, make_booking):
        make_slot_instance(venue, FUTURE, NINE, TEN)
        existing = make_booking(venue, renter, FUTURE, NINE, TEN)

        body = client.post(
            f"{BASE}/conflicts", json=_payload(venue), headers=auth_headers(renter)
        ).json()
        assert body["has_conflict"] is True
        assert body["conflicting_booking_id"] == existing.id

        excluded = client.post(
            f"{BASE}/conflicts",
            json=_payload(venue, exclude_booking_id=existing.id),
            headers=auth_headers(renter),
        ).json()
        assert excluded["has_conflict"] is False


class TestReadAndTransitions:
    def test_list_and_get(self, client, venue, renter, make_booking):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)
        make_booking(venue, renter, FUTURE, TEN, ELEVEN, status="confirmed")

        listed = client.get(BASE, headers=auth_headers(renter))
        assert listed.status_code == 200
        assert [row["start_time"] for row in listed.json()] == ["09:00:00", "10:00:00"]

        confirmed = client.get(BASE, params={"status": "confirmed"}, headers=auth_headers(renter))
        assert [row["status"] for row in confirmed.json()] == ["confirmed"]

        fetched = client.get(f"{BASE}/{booking.id}", headers=auth_headers(renter))
        assert fetched.status_code == 200
        assert fetched.json()["id"] == booking.id

    def test_list_past_view(self, client, venue, renter, make_booking):
        make_booking(venue, renter, FUTURE, NINE, TEN)
        past = make_booking(venue, renter, date(2025, 5, 30), NINE, TEN)

        response = client.get(BASE, params={"time_view": "past"}, headers=auth_headers(renter))
        assert [row["id"] for row in response.json()] == [past.id]

    def test_stranger_gets_404(self, client, venue, renter, make_user, make_booking):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)

        response = client.get(f"{BASE}/{booking.id}", headers=auth_headers(make_user()))
        assert response.status_code == 404

    def test_cancel(self, client, venue, renter, make_booking, stripe_gateway):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)

        response = client.post(f"{BASE}/{booking.id}/cancel", headers=auth_headers(renter))

        assert response.status_code == 200
        body = response.json()
        assert body["booking"]["status"] == "cancelled"
        assert body["refund_issued"] is False
        stripe_gateway.create_refund.assert_not_called()

    def test_cancel_inside_notice_window_is_400(self, client, venue, renter, make_booking):
        booking = make_booking(venue, renter, date(2025, 6, 3), NINE, TEN)

        response = client.post(f"{BASE}/{booking.id}/cancel", headers=auth_headers(renter))
        assert response.status_code == 400

    def test_confirm_and_insurance(self, client, make_venue, renter, owner, make_booking):
        booking = make_booking(make_venue(insurance_required=True), renter, FUTURE, NINE, TEN)

        blocked = client.post(f"{BASE}/{booking.id}/confirm", headers=auth_headers(owner))
        assert blocked.status_code == 400

        approved = client.post(
            f"{BASE}/{booking.id}/insurance-approve", headers=auth_headers(owner)
        )
        assert approved.json()["insurance_approved"] is True

        confirmed = client.post(f"{BASE}/{booking.id}/confirm", headers=auth_headers(owner))
        assert confirmed.status_code == 200
        assert confirmed.json()["status"] == "confirmed"

    def test_renter_cannot_confirm(self, client, venue, renter, make_booking):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)

        response = client.post(f"{BASE}/{booking.id}/confirm", headers=auth_headers(renter))
        assert response.status_code == 400

    def test_delete_unpaid(self, db, client, venue, renter, make_booking):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)
        booking_id = booking.id

        response = client.delete(f"{BASE}/{booking_id}", headers=auth_headers(renter))

        assert response.status_code == 204
        assert response.content == b""
        assert db.get(Booking, booking_id) is None
        assert client.get(f"{BASE}/{booking_id}", headers=auth_headers(renter)).status_code == 404


class TestReschedule:
    def test_patch_moves_booking(self, client, venue, renter, make_booking, make_slot_instance):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)
        make_slot_instance(venue, FUTURE, TEN, ELEVEN)

        response = client.patch(
            f"{BASE}/{booking.id}",
            json={"start_time": "10:00", "end_time": "11:00", "notes": "Moved up"},
            headers=auth_headers(renter),
        )

        assert response.status_code == 200
        body = response.json()
        assert (body["start_time"], body["end_time"]) == ("10:00:00", "11:00:00")
        assert body["notes"] == "Moved up"

    def test_patch_onto_taken_slot_is_409(
        self, client, venue, renter, make_user, make_booking, make_slot_instance
    ):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)
        other = make_booking(venue, make_user(), FUTURE, TEN, ELEVEN)
        make_slot_instance(venue, FUTURE, TEN, ELEVEN)

        response = client.patch(
            f"{BASE}/{booking.id}",
            json={"start_time": "10:00", "end_time": "11:00"},
            headers=auth_headers(renter),
        )

        assert response.status_code == 409
        body = response.json()
        assert body["errors"]["conflict_type"] == "time_overlap"
        assert body["errors"]["conflicting_booking_id"] == other.id

    def test_patch_rejects_unknown_fields(self, client, venue, renter, make_booking):
        booking = make_booking(venue, renter, FUTURE, NINE, TEN)

        response = client.patch(
            f"{BASE}/{booking.id}", json={"status": "confirmed"}, headers=auth_headers(renter)
        )
        assert response.status_code == 422
