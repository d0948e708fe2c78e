"""Tests for the payment state machine with a mocked Stripe gateway."""

from datetime import date
from decimal import Decimal

import pytest

from courtbook.core.exceptions import NotFoundException, ServiceException, ValidationException
from courtbook.models.payment import Payment
from courtbook.services.payment_service import (
    requires_immediate_payment,
    split_platform_fee,
    to_cents,
)

from testkit import FUTURE, NINE, TEN

pytestmark = pytest.mark.integration


@pytest.fixture
def booking(venue, renter, make_booking):
    return make_booking(venue, renter, FUTURE, NINE, TEN)


@pytest.fixture
def deferred_booking(request_venue, renter, make_booking):
    return make_booking(request_venue, renter, FUTURE, NINE, TEN)


@pytest.fixture
def authorized(deferred_booking, make_payment):
    return make_payment(deferred_booking, status="authorized", stripe_setup_intent_id="seti_1")


def _event(event_type, **obj):
    return {"type": event_type, "data": {"object": obj}}


@pytest.mark.unit
class TestMoneyHelpers:
    @pytest.mark.parametrize(
        "amount, expected",
        [
            (Decimal("40.00"), (Decimal("6.00"), Decimal("34.00"))),
            (Decimal("33.33"), (Decimal("5.00"), Decimal("28.33"))),
            (Decimal("0.00"), (Decimal("0.00"), Decimal("0.00"))),
        ],
    )
    def test_split_platform_fee(self, amount, expected):
        assert split_platform_fee(amount, 15) == expected

    def test_to_cents_rounds_half_up(self):
        assert to_cents(Decimal("40.00")) == 4000
        assert to_cents(Decimal("12.345")) == 1235

    def test_immediate_flow_selection(self):
        class V:
            def __init__(self, instant, insurance):
                self.instant_booking = instant
                self.insurance_required = insurance

        assert requires_immediate_payment(V(True, False))
        assert not requires_immediate_payment(V(True, True))
        assert not requires_immediate_payment(V(False, False))


class TestCreatePaymentIntent:
    def test_creates_pending_payment(self, db, payment_service, stripe_gateway, booking, renter):
        stripe_gateway.create_payment_intent.return_value = {
            "id": "pi_1",
            "client_secret": "pi_1_secret_abc",
        }

        response = payment_service.create_payment_intent(booking.id, renter.id)

        stripe_gateway.create_payment_intent.assert_called_once_with(
            amount_cents=4000,
            metadata={
                "booking_id": booking.id,
                "venue_id": booking.venue_id,
                "renter_id": renter.id,
            },
        )
        assert response.client_secret == "pi_1_secret_abc"
        assert response.amount == Decimal("40.00")
        payment = db.get(Payment, response.payment_id)
        assert payment.status == "pending"
        assert payment.stripe_payment_intent_id == "pi_1"
        assert payment.amount == Decimal("40.00")
        assert payment.platform_fee + payment.venue_owner_amount == payment.amount

    def test_second_intent_reuses_the_payment_row(
        self, db, payment_service, stripe_gateway, booking, renter
    ):
        stripe_gateway.create_payment_intent.side_effect = [
            {"id": "pi_1", "client_secret": "s1"},
            {"id": "pi_2", "client_secret": "s2"},
        ]

        first = payment_service.create_payment_intent(booking.id, renter.id)
        second = payment_service.create_payment_intent(booking.id, renter.id)

        assert first.payment_id == second.payment_id
        assert db.query(Payment).count() == 1
        assert db.get(Payment, second.payment_id).stripe_payment_intent_id == "pi_2"

    def test_owner_may_pay_on_behalf_of_renter(
        self, payment_service, stripe_gateway, booking, owner
    ):
        stripe_gateway.create_payment_intent.return_value = {"id": "pi_1", "client_secret": "s"}

        assert payment_service.create_payment_intent(booking.id, owner.id).client_secret == "s"

    def test_stranger_rejected(self, payment_service, stripe_gateway, booking, make_user):
        with pytest.raises(ValidationException, match="permission"):
            payment_service.create_payment_intent(booking.id, make_user().id)
        stripe_gateway.create_payment_intent.assert_not_called()

    @pytest.mark.parametrize(
        "status, message",
        [("cancelled", "cancelled booking"), ("completed", "already completed")],
    )
    def test_closed_booking_rejected(
        self, payment_service, venue, renter, make_booking, status, message
    ):
        closed = make_booking(venue, renter, FUTURE, NINE, TEN, status=status)

        with pytest.raises(ValidationException, match=message):
            payment_service.create_payment_intent(closed.id, renter.id)

    def test_insurance_must_be_approved(self, payment_service, make_venue, renter, make_booking):
        insured = make_booking(make_venue(insurance_required=True), renter, FUTURE, NINE, TEN)

        with pytest.raises(ValidationException, match="Insurance must be approved"):
            payment_service.create_payment_intent(insured.id, renter.id)

    def test_already_paid(self, payment_service, booking, renter, make_payment):
        make_payment(booking, status="paid", stripe_payment_intent_id="pi_1")

        with pytest.raises(ValidationException, match="already been paid"):
            payment_service.create_payment_intent(booking.id, renter.id)

    def test_unknown_booking(self, payment_service, renter):
        with pytest.raises(NotFoundException):
            payment_service.create_payment_intent("missing", renter.id)


class TestPaymentSuccess:
    def test_marks_paid_and_confirms_booking(self, payment_service, booking, make_payment):
        make_payment(booking, stripe_payment_intent_id="pi_1")

        result = payment_service.process_payment_success("pi_1")

        assert result.payment.status == "paid"
        assert result.payment.paid_at is not None
        assert result.booking.status == "confirmed"

    def test_repeat_success_is_a_no_op(self, payment_service, booking, make_payment):
        payment = make_payment(booking, stripe_payment_intent_id="pi_1")
        payment_service.process_payment_success("pi_1")
        paid_at = payment.paid_at

        result = payment_service.process_payment_success("pi_1")

        assert result.payment.id == payment.id
        assert result.payment.paid_at == paid_at
        assert result.booking.status == "confirmed"

    def test_unknown_intent(self, payment_service, stripe_gateway):
        with pytest.raises(NotFoundException):
            payment_service.process_payment_success("pi_unknown")
        stripe_gateway.retrieve_checkout_session.assert_not_called()

    def test_checkout_session_fallback(
        self, payment_service, stripe_gateway, booking, make_payment
    ):
        payment = make_payment(booking)
        stripe_gateway.retrieve_checkout_session.return_value = {
            "metadata": {"booking_id": booking.id}
        }

        result = payment_service.process_payment_success("pi_from_checkout", "cs_1")

        stripe_gateway.retrieve_checkout_session.assert_called_once_with("cs_1")
        assert result.payment.id == payment.id
        assert result.payment.stripe_payment_intent_id == "pi_from_checkout"
        assert result.payment.status == "paid"

    def test_refunded_payment_is_not_reopened(
        self, db, payment_service, venue, renter, make_booking, make_payment
    ):
        cancelled = make_booking(venue, renter, FUTURE, NINE, TEN, status="cancelled")
        payment = make_payment(cancelled, status="refunded", stripe_payment_intent_id="pi_1")

        payment_service.handle_webhook_event(_event("payment_intent.succeeded", id="pi_1"))

        db.refresh(payment)
        db.refresh(cancelled)
        assert payment.status == "refunded"
        assert payment.paid_at is None
        assert cancelled.status == "cancelled"

    @pytest.mark.parametrize("status", ["cancelled", "completed"])
    def test_late_success_leaves_closed_booking_closed(
        self, db, payment_service, venue, renter, make_booking, make_payment, status
    ):
        closed = make_booking(venue, renter, FUTURE, NINE, TEN, status=status)
        make_payment(closed, stripe_payment_intent_id="pi_1")

        result = payment_service.process_payment_success("pi_1")

        assert result.payment.status == "paid"
        db.refresh(closed)
        assert closed.status == status


class TestPaymentFlowSelection:
    def test_instant_venue_rejects_setup_intent(
        self, payment_service, stripe_gateway, booking, renter
    ):
        with pytest.raises(ValidationException, match="requires immediate payment"):
            payment_service.create_setup_intent(booking.id, renter.id)
        stripe_gateway.create_setup_intent.assert_not_called()

    def test_request_venue_rejects_payment_intent(
        self, payment_service, stripe_gateway, deferred_booking, renter
    ):
        with pytest.raises(ValidationException, match="authorizes the card"):
            payment_service.create_payment_intent(deferred_booking.id, renter.id)
        stripe_gateway.create_payment_intent.assert_not_called()

    def test_request_venue_rejects_checkout(
        self, payment_service, stripe_gateway, deferred_booking, renter
    ):
        with pytest.raises(ValidationException, match="authorizes the card"):
            payment_service.create_checkout_session(
                deferred_booking.id, renter.id, "https://courts.example"
            )
        stripe_gateway.create_checkout_session.assert_not_called()


class TestCheckoutSession:
    def test_creates_session_and_pending_payment(
        self, db, payment_service, stripe_gateway, booking, venue, renter
    ):
        stripe_gateway.create_checkout_session.return_value = {
            "id": "cs_1",
            "url": "https://checkout.stripe.com/c/cs_1",
            "payment_intent": "pi_7",
        }

        response = payment_service.create_checkout_session(
            booking.id, renter.id, "https://courts.example/"
        )

        kwargs = stripe_gateway.create_checkout_session.call_args.kwargs
        assert kwargs["amount_cents"] == 4000
        assert kwargs["product_name"] == f"Booking at {venue.name}"
        assert kwargs["description"] == "2025-06-10 from 09:00 to 10:00"
        assert kwargs["metadata"]["booking_id"] == booking.id
        assert kwargs["success_url"] == (
            "https://courts.example/booking/success?session_id={CHECKOUT_SESSION_ID}"
        )
        assert kwargs["cancel_url"] == (
            f"https://courts.example/booking/cancelled?booking_id={booking.id}"
        )
        assert response.url == "https://checkout.stripe.com/c/cs_1"
        assert response.session_id == "cs_1"
        payment = db.get(Payment, response.payment_id)
        assert payment.status == "pending"
        assert payment.stripe_payment_intent_id == "pi_7"
        assert payment.amount == Decimal("40.00")

    def test_completed_session_settles_the_payment(
        self, db, payment_service, stripe_gateway, booking, renter
    ):
        stripe_gateway.create_checkout_session.return_value = {
            "id": "cs_1",
            "url": "https://checkout.stripe.com/c/cs_1",
            "payment_intent": None,
        }
        stripe_gateway.retrieve_checkout_session.return_value = {
            "metadata": {"booking_id": booking.id}
        }
        response = payment_service.create_checkout_session(booking.id, renter.id, "http://x")

        payment_service.handle_webhook_event(
            _event("checkout.session.completed", id="cs_1", payment_intent="pi_8")
        )

        payment = db.get(Payment, response.payment_id)
        assert (payment.status, payment.stripe_payment_intent_id) == ("paid", "pi_8")
        db.refresh(booking)
        assert booking.status == "confirmed"

    def test_only_the_renter_may_check_out(
        self, payment_service, stripe_gateway, booking, owner
    ):
        with pytest.raises(ValidationException, match="permission"):
            payment_service.create_checkout_session(booking.id, owner.id, "http://x")
        stripe_gateway.create_checkout_session.assert_not_called()

    def test_paid_booking_rejected(self, payment_service, booking, renter, make_payment):
        make_payment(booking, status="paid", stripe_payment_intent_id="pi_1")

        with pytest.raises(ValidationException, match="already been paid"):
            payment_service.create_checkout_session(booking.id, renter.id, "http://x")


class TestDeferredFlow:
    def test_setup_intent_authorizes_card(
        self, db, payment_service, stripe_gateway, deferred_booking, renter
    ):
        stripe_gateway.create_setup_intent.return_value = {
            "id": "seti_1",
            "client_secret": "seti_1_secret",
        }

        response = payment_service.create_setup_intent(deferred_booking.id, renter.id)

        metadata = stripe_gateway.create_setup_intent.call_args.kwargs["metadata"]
        assert metadata["amount"] == "4000"
        assert metadata["booking_id"] == deferred_booking.id
        assert response.setup_intent_id == "seti_1"
        payment = db.get(Payment, response.payment_id)
        assert payment.status == "authorized"
        assert payment.stripe_setup_intent_id == "seti_1"

    def test_setup_intent_rejected_when_already_authorized(
        self, payment_service, stripe_gateway, deferred_booking, renter, authorized
    ):
        with pytest.raises(ValidationException, match="already been authorized"):
            payment_service.create_setup_intent(deferred_booking.id, renter.id)
        stripe_gateway.create_setup_intent.assert_not_called()

    def test_capture_charges_saved_card(
        self, db, payment_service, stripe_gateway, deferred_booking, owner, authorized
    ):
        stripe_gateway.retrieve_setup_intent.return_value = {"payment_method": "pm_1"}
        stripe_gateway.charge_off_session.return_value = {"id": "pi_2", "status": "succeeded"}

        result = payment_service.capture_payment(deferred_booking.id, owner.id)

        kwargs = stripe_gateway.charge_off_session.call_args.kwargs
        assert kwargs["amount_cents"] == 4000
        assert kwargs["payment_method"] == "pm_1"
        assert kwargs["metadata"]["captured_by"] == owner.id
        assert (result.status, result.payment_intent_id) == ("paid", "pi_2")
        db.refresh(authorized)
        db.refresh(deferred_booking)
        assert authorized.status == "paid"
        assert authorized.stripe_payment_intent_id == "pi_2"
        assert deferred_booking.status == "confirmed"

    def test_expanded_payment_method_object(
        self, payment_service, stripe_gateway, deferred_booking, admin, authorized
    ):
        stripe_gateway.retrieve_setup_intent.return_value = {"payment_method": {"id": "pm_9"}}
        stripe_gateway.charge_off_session.return_value = {"id": "pi_2", "status": "succeeded"}

        payment_service.capture_payment(deferred_booking.id, admin.id)

        assert stripe_gateway.charge_off_session.call_args.kwargs["payment_method"] == "pm_9"

    def test_declined_capture_marks_payment_failed(
        self, db, payment_service, stripe_gateway, deferred_booking, owner, authorized
    ):
        stripe_gateway.retrieve_setup_intent.return_value = {"payment_method": "pm_1"}
        stripe_gateway.charge_off_session.return_value = {
            "id": "pi_3",
            "status": "requires_payment_method",
        }

        result = payment_service.capture_payment(deferred_booking.id, owner.id)

        assert (result.status, result.payment_intent_id) == ("failed", "pi_3")
        db.refresh(authorized)
        db.refresh(deferred_booking)
        assert authorized.status == "failed"
        assert deferred_booking.status == "pending"

    def test_decline_without_intent(
        self, payment_service, stripe_gateway, deferred_booking, owner, authorized
    ):
        stripe_gateway.retrieve_setup_intent.return_value = {"payment_method": "pm_1"}
        stripe_gateway.charge_off_session.return_value = None

        result = payment_service.capture_payment(deferred_booking.id, owner.id)

        assert result.status == "failed"
        assert result.payment_intent_id == ""

    def test_renter_cannot_capture(self, payment_service, deferred_booking, renter, authorized):
        with pytest.raises(ValidationException, match="Only venue owner or admin"):
            payment_service.capture_payment(deferred_booking.id, renter.id)

    def test_capture_without_payment(self, payment_service, deferred_booking, owner):
        with pytest.raises(NotFoundException):
            payment_service.capture_payment(deferred_booking.id, owner.id)

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"status": "pending"}, "must be authorized"),
            ({"status": "paid", "stripe_payment_intent_id": "pi_1"}, "already been paid"),
            ({"status": "authorized"}, "No setup intent"),
        ],
    )
    def test_capture_guards(
        self, payment_service, deferred_booking, owner, make_payment, overrides, message
    ):
        make_payment(deferred_booking, **overrides)

        with pytest.raises(ValidationException, match=message):
            payment_service.capture_payment(deferred_booking.id, owner.id)

    def test_setup_intent_without_payment_method(
        self, payment_service, stripe_gateway, deferred_booking, owner, authorized
    ):
        stripe_gateway.retrieve_setup_intent.return_value = {"payment_method": None}

        with pytest.raises(ValidationException, match="No payment method"):
            payment_service.capture_payment(deferred_booking.id, owner.id)
        stripe_gateway.charge_off_session.assert_not_called()


class TestCancelSetupIntent:
    def test_releases_authorization(
        self, db, payment_service, stripe_gateway, deferred_booking, authorized
    ):
        payment_service.cancel_setup_intent(deferred_booking.id)

        stripe_gateway.cancel_setup_intent.assert_called_once_with("seti_1")
        db.refresh(authorized)
        assert authorized.status == "failed"

    def test_provider_error_is_ignored(
        self, db, payment_service, stripe_gateway, deferred_booking, authorized
    ):
        stripe_gateway.cancel_setup_intent.side_effect = ServiceException("gone")

        payment_service.cancel_setup_intent(deferred_booking.id)

        db.refresh(authorized)
        assert authorized.status == "failed"

    def test_not_authorized_is_a_no_op(
        self, payment_service, stripe_gateway, deferred_booking, make_payment
    ):
        make_payment(deferred_booking, status="pending", stripe_setup_intent_id="seti_1")

        payment_service.cancel_setup_intent(deferred_booking.id)
        payment_service.cancel_setup_intent("no-such-booking")

        stripe_gateway.cancel_setup_intent.assert_not_called()

    def test_stranger_cannot_release(
        self, db, payment_service, stripe_gateway, deferred_booking, authorized, make_user
    ):
        with pytest.raises(ValidationException, match="permission"):
            payment_service.cancel_setup_intent(deferred_booking.id, make_user().id)

        stripe_gateway.cancel_setup_intent.assert_not_called()
        db.refresh(authorized)
        assert authorized.status == "authorized"

    def test_owner_may_release(
        self, db, payment_service, stripe_gateway, deferred_booking, authorized, owner
    ):
        payment_service.cancel_setup_intent(deferred_booking.id, owner.id)

        stripe_gateway.cancel_setup_intent.assert_called_once_with("seti_1")
        db.refresh(authorized)
        assert authorized.status == "failed"

    def test_unknown_booking_with_caller(self, payment_service, renter):
        with pytest.raises(NotFoundException):
            payment_service.cancel_setup_intent("no-such-booking", renter.id)


class TestRefunds:
    def test_refunds_paid_payment(self, db, payment_service, stripe_gateway, booking, make_payment):
        payment = make_payment(booking, status="paid", stripe_payment_intent_id="pi_1")
        stripe_gateway.create_refund.return_value = {"id": "re_1", "status": "succeeded"}

        refund = payment_service.process_refund(booking.id)

        stripe_gateway.create_refund.assert_called_once_with("pi_1")
        assert (refund.refund_id, refund.amount, refund.status) == (
            "re_1",
            Decimal("40.00"),
            "succeeded",
        )
        db.refresh(payment)
        assert payment.status == "refunded"
        assert payment.refund_amount == Decimal("40.00")
        assert payment.refunded_at is not None

    def test_nothing_to_refund(self, payment_service, stripe_gateway, booking, make_payment):
        assert payment_service.process_refund(booking.id) is None
        make_payment(booking, status="pending")
        assert payment_service.process_refund(booking.id) is None
        stripe_gateway.create_refund.assert_not_called()

    def test_paid_without_intent(self, payment_service, booking, make_payment):
        make_payment(booking, status="paid")

        with pytest.raises(ValidationException, match="No Stripe payment"):
            payment_service.process_refund(booking.id)

    def test_refund_booking_requires_owner_or_admin(
        self, payment_service, stripe_gateway, booking, renter, owner, make_payment
    ):
        make_payment(booking, status="paid", stripe_payment_intent_id="pi_1")
        stripe_gateway.create_refund.return_value = {"id": "re_1", "status": "pending"}

        with pytest.raises(ValidationException, match="Only venue owner or admin"):
            payment_service.refund_booking(booking.id, renter.id)
        assert payment_service.refund_booking(booking.id, owner.id).status == "pending"


class TestWebhookEvents:
    def test_payment_intent_succeeded(self, payment_service, booking, make_payment):
        payment = make_payment(booking, stripe_payment_intent_id="pi_1")

        ack = payment_service.handle_webhook_event(_event("payment_intent.succeeded", id="pi_1"))

        assert ack == {"received": True, "event_type": "payment_intent.succeeded", "handled": True}
        assert payment.status == "paid"

    def test_checkout_session_completed(
        self, payment_service, stripe_gateway, booking, make_payment
    ):
        payment = make_payment(booking)
        stripe_gateway.retrieve_checkout_session.return_value = {
            "metadata": {"booking_id": booking.id}
        }

        payment_service.handle_webhook_event(
            _event("checkout.session.completed", id="cs_1", payment_intent="pi_9")
        )

        assert payment.status == "paid"
        assert payment.stripe_payment_intent_id == "pi_9"

    def test_charge_refunded_records_partial_amount(
        self, db, payment_service, booking, make_payment
    ):
        payment = make_payment(booking, status="paid", stripe_payment_intent_id="pi_1")

        payment_service.handle_webhook_event(
            _event("charge.refunded", payment_intent="pi_1", amount_refunded=2000)
        )

        db.refresh(payment)
        assert payment.status == "refunded"
        assert payment.refund_amount == Decimal("20.00")

    def test_refund_webhook_for_unknown_intent(self, payment_service):
        assert payment_service.process_refund_webhook("pi_unknown", 100) is None

    def test_payment_failed_leaves_paid_payment_alone(
        self, db, payment_service, booking, make_payment
    ):
        payment = make_payment(booking, status="paid", stripe_payment_intent_id="pi_1")

        payment_service.handle_webhook_event(_event("payment_intent.payment_failed", id="pi_1"))

        db.refresh(payment)
        assert payment.status == "paid"

    def test_payment_failed_marks_pending_payment(self, db, payment_service, booking, make_payment):
        payment = make_payment(booking, stripe_payment_intent_id="pi_1")

        payment_service.handle_webhook_event(_event("payment_intent.payment_failed", id="pi_1"))

        db.refresh(payment)
        assert payment.status == "failed"
        db.refresh(booking)
        assert booking.status == "pending"

    def test_unknown_event_type_is_acknowledged(self, payment_service):
        ack = payment_service.handle_webhook_event(_event("customer.created", id="cus_1"))
        assert ack == {"received": True, "event_type": "customer.created", "handled": False}

    def test_handle_webhook_verifies_first(self, payment_service, stripe_gateway):
        stripe_gateway.construct_event.return_value = _event("customer.created")

        ack = payment_service.handle_webhook(b"{}", "t=1,v1=abc")

        stripe_gateway.construct_event.assert_called_once_with(b"{}", "t=1,v1=abc")
        assert ack["handled"] is False

    def test_verification_failure_propagates(self, payment_service, stripe_gateway):
        stripe_gateway.construct_event.side_effect = ValidationException(
            "Invalid webhook signature", code="INVALID_SIGNATURE"
        )

        with pytest.raises(ValidationException) as exc_info:
            payment_service.handle_webhook(b"{}", "bad")
        assert exc_info.value.code == "INVALID_SIGNATURE"


class TestReadiness:
    def test_pending_booking_without_payment_is_ready(self, payment_service, booking):
        assert payment_service.is_booking_ready_for_payment(booking)

    def test_failed_payment_can_be_retried(self, payment_service, booking, make_payment):
        make_payment(booking, status="failed")
        assert payment_service.is_booking_ready_for_payment(booking)

    @pytest.mark.parametrize("status", ["paid", "authorized"])
    def test_settled_payments_are_not_ready(self, payment_service, booking, make_payment, status):
        make_payment(booking, status=status)
        assert not payment_service.is_booking_ready_for_payment(booking)

    def test_cancelled_and_uninsured_are_not_ready(
        self, payment_service, make_venue, renter, make_booking
    ):
        cancelled = make_booking(
            make_venue(), renter, date(2025, 6, 11), NINE, TEN, status="cancelled"
        )
        uninsured = make_booking(make_venue(insurance_required=True), renter, FUTURE, NINE, TEN)

        assert not payment_service.is_booking_ready_for_payment(cancelled)
        assert not payment_service.is_booking_ready_for_payment(uninsured)
