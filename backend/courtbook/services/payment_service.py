# backend/courtbook/services/payment_service.py
"""
Payment state machine for court bookings.

Two mutually exclusive flows, chosen by the venue's booking mode:

- Immediate (instant booking, no insurance): a PaymentIntent the renter
  confirms client-side, or a hosted Checkout Session; the
  ``payment_intent.succeeded`` or ``checkout.session.completed`` webhook
  marks the payment paid and confirms the booking.
- Deferred (every other mode): a SetupIntent authorizes the card; the venue
  owner or an admin later captures it with an off-session charge.

Payment statuses move pending -> paid, authorized -> paid | failed, and
paid -> refunded. Provider calls go through ``StripeService``.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.exceptions import NotFoundException, ServiceException, ValidationException
from ..models.booking import Booking, BookingStatus
from ..models.payment import Payment, PaymentStatus
from ..models.venue import Venue
from ..repositories import RepositoryFactory
from ..schemas.payment import (
    CapturePaymentResponse,
    CheckoutSessionResponse,
    PaymentIntentResponse,
    RefundResponse,
    SetupIntentResponse,
)
from .base import BaseService, NowProvider
from .stripe_service import StripeService

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# A success notification never reopens these
SETTLED_PAYMENT_STATUSES = (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value)


def requires_immediate_payment(venue: Venue) -> bool:
    """Immediate flow applies to instant-booking venues without an insurance requirement."""
    return bool(venue.instant_booking) and not bool(venue.insurance_required)


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def split_platform_fee(amount: Decimal, percentage: Optional[float] = None) -> tuple[Decimal, Decimal]:
    """(platform_fee, venue_owner_amount), both rounded to cents."""
    if percentage is None:
        percentage = settings.stripe_platform_fee_percentage
    amount = Decimal(amount)
    fee = (amount * Decimal(str(percentage)) / 100).quantize(CENT, rounding=ROUND_HALF_UP)
    return fee, (amount - fee).quantize(CENT, rounding=ROUND_HALF_UP)


def _field(obj: Any, key: str) -> Any:
    """Read a key from a Stripe object or plain dict."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError):
        return getattr(obj, key, None)


@dataclass
class PaymentSuccessResult:
    payment: Payment
    booking: Optional[Booking]


class PaymentService(BaseService):
    """Creates, captures, cancels and refunds booking payments."""

    def __init__(
        self,
        db: Session,
        stripe_gateway: Optional[StripeService] = None,
        *,
        now_provider: Optional[NowProvider] = None,
    ):
        super().__init__(db, now_provider)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.stripe = stripe_gateway or StripeService(db)

    # ------------------------------------------------------------------ #
    # Guards
    # ------------------------------------------------------------------ #

    def _get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    def _is_venue_owner_or_admin(self, booking: Booking, user_id: str) -> bool:
        return booking.venue.owner_id == user_id or self.user_repository.is_admin(user_id)

    def _check_payable(self, booking: Booking, user_id: str, *, cancelled_message: str) -> None:
        """
        Shared guards for both intent flows.

        The renter pays for their own booking; the venue owner or an admin
        may also act on the renter's behalf.
        """
        if booking.renter_id != user_id and not self._is_venue_owner_or_admin(booking, user_id):
            raise ValidationException("You do not have permission to pay for this booking")
        if booking.status == BookingStatus.CANCELLED.value:
            raise ValidationException(cancelled_message)
        if booking.status == BookingStatus.COMPLETED.value:
            raise ValidationException("This booking is already completed")

        existing = self.payment_repository.get_by_booking_id(booking.id)
        if existing is not None and existing.status == PaymentStatus.PAID.value:
            raise ValidationException("This booking has already been paid")

    def _check_flow(self, booking: Booking, *, immediate: bool) -> None:
        """Each booking is paid through exactly one flow, chosen by its venue's mode."""
        if requires_immediate_payment(booking.venue) == immediate:
            return
        if immediate:
            raise ValidationException(
                "This venue authorizes the card now and charges it after owner approval"
            )
        raise ValidationException("This venue requires immediate payment")

    def _check_ready(self, booking: Booking) -> None:
        if self.is_booking_ready_for_payment(booking):
            return
        if booking.insurance_required and not booking.insurance_approved:
            raise ValidationException("Insurance must be approved before payment")
        raise ValidationException("Booking is not ready for payment")

    @staticmethod
    def _metadata(booking: Booking) -> Dict[str, str]:
        return {
            "booking_id": booking.id,
            "venue_id": booking.venue_id,
            "renter_id": booking.renter_id,
        }

    def _payment_fields(self, booking: Booking) -> Dict[str, Any]:
        fee, owner_amount = split_platform_fee(booking.total_amount)
        return {
            "amount": booking.total_amount,
            "platform_fee": fee,
            "venue_owner_amount": owner_amount,
        }

    # ------------------------------------------------------------------ #
    # Immediate flow
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("create_payment_intent")
    def create_payment_intent(self, booking_id: str, user_id: str) -> PaymentIntentResponse:
        """
        Create a PaymentIntent for the full booking amount.

        Raises:
            NotFoundException: If the booking does not exist
            ValidationException: If any payment guard fails
        """
        booking = self._get_booking(booking_id)
        self._check_payable(booking, user_id, cancelled_message="Cannot pay for a cancelled booking")
        self._check_ready(booking)
        self._check_flow(booking, immediate=True)

        intent = self.stripe.create_payment_intent(
            amount_cents=to_cents(booking.total_amount), metadata=self._metadata(booking)
        )

        with self.transaction():
            payment = self.payment_repository.upsert_for_booking(
                booking.id,
                create_fields={"renter_id": booking.renter_id, "venue_id": booking.venue_id},
                update_fields={
                    **self._payment_fields(booking),
                    "status": PaymentStatus.PENDING.value,
                    "stripe_payment_intent_id": _field(intent, "id"),
                },
            )

        self.logger.info(f"Created payment intent {_field(intent, 'id')} for booking {booking.id}")
        return PaymentIntentResponse(
            client_secret=_field(intent, "client_secret"),
            payment_id=payment.id,
            amount=booking.total_amount,
        )

    @BaseService.measure_operation("create_checkout_session")
    def create_checkout_session(
        self, booking_id: str, user_id: str, base_url: str
    ) -> CheckoutSessionResponse:
        """
        Create a hosted Stripe Checkout page for the immediate flow.

        Only the renter may start a checkout. The payment row keeps the
        session's PaymentIntent id; ``checkout.session.completed`` later
        settles it, falling back to the session metadata when the intent
        id was not known yet.

        Raises:
            NotFoundException: If the booking does not exist
            ValidationException: If any payment guard fails
        """
        booking = self._get_booking(booking_id)
        if booking.renter_id != user_id:
            raise ValidationException("You do not have permission to pay for this booking")
        self._check_payable(booking, user_id, cancelled_message="Cannot pay for a cancelled booking")
        self._check_ready(booking)
        self._check_flow(booking, immediate=True)

        base_url = base_url.rstrip("/")
        session = self.stripe.create_checkout_session(
            amount_cents=to_cents(booking.total_amount),
            product_name=f"Booking at {booking.venue.name}",
            description=(
                f"{booking.date.isoformat()} from {booking.start_time.strftime('%H:%M')} "
                f"to {booking.end_time.strftime('%H:%M')}"
            ),
            metadata=self._metadata(booking),
            success_url=f"{base_url}/booking/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/booking/cancelled?booking_id={booking.id}",
        )

        with self.transaction():
            payment = self.payment_repository.upsert_for_booking(
                booking.id,
                create_fields={"renter_id": booking.renter_id, "venue_id": booking.venue_id},
                update_fields={
                    **self._payment_fields(booking),
                    "status": PaymentStatus.PENDING.value,
                    "stripe_payment_intent_id": _field(session, "payment_intent"),
                },
            )

        self.logger.info(f"Created checkout session {_field(session, 'id')} for booking {booking.id}")
        return CheckoutSessionResponse(
            url=_field(session, "url"),
            session_id=_field(session, "id"),
            payment_id=payment.id,
        )

    @BaseService.measure_operation("process_payment_success")
    def process_payment_success(
        self, payment_intent_id: str, checkout_session_id: Optional[str] = None
    ) -> PaymentSuccessResult:
        """
        Mark a payment paid and its booking confirmed.

        Safe to call repeatedly: a paid or refunded payment is returned as
        is. Only a pending booking is confirmed; closed bookings stay closed.

        Raises:
            NotFoundException: If no payment matches the intent or session
        """
        payment = self.payment_repository.get_by_payment_intent_id(payment_intent_id)

        if payment is None and checkout_session_id:
            session = self.stripe.retrieve_checkout_session(checkout_session_id)
            metadata = _field(session, "metadata") or {}
            booking_id = _field(metadata, "booking_id")
            if booking_id:
                payment = self.payment_repository.get_by_booking_id(booking_id)

        if payment is None:
            raise NotFoundException("Payment not found for this transaction")

        if payment.status in SETTLED_PAYMENT_STATUSES:
            self.logger.info(
                f"Payment {payment.id} already {payment.status}; ignoring success notification"
            )
            return PaymentSuccessResult(
                payment=payment, booking=self.booking_repository.get_by_id(payment.booking_id)
            )

        with self.transaction():
            payment = self.payment_repository.update(
                payment.id,
                status=PaymentStatus.PAID.value,
                paid_at=self.now(),
                stripe_payment_intent_id=payment_intent_id,
            )
            booking = self.booking_repository.get_by_id(payment.booking_id)
            if booking is not None and booking.status == BookingStatus.PENDING.value:
                booking.status = BookingStatus.CONFIRMED.value
                self.booking_repository.flush()

        if booking is not None and booking.status != BookingStatus.CONFIRMED.value:
            self.logger.warning(
                f"Payment {payment.id} paid but booking {booking.id} is {booking.status}; "
                "booking left unchanged"
            )
        else:
            self.logger.info(f"Payment {payment.id} paid; booking {payment.booking_id} confirmed")
        return PaymentSuccessResult(payment=payment, booking=booking)

    # ------------------------------------------------------------------ #
    # Deferred flow
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("create_setup_intent")
    def create_setup_intent(self, booking_id: str, user_id: str) -> SetupIntentResponse:
        """
        Authorize a card for a later charge without charging it.

        Raises:
            NotFoundException: If the booking does not exist
            ValidationException: If any payment guard fails or the card is
                already authorized
        """
        booking = self._get_booking(booking_id)
        self._check_payable(
            booking, user_id, cancelled_message="Cannot authorize payment for a cancelled booking"
        )
        self._check_flow(booking, immediate=False)
        existing = self.payment_repository.get_by_booking_id(booking.id)
        if existing is not None and existing.status == PaymentStatus.AUTHORIZED.value:
            raise ValidationException("Payment has already been authorized for this booking")

        metadata = self._metadata(booking)
        metadata["amount"] = str(to_cents(booking.total_amount))
        intent = self.stripe.create_setup_intent(metadata=metadata)

        with self.transaction():
            payment = self.payment_repository.upsert_for_booking(
                booking.id,
                create_fields={"renter_id": booking.renter_id, "venue_id": booking.venue_id},
                update_fields={
                    **self._payment_fields(booking),
                    "status": PaymentStatus.AUTHORIZED.value,
                    "stripe_setup_intent_id": _field(intent, "id"),
                },
            )

        self.logger.info(f"Authorized card via {_field(intent, 'id')} for booking {booking.id}")
        return SetupIntentResponse(
            client_secret=_field(intent, "client_secret"),
            payment_id=payment.id,
            amount=booking.total_amount,
            setup_intent_id=_field(intent, "id"),
        )

    @BaseService.measure_operation("capture_payment")
    def capture_payment(self, booking_id: str, initiator_id: str) -> CapturePaymentResponse:
        """
        Charge the card saved by the booking's SetupIntent.

        A declined charge marks the payment failed and is reported in the
        result; the booking is left unchanged.

        Raises:
            NotFoundException: If the booking or its payment does not exist
            ValidationException: If the caller may not capture, or the payment
                is not in the authorized state
        """
        booking = self._get_booking(booking_id)
        if not self._is_venue_owner_or_admin(booking, initiator_id):
            raise ValidationException("Only venue owner or admin can capture payment")

        payment = self.payment_repository.get_by_booking_id(booking_id)
        if payment is None:
            raise NotFoundException("No payment found for this booking")
        if payment.status == PaymentStatus.PAID.value:
            raise ValidationException("This booking has already been paid")
        if payment.status != PaymentStatus.AUTHORIZED.value:
            raise ValidationException("Payment must be authorized before capturing")
        if not payment.stripe_setup_intent_id:
            raise ValidationException("No setup intent found for this payment")

        setup_intent = self.stripe.retrieve_setup_intent(payment.stripe_setup_intent_id)
        payment_method = _field(setup_intent, "payment_method")
        if not payment_method:
            raise ValidationException("No payment method found for this setup intent")
        if not isinstance(payment_method, str):
            payment_method = _field(payment_method, "id")

        intent = self.stripe.charge_off_session(
            amount_cents=to_cents(payment.amount),
            payment_method=payment_method,
            metadata={
                "booking_id": booking.id,
                "venue_id": payment.venue_id,
                "renter_id": payment.renter_id,
                "captured_by": initiator_id,
            },
        )
        intent_id = _field(intent, "id")
        succeeded = _field(intent, "status") == "succeeded"

        with self.transaction():
            if succeeded:
                self.payment_repository.update(
                    payment.id,
                    stripe_payment_intent_id=intent_id,
                    status=PaymentStatus.PAID.value,
                    paid_at=self.now(),
                )
                self.booking_repository.update(booking.id, status=BookingStatus.CONFIRMED.value)
            else:
                self.payment_repository.update(
                    payment.id,
                    stripe_payment_intent_id=intent_id or payment.stripe_payment_intent_id,
                    status=PaymentStatus.FAILED.value,
                )

        if not succeeded:
            self.logger.warning(f"Capture failed for booking {booking.id} (intent {intent_id})")

        return CapturePaymentResponse(
            payment_id=payment.id,
            payment_intent_id=intent_id or "",
            amount=payment.amount,
            status=PaymentStatus.PAID.value if succeeded else PaymentStatus.FAILED.value,
        )

    @BaseService.measure_operation("cancel_setup_intent")
    def cancel_setup_intent(self, booking_id: str, user_id: Optional[str] = None) -> None:
        """
        Release an authorized card hold and mark the payment failed.

        No-op when the booking has no payment or the payment is not
        authorized, so cleanup paths may call it speculatively. When
        ``user_id`` is given it must be the renter, the venue owner or an
        admin.

        Raises:
            NotFoundException: If ``user_id`` is given and the booking does not exist
            ValidationException: If ``user_id`` may not act on the booking
        """
        if user_id is not None:
            booking = self._get_booking(booking_id)
            if booking.renter_id != user_id and not self._is_venue_owner_or_admin(
                booking, user_id
            ):
                raise ValidationException(
                    "You do not have permission to release this payment authorization"
                )

        payment = self.payment_repository.get_by_booking_id(booking_id)
        if payment is None or payment.status != PaymentStatus.AUTHORIZED.value:
            return

        if payment.stripe_setup_intent_id:
            try:
                self.stripe.cancel_setup_intent(payment.stripe_setup_intent_id)
            except (stripe.StripeError, ServiceException) as e:
                self.logger.warning(
                    f"Ignoring error cancelling setup intent {payment.stripe_setup_intent_id}: {str(e)}"
                )

        with self.transaction():
            self.payment_repository.update(payment.id, status=PaymentStatus.FAILED.value)
        self.logger.info(f"Released card authorization for booking {booking_id} (by {user_id})")

    # ------------------------------------------------------------------ #
    # Refunds and failures
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("process_refund")
    def process_refund(
        self, booking_id: str, initiator_id: Optional[str] = None
    ) -> Optional[RefundResponse]:
        """
        Refund a paid booking in full.

        Returns ``None`` when there is nothing to refund. Whether a refund is
        allowed at all is decided by the caller.
        """
        payment = self.payment_repository.get_by_booking_id(booking_id)
        if payment is None or payment.status != PaymentStatus.PAID.value:
            return None
        if not payment.stripe_payment_intent_id:
            raise ValidationException("No Stripe payment found for this booking")

        refund = self.stripe.create_refund(payment.stripe_payment_intent_id)

        with self.transaction():
            self.payment_repository.update(
                payment.id,
                status=PaymentStatus.REFUNDED.value,
                refunded_at=self.now(),
                refund_amount=payment.amount,
            )

        self.logger.info(f"Refunded booking {booking_id} (initiated by {initiator_id})")
        return RefundResponse(
            refund_id=_field(refund, "id"),
            amount=payment.amount,
            status=_field(refund, "status") or "succeeded",
        )

    def refund_booking(self, booking_id: str, user_id: str) -> Optional[RefundResponse]:
        """Refund requested directly by the venue owner or an admin."""
        booking = self._get_booking(booking_id)
        if not self._is_venue_owner_or_admin(booking, user_id):
            raise ValidationException("Only venue owner or admin can refund payments")
        return self.process_refund(booking_id, user_id)

    @BaseService.measure_operation("process_refund_webhook")
    def process_refund_webhook(
        self, payment_intent_id: str, refund_amount_cents: int
    ) -> Optional[Payment]:
        payment = self.payment_repository.get_by_payment_intent_id(payment_intent_id)
        if payment is None:
            return None
        if payment.status == PaymentStatus.REFUNDED.value:
            return payment

        with self.transaction():
            payment = self.payment_repository.update(
                payment.id,
                status=PaymentStatus.REFUNDED.value,
                refunded_at=self.now(),
                refund_amount=(Decimal(refund_amount_cents) / 100).quantize(CENT),
            )
        return payment

    def mark_payment_failed(self, payment_intent_id: str) -> Optional[Payment]:
        """Record a failed PaymentIntent. Paid payments and the booking are left alone."""
        payment = self.payment_repository.get_by_payment_intent_id(payment_intent_id)
        if payment is None or payment.status == PaymentStatus.PAID.value:
            return payment

        with self.transaction():
            payment = self.payment_repository.update(payment.id, status=PaymentStatus.FAILED.value)
        return payment

    # ------------------------------------------------------------------ #
    # Webhooks
    # ------------------------------------------------------------------ #

    def handle_webhook(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify a Stripe webhook and process it."""
        event = self.stripe.construct_event(payload, signature)
        return self.handle_webhook_event(event)

    @BaseService.measure_operation("handle_webhook_event")
    def handle_webhook_event(self, event: Any) -> Dict[str, Any]:
        """
        Dispatch an already-verified event.

        Unknown event types are acknowledged with ``handled=False``.
        """
        event_type = _field(event, "type") or ""
        obj = _field(_field(event, "data"), "object")
        self.logger.info(f"Processing webhook event: {event_type}")

        if event_type == "payment_intent.succeeded":
            self.process_payment_success(_field(obj, "id"))
        elif event_type == "checkout.session.completed":
            self.process_payment_success(_field(obj, "payment_intent"), _field(obj, "id"))
        elif event_type == "payment_intent.payment_failed":
            self.mark_payment_failed(_field(obj, "id"))
        elif event_type == "charge.refunded":
            self.process_refund_webhook(
                _field(obj, "payment_intent"), int(_field(obj, "amount_refunded") or 0)
            )
        else:
            self.logger.info(f"Unhandled webhook event type: {event_type}")
            return {"received": True, "event_type": event_type, "handled": False}

        return {"received": True, "event_type": event_type, "handled": True}

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def get_payment_by_booking_id(self, booking_id: str) -> Optional[Payment]:
        return self.payment_repository.get_by_booking_id(booking_id)

    def is_booking_ready_for_payment(self, booking: Booking) -> bool:
        """True when no guard would block a payment for this booking today."""
        if booking.status not in (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value):
            return False
        if booking.insurance_required and not booking.insurance_approved:
            return False
        payment = self.payment_repository.get_by_booking_id(booking.id)
        return payment is None or payment.status not in (
            PaymentStatus.PAID.value,
            PaymentStatus.AUTHORIZED.value,
        )
