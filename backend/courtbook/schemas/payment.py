"""Payment request and response schemas."""

from decimal import Decimal
from typing import Optional

from ._strict_base import StandardizedModel, StrictRequestModel


class BookingPaymentRequest(StrictRequestModel):
    booking_id: str


class PaymentIntentResponse(StandardizedModel):
    client_secret: str
    payment_id: str
    amount: Decimal


class SetupIntentResponse(PaymentIntentResponse):
    setup_intent_id: str


class CheckoutSessionResponse(StandardizedModel):
    url: str
    session_id: str
    payment_id: str


class CapturePaymentResponse(StandardizedModel):
    payment_id: str
    payment_intent_id: str
    amount: Decimal
    status: str


class RefundResponse(StandardizedModel):
    refund_id: str
    amount: Decimal
    status: str


class WebhookAck(StandardizedModel):
    received: bool = True
    event_type: Optional[str] = None
    handled: bool = False
