# backend/courtbook/routes/v1/payments.py
"""
Payment routes - API v1

Endpoints:
    POST /create-intent - Immediate flow: PaymentIntent for the full amount
    POST /checkout - Immediate flow: hosted Stripe Checkout page
    POST /create-setup-intent - Deferred flow: authorize a card for later capture
    POST /capture - Owner/admin charges the authorized card
    POST /cancel-setup-intent - Release an authorized card hold
    POST /refund - Owner/admin refund of a paid booking
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status

from ...api.dependencies import get_current_user, get_payment_service
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.payment import (
    BookingPaymentRequest,
    CapturePaymentResponse,
    CheckoutSessionResponse,
    PaymentIntentResponse,
    RefundResponse,
    SetupIntentResponse,
)
from ...services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["payments-v1"])


@router.post("/create-intent", response_model=PaymentIntentResponse)
async def create_payment_intent(
    payload: BookingPaymentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> PaymentIntentResponse:
    try:
        return await asyncio.to_thread(
            payment_service.create_payment_intent, payload.booking_id, current_user.id
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: Request,
    payload: BookingPaymentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> CheckoutSessionResponse:
    """Redirect URLs point back at the calling origin."""
    base_url = request.headers.get("origin") or str(request.base_url)
    try:
        return await asyncio.to_thread(
            payment_service.create_checkout_session,
            payload.booking_id,
            current_user.id,
            base_url,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/create-setup-intent", response_model=SetupIntentResponse)
async def create_setup_intent(
    payload: BookingPaymentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> SetupIntentResponse:
    try:
        return await asyncio.to_thread(
            payment_service.create_setup_intent, payload.booking_id, current_user.id
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/capture", response_model=CapturePaymentResponse)
async def capture_payment(
    payload: BookingPaymentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> CapturePaymentResponse:
    """Charge the saved card; a decline is reported with ``status="failed"``."""
    try:
        return await asyncio.to_thread(
            payment_service.capture_payment, payload.booking_id, current_user.id
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/cancel-setup-intent",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def cancel_setup_intent(
    payload: BookingPaymentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> Response:
    try:
        await asyncio.to_thread(
            payment_service.cancel_setup_intent, payload.booking_id, current_user.id
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/refund", response_model=Optional[RefundResponse])
async def refund_payment(
    payload: BookingPaymentRequest = Body(...),
    current_user: User = Depends(get_current_user),
    payment_service: PaymentService = Depends(get_payment_service),
) -> Optional[RefundResponse]:
    """Refund a paid booking in full; ``null`` when there is nothing to refund."""
    try:
        return await asyncio.to_thread(
            payment_service.refund_booking, payload.booking_id, current_user.id
        )
    except DomainException as e:
        handle_domain_exception(e)
