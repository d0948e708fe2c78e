# backend/courtbook/routes/v1/webhooks.py
"""
Stripe webhook route - API v1

Endpoints:
    POST /stripe - Signed Stripe events (payment success/failure, refunds)
"""

import asyncio
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from ...api.dependencies import get_payment_service
from ...core.exceptions import DomainException, ValidationException
from ...errors import handle_domain_exception
from ...schemas.payment import WebhookAck
from ...services.payment_service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks-v1"])


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    payment_service: PaymentService = Depends(get_payment_service),
) -> WebhookAck:
    """Verify and apply a Stripe event. Duplicate deliveries are harmless."""
    try:
        if not stripe_signature:
            raise ValidationException("Missing Stripe-Signature header", code="INVALID_SIGNATURE")
        payload = await request.body()
        result = await asyncio.to_thread(
            payment_service.handle_webhook, payload, stripe_signature
        )
        return WebhookAck(**result)
    except DomainException as e:
        handle_domain_exception(e)
