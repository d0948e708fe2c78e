# backend/courtbook/services/stripe_service.py
"""
Stripe gateway for the court booking platform.

Thin wrapper over the Stripe SDK. Every call that leaves the process goes
through this class, so the payment state machine can be exercised with a
mocked gateway. Amounts are always minor currency units (cents) here.
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.exceptions import ServiceException, ValidationException
from .base import BaseService

logger: logging.Logger = logging.getLogger(__name__)


class StripeService(BaseService):
    """Service for all Stripe API interactions."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.logger = logging.getLogger(__name__)

        self.stripe_configured = False
        secret = settings.stripe_secret_key.get_secret_value()
        if secret:
            stripe.api_key = secret
            stripe.max_network_retries = 1
            self.stripe_configured = True
            self.logger.info("Stripe service configured successfully")
        else:
            self.logger.warning("Stripe secret key not configured - payment calls will fail")

    def _check_stripe_configured(self) -> None:
        """Check if Stripe is properly configured before making API calls."""
        if not self.stripe_configured:
            raise ServiceException(
                "Stripe service not configured. Please check STRIPE_SECRET_KEY environment variable."
            )

    @BaseService.measure_operation("stripe_create_payment_intent")
    def create_payment_intent(self, *, amount_cents: int, metadata: Dict[str, str]) -> Any:
        """Create a PaymentIntent the client confirms directly."""
        self._check_stripe_configured()
        try:
            return stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=settings.stripe_currency,
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating payment intent: {str(e)}")
            raise ServiceException(f"Failed to create payment intent: {str(e)}")

    @BaseService.measure_operation("stripe_create_setup_intent")
    def create_setup_intent(self, *, metadata: Dict[str, str]) -> Any:
        """Create a SetupIntent that saves a card for a later off-session charge."""
        self._check_stripe_configured()
        try:
            return stripe.SetupIntent.create(
                usage="off_session",
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating setup intent: {str(e)}")
            raise ServiceException(f"Failed to authorize payment: {str(e)}")

    def retrieve_setup_intent(self, setup_intent_id: str) -> Any:
        self._check_stripe_configured()
        try:
            return stripe.SetupIntent.retrieve(setup_intent_id)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error retrieving setup intent {setup_intent_id}: {str(e)}")
            raise ServiceException(f"Failed to retrieve setup intent: {str(e)}")

    def cancel_setup_intent(self, setup_intent_id: str) -> Any:
        """Cancel a SetupIntent. Provider errors propagate as ``stripe.StripeError``."""
        self._check_stripe_configured()
        return stripe.SetupIntent.cancel(setup_intent_id)

    @BaseService.measure_operation("stripe_charge_off_session")
    def charge_off_session(
        self, *, amount_cents: int, payment_method: str, metadata: Dict[str, str]
    ) -> Optional[Any]:
        """
        Create and confirm a PaymentIntent against a saved payment method.

        A card decline is not an error: the declined PaymentIntent (or ``None``
        when Stripe did not attach one) is returned for the caller to record.
        """
        self._check_stripe_configured()
        try:
            return stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=settings.stripe_currency,
                payment_method=payment_method,
                confirm=True,
                off_session=True,
                metadata=metadata,
            )
        except stripe.CardError as e:
            self.logger.warning(f"Off-session charge declined: {str(e)}")
            error = getattr(e, "error", None)
            return getattr(error, "payment_intent", None) if error is not None else None
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error charging saved card: {str(e)}")
            raise ServiceException(f"Failed to capture payment: {str(e)}")

    @BaseService.measure_operation("stripe_create_refund")
    def create_refund(self, payment_intent_id: str) -> Any:
        """Refund the full amount of a PaymentIntent."""
        self._check_stripe_configured()
        try:
            return stripe.Refund.create(
                payment_intent=payment_intent_id, reason="requested_by_customer"
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error refunding {payment_intent_id}: {str(e)}")
            raise ServiceException(f"Failed to process refund: {str(e)}")

    @BaseService.measure_operation("stripe_create_checkout_session")
    def create_checkout_session(
        self,
        *,
        amount_cents: int,
        product_name: str,
        description: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> Any:
        """Create a hosted Checkout Session charging a single line item."""
        self._check_stripe_configured()
        try:
            return stripe.checkout.Session.create(
                mode="payment",
                payment_method_types=["card"],
                line_items=[
                    {
                        "price_data": {
                            "currency": settings.stripe_currency,
                            "product_data": {"name": product_name, "description": description},
                            "unit_amount": amount_cents,
                        },
                        "quantity": 1,
                    }
                ],
                metadata=metadata,
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating checkout session: {str(e)}")
            raise ServiceException(f"Failed to create checkout session: {str(e)}")

    def retrieve_checkout_session(self, session_id: str) -> Any:
        self._check_stripe_configured()
        try:
            return stripe.checkout.Session.retrieve(session_id)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error retrieving checkout session {session_id}: {str(e)}")
            raise ServiceException(f"Failed to retrieve checkout session: {str(e)}")

    def construct_event(self, payload: bytes, signature: str) -> Any:
        """
        Verify a webhook signature and parse the event.

        Raises:
            ValidationException: If the signature or payload is invalid
            ServiceException: If no webhook secret is configured
        """
        webhook_secret = settings.stripe_webhook_secret.get_secret_value()
        if not webhook_secret:
            raise ServiceException("Webhook secret not configured")

        try:
            return stripe.Webhook.construct_event(payload, signature, webhook_secret)
        except stripe.SignatureVerificationError as e:
            self.logger.warning(f"Invalid webhook signature: {str(e)}")
            raise ValidationException("Invalid webhook signature", code="INVALID_SIGNATURE")
        except ValueError as e:
            self.logger.warning(f"Invalid webhook payload: {str(e)}")
            raise ValidationException("Invalid webhook payload", code="INVALID_PAYLOAD")
