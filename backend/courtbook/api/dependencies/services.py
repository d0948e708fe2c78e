# backend/courtbook/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

This module provides factory functions that create service instances
with their required dependencies properly injected.
"""

import logging

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.audit_service import AuditService
from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.conflict_checker import ConflictChecker
from ...services.payment_service import PaymentService
from ...services.slot_generation_service import SlotGenerationService
from ...services.stripe_service import StripeService
from .database import get_db

logger = logging.getLogger(__name__)


def get_stripe_service(db: Session = Depends(get_db)) -> StripeService:
    return StripeService(db)


def get_conflict_checker(db: Session = Depends(get_db)) -> ConflictChecker:
    return ConflictChecker(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_payment_service(
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> PaymentService:
    return PaymentService(db, stripe_service)


def get_booking_service(
    db: Session = Depends(get_db),
    conflict_checker: ConflictChecker = Depends(get_conflict_checker),
    payment_service: PaymentService = Depends(get_payment_service),
) -> BookingService:
    """
    Get booking service instance.

    Args:
        db: Database session
        conflict_checker: Shared conflict checker
        payment_service: Payment state machine used for refunds and hold release

    Returns:
        BookingService instance
    """
    return BookingService(db, conflict_checker, payment_service, AuditService(db))


def get_slot_generation_service(db: Session = Depends(get_db)) -> SlotGenerationService:
    return SlotGenerationService(db)
