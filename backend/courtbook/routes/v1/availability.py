# backend/courtbook/routes/v1/availability.py
"""
Availability routes - API v1

Endpoints:
    GET /venues/{venue_id}/availability - Bookable and drop-in slots for a date range
"""

import asyncio
from datetime import date
import logging

from fastapi import APIRouter, Depends, Query

from ...api.dependencies import get_availability_service
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...schemas.availability import AvailabilityResponse
from ...services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["availability-v1"])


@router.get(
    "/{venue_id}/availability",
    response_model=AvailabilityResponse,
    responses={404: {"description": "Venue not found"}},
)
async def get_venue_availability(
    venue_id: str,
    date_from: date = Query(..., description="First date, inclusive"),
    date_to: date = Query(..., description="Last date, inclusive"),
    availability_service: AvailabilityService = Depends(get_availability_service),
) -> AvailabilityResponse:
    """Computed slots a renter can pick, regular and drop-in, sorted by date and time."""
    try:
        slots = await asyncio.to_thread(
            availability_service.get_available_slots, venue_id, date_from, date_to
        )
        return AvailabilityResponse(
            venue_id=venue_id, date_from=date_from, date_to=date_to, slots=slots
        )
    except DomainException as e:
        handle_domain_exception(e)
