# backend/courtbook/routes/v1/bookings.py
"""
Booking routes - API v1

Versioned booking endpoints under /api/v1/bookings.
All business logic delegated to BookingService.

Endpoints:
    POST /conflicts - Pre-validate a slot
    GET / - List bookings visible to the caller
    POST / - Create a booking
    GET /{booking_id} - Booking details
    PATCH /{booking_id} - Reschedule or edit notes
    POST /{booking_id}/cancel - Cancel (refunds paid bookings)
    POST /{booking_id}/confirm - Owner/admin confirmation
    POST /{booking_id}/insurance-approve - Owner/admin insurance approval
    DELETE /{booking_id} - Remove an abandoned, unpaid booking
"""

import asyncio
from datetime import date
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status

from ...api.dependencies import get_booking_service, get_current_user
from ...core.enums import RoleView, TimeView
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.booking import BookingStatus
from ...models.user import User
from ...schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingFilters,
    BookingResponse,
    BookingUpdate,
    CancellationResponse,
    ConflictCheckRequest,
    ConflictCheckResponse,
)
from ...services.booking_service import BookingService

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])


def get_booking_filters(
    status: Optional[BookingStatus] = Query(None),
    venue_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    role_view: Optional[RoleView] = Query(None),
    time_view: Optional[TimeView] = Query(None),
) -> BookingFilters:
    return BookingFilters(
        status=status,
        venue_id=venue_id,
        date_from=date_from,
        date_to=date_to,
        role_view=role_view,
        time_view=time_view,
    )


# ============================================================================
# Static routes (no path parameters)
# ============================================================================


@router.post("/conflicts", response_model=ConflictCheckResponse)
async def check_conflicts(
    payload: ConflictCheckRequest = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> ConflictCheckResponse:
    """Check whether a slot can be booked right now."""
    try:
        result = await asyncio.to_thread(
            booking_service.check_conflicts,
            payload.venue_id,
            payload.date,
            payload.start_time,
            payload.end_time,
            payload.exclude_booking_id,
        )
        return ConflictCheckResponse(**result.to_dict())
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=List[BookingResponse])
async def list_bookings(
    filters: BookingFilters = Depends(get_booking_filters),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> List[BookingResponse]:
    try:
        bookings = await asyncio.to_thread(booking_service.list_bookings, filters, current_user.id)
        return [BookingResponse.model_validate(booking) for booking in bookings]
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "",
    response_model=BookingCreateResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Time conflict"}},
)
async def create_booking(
    payload: BookingCreate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingCreateResponse:
    """Create a pending booking and report which payment path applies."""
    try:
        created = await asyncio.to_thread(
            booking_service.create_booking, payload, current_user.id
        )
        return BookingCreateResponse(
            **BookingResponse.model_validate(created.booking).model_dump(),
            requires_immediate_payment=created.requires_immediate_payment,
            awaiting_owner_approval=created.awaiting_owner_approval,
            awaiting_insurance_approval=created.awaiting_insurance_approval,
            recurring_booking_ids=[occurrence.id for occurrence in created.recurring_bookings],
        )
    except DomainException as e:
        handle_domain_exception(e)


# ============================================================================
# Routes with a booking id
# ============================================================================


@router.get(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}},
)
async def get_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, booking_id, current_user.id)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={404: {"description": "Booking not found"}, 409: {"description": "Time conflict"}},
)
async def update_booking(
    booking_id: str,
    payload: BookingUpdate = Body(...),
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Move a booking to another slot; the price follows the new duration."""
    try:
        booking = await asyncio.to_thread(
            booking_service.update_booking, booking_id, payload, current_user.id
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post(
    "/{booking_id}/cancel",
    response_model=CancellationResponse,
    responses={404: {"description": "Booking not found"}},
)
async def cancel_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancellationResponse:
    """Cancel a booking."""
    try:
        result = await asyncio.to_thread(
            booking_service.cancel_booking, booking_id, current_user.id
        )
        return CancellationResponse(
            booking=BookingResponse.model_validate(result.booking),
            refund_issued=result.refund is not None,
            refund_id=result.refund.refund_id if result.refund else None,
            refund_amount=result.refund.amount if result.refund else None,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.confirm_booking, booking_id, current_user.id
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/insurance-approve", response_model=BookingResponse)
async def approve_insurance(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.approve_insurance, booking_id, current_user.id
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.delete(
    "/{booking_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={404: {"description": "Booking not found"}},
)
async def delete_unpaid_booking(
    booking_id: str,
    current_user: User = Depends(get_current_user),
    booking_service: BookingService = Depends(get_booking_service),
) -> Response:
    """Hard delete a pending booking whose payment was abandoned."""
    try:
        await asyncio.to_thread(
            booking_service.delete_unpaid_booking, booking_id, current_user.id
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    except DomainException as e:
        handle_domain_exception(e)
