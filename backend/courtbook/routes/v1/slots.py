# backend/courtbook/routes/v1/slots.py
"""
Slot instance routes - API v1

Endpoints:
    POST /venues/{venue_id}/slot-instances/generate - Materialize templates for a date range
"""

import asyncio
import logging

from fastapi import APIRouter, Body, Depends

from ...api.dependencies import get_current_user, get_slot_generation_service
from ...core.exceptions import DomainException
from ...errors import handle_domain_exception
from ...models.user import User
from ...schemas.availability import SlotGenerationRequest, SlotGenerationResponse
from ...services.slot_generation_service import SlotGenerationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["slots-v1"])


@router.post(
    "/{venue_id}/slot-instances/generate",
    response_model=SlotGenerationResponse,
    responses={404: {"description": "Venue not found"}},
)
async def generate_slot_instances(
    venue_id: str,
    payload: SlotGenerationRequest = Body(...),
    current_user: User = Depends(get_current_user),
    slot_service: SlotGenerationService = Depends(get_slot_generation_service),
) -> SlotGenerationResponse:
    try:
        created = await asyncio.to_thread(
            slot_service.generate_slot_instances,
            venue_id,
            payload.date_from,
            payload.date_to,
            requested_by=current_user.id,
        )
        return SlotGenerationResponse(
            venue_id=venue_id,
            created=len(created),
            slot_instance_ids=[instance.id for instance in created],
        )
    except DomainException as e:
        handle_domain_exception(e)
