"""Availability schemas: the unified slot list returned to renters."""

from datetime import date
from typing import List, Optional

from pydantic import Field

from ._strict_base import StandardizedModel, StrictRequestModel


class ModalContentOut(StandardizedModel):
    title: str
    body: Optional[str] = None
    bullet_points: List[str] = Field(default_factory=list)
    cta_label: Optional[str] = None


class SlotPricingOut(StandardizedModel):
    amount_cents: int
    currency: str = "usd"
    unit: str = "person"
    payment_method: str = "on_site"


class UnifiedSlot(StandardizedModel):
    """
    One offered slot.

    Regular computed slots carry ``availability_id``; drop-in slots carry
    ``slot_instance_id`` plus optional modal content and pricing.
    """

    date: date
    start_time: str = Field(..., description="HH:MM:SS")
    end_time: str = Field(..., description="HH:MM:SS")
    venue_id: str
    availability_id: Optional[str] = None
    slot_instance_id: Optional[str] = None
    action_type: str
    modal_content: Optional[ModalContentOut] = None
    slot_pricing: Optional[SlotPricingOut] = None


class AvailabilityResponse(StandardizedModel):
    venue_id: str
    date_from: date
    date_to: date
    slots: List[UnifiedSlot]


class SlotGenerationRequest(StrictRequestModel):
    date_from: date
    date_to: date


class SlotGenerationResponse(StandardizedModel):
    venue_id: str
    created: int
    slot_instance_ids: List[str] = Field(default_factory=list)
