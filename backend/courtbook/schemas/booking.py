"""
Booking request and response schemas.

Times travel as ``HH:MM`` or ``HH:MM:SS`` strings and are returned as
``HH:MM:SS``.
"""

import datetime as dt
from datetime import date, time
from decimal import Decimal
from typing import List, Optional

from pydantic import Field, field_serializer, field_validator, model_validator

from ..core.enums import RecurringType, RoleView, TimeView
from ..domain.time_ranges import time_to_minutes
from ..models.booking import BookingStatus
from ._strict_base import StandardizedModel, StrictRequestModel


def _validate_clock(value: str) -> str:
    try:
        minutes = time_to_minutes(value)
    except ValueError as exc:
        raise ValueError("time must be HH:MM or HH:MM:SS") from exc
    if not 0 <= minutes < 24 * 60:
        raise ValueError("time must be within a single day")
    return value


class ConflictCheckRequest(StrictRequestModel):
    venue_id: str
    date: date
    start_time: str
    end_time: str
    exclude_booking_id: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_times(cls, value: str) -> str:
        return _validate_clock(value)


class ConflictCheckResponse(StandardizedModel):
    has_conflict: bool
    conflict_type: Optional[str] = None
    message: Optional[str] = None
    conflicting_booking_id: Optional[str] = None


class BookingCreate(StrictRequestModel):
    venue_id: str = Field(..., description="Venue to book")
    date: date
    start_time: str
    end_time: str
    recurring_type: RecurringType = RecurringType.NONE
    recurring_end_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_times(cls, value: str) -> str:
        return _validate_clock(value)

    @model_validator(mode="after")
    def _check_order(self) -> "BookingCreate":
        if time_to_minutes(self.end_time) <= time_to_minutes(self.start_time):
            raise ValueError("end_time must be after start_time")
        if self.recurring_end_date is not None and self.recurring_end_date < self.date:
            raise ValueError("recurring_end_date must not be before date")
        return self


class BookingUpdate(StrictRequestModel):
    """Partial update; omitted fields keep their current value."""

    date: Optional[dt.date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=2000)

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_times(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else _validate_clock(value)


class BookingFilters(StrictRequestModel):
    status: Optional[BookingStatus] = None
    venue_id: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    role_view: Optional[RoleView] = None
    time_view: Optional[TimeView] = None


class BookingResponse(StandardizedModel):
    id: str
    venue_id: str
    renter_id: str
    date: date
    start_time: time
    end_time: time
    status: BookingStatus
    total_amount: Decimal
    insurance_required: bool
    insurance_approved: bool
    recurring_type: RecurringType
    recurring_end_date: Optional[date] = None
    notes: Optional[str] = None

    @field_serializer("start_time", "end_time", when_used="json")
    def _serialize_time(self, value: time) -> str:
        return value.strftime("%H:%M:%S")

    @field_serializer("total_amount", when_used="json")
    def _serialize_amount(self, value: Decimal) -> str:
        return f"{value:.2f}"


class BookingCreateResponse(BookingResponse):
    requires_immediate_payment: bool
    awaiting_owner_approval: bool
    awaiting_insurance_approval: bool
    recurring_booking_ids: List[str] = Field(default_factory=list)


class CancellationResponse(StandardizedModel):
    booking: BookingResponse
    refund_issued: bool
    refund_id: Optional[str] = None
    refund_amount: Optional[Decimal] = None
