# backend/therapport/schemas/booking.py
"""
Booking schemas.

Times are wall-clock ``HH:MM`` in the business timezone; money is integer
pence and voucher hours are decimals with two places.
"""

from datetime import date, datetime, time
from decimal import Decimal
import re
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core.constants import MAX_REASON_LENGTH
from ..core.enums import BookingType
from ._strict_base import StrictModel, StrictRequestModel

DATE_ONLY_REGEX = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _ensure_date_only(value: object, field_name: str) -> object:
    if isinstance(value, str):
        candidate = value.strip()
        if not DATE_ONLY_REGEX.fullmatch(candidate):
            raise ValueError(f"{field_name} must be a YYYY-MM-DD date-only string")
        return candidate
    return value


def _parse_time(value: object) -> object:
    """Accept ``HH:MM`` or ``HH:MM:SS`` strings."""
    if isinstance(value, str):
        parts = value.strip().split(":")
        if len(parts) not in (2, 3):
            raise ValueError(f"Invalid time format: {value}. Expected HH:MM format.")
        try:
            return time(*(int(part) for part in parts))
        except ValueError:
            raise ValueError(f"Invalid time format: {value}. Expected HH:MM format.")
    return value


class BookingCreate(StrictRequestModel):
    room_id: str = Field(..., description="Room to book")
    booking_date: date = Field(..., description="Calendar day of the booking")
    start_time: time = Field(..., description="Start time, HH:MM")
    end_time: time = Field(..., description="End time, HH:MM")
    booking_type: BookingType = Field(default=BookingType.AD_HOC)

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "booking_date")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time_string(cls, v: object) -> object:
        return _parse_time(v)

    @model_validator(mode="after")
    def validate_time_order(self) -> "BookingCreate":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class BookingUpdate(StrictRequestModel):
    """Partial update; omitted fields keep the booking's current values."""

    room_id: Optional[str] = None
    booking_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    @field_validator("booking_date", mode="before")
    @classmethod
    def _enforce_date_only(cls, v: object) -> object:
        return _ensure_date_only(v, "booking_date")

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def parse_time_string(cls, v: object) -> object:
        return _parse_time(v)

    @model_validator(mode="after")
    def require_a_change(self) -> "BookingUpdate":
        if all(
            value is None
            for value in (self.room_id, self.booking_date, self.start_time, self.end_time)
        ):
            raise ValueError("At least one field must be provided")
        return self


class BookingCancel(StrictRequestModel):
    reason: Optional[str] = Field(None, max_length=MAX_REASON_LENGTH)


class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    room_id: str
    booking_date: date
    start_time: time
    end_time: time
    price_per_hour_pence: int
    total_price_pence: int
    credit_used_pence: int
    voucher_hours_used: Decimal
    status: str
    booking_type: str
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class BookingCreatedResponse(StrictModel):
    success: bool = True
    booking: BookingResponse


class BookingListResponse(StrictModel):
    bookings: List[BookingResponse]
    total: int


class CancelBookingResponse(StrictModel):
    success: bool = True
    booking_id: str
    status: str
    refunded_pence: int


class PaymentRequiredResponse(StrictModel):
    """Returned with 402 when a card payment must be confirmed before retrying."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    payment_required: Literal[True] = Field(True, alias="paymentRequired")
    client_secret: str = Field(..., alias="clientSecret")
    payment_intent_id: str = Field(..., alias="paymentIntentId")
    amount_minor_units: int = Field(..., alias="amountMinorUnits")
    purpose: str


class PriceSegmentResponse(StrictModel):
    start_time: time
    end_time: time
    rate_pence: int


class BookingQuoteResponse(StrictModel):
    room_id: str
    booking_date: date
    start_time: time
    end_time: time
    total_price_pence: int
    price_per_hour_pence: int
    duration_minutes: int
    segments: List[PriceSegmentResponse]
    voucher_hours: Decimal
    credit_pence: int
    card_pence: int
    available_credit_pence: int
    available_voucher_hours: Decimal


class TimeSlotResponse(StrictModel):
    start_time: time
    end_time: time
    available: bool


class RoomResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    room_number: int
    location_name: str


class RoomAvailabilityResponse(StrictModel):
    room_id: str
    booking_date: date
    slots: List[TimeSlotResponse]
