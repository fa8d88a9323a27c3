# backend/therapport/schemas/subscription.py
"""Membership and subscription DTOs."""

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from ._strict_base import StrictModel, StrictRequestModel


class MembershipStatusResponse(StrictModel):
    can_book: bool
    reason: Optional[str] = None
    membership_type: Optional[str] = None
    subscription_type: Optional[str] = None
    subscription_end_date: Optional[date] = None
    suspension_date: Optional[date] = None
    termination_requested_at: Optional[datetime] = None


class ProrataResponse(StrictModel):
    current_month_amount_pence: int
    next_month_amount_pence: int
    current_month_expiry: date
    next_month_expiry: date


class MonthlySubscriptionResponse(StrictModel):
    subscription_id: str
    client_secret: Optional[str] = None
    prorata: ProrataResponse


class MonthlyCheckoutRequest(StrictRequestModel):
    success_url: str = Field(..., min_length=1)
    cancel_url: str = Field(..., min_length=1)


class MonthlyCheckoutResponse(StrictModel):
    url: str


class AdHocSubscriptionResponse(StrictModel):
    payment_intent_id: str
    client_secret: str
    amount_pence: int


class TerminateSubscriptionRequest(StrictRequestModel):
    termination_date: Optional[date] = None


class TerminateSubscriptionResponse(StrictModel):
    suspension_date: date
