# backend/therapport/schemas/credit.py
"""Credit and voucher balance responses."""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ._strict_base import StrictModel, StrictRequestModel


class CreditTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    amount_pence: int
    used_pence: int
    remaining_pence: int
    grant_date: date
    expiry_date: date
    source_type: str
    description: Optional[str] = None


class ExpiryBucketResponse(StrictModel):
    month: str
    remaining_pence: int
    transaction_count: int
    earliest_expiry: date


class CreditBalanceResponse(StrictModel):
    total_available_pence: int
    total_granted_pence: int
    total_used_pence: int


class VoucherResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    hours_allocated: Decimal
    hours_used: Decimal
    expiry_date: date
    reason: Optional[str] = None


class VoucherSummaryResponse(StrictModel):
    total_available_hours: Decimal
    earliest_expiry: Optional[date] = None
    vouchers: List[VoucherResponse]


class CreditSummaryResponse(StrictModel):
    balance: CreditBalanceResponse
    available: List[CreditTransactionResponse]
    by_expiry_month: List[ExpiryBucketResponse]
    vouchers: VoucherSummaryResponse


class VoucherAllocateRequest(StrictRequestModel):
    user_id: str
    hours: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)
    expiry_date: date
    reason: Optional[str] = Field(None, max_length=255)
