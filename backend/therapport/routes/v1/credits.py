# backend/therapport/routes/v1/credits.py
"""Credit and free-hour balances, plus the admin voucher grant."""

import asyncio
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, status

from ...api.dependencies import Principal, get_current_principal, require_admin
from ...api.dependencies.services import get_credit_service, get_voucher_service
from ...core.exceptions import DomainException
from ...schemas.credit import (
    CreditBalanceResponse,
    CreditSummaryResponse,
    CreditTransactionResponse,
    ExpiryBucketResponse,
    VoucherAllocateRequest,
    VoucherResponse,
    VoucherSummaryResponse,
)
from ...services.credit_service import CreditService
from ...services.voucher_service import VoucherService

router = APIRouter(tags=["credits-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/summary", response_model=CreditSummaryResponse)
async def get_credit_summary(
    principal: Principal = Depends(get_current_principal),
    credit_service: CreditService = Depends(get_credit_service),
    voucher_service: VoucherService = Depends(get_voucher_service),
) -> CreditSummaryResponse:
    summary = await asyncio.to_thread(credit_service.get_summary, principal.user_id)
    vouchers = await asyncio.to_thread(voucher_service.get_summary, principal.user_id)
    return CreditSummaryResponse(
        balance=CreditBalanceResponse(
            total_available_pence=summary.balance.total_available_pence,
            total_granted_pence=summary.balance.total_granted_pence,
            total_used_pence=summary.balance.total_used_pence,
        ),
        available=[CreditTransactionResponse.model_validate(row) for row in summary.available],
        by_expiry_month=[
            ExpiryBucketResponse(
                month=bucket.month,
                remaining_pence=bucket.remaining_pence,
                transaction_count=bucket.transaction_count,
                earliest_expiry=bucket.earliest_expiry,
            )
            for bucket in summary.by_expiry_month
        ],
        vouchers=VoucherSummaryResponse(
            total_available_hours=vouchers.total_available_hours,
            earliest_expiry=vouchers.earliest_expiry,
            vouchers=[VoucherResponse.model_validate(v) for v in vouchers.vouchers],
        ),
    )


@router.post("/vouchers", response_model=VoucherResponse, status_code=status.HTTP_201_CREATED)
async def allocate_voucher(
    payload: VoucherAllocateRequest,
    admin: Principal = Depends(require_admin),
    voucher_service: VoucherService = Depends(get_voucher_service),
) -> VoucherResponse:
    try:
        voucher = await asyncio.to_thread(
            voucher_service.allocate,
            user_id=payload.user_id,
            hours=payload.hours,
            expiry_date=payload.expiry_date,
            reason=payload.reason,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return VoucherResponse.model_validate(voucher)
