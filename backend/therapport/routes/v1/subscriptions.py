# backend/therapport/routes/v1/subscriptions.py
"""
Membership routes.

Router Endpoints:
    GET /status - Whether the caller may book, and why not
    POST /monthly - Start the monthly subscription (pro-rata first month)
    POST /monthly/checkout - Same, through a hosted Checkout page
    POST /ad-hoc - Buy a one-month ad-hoc membership
    POST /ad-hoc/terminate - Request termination of an ad-hoc membership
"""

import asyncio
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ...api.dependencies import Principal, get_current_principal
from ...api.dependencies.services import get_subscription_service
from ...core.exceptions import DomainException
from ...schemas.subscription import (
    AdHocSubscriptionResponse,
    MembershipStatusResponse,
    MonthlyCheckoutRequest,
    MonthlyCheckoutResponse,
    MonthlySubscriptionResponse,
    ProrataResponse,
    TerminateSubscriptionRequest,
    TerminateSubscriptionResponse,
)
from ...services.subscription_service import SubscriptionService

router = APIRouter(tags=["subscriptions-v1"])


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


@router.get("/status", response_model=MembershipStatusResponse)
async def get_subscription_status(
    principal: Principal = Depends(get_current_principal),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> MembershipStatusResponse:
    membership = await asyncio.to_thread(
        subscription_service.get_membership_status, principal.user_id
    )
    return MembershipStatusResponse(
        can_book=membership.can_book,
        reason=membership.reason,
        membership_type=membership.membership_type,
        subscription_type=membership.subscription_type,
        subscription_end_date=membership.subscription_end_date,
        suspension_date=membership.suspension_date,
        termination_requested_at=membership.termination_requested_at,
    )


@router.post("/monthly", response_model=MonthlySubscriptionResponse)
async def create_monthly_subscription(
    principal: Principal = Depends(get_current_principal),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> MonthlySubscriptionResponse:
    try:
        result = await asyncio.to_thread(
            subscription_service.create_monthly_subscription, principal.user_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return MonthlySubscriptionResponse(
        subscription_id=result.subscription_id,
        client_secret=result.client_secret,
        prorata=ProrataResponse(
            current_month_amount_pence=result.prorata.current_month_amount_pence,
            next_month_amount_pence=result.prorata.next_month_amount_pence,
            current_month_expiry=result.prorata.current_month_expiry,
            next_month_expiry=result.prorata.next_month_expiry,
        ),
    )


@router.post("/monthly/checkout", response_model=MonthlyCheckoutResponse)
async def create_monthly_checkout(
    payload: MonthlyCheckoutRequest,
    principal: Principal = Depends(get_current_principal),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> MonthlyCheckoutResponse:
    try:
        url = await asyncio.to_thread(
            subscription_service.create_monthly_checkout,
            principal.user_id,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return MonthlyCheckoutResponse(url=url)


@router.post("/ad-hoc", response_model=AdHocSubscriptionResponse)
async def create_ad_hoc_subscription(
    principal: Principal = Depends(get_current_principal),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> AdHocSubscriptionResponse:
    try:
        result = await asyncio.to_thread(
            subscription_service.create_ad_hoc_subscription, principal.user_id
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return AdHocSubscriptionResponse(
        payment_intent_id=result.payment_intent_id,
        client_secret=result.client_secret,
        amount_pence=result.amount_pence,
    )


@router.post("/ad-hoc/terminate", response_model=TerminateSubscriptionResponse)
async def terminate_ad_hoc_subscription(
    payload: Optional[TerminateSubscriptionRequest] = None,
    principal: Principal = Depends(get_current_principal),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> TerminateSubscriptionResponse:
    try:
        suspension_date = await asyncio.to_thread(
            subscription_service.terminate_ad_hoc_subscription,
            principal.user_id,
            payload.termination_date if payload else None,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return TerminateSubscriptionResponse(suspension_date=suspension_date)
