# backend/therapport/routes/v1/bookings.py
"""
Booking routes.

Router Endpoints:
    GET / - List the caller's bookings
    GET /quote - Price a span and preview its funding
    GET /{booking_id} - Booking details
    POST / - Create a booking (201) or request a card payment (402)
    PATCH /{booking_id} - Move or resize a booking (200) or request payment (402)
    POST /{booking_id}/cancel - Cancel a booking
"""

import asyncio
from datetime import date
import logging
from typing import List, NoReturn, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from fastapi.responses import JSONResponse

from ...api.dependencies import Principal, get_current_principal
from ...api.dependencies.services import get_booking_service
from ...core.constants import DEFAULT_QUERY_LIMIT
from ...core.enums import BookingType
from ...core.exceptions import DomainException, ForbiddenException
from ...models.booking import Booking
from ...schemas.booking import (
    BookingCancel,
    BookingCreate,
    BookingCreatedResponse,
    BookingListResponse,
    BookingQuoteResponse,
    BookingResponse,
    BookingUpdate,
    CancelBookingResponse,
    PaymentRequiredResponse,
    PriceSegmentResponse,
)
from ...services.booking_service import BookingOutcome, BookingQuote, BookingService, PaymentRequiredResult
from ...services.pricing_service import seconds_to_time

logger = logging.getLogger(__name__)

# V1 router - no prefix here, will be added when mounting in main.py
router = APIRouter(tags=["bookings-v1"])

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

ADMIN_ONLY_BOOKING_TYPES = (BookingType.FREE, BookingType.INTERNAL)


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if hasattr(exc, "to_http_exception"):
        raise exc.to_http_exception()
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def payment_required_response(result: PaymentRequiredResult) -> JSONResponse:
    body = PaymentRequiredResponse(
        client_secret=result.client_secret,
        payment_intent_id=result.payment_intent_id,
        amount_minor_units=result.amount_pence,
        purpose=result.purpose.value,
    )
    return JSONResponse(
        body.model_dump(by_alias=True), status_code=status.HTTP_402_PAYMENT_REQUIRED
    )


def quote_response(quote: BookingQuote) -> BookingQuoteResponse:
    return BookingQuoteResponse(
        room_id=quote.room_id,
        booking_date=quote.booking_date,
        start_time=quote.start_time,
        end_time=quote.end_time,
        total_price_pence=quote.price.total_pence,
        price_per_hour_pence=quote.price.price_per_hour_pence,
        duration_minutes=quote.price.duration_minutes,
        segments=[
            PriceSegmentResponse(
                start_time=seconds_to_time(segment.start_seconds),
                end_time=seconds_to_time(segment.end_seconds),
                rate_pence=segment.rate_pence,
            )
            for segment in quote.price.segments
        ],
        voucher_hours=quote.funding.voucher_hours,
        credit_pence=quote.funding.credit_pence,
        card_pence=quote.funding.shortfall_pence,
        available_credit_pence=quote.funding.available_credit_pence,
        available_voucher_hours=quote.funding.available_voucher_hours,
    )


# ============================================================================
# SECTION 1: Static routes (no path parameters)
# ============================================================================


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(DEFAULT_QUERY_LIMIT, ge=1, le=500),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    try:
        bookings: List[Booking] = await asyncio.to_thread(
            booking_service.list_user_bookings,
            principal.user_id,
            from_date=from_date,
            to_date=to_date,
            status=status_filter,
            limit=limit,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings], total=len(bookings)
    )


@router.get("/quote", response_model=BookingQuoteResponse)
async def get_booking_quote(
    room_id: str = Query(...),
    booking_date: date = Query(...),
    start_time: str = Query(..., description="HH:MM"),
    end_time: str = Query(..., description="HH:MM"),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingQuoteResponse:
    try:
        quote = await asyncio.to_thread(
            booking_service.get_quote,
            principal.user_id,
            room_id=room_id,
            booking_date=booking_date,
            start_time=start_time,
            end_time=end_time,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return quote_response(quote)


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    response_model=BookingCreatedResponse,
    responses={402: {"model": PaymentRequiredResponse}},
)
async def create_booking(
    payload: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> Union[BookingCreatedResponse, JSONResponse]:
    """
    Create a booking funded from vouchers, then credit.

    When the ledgers fall short the response is 402 with the payment intent
    the client must confirm before repeating the request.
    """
    if payload.booking_type in ADMIN_ONLY_BOOKING_TYPES and not principal.is_admin:
        handle_domain_exception(
            ForbiddenException(
                "Only admins can create free or internal bookings", code="BOOKING_TYPE_FORBIDDEN"
            )
        )
    try:
        outcome: BookingOutcome = await asyncio.to_thread(
            booking_service.create_booking,
            user_id=principal.user_id,
            room_id=payload.room_id,
            booking_date=payload.booking_date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            booking_type=payload.booking_type,
        )
    except DomainException as exc:
        handle_domain_exception(exc)

    if isinstance(outcome, PaymentRequiredResult):
        return payment_required_response(outcome)
    return BookingCreatedResponse(booking=BookingResponse.model_validate(outcome))


# ============================================================================
# SECTION 2: Routes with path parameters
# ============================================================================


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.get_booking, booking_id, principal.user_id, is_admin=principal.is_admin
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return BookingResponse.model_validate(booking)


@router.patch(
    "/{booking_id}",
    response_model=BookingResponse,
    responses={402: {"model": PaymentRequiredResponse}},
)
async def update_booking(
    payload: BookingUpdate,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> Union[BookingResponse, JSONResponse]:
    try:
        outcome: BookingOutcome = await asyncio.to_thread(
            booking_service.update_booking,
            booking_id,
            principal.user_id,
            room_id=payload.room_id,
            booking_date=payload.booking_date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            is_admin=principal.is_admin,
        )
    except DomainException as exc:
        handle_domain_exception(exc)

    if isinstance(outcome, PaymentRequiredResult):
        return payment_required_response(outcome)
    return BookingResponse.model_validate(outcome)


@router.post("/{booking_id}/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    payload: Optional[BookingCancel] = None,
    booking_id: str = Path(..., pattern=ULID_PATH_PATTERN),
    principal: Principal = Depends(get_current_principal),
    booking_service: BookingService = Depends(get_booking_service),
) -> CancelBookingResponse:
    try:
        booking = await asyncio.to_thread(
            booking_service.cancel_booking,
            booking_id,
            principal.user_id,
            is_admin=principal.is_admin,
            reason=payload.reason if payload else None,
        )
    except DomainException as exc:
        handle_domain_exception(exc)
    return CancelBookingResponse(
        booking_id=booking.id, status=booking.status, refunded_pence=booking.credit_used_pence or 0
    )
