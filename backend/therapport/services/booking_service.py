# backend/therapport/services/booking_service.py
"""
Booking Service for the Therapport platform.

Orchestrates create, update and cancel. Each operation prices the span,
checks the room, splits the price across free-hour vouchers, ledger credit and
(for any shortfall) a card payment, and then commits the booking row together
with its ledger movements in one transaction.

A card shortfall does not create anything: the caller gets a
``PaymentRequiredResult`` and the booking is made later by
``settle_pay_difference`` once Stripe reports the payment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
import hashlib
import logging
from typing import Any, Dict, List, Optional, Union
import uuid

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import DEFAULT_QUERY_LIMIT, MAX_REASON_LENGTH
from ..core.enums import (
    BookingStatus,
    BookingType,
    CreditSourceType,
    PaymentPurpose,
    PaymentType,
)
from ..core.exceptions import (
    CancellationWindowException,
    ConflictException,
    DomainException,
    NotFoundException,
    PaymentGatewayUnavailableException,
    ValidationException,
)
from ..core.timezone_utils import add_months, business_now, business_today, end_of_month, localize
from ..models.booking import Booking
from ..models.room import Room
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.money import proportional_pence, quantize_hours
from .availability_service import AvailabilityService
from .base import BaseService
from .credit_service import CreditService
from .pricing_service import (
    SECONDS_PER_HOUR,
    PriceQuote,
    TimeInput,
    parse_time,
    quote_price,
    seconds_to_time,
)
from .stripe_service import StripeService
from .subscription_service import SubscriptionService
from .voucher_service import ZERO_HOURS, VoucherService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentRequiredResult:
    """The booking needs a card payment before it can be committed."""

    client_secret: str
    payment_intent_id: str
    amount_pence: int
    purpose: PaymentPurpose


@dataclass(frozen=True)
class FundingPlan:
    """How a price splits across vouchers, credit and card."""

    total_pence: int
    price_per_hour_pence: int
    voucher_hours: Decimal
    credit_pence: int
    available_credit_pence: int
    available_voucher_hours: Decimal

    @property
    def shortfall_pence(self) -> int:
        return max(0, self.credit_pence - self.available_credit_pence)


@dataclass(frozen=True)
class BookingQuote:
    room_id: str
    booking_date: date
    start_time: time
    end_time: time
    price: PriceQuote
    funding: FundingPlan


BookingOutcome = Union[Booking, PaymentRequiredResult]


def payment_intent_source_id(payment_intent_id: str) -> str:
    """Deterministic UUID used as the credit ``source_id`` for a pay-the-difference intent."""
    digest = hashlib.sha256(payment_intent_id.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest[:16]))


def _idempotency_key(prefix: str, *parts: Any) -> str:
    raw = "|".join(str(part) for part in parts)
    return f"{prefix}-{hashlib.sha256(raw.encode('utf-8')).hexdigest()}"


def plan_funding(
    quote: PriceQuote, *, available_voucher_hours: Decimal, available_credit_pence: int
) -> FundingPlan:
    """
    Split a price into voucher hours and credit pence.

    Vouchers cover whole duration first; the uncovered fraction of the price
    (already in pence) is charged to credit, rounded half-up. A span fully
    covered by vouchers draws its duration rounded up to the hundredth.
    """
    needed_hours = quantize_hours(quote.duration_hours, round_up=True)
    if available_voucher_hours >= needed_hours:
        voucher_hours = needed_hours
        credit_pence = 0
    else:
        voucher_hours = quantize_hours(max(available_voucher_hours, ZERO_HOURS))
        covered_seconds = voucher_hours * SECONDS_PER_HOUR
        credit_pence = proportional_pence(
            quote.total_pence,
            Decimal(quote.duration_seconds) - covered_seconds,
            Decimal(quote.duration_seconds),
        )
    return FundingPlan(
        total_pence=quote.total_pence,
        price_per_hour_pence=quote.price_per_hour_pence,
        voucher_hours=voucher_hours,
        credit_pence=credit_pence,
        available_credit_pence=available_credit_pence,
        available_voucher_hours=available_voucher_hours,
    )


class BookingService(BaseService):
    """Create, update and cancel bookings atomically against both ledgers."""

    def __init__(
        self,
        db: Session,
        *,
        credit_service: Optional[CreditService] = None,
        voucher_service: Optional[VoucherService] = None,
        availability_service: Optional[AvailabilityService] = None,
        stripe_service: Optional[StripeService] = None,
        subscription_service: Optional[SubscriptionService] = None,
    ):
        super().__init__(db)
        self.booking_repository = RepositoryFactory.create_booking_repository(db)
        self.room_repository = RepositoryFactory.create_room_repository(db)
        self.membership_repository = RepositoryFactory.create_membership_repository(db)
        self.credit_service = credit_service or CreditService(db)
        self.voucher_service = voucher_service or VoucherService(db)
        self.availability_service = availability_service or AvailabilityService(db)
        self.stripe_service = stripe_service or StripeService(db)
        self.subscription_service = subscription_service or SubscriptionService(
            db, credit_service=self.credit_service, stripe_service=self.stripe_service
        )

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("create_booking")
    def create_booking(
        self,
        *,
        user_id: str,
        room_id: str,
        booking_date: date,
        start_time: TimeInput,
        end_time: TimeInput,
        booking_type: BookingType | str = BookingType.AD_HOC,
    ) -> BookingOutcome:
        """
        Create a booking, or return the card payment needed to cover a shortfall.

        Raises:
            ValidationException: Ineligible user, bad span or date, or a
                shortfall with no card gateway configured
            NotFoundException: Unknown or inactive room
            BookingConflictException: Slot already taken
        """
        kind = BookingType(booking_type)
        self._ensure_eligible(user_id)
        room = self._require_room(room_id)
        quote = quote_price(room.location.name, booking_date, start_time, end_time)
        start, end = self._span_times(start_time, end_time)
        self._validate_booking_window(booking_date, start)

        self.availability_service.ensure_available(
            room_id=room_id, booking_date=booking_date, start_time=start, end_time=end
        )

        plan = plan_funding(
            quote,
            available_voucher_hours=self.voucher_service.get_available_hours(user_id),
            available_credit_pence=self.credit_service.get_available_pence(user_id),
        )
        if plan.shortfall_pence > 0:
            return self._request_payment(
                user_id=user_id,
                amount_pence=plan.shortfall_pence,
                purpose=PaymentPurpose.PAY_THE_DIFFERENCE,
                metadata={
                    "roomId": room_id,
                    "date": booking_date.isoformat(),
                    "startTime": start.isoformat(),
                    "endTime": end.isoformat(),
                    "bookingType": kind.value,
                },
                key_parts=(user_id, room_id, booking_date, start, end),
            )

        membership = self.membership_repository.get_by_user_id(user_id)
        with self.transaction():
            self.availability_service.ensure_available(
                room_id=room_id,
                booking_date=booking_date,
                start_time=start,
                end_time=end,
                lock=True,
            )
            booking = self.booking_repository.create(
                user_id=user_id,
                room_id=room_id,
                membership_id=membership.id if membership else None,
                booking_date=booking_date,
                start_time=start,
                end_time=end,
                price_per_hour_pence=plan.price_per_hour_pence,
                total_price_pence=plan.total_pence,
                credit_used_pence=plan.credit_pence,
                voucher_hours_used=plan.voucher_hours,
                status=BookingStatus.CONFIRMED.value,
                booking_type=kind.value,
            )
            if plan.voucher_hours > ZERO_HOURS:
                self.voucher_service.use(
                    user_id=user_id, hours=plan.voucher_hours, use_transaction=False
                )
            if plan.credit_pence > 0:
                self.credit_service.use(
                    user_id=user_id, amount_pence=plan.credit_pence, use_transaction=False
                )

        prometheus_metrics.record_booking("create", "confirmed")
        self.log_operation(
            "booking_created",
            booking_id=booking.id,
            user_id=user_id,
            room_id=room_id,
            total_pence=plan.total_pence,
            credit_pence=plan.credit_pence,
            voucher_hours=str(plan.voucher_hours),
        )
        self._enqueue_email("confirmation", booking.id)
        return booking

    # ------------------------------------------------------------------ #
    # Update
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("update_booking")
    def update_booking(
        self,
        booking_id: str,
        user_id: str,
        *,
        room_id: Optional[str] = None,
        booking_date: Optional[date] = None,
        start_time: Optional[TimeInput] = None,
        end_time: Optional[TimeInput] = None,
        is_admin: bool = False,
    ) -> BookingOutcome:
        """
        Move or resize a booking, reconciling against what it already consumed.

        The new funding need is compared with the recorded ``credit_used_pence``
        and ``voucher_hours_used``: a smaller need is handed back, a larger one
        is drawn, and a draw the ledger cannot cover becomes a payment request
        tagged ``pay_the_difference_update``.
        """
        existing = self._get_owned_booking(booking_id, user_id, is_admin=is_admin)
        self._ensure_modifiable(existing, action="modified")
        owner_id = existing.user_id
        self._ensure_eligible(owner_id)

        new_room_id = room_id or existing.room_id
        new_date = booking_date or existing.booking_date
        start_input = start_time if start_time is not None else existing.start_time
        end_input = end_time if end_time is not None else existing.end_time

        room = self._require_room(new_room_id)
        quote = quote_price(room.location.name, new_date, start_input, end_input)
        start, end = self._span_times(start_input, end_input)
        self._validate_booking_window(new_date, start)

        self.availability_service.ensure_available(
            room_id=new_room_id,
            booking_date=new_date,
            start_time=start,
            end_time=end,
            exclude_booking_id=booking_id,
        )

        old_credit = existing.credit_used_pence or 0
        old_hours = quantize_hours(existing.voucher_hours_used or ZERO_HOURS)
        plan = plan_funding(
            quote,
            available_voucher_hours=self.voucher_service.get_available_hours(owner_id) + old_hours,
            available_credit_pence=self.credit_service.get_available_pence(owner_id) + old_credit,
        )
        if plan.shortfall_pence > 0:
            return self._request_payment(
                user_id=owner_id,
                amount_pence=plan.shortfall_pence,
                purpose=PaymentPurpose.PAY_THE_DIFFERENCE_UPDATE,
                metadata={
                    "bookingId": booking_id,
                    "roomId": new_room_id,
                    "bookingDate": new_date.isoformat(),
                    "startTime": start.isoformat(),
                    "endTime": end.isoformat(),
                },
                key_parts=(booking_id, new_room_id, new_date, start, end),
            )

        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if booking is None:
                raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
            self._ensure_modifiable(booking, action="modified")
            if (
                booking.credit_used_pence != old_credit
                or quantize_hours(booking.voucher_hours_used or ZERO_HOURS) != old_hours
            ):
                raise ConflictException(
                    "Booking changed while it was being updated; please retry",
                    code="BOOKING_CHANGED",
                )
            self.availability_service.ensure_available(
                room_id=new_room_id,
                booking_date=new_date,
                start_time=start,
                end_time=end,
                exclude_booking_id=booking_id,
                lock=True,
            )

            hours_delta = plan.voucher_hours - old_hours
            if hours_delta < ZERO_HOURS:
                self.voucher_service.release(
                    user_id=owner_id,
                    hours=-hours_delta,
                    fallback_expiry=end_of_month(new_date),
                    use_transaction=False,
                )
            elif hours_delta > ZERO_HOURS:
                self.voucher_service.use(user_id=owner_id, hours=hours_delta, use_transaction=False)

            credit_delta = plan.credit_pence - old_credit
            if credit_delta < 0:
                self.credit_service.refund_usage(
                    user_id=owner_id,
                    amount_pence=-credit_delta,
                    fallback_expiry=end_of_month(new_date),
                    source_id=booking_id,
                    use_transaction=False,
                )
            elif credit_delta > 0:
                self.credit_service.use(
                    user_id=owner_id, amount_pence=credit_delta, use_transaction=False
                )

            booking.room_id = new_room_id
            booking.booking_date = new_date
            booking.start_time = start
            booking.end_time = end
            booking.price_per_hour_pence = plan.price_per_hour_pence
            booking.total_price_pence = plan.total_pence
            booking.credit_used_pence = plan.credit_pence
            booking.voucher_hours_used = plan.voucher_hours
            self.booking_repository.flush()

        prometheus_metrics.record_booking("update", "confirmed")
        self.log_operation(
            "booking_updated",
            booking_id=booking_id,
            user_id=owner_id,
            credit_delta_pence=plan.credit_pence - old_credit,
            voucher_delta_hours=str(plan.voucher_hours - old_hours),
        )
        return booking

    # ------------------------------------------------------------------ #
    # Cancel
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self,
        booking_id: str,
        user_id: str,
        *,
        is_admin: bool = False,
        reason: Optional[str] = None,
    ) -> Booking:
        """
        Cancel a confirmed booking more than the notice period before it starts.

        The credit it actually consumed comes back as a ``manual`` grant that
        expires at the end of the booking's month. Voucher hours are not returned.
        """
        with self.transaction():
            booking = self.booking_repository.get_by_id(booking_id, for_update=True)
            if booking is None or (booking.user_id != user_id and not is_admin):
                raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
            if booking.status == BookingStatus.CANCELLED.value:
                raise ValidationException(
                    "Booking is already cancelled", code="BOOKING_ALREADY_CANCELLED"
                )
            self._ensure_modifiable(booking, action="cancelled")

            if reason is None:
                reason = "Cancelled by user" if booking.user_id == user_id else "Cancelled by admin"
            booking.status = BookingStatus.CANCELLED.value
            booking.cancelled_at = business_now()
            booking.cancellation_reason = reason[:MAX_REASON_LENGTH]

            refund_pence = booking.credit_used_pence or 0
            if refund_pence > 0:
                self.credit_service.grant(
                    user_id=booking.user_id,
                    amount_pence=refund_pence,
                    expiry_date=end_of_month(booking.booking_date),
                    source_type=CreditSourceType.MANUAL,
                    source_id=booking.id,
                    description="Refund for booking cancellation",
                    use_transaction=False,
                )
            self.booking_repository.flush()

        prometheus_metrics.record_booking("cancel", "cancelled")
        self.log_operation(
            "booking_cancelled",
            booking_id=booking_id,
            user_id=booking.user_id,
            refund_pence=refund_pence,
        )
        self._enqueue_email("cancellation", booking.id)
        return booking

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: str, user_id: str, *, is_admin: bool = False) -> Booking:
        return self._get_owned_booking(booking_id, user_id, is_admin=is_admin)

    def list_user_bookings(
        self,
        user_id: str,
        *,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        status: Optional[str] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[Booking]:
        if status is not None:
            try:
                status = BookingStatus(status).value
            except ValueError:
                raise ValidationException(
                    f"Invalid booking status: {status}", code="INVALID_STATUS"
                ) from None
        return self.booking_repository.list_for_user(
            user_id=user_id, from_date=from_date, to_date=to_date, status=status, limit=limit
        )

    def get_quote(
        self,
        user_id: str,
        *,
        room_id: str,
        booking_date: date,
        start_time: TimeInput,
        end_time: TimeInput,
    ) -> BookingQuote:
        """Price a span and preview how the caller's balances would fund it."""
        room = self._require_room(room_id)
        quote = quote_price(room.location.name, booking_date, start_time, end_time)
        start, end = self._span_times(start_time, end_time)
        plan = plan_funding(
            quote,
            available_voucher_hours=self.voucher_service.get_available_hours(user_id),
            available_credit_pence=self.credit_service.get_available_pence(user_id),
        )
        return BookingQuote(
            room_id=room_id,
            booking_date=booking_date,
            start_time=start,
            end_time=end,
            price=quote,
            funding=plan,
        )

    # ------------------------------------------------------------------ #
    # Pay-the-difference settlement
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("settle_pay_difference")
    def settle_pay_difference(
        self,
        *,
        payment_intent_id: str,
        user_id: str,
        amount_pence: int,
        purpose: PaymentPurpose | str,
        metadata: Dict[str, Any],
    ) -> Optional[BookingOutcome]:
        """
        Turn a succeeded shortfall payment into the booking it was for.

        Grants the received amount as ``pay_difference`` credit (once per
        intent), then re-runs create or update. If that fails, a grant made by
        this call is revoked and the error re-raised. If the re-run still comes
        back short, the grant stays as spendable credit, since the card payment
        behind it has been captured, and the new payment request is returned.
        Returns None when the request can no longer be honoured and nothing was
        granted.
        """
        kind = PaymentPurpose(purpose)
        source_id = payment_intent_source_id(payment_intent_id)
        context = {"user_id": user_id, "payment_intent_id": payment_intent_id}

        expected = metadata.get("expectedAmountPence")
        if expected is not None and str(expected).isdigit() and int(expected) != amount_pence:
            self.logger.warning(
                "Pay-the-difference amount mismatch",
                extra={**context, "expected_pence": int(expected), "received_pence": amount_pence},
            )

        if kind == PaymentPurpose.PAY_THE_DIFFERENCE:
            room_id = metadata.get("roomId")
            raw_date = metadata.get("date")
            start_raw = metadata.get("startTime")
            end_raw = metadata.get("endTime")
            if not (room_id and raw_date and start_raw and end_raw):
                self.logger.warning("Pay-the-difference metadata incomplete", extra=context)
                return None
            booking_date = date.fromisoformat(str(raw_date))
            start, end = self._span_times(start_raw, end_raw)
            if not self.availability_service.is_available(
                room_id=room_id, booking_date=booking_date, start_time=start, end_time=end
            ):
                self.logger.warning(
                    "Pay-the-difference slot no longer available",
                    extra={**context, "room_id": room_id, "date": str(booking_date)},
                )
                return None
            description = "Pay the difference for room booking"
        elif kind == PaymentPurpose.PAY_THE_DIFFERENCE_UPDATE:
            if not metadata.get("bookingId"):
                self.logger.warning("Pay-the-difference-update metadata incomplete", extra=context)
                return None
            description = "Pay the difference for booking update"
        else:
            raise ValidationException(
                f"Not a pay-the-difference payment: {kind.value}", code="INVALID_PAYMENT_PURPOSE"
            )

        granted_here = False
        if self.credit_service.has_credit_for_source_id(
            user_id=user_id, source_type=CreditSourceType.PAY_DIFFERENCE, source_id=source_id
        ):
            self.logger.info("Pay-the-difference credit already granted", extra=context)
        else:
            self.credit_service.grant(
                user_id=user_id,
                amount_pence=amount_pence,
                expiry_date=end_of_month(business_today()),
                source_type=CreditSourceType.PAY_DIFFERENCE,
                source_id=source_id,
                description=description,
            )
            granted_here = True

        try:
            if kind == PaymentPurpose.PAY_THE_DIFFERENCE:
                result = self.create_booking(
                    user_id=user_id,
                    room_id=metadata["roomId"],
                    booking_date=booking_date,
                    start_time=start,
                    end_time=end,
                    booking_type=metadata.get("bookingType") or BookingType.AD_HOC,
                )
            else:
                result = self.update_booking(
                    metadata["bookingId"],
                    user_id,
                    room_id=metadata.get("roomId") or None,
                    booking_date=(
                        date.fromisoformat(metadata["bookingDate"])
                        if metadata.get("bookingDate")
                        else None
                    ),
                    start_time=metadata.get("startTime") or None,
                    end_time=metadata.get("endTime") or None,
                )
        except Exception:
            if granted_here:
                self._revoke_settlement_credit(user_id, source_id, context)
            raise

        if isinstance(result, PaymentRequiredResult):
            self.logger.error(
                "Pay-the-difference settlement still requires payment; paid amount kept as credit",
                extra={**context, "amount_pence": result.amount_pence, "kept_pence": amount_pence},
            )
        else:
            self.log_operation("pay_difference_settled", booking_id=result.id, **context)
        return result

    def _revoke_settlement_credit(
        self, user_id: str, source_id: str, context: Dict[str, Any]
    ) -> None:
        try:
            self.credit_service.revoke(user_id=user_id, source_id=source_id)
            self.logger.warning("Pay-the-difference credit revoked after failure", extra=context)
        except DomainException as exc:
            self.logger.error(
                f"Failed to revoke pay-the-difference credit: {exc.message}", extra=context
            )

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _ensure_eligible(self, user_id: str) -> None:
        status = self.subscription_service.check_subscription_status(user_id)
        if not status.can_book:
            raise ValidationException(
                status.reason or "User cannot make bookings",
                code="BOOKING_NOT_ALLOWED",
                details={"user_id": user_id},
            )

    def _require_room(self, room_id: str) -> Room:
        room = self.room_repository.get_active(room_id)
        if room is None:
            raise NotFoundException("Room not found", code="ROOM_NOT_FOUND")
        return room

    def _get_owned_booking(self, booking_id: str, user_id: str, *, is_admin: bool) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if booking is None or (booking.user_id != user_id and not is_admin):
            raise NotFoundException("Booking not found", code="BOOKING_NOT_FOUND")
        return booking

    @staticmethod
    def _span_times(start_time: TimeInput, end_time: TimeInput) -> tuple[time, time]:
        return seconds_to_time(parse_time(start_time)), seconds_to_time(parse_time(end_time))

    def _validate_booking_window(self, booking_date: date, start: time) -> None:
        """Bookings start in the future, no later than the advance window allows."""
        today = business_today()
        if booking_date < today:
            raise ValidationException(
                "Booking date must be today or in the future", code="BOOKING_DATE_IN_PAST"
            )
        latest = add_months(today, settings.booking_advance_months)
        if booking_date > latest:
            raise ValidationException(
                f"Bookings can only be made up to {settings.booking_advance_months} month(s) in advance",
                code="BOOKING_TOO_FAR_AHEAD",
                details={"latest_date": latest.isoformat()},
            )
        if localize(booking_date, start) <= business_now():
            raise ValidationException(
                "Booking start time must be in the future", code="BOOKING_START_IN_PAST"
            )

    def _ensure_modifiable(self, booking: Booking, *, action: str) -> None:
        if booking.status != BookingStatus.CONFIRMED.value:
            raise ValidationException(
                f"Only confirmed bookings can be {action}",
                code="BOOKING_NOT_CONFIRMED",
                details={"status": booking.status},
            )
        notice = settings.cancellation_notice_hours
        if booking.hours_until_start(business_now()) <= notice:
            raise CancellationWindowException(notice, action=action)

    def _request_payment(
        self,
        *,
        user_id: str,
        amount_pence: int,
        purpose: PaymentPurpose,
        metadata: Dict[str, Any],
        key_parts: tuple,
    ) -> PaymentRequiredResult:
        if not self.stripe_service.stripe_configured:
            prometheus_metrics.record_booking(purpose.value, "gateway_unavailable")
            raise PaymentGatewayUnavailableException(amount_pence)

        membership = self.membership_repository.get_by_user_id(user_id)
        intent = self.stripe_service.create_payment_intent(
            user_id=user_id,
            amount_pence=amount_pence,
            payment_type=PaymentType.PAY_DIFFERENCE,
            customer_id=membership.stripe_customer_id if membership else None,
            metadata={
                "type": purpose.value,
                "userId": user_id,
                "expectedAmountPence": amount_pence,
                **metadata,
            },
            idempotency_key=_idempotency_key(purpose.value, *key_parts, amount_pence),
        )
        prometheus_metrics.record_booking(purpose.value, "payment_required")
        self.logger.info(
            "Booking requires card payment",
            extra={"user_id": user_id, "amount_pence": amount_pence, "purpose": purpose.value},
        )
        return PaymentRequiredResult(
            client_secret=intent.client_secret,
            payment_intent_id=intent.payment_intent_id,
            amount_pence=amount_pence,
            purpose=purpose,
        )

    def _enqueue_email(self, kind: str, booking_id: str) -> None:
        """Queue a notification email. A broker failure never affects the booking."""
        try:
            from ..tasks.email import send_booking_cancellation, send_booking_confirmation

            task = send_booking_confirmation if kind == "confirmation" else send_booking_cancellation
            task.delay(booking_id)
        except Exception as exc:
            self.logger.error(
                f"Failed to enqueue booking {kind} email: {exc}",
                extra={"booking_id": booking_id},
            )
