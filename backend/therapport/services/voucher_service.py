"""
Free booking voucher ledger.

Same discipline as the credit ledger but denominated in hours: consumption is
FIFO by expiry date and all-or-nothing, and ``release`` gives hours back when a
booking update needs fewer of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..core.exceptions import (
    InsufficientVoucherHoursException,
    LedgerIntegrityException,
    ValidationException,
)
from ..core.timezone_utils import business_today
from ..models.credit import FreeBookingVoucher
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from ..utils.money import quantize_hours
from .base import BaseService

logger = logging.getLogger(__name__)

ZERO_HOURS = Decimal("0.00")


@dataclass
class VoucherSummary:
    total_available_hours: Decimal
    earliest_expiry: Optional[date]
    vouchers: List[FreeBookingVoucher] = field(default_factory=list)


class VoucherService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.voucher_repository = RepositoryFactory.create_voucher_repository(db)

    def get_available_hours(self, user_id: str) -> Decimal:
        return self.voucher_repository.sum_available_hours(user_id=user_id, today=business_today())

    @BaseService.measure_operation("voucher_allocate")
    def allocate(
        self,
        *,
        user_id: str,
        hours: Decimal,
        expiry_date: date,
        reason: Optional[str] = None,
    ) -> FreeBookingVoucher:
        """Admin grant of free hours."""
        allocated = quantize_hours(hours)
        if allocated <= ZERO_HOURS:
            raise ValidationException("Voucher hours must be positive", code="INVALID_VOUCHER_HOURS")
        with self.transaction():
            voucher = self.voucher_repository.create(
                user_id=user_id,
                hours_allocated=allocated,
                hours_used=ZERO_HOURS,
                expiry_date=expiry_date,
                reason=reason,
            )
        self.log_operation("voucher_allocated", user_id=user_id, hours=str(allocated))
        return voucher

    @BaseService.measure_operation("voucher_use")
    def use(self, *, user_id: str, hours: Decimal, use_transaction: bool = True) -> Decimal:
        """
        Deduct ``hours`` across available vouchers, earliest expiry first.

        Raises:
            InsufficientVoucherHoursException: Not enough hours. Nothing is touched.
        """
        requested = quantize_hours(hours)
        if requested <= ZERO_HOURS:
            return ZERO_HOURS

        def _use() -> Decimal:
            vouchers = self.voucher_repository.get_available_for_update(
                user_id=user_id, today=business_today()
            )
            available = sum((v.hours_remaining for v in vouchers), ZERO_HOURS)
            if available < requested:
                raise InsufficientVoucherHoursException(requested, available)

            outstanding = requested
            for voucher in vouchers:
                if outstanding <= ZERO_HOURS:
                    break
                take = min(voucher.hours_remaining, outstanding)
                voucher.hours_used = Decimal(voucher.hours_used) + take
                outstanding -= take
            self.voucher_repository.flush()
            return requested

        if use_transaction:
            with self.transaction():
                used = _use()
        else:
            used = _use()
        prometheus_metrics.record_voucher_movement("used", float(used))
        return used

    @BaseService.measure_operation("voucher_release")
    def release(
        self,
        *,
        user_id: str,
        hours: Decimal,
        fallback_expiry: Optional[date] = None,
        use_transaction: bool = True,
    ) -> Decimal:
        """
        Return ``hours`` to the user's unexpired vouchers, latest expiry first.

        Release runs opposite to consumption so that, after an update, the
        voucher state matches a smaller original draw. Hours that unexpired
        vouchers cannot take back come back as a new voucher expiring on
        ``fallback_expiry``; without one, that case is an integrity error.
        """
        requested = quantize_hours(hours)
        if requested <= ZERO_HOURS:
            return ZERO_HOURS

        def _release() -> Decimal:
            vouchers = self.voucher_repository.get_consumed_for_update(
                user_id=user_id, today=business_today()
            )
            consumed = sum((Decimal(v.hours_used) for v in vouchers), ZERO_HOURS)
            if consumed < requested and fallback_expiry is None:
                raise LedgerIntegrityException(
                    "Cannot release more voucher hours than were used",
                    details={"requested_hours": str(requested), "used_hours": str(consumed)},
                )
            outstanding = requested
            for voucher in vouchers:
                if outstanding <= ZERO_HOURS:
                    break
                give_back = min(Decimal(voucher.hours_used), outstanding)
                voucher.hours_used = Decimal(voucher.hours_used) - give_back
                outstanding -= give_back
            if outstanding > ZERO_HOURS:
                self.voucher_repository.create(
                    user_id=user_id,
                    hours_allocated=outstanding,
                    hours_used=ZERO_HOURS,
                    expiry_date=fallback_expiry,
                    reason="Returned from booking update",
                )
            self.voucher_repository.flush()
            return requested

        if use_transaction:
            with self.transaction():
                released = _release()
        else:
            released = _release()
        prometheus_metrics.record_voucher_movement("released", float(released))
        return released

    def get_summary(self, user_id: str) -> VoucherSummary:
        vouchers = self.voucher_repository.get_available(user_id=user_id, today=business_today())
        total = sum((v.hours_remaining for v in vouchers), ZERO_HOURS)
        return VoucherSummary(
            total_available_hours=quantize_hours(total),
            earliest_expiry=vouchers[0].expiry_date if vouchers else None,
            vouchers=vouchers,
        )
