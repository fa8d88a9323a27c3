"""
Credit ledger service.

The ledger is a set of dated, expiring, partially consumable grants in pence.
Consumption is FIFO by grant date and all-or-nothing. Every mutating method
takes ``use_transaction``: pass False to compose the call into a caller's
unit of work (the booking orchestrator does this so a booking row and its
ledger movements commit together).
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
import logging
from typing import Callable, List, Optional, TypeVar

from sqlalchemy.orm import Session

from ..core.enums import CreditSourceType
from ..core.exceptions import (
    InsufficientCreditException,
    LedgerIntegrityException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import business_today
from ..models.credit import CreditTransaction
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)

R = TypeVar("R")


@dataclass(frozen=True)
class CreditAllocation:
    transaction_id: str
    amount_pence: int


@dataclass
class CreditUsage:
    allocations: List[CreditAllocation] = field(default_factory=list)

    @property
    def total_pence(self) -> int:
        return sum(item.amount_pence for item in self.allocations)


@dataclass(frozen=True)
class CreditBalance:
    total_available_pence: int
    total_granted_pence: int
    total_used_pence: int


@dataclass(frozen=True)
class ExpiryBucket:
    month: str
    remaining_pence: int
    transaction_count: int
    earliest_expiry: date


@dataclass
class CreditSummary:
    balance: CreditBalance
    available: List[CreditTransaction]
    by_expiry_month: List[ExpiryBucket]


class CreditService(BaseService):
    """Grants, FIFO consumption, refunds, revocation and balance queries."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.credit_repository = RepositoryFactory.create_credit_repository(db)

    def _run(self, use_transaction: bool, operation: Callable[[], R]) -> R:
        if use_transaction:
            with self.transaction():
                return operation()
        return operation()

    @BaseService.measure_operation("credit_grant")
    def grant(
        self,
        *,
        user_id: str,
        amount_pence: int,
        expiry_date: date,
        source_type: CreditSourceType | str,
        source_id: Optional[str] = None,
        description: Optional[str] = None,
        use_transaction: bool = True,
    ) -> CreditTransaction:
        """
        Insert a new grant with nothing consumed.

        Callers granting against an external id should check
        ``has_credit_for_source_id`` first so retried webhooks do not double-grant.
        """
        if amount_pence <= 0:
            raise ValidationException(
                "Credit amount must be positive",
                code="INVALID_CREDIT_AMOUNT",
                details={"amount_pence": amount_pence},
            )
        source = CreditSourceType(source_type)

        def _grant() -> CreditTransaction:
            transaction = self.credit_repository.create(
                user_id=user_id,
                amount_pence=amount_pence,
                used_pence=0,
                remaining_pence=amount_pence,
                grant_date=business_today(),
                expiry_date=expiry_date,
                source_type=source.value,
                source_id=source_id,
                description=description,
                revoked=False,
            )
            self.log_operation(
                "credit_granted",
                user_id=user_id,
                amount_pence=amount_pence,
                source_type=source.value,
                expiry_date=str(expiry_date),
            )
            return transaction

        result = self._run(use_transaction, _grant)
        prometheus_metrics.record_credit_movement("granted", amount_pence, source.value)
        return result

    def has_credit_for_source_id(
        self, *, user_id: str, source_type: CreditSourceType | str, source_id: str
    ) -> bool:
        return self.credit_repository.has_source(
            user_id=user_id,
            source_type=CreditSourceType(source_type).value,
            source_id=source_id,
        )

    @BaseService.measure_operation("credit_use")
    def use(self, *, user_id: str, amount_pence: int, use_transaction: bool = True) -> CreditUsage:
        """
        Consume ``amount_pence`` from the user's available grants, oldest grant first.

        Candidate rows are locked before they are read so two concurrent draws
        cannot both see the same balance.

        Raises:
            InsufficientCreditException: When the available total is short. No row is touched.
        """
        if amount_pence <= 0:
            return CreditUsage()

        def _use() -> CreditUsage:
            rows = self.credit_repository.get_available_for_update(
                user_id=user_id, today=business_today()
            )
            available = sum(row.remaining_pence for row in rows)
            if available < amount_pence:
                raise InsufficientCreditException(
                    requested_pence=amount_pence, available_pence=available
                )

            usage = CreditUsage()
            outstanding = amount_pence
            for row in rows:
                if outstanding <= 0:
                    break
                take = min(row.remaining_pence, outstanding)
                row.used_pence += take
                row.remaining_pence -= take
                outstanding -= take
                usage.allocations.append(CreditAllocation(row.id, take))

            self.credit_repository.flush()
            return usage

        usage = self._run(use_transaction, _use)
        prometheus_metrics.record_credit_movement("used", usage.total_pence)
        self.logger.info(
            "Consumed credit",
            extra={
                "user_id": user_id,
                "amount_pence": usage.total_pence,
                "transactions": len(usage.allocations),
            },
        )
        return usage

    @BaseService.measure_operation("credit_refund")
    def refund(
        self, *, transaction_id: str, amount_pence: int, use_transaction: bool = True
    ) -> CreditTransaction:
        """
        Give back up to ``used_pence`` on one specific grant.

        Refunding into an expired grant is allowed but logged, since that money
        will not be spendable.

        Raises:
            NotFoundException: Unknown transaction
            LedgerIntegrityException: ``amount_pence`` exceeds what was consumed
        """
        if amount_pence <= 0:
            raise ValidationException(
                "Refund amount must be positive",
                code="INVALID_CREDIT_AMOUNT",
                details={"amount_pence": amount_pence},
            )

        def _refund() -> CreditTransaction:
            row = self.credit_repository.get_by_id(transaction_id, for_update=True)
            if row is None:
                raise NotFoundException("Credit transaction not found", code="CREDIT_NOT_FOUND")
            self._apply_refund(row, amount_pence)
            self.credit_repository.flush()
            return row

        result = self._run(use_transaction, _refund)
        prometheus_metrics.record_credit_movement("refunded", amount_pence, result.source_type)
        return result

    def _apply_refund(self, row: CreditTransaction, amount_pence: int) -> None:
        if amount_pence > row.used_pence:
            raise LedgerIntegrityException(
                "Refund exceeds the amount consumed from this credit",
                details={"requested_pence": amount_pence, "used_pence": row.used_pence},
            )
        if row.expiry_date < business_today():
            self.logger.warning(
                "Refunding into an expired credit transaction",
                extra={"user_id": row.user_id, "expiry_date": str(row.expiry_date)},
            )
        row.used_pence -= amount_pence
        row.remaining_pence += amount_pence

    @BaseService.measure_operation("credit_refund_usage")
    def refund_usage(
        self,
        *,
        user_id: str,
        amount_pence: int,
        fallback_expiry: Optional[date] = None,
        source_id: Optional[str] = None,
        use_transaction: bool = True,
    ) -> CreditUsage:
        """
        Return ``amount_pence`` of earlier consumption, latest expiry first.

        Used when a booking update needs less credit than before. Only live
        grants (unexpired, not revoked) take money back. Whatever they cannot
        absorb is re-granted as ``manual`` credit expiring on
        ``fallback_expiry``, so nothing is refunded into a grant that can no
        longer be spent.

        Raises:
            LedgerIntegrityException: Live consumption is short and no
                ``fallback_expiry`` was given
        """
        if amount_pence <= 0:
            return CreditUsage()

        def _refund_usage() -> CreditUsage:
            rows = self.credit_repository.get_consumed_for_update(
                user_id=user_id, today=business_today()
            )
            consumed = sum(row.used_pence for row in rows)
            if consumed < amount_pence and fallback_expiry is None:
                raise LedgerIntegrityException(
                    "Refund exceeds the credit this user has consumed",
                    details={"requested_pence": amount_pence, "consumed_pence": consumed},
                )
            usage = CreditUsage()
            outstanding = amount_pence
            for row in rows:
                if outstanding <= 0:
                    break
                give_back = min(row.used_pence, outstanding)
                self._apply_refund(row, give_back)
                outstanding -= give_back
                usage.allocations.append(CreditAllocation(row.id, give_back))
            if outstanding > 0:
                regrant = self.grant(
                    user_id=user_id,
                    amount_pence=outstanding,
                    expiry_date=fallback_expiry,
                    source_type=CreditSourceType.MANUAL,
                    source_id=source_id,
                    description="Refund for booking update",
                    use_transaction=False,
                )
                usage.allocations.append(CreditAllocation(regrant.id, outstanding))
            self.credit_repository.flush()
            return usage

        usage = self._run(use_transaction, _refund_usage)
        prometheus_metrics.record_credit_movement("refunded", usage.total_pence)
        return usage

    @BaseService.measure_operation("credit_revoke")
    def revoke(
        self,
        *,
        user_id: str,
        source_id: str,
        source_type: CreditSourceType | str = CreditSourceType.PAY_DIFFERENCE,
        use_transaction: bool = True,
    ) -> int:
        """
        Revoke unused grants matching ``source_id``. Returns the number revoked.

        A no-op when nothing matches. Refuses outright if any match has been
        partly or fully consumed, since revoking it would rewrite history.

        Raises:
            LedgerIntegrityException: A matching grant has consumption
        """
        source = CreditSourceType(source_type)

        def _revoke() -> int:
            rows = self.credit_repository.get_by_source_for_update(
                user_id=user_id, source_type=source.value, source_id=source_id
            )
            if not rows:
                return 0
            if any(row.used_pence > 0 for row in rows):
                raise LedgerIntegrityException(
                    "Cannot revoke credit that has already been used",
                    details={"source_id": source_id},
                )
            revoked = 0
            for row in rows:
                if not row.revoked:
                    row.revoked = True
                    revoked += 1
            self.credit_repository.flush()
            return revoked

        count = self._run(use_transaction, _revoke)
        if count:
            self.logger.warning(
                "Revoked credit grants",
                extra={"user_id": user_id, "source_id": source_id, "count": count},
            )
        return count

    def get_available_pence(self, user_id: str) -> int:
        return self.credit_repository.sum_available(user_id=user_id, today=business_today())

    @BaseService.measure_operation("credit_balance")
    def get_balance(self, user_id: str) -> CreditBalance:
        available, granted, used = self.credit_repository.get_balance_totals(
            user_id=user_id, today=business_today()
        )
        return CreditBalance(
            total_available_pence=available,
            total_granted_pence=granted,
            total_used_pence=used,
        )

    @BaseService.measure_operation("credit_summary")
    def get_summary(self, user_id: str) -> CreditSummary:
        """Balance totals plus available credit grouped by expiry month ("use it or lose it")."""
        available = self.credit_repository.get_available(user_id=user_id, today=business_today())
        buckets: "OrderedDict[str, ExpiryBucket]" = OrderedDict()
        for row in available:
            key = row.expiry_date.strftime("%Y-%m")
            current = buckets.get(key)
            if current is None:
                buckets[key] = ExpiryBucket(key, row.remaining_pence, 1, row.expiry_date)
            else:
                buckets[key] = ExpiryBucket(
                    key,
                    current.remaining_pence + row.remaining_pence,
                    current.transaction_count + 1,
                    min(current.earliest_expiry, row.expiry_date),
                )
        return CreditSummary(
            balance=self.get_balance(user_id),
            available=available,
            by_expiry_month=list(buckets.values()),
        )
