"""
Credit ledger and voucher models.

Both ledgers are append-only: rows are created by grants and only their
consumption columns change afterwards. Nothing is ever deleted.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column
import ulid

from therapport.database import Base


class CreditTransaction(Base):
    """
    One monetary grant with its own expiry and consumption history.

    ``used_pence + remaining_pence == amount_pence`` always holds; the database
    enforces it with a check constraint as well. A row is *available* when it
    is not revoked, not expired, and has a positive remaining balance.
    """

    __tablename__ = "credit_transactions"
    __table_args__ = (
        CheckConstraint("amount_pence > 0", name="ck_credit_amount_positive"),
        CheckConstraint("used_pence >= 0", name="ck_credit_used_non_negative"),
        CheckConstraint("remaining_pence >= 0", name="ck_credit_remaining_non_negative"),
        CheckConstraint(
            "used_pence + remaining_pence = amount_pence", name="ck_credit_conservation"
        ),
        Index("ix_credit_transactions_user_grant", "user_id", "grant_date"),
        Index("ix_credit_transactions_source", "user_id", "source_type", "source_id"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    amount_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    used_pence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    remaining_pence: Mapped[int] = mapped_column(Integer, nullable=False)
    grant_date: Mapped[date] = mapped_column(Date, nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    source_type: Mapped[str] = mapped_column(String(30), nullable=False)
    source_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    def is_available(self, today: date) -> bool:
        return not self.revoked and self.expiry_date >= today and self.remaining_pence > 0

    def __repr__(self) -> str:
        return (
            f"<CreditTransaction(id={self.id}, user={self.user_id}, "
            f"amount={self.amount_pence}, remaining={self.remaining_pence})>"
        )


class FreeBookingVoucher(Base):
    """An allocation of free room hours, consumed oldest-expiry first."""

    __tablename__ = "free_booking_vouchers"
    __table_args__ = (
        CheckConstraint("hours_allocated > 0", name="ck_voucher_allocated_positive"),
        CheckConstraint("hours_used >= 0", name="ck_voucher_used_non_negative"),
        CheckConstraint("hours_used <= hours_allocated", name="ck_voucher_not_overdrawn"),
        Index("ix_free_booking_vouchers_user_expiry", "user_id", "expiry_date"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    hours_allocated: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    hours_used: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    @property
    def hours_remaining(self) -> Decimal:
        return Decimal(self.hours_allocated) - Decimal(self.hours_used or 0)

    def __repr__(self) -> str:
        return (
            f"<FreeBookingVoucher(id={self.id}, user={self.user_id}, "
            f"allocated={self.hours_allocated}, used={self.hours_used})>"
        )
