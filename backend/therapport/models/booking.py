# backend/therapport/models/booking.py
"""
Booking model for the Therapport platform.

A booking is a same-day ``[start_time, end_time)`` reservation of one room.
It records how it was funded (credit pence and voucher hours) so updates and
cancellations can reconcile against what was actually consumed.

Invariant: confirmed bookings for one room and date never overlap. The
orchestrator enforces this under a row lock; ``cancelled`` is terminal.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Time,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..core.enums import BookingStatus, BookingType
from ..core.timezone_utils import localize
from ..database import Base


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(String(26), primary_key=True, index=True, default=lambda: str(ulid.ULID()))

    user_id = Column(String(26), ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(String(26), ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False)
    membership_id = Column(String(26), ForeignKey("memberships.id"), nullable=True)

    booking_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Money in pence
    price_per_hour_pence = Column(Integer, nullable=False)
    total_price_pence = Column(Integer, nullable=False)
    credit_used_pence = Column(Integer, nullable=False, default=0)
    voucher_hours_used = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))

    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value)
    booking_type = Column(String(30), nullable=False, default=BookingType.AD_HOC.value)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="bookings")
    room = relationship("Room", back_populates="bookings", lazy="joined")
    membership = relationship("Membership")

    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        CheckConstraint("total_price_pence >= 0", name="ck_bookings_price_non_negative"),
        CheckConstraint("credit_used_pence >= 0", name="ck_bookings_credit_non_negative"),
        CheckConstraint("voucher_hours_used >= 0", name="ck_bookings_voucher_non_negative"),
        Index("ix_bookings_room_date_status", "room_id", "booking_date", "status"),
        Index("ix_bookings_user_date", "user_id", "booking_date"),
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == BookingStatus.CONFIRMED.value

    @property
    def start_datetime(self) -> datetime:
        """Aware start instant in the business timezone."""
        return localize(self.booking_date, self.start_time)

    def hours_until_start(self, now: datetime) -> float:
        return (self.start_datetime - now).total_seconds() / 3600

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, room={self.room_id}, date={self.booking_date}, "
            f"{self.start_time}-{self.end_time}, status={self.status})>"
        )
