# backend/therapport/models/membership.py
"""
Membership model. One row per user; drives booking eligibility.

Permanent members pay monthly through a Stripe subscription. Ad-hoc members
buy a one-month pass and may request termination, after which they keep
booking rights until ``suspension_date``.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Date, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
import ulid

from therapport.core.enums import MembershipType
from therapport.database import Base

if TYPE_CHECKING:
    from therapport.models.user import User


class Membership(Base):
    __tablename__ = "memberships"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False, default=MembershipType.AD_HOC.value)
    subscription_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True, index=True
    )

    subscription_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    subscription_end_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    termination_requested_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    suspension_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    user: Mapped["User"] = relationship("User", back_populates="membership")

    @property
    def is_ad_hoc(self) -> bool:
        return self.type == MembershipType.AD_HOC.value

    def __repr__(self) -> str:
        return f"<Membership(user_id={self.user_id}, type={self.type})>"
