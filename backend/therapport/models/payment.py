"""
Payment models for the Stripe integration.

``StripePayment`` is the local record of every payment intent the platform
creates, so webhook handlers can cross-check what was asked for against what
Stripe reports.
"""

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON
import ulid

from therapport.core.enums import PaymentStatus
from therapport.database import Base


class StripePayment(Base):
    __tablename__ = "stripe_payments"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id: Mapped[str] = mapped_column(
        String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stripe_payment_intent_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    amount_pence: Mapped[int] = mapped_column(Integer, nullable=False, comment="Amount in pence")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="gbp")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    payment_type: Mapped[str] = mapped_column(String(30), nullable=False)
    payment_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",
        JSONB(astext_type=Text()).with_variant(JSON(), "sqlite"),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return (
            f"<StripePayment(intent={self.stripe_payment_intent_id}, "
            f"amount={self.amount_pence}, status={self.status})>"
        )
