"""Repository for local Stripe payment records."""

from __future__ import annotations

from typing import Any, Optional

from sqlalchemy.orm import Session

from therapport.models.payment import StripePayment

from .base_repository import BaseRepository


class PaymentRepository(BaseRepository[StripePayment]):
    def __init__(self, db: Session):
        super().__init__(db, StripePayment)

    def get_by_intent_id(self, payment_intent_id: str) -> Optional[StripePayment]:
        return self.find_one_by(stripe_payment_intent_id=payment_intent_id)

    def record_intent(
        self,
        *,
        user_id: str,
        payment_intent_id: str,
        amount_pence: int,
        currency: str,
        payment_type: str,
        customer_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> StripePayment:
        """
        Insert a payment record, or return the existing one.

        Idempotent on the intent id because Stripe returns the same intent for
        a retried idempotency key.
        """
        existing = self.get_by_intent_id(payment_intent_id)
        if existing is not None:
            return existing
        return self.create(
            user_id=user_id,
            stripe_payment_intent_id=payment_intent_id,
            stripe_customer_id=customer_id,
            amount_pence=amount_pence,
            currency=currency,
            payment_type=payment_type,
            payment_metadata=metadata or {},
        )

    def update_status(self, payment_intent_id: str, status: str) -> Optional[StripePayment]:
        payment = self.get_by_intent_id(payment_intent_id)
        if payment is None:
            return None
        payment.status = status
        self.flush()
        return payment
