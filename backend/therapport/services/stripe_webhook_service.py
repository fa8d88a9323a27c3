"""
Stripe webhook ingestion.

Verifies the signature, dedups on the persisted webhook ledger and routes each
event to the subscription or booking flow it belongs to. An event counts as a
duplicate only once it has been *processed*; a failed attempt is recorded and
the caller answers 500 so Stripe retries it.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
import logging
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.constants import PRORATED_LINE_MARKER, WEBHOOK_SOURCE_STRIPE
from ..core.enums import PaymentPurpose, PaymentStatus, WebhookEventStatus
from ..core.exceptions import ServiceException
from ..core.timezone_utils import end_of_month, end_of_next_month, to_business_date
from ..models.webhook_event import WebhookEvent
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..repositories.factory import RepositoryFactory
from .base import BaseService
from .booking_service import BookingService
from .stripe_service import StripeService
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 2000


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp_to_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    return to_business_date(datetime.fromtimestamp(int(value), tz=timezone.utc))


def _object_id(value: Any) -> Optional[str]:
    """Stripe expands references either as an id string or as an object."""
    if isinstance(value, str):
        return value or None
    if isinstance(value, dict):
        return value.get("id")
    return None


def split_initial_invoice(invoice: Dict[str, Any]) -> Optional[Tuple[int, int]]:
    """
    Detect a first invoice carrying the prorated one-time line.

    Returns ``(current_month_pence, next_month_pence)`` when the invoice has
    both the prorated line and a subscription line, else None.
    """
    lines = (invoice.get("lines") or {}).get("data") or []
    current = 0
    following = 0
    for line in lines:
        amount = int(line.get("amount") or 0)
        description = (line.get("description") or "").strip()
        is_subscription_line = bool(line.get("subscription")) or (
            (line.get("parent") or {}).get("type") == "subscription_item_details"
        )
        if description == PRORATED_LINE_MARKER and not is_subscription_line:
            current += amount
        elif is_subscription_line:
            following += amount
    if current > 0 and following > 0:
        return current, following
    return None


class StripeWebhookService(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        stripe_service: Optional[StripeService] = None,
        subscription_service: Optional[SubscriptionService] = None,
        booking_service: Optional[BookingService] = None,
    ):
        super().__init__(db)
        self.webhook_event_repository = RepositoryFactory.create_webhook_event_repository(db)
        self.membership_repository = RepositoryFactory.create_membership_repository(db)
        self.stripe_service = stripe_service or StripeService(db)
        self.subscription_service = subscription_service or SubscriptionService(
            db, stripe_service=self.stripe_service
        )
        self.booking_service = booking_service or BookingService(
            db,
            stripe_service=self.stripe_service,
            subscription_service=self.subscription_service,
        )

    @BaseService.measure_operation("stripe_webhook_handle")
    def handle(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify, dedup and process one webhook delivery.

        Raises:
            ValidationException: Missing or invalid signature
            ServiceException: The handler failed; the event is left unprocessed
        """
        event = self.stripe_service.construct_event(payload, signature)
        event_id = event["id"]
        event_type = event["type"]

        if self.webhook_event_repository.is_processed(
            WEBHOOK_SOURCE_STRIPE, event_id, retention_hours=settings.webhook_event_retention_hours
        ):
            self.logger.info(
                "Stripe webhook event already processed",
                extra={"event_id": event_id, "event_type": event_type},
            )
            prometheus_metrics.record_webhook_event(event_type, "duplicate")
            return {"received": True, "duplicate": True, "event_type": event_type}

        self._record_attempt(event)
        try:
            handled = self.dispatch(event)
        except Exception as exc:
            self.db.rollback()
            self._mark(event_id, WebhookEventStatus.FAILED, error=str(exc))
            prometheus_metrics.record_webhook_event(event_type, "failed")
            self.logger.error(
                f"Stripe webhook handler error: {exc}",
                extra={"event_id": event_id, "event_type": event_type},
                exc_info=True,
            )
            raise ServiceException(
                "Webhook handler failed",
                code="WEBHOOK_HANDLER_FAILED",
                details={"event_id": event_id, "event_type": event_type},
            ) from exc

        self._mark(event_id, WebhookEventStatus.PROCESSED)
        prometheus_metrics.record_webhook_event(event_type, "processed" if handled else "ignored")
        return {"received": True, "duplicate": False, "event_type": event_type, "handled": handled}

    def dispatch(self, event: Dict[str, Any]) -> bool:
        """Route a verified event. Returns False for events that need no action."""
        event_type = event.get("type", "")
        obj = (event.get("data") or {}).get("object") or {}

        if event_type == "payment_intent.succeeded":
            return self._handle_payment_intent_succeeded(obj)
        if event_type == "payment_intent.payment_failed":
            self.stripe_service.mark_payment_status(obj.get("id", ""), PaymentStatus.FAILED.value)
            self.logger.info("Payment intent failed", extra={"payment_intent_id": obj.get("id")})
            return True
        if event_type in ("customer.subscription.created", "customer.subscription.updated"):
            return self._handle_subscription_change(obj)
        if event_type == "checkout.session.completed":
            return self._handle_checkout_completed(obj)
        if event_type == "invoice.payment_succeeded":
            return self._handle_invoice_paid(obj)

        self.logger.info(f"Unhandled Stripe webhook event type: {event_type}")
        return False

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #

    def _handle_payment_intent_succeeded(self, intent: Dict[str, Any]) -> bool:
        intent_id = intent.get("id", "")
        metadata = intent.get("metadata") or {}
        purpose = metadata.get("type")
        user_id = metadata.get("userId")

        self.stripe_service.mark_payment_status(intent_id, PaymentStatus.SUCCEEDED.value)

        if purpose == PaymentPurpose.AD_HOC_SUBSCRIPTION.value and user_id:
            purchase_date = metadata.get("purchaseDate")
            if not purchase_date:
                self.logger.warning(
                    "Ad-hoc payment without purchase date", extra={"payment_intent_id": intent_id}
                )
                return False
            self.subscription_service.process_ad_hoc_payment(
                user_id, date.fromisoformat(purchase_date), source_id=intent_id
            )
            return True

        if purpose in (
            PaymentPurpose.PAY_THE_DIFFERENCE.value,
            PaymentPurpose.PAY_THE_DIFFERENCE_UPDATE.value,
        ) and user_id:
            amount_received = intent.get("amount_received")
            if amount_received is None:
                self.logger.warning(
                    "Pay-the-difference intent without amount_received",
                    extra={"payment_intent_id": intent_id},
                )
                return False
            result = self.booking_service.settle_pay_difference(
                payment_intent_id=intent_id,
                user_id=user_id,
                amount_pence=int(amount_received),
                purpose=purpose,
                metadata=metadata,
            )
            return result is not None

        self.logger.info(
            "Payment intent succeeded with no booking action", extra={"payment_intent_id": intent_id}
        )
        return False

    def _handle_subscription_change(self, subscription: Dict[str, Any]) -> bool:
        user_id = (subscription.get("metadata") or {}).get("userId")
        subscription_id = subscription.get("id")
        if user_id and subscription_id and subscription.get("status") == "active":
            self.subscription_service.link_monthly_subscription(user_id, subscription_id)
            return True
        return False

    def _handle_checkout_completed(self, session: Dict[str, Any]) -> bool:
        if session.get("mode") != "subscription" or session.get("payment_status") != "paid":
            return False
        user_id = (session.get("metadata") or {}).get("userId")
        subscription_id = _object_id(session.get("subscription"))
        if not (user_id and subscription_id):
            return False
        self.subscription_service.link_monthly_subscription(user_id, subscription_id)
        return True

    def _handle_invoice_paid(self, invoice: Dict[str, Any]) -> bool:
        invoice_id = invoice.get("id")
        payment_date = _timestamp_to_date(invoice.get("period_end") or invoice.get("created"))
        amount_paid = int(invoice.get("amount_paid") or 0)
        if payment_date is None or amount_paid <= 0:
            return False

        user_id = self._resolve_invoice_user(invoice)
        if user_id is None:
            self.logger.warning(
                "Paid invoice could not be matched to a user", extra={"invoice_id": invoice_id}
            )
            return False

        split = split_initial_invoice(invoice)
        if split is not None:
            current_pence, next_pence = split
            self.subscription_service.process_initial_monthly_invoice(
                user_id,
                current_month_amount_pence=current_pence,
                next_month_amount_pence=next_pence,
                current_month_expiry=end_of_month(payment_date),
                next_month_expiry=end_of_next_month(payment_date),
                source_id=invoice_id,
            )
        else:
            self.subscription_service.process_monthly_payment(
                user_id, payment_date, amount_pence=amount_paid, source_id=invoice_id
            )
        return True

    def _resolve_invoice_user(self, invoice: Dict[str, Any]) -> Optional[str]:
        """
        Find the user an invoice belongs to.

        Subscription metadata snapshotted on the invoice is preferred; local
        memberships keyed by subscription or customer id are the fallback.
        """
        details = (invoice.get("parent") or {}).get("subscription_details") or invoice.get(
            "subscription_details"
        ) or {}
        user_id = (details.get("metadata") or {}).get("userId")
        if user_id:
            return user_id

        subscription_id = _object_id(invoice.get("subscription")) or _object_id(
            details.get("subscription")
        )
        if subscription_id:
            membership = self.membership_repository.get_by_stripe_subscription_id(subscription_id)
            if membership is not None:
                return membership.user_id

        customer_id = _object_id(invoice.get("customer"))
        if customer_id:
            membership = self.membership_repository.get_by_stripe_customer_id(customer_id)
            if membership is not None:
                return membership.user_id
        return None

    # ------------------------------------------------------------------ #
    # Ledger bookkeeping
    # ------------------------------------------------------------------ #

    def _record_attempt(self, event: Dict[str, Any]) -> WebhookEvent:
        with self.transaction():
            record = self.webhook_event_repository.find_by_source_and_event_id(
                WEBHOOK_SOURCE_STRIPE, event["id"]
            )
            if record is None:
                record = self.webhook_event_repository.create(
                    source=WEBHOOK_SOURCE_STRIPE,
                    event_id=event["id"],
                    event_type=event["type"],
                    payload=event,
                    status=WebhookEventStatus.RECEIVED.value,
                    attempts=0,
                )
            record.attempts = (record.attempts or 0) + 1
            record.received_at = _now_utc()
        return record

    def _mark(self, event_id: str, status: WebhookEventStatus, error: Optional[str] = None) -> None:
        with self.transaction():
            record = self.webhook_event_repository.find_by_source_and_event_id(
                WEBHOOK_SOURCE_STRIPE, event_id
            )
            if record is None:
                return
            record.status = status.value
            record.processing_error = error[:MAX_ERROR_LENGTH] if error else None
            if status == WebhookEventStatus.PROCESSED:
                record.processed_at = _now_utc()
