# backend/therapport/services/stripe_service.py
"""
Stripe payment gateway adapter.

Wraps the handful of Stripe calls the booking engine needs: payment intents
for pay-the-difference and ad-hoc memberships, customers, the monthly
subscription (direct or through Checkout) and webhook signature verification.
Every intent is created with an idempotency key so caller retries never create
a second charge.
"""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session
import stripe

from ..core.config import settings
from ..core.constants import PRORATED_LINE_MARKER
from ..core.enums import PaymentType
from ..core.exceptions import ServiceException, ValidationException
from ..repositories.factory import RepositoryFactory
from .base import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentIntentResult:
    payment_intent_id: str
    client_secret: str
    amount_pence: int


@dataclass(frozen=True)
class SubscriptionResult:
    subscription_id: str
    client_secret: Optional[str]
    status: str


def _metadata_strings(metadata: Optional[Dict[str, Any]]) -> Dict[str, str]:
    """Stripe metadata values must be strings."""
    return {key: str(value) for key, value in (metadata or {}).items() if value is not None}


class StripeService(BaseService):
    """Service for all Stripe API interactions."""

    def __init__(self, db: Session):
        super().__init__(db)
        self.payment_repository = RepositoryFactory.create_payment_repository(db)

        self.stripe_configured = False
        if settings.stripe_configured:
            stripe.api_key = settings.stripe_secret_key.get_secret_value()
            stripe.max_network_retries = 1
            self.stripe_configured = True
            self.logger.debug("Stripe service configured")
        else:
            self.logger.warning("Stripe secret key not configured - card payments disabled")

    def _check_stripe_configured(self) -> None:
        """Check if Stripe is properly configured before making API calls."""
        if not self.stripe_configured:
            raise ServiceException(
                "Stripe service not configured. Please check STRIPE_SECRET_KEY environment variable.",
                code="STRIPE_NOT_CONFIGURED",
            )

    # ------------------------------------------------------------------ #
    # Payment intents
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("stripe_create_payment_intent")
    def create_payment_intent(
        self,
        *,
        user_id: str,
        amount_pence: int,
        payment_type: PaymentType | str,
        metadata: Optional[Dict[str, Any]] = None,
        customer_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        description: Optional[str] = None,
    ) -> PaymentIntentResult:
        """
        Create a PaymentIntent in the configured currency and record it locally.

        Args:
            user_id: Paying user
            amount_pence: Amount in minor units, must be a positive integer
            payment_type: Local classification stored on the payment record
            metadata: Routing bag read back by the webhook handler
            customer_id: Optional Stripe customer to attach
            idempotency_key: Forwarded to Stripe so retries return the same intent

        Raises:
            ValidationException: Non-positive amount
            ServiceException: Stripe not configured or the API call failed
        """
        if not isinstance(amount_pence, int) or amount_pence <= 0:
            raise ValidationException(
                "Payment amount must be a positive whole number of pence",
                code="INVALID_PAYMENT_AMOUNT",
                details={"amount_pence": amount_pence},
            )
        self._check_stripe_configured()

        params: Dict[str, Any] = {
            "amount": amount_pence,
            "currency": settings.stripe_currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": _metadata_strings(metadata),
        }
        if customer_id:
            params["customer"] = customer_id
        if description:
            params["description"] = description
        if idempotency_key:
            params["idempotency_key"] = idempotency_key

        try:
            intent = stripe.PaymentIntent.create(**params)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating payment intent: {str(e)}")
            raise ServiceException(f"Failed to create payment intent: {str(e)}")

        if not intent.client_secret:
            raise ServiceException("Payment intent was created without a client secret")

        with self.transaction():
            self.payment_repository.record_intent(
                user_id=user_id,
                payment_intent_id=intent.id,
                amount_pence=amount_pence,
                currency=settings.stripe_currency,
                payment_type=PaymentType(payment_type).value,
                customer_id=customer_id,
                metadata=params["metadata"],
            )
        self.logger.info(
            f"Created payment intent {intent.id}",
            extra={"user_id": user_id, "amount_pence": amount_pence},
        )
        return PaymentIntentResult(
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_pence=amount_pence,
        )

    def mark_payment_status(self, payment_intent_id: str, status: str) -> None:
        """Mirror a webhook-reported status onto the local payment record, if any."""
        with self.transaction():
            self.payment_repository.update_status(payment_intent_id, status)

    # ------------------------------------------------------------------ #
    # Customers
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("stripe_find_customer")
    def find_customer_by_email(self, email: str) -> Optional[str]:
        """Return the id of an existing Stripe customer with this email, if any."""
        self._check_stripe_configured()
        try:
            customers = stripe.Customer.list(email=email, limit=1)
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error listing customers: {str(e)}")
            raise ServiceException(f"Failed to look up Stripe customer: {str(e)}")
        data = customers.data or []
        return data[0].id if data else None

    @BaseService.measure_operation("stripe_create_customer")
    def create_customer(self, *, user_id: str, email: str, name: str) -> str:
        self._check_stripe_configured()
        try:
            customer = stripe.Customer.create(email=email, name=name, metadata={"userId": user_id})
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating customer: {str(e)}")
            raise ServiceException(f"Failed to create Stripe customer: {str(e)}")
        self.logger.info(f"Created Stripe customer {customer.id} for user {user_id}")
        return customer.id

    # ------------------------------------------------------------------ #
    # Subscriptions
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("stripe_create_subscription")
    def create_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SubscriptionResult:
        """
        Start a charge-automatically subscription left incomplete until the
        first invoice's payment intent is confirmed client-side.
        """
        self._check_stripe_configured()
        try:
            subscription = stripe.Subscription.create(
                customer=customer_id,
                items=[{"price": price_id}],
                collection_method="charge_automatically",
                payment_behavior="default_incomplete",
                payment_settings={"save_default_payment_method": "on_subscription"},
                expand=["latest_invoice.payment_intent"],
                metadata=_metadata_strings(metadata),
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating subscription: {str(e)}")
            raise ServiceException(f"Failed to create subscription: {str(e)}")

        client_secret: Optional[str] = None
        invoice = getattr(subscription, "latest_invoice", None)
        if invoice is not None and not isinstance(invoice, str):
            payment_intent = getattr(invoice, "payment_intent", None)
            if payment_intent is not None and not isinstance(payment_intent, str):
                client_secret = payment_intent.client_secret
        return SubscriptionResult(
            subscription_id=subscription.id,
            client_secret=client_secret,
            status=subscription.status,
        )

    @BaseService.measure_operation("stripe_create_subscription_checkout")
    def create_checkout_session_for_subscription(
        self,
        *,
        customer_id: str,
        price_id: str,
        user_id: str,
        prorated_amount_pence: int,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a hosted Checkout session for the monthly subscription.

        The current month's pro-rata amount rides along as a one-time line so
        the first invoice covers both periods. Returns the session URL.
        """
        self._check_stripe_configured()
        line_items: List[Dict[str, Any]] = [{"price": price_id, "quantity": 1}]
        if prorated_amount_pence > 0:
            line_items.append(
                {
                    "price_data": {
                        "currency": settings.stripe_currency,
                        "product_data": {"name": PRORATED_LINE_MARKER},
                        "unit_amount": prorated_amount_pence,
                    },
                    "quantity": 1,
                }
            )
        try:
            session = stripe.checkout.Session.create(
                mode="subscription",
                customer=customer_id,
                line_items=line_items,
                success_url=success_url,
                cancel_url=cancel_url,
                metadata={"userId": user_id},
                subscription_data={"metadata": {"userId": user_id}},
            )
        except stripe.StripeError as e:
            self.logger.error(f"Stripe error creating checkout session: {str(e)}")
            raise ServiceException(f"Failed to create checkout session: {str(e)}")
        if not session.url:
            raise ServiceException("Checkout session was created without a URL")
        return session.url

    # ------------------------------------------------------------------ #
    # Webhooks
    # ------------------------------------------------------------------ #

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Verify a webhook signature and return the event as plain dicts.

        Raises:
            ValidationException: Missing header or bad signature
            ServiceException: Webhook secret not configured
        """
        if not signature:
            raise ValidationException(
                "Missing stripe-signature header", code="MISSING_WEBHOOK_SIGNATURE"
            )
        secret = settings.stripe_webhook_secret.get_secret_value()
        if not secret:
            raise ServiceException("Webhook secret not configured", code="WEBHOOK_NOT_CONFIGURED")
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            self.logger.warning(f"Invalid webhook signature: {str(e)}")
            raise ValidationException(
                "Webhook signature verification failed", code="INVALID_WEBHOOK_SIGNATURE"
            )
        except ValueError as e:
            self.logger.warning(f"Invalid webhook payload: {str(e)}")
            raise ValidationException("Invalid webhook payload", code="INVALID_WEBHOOK_PAYLOAD")

        event = json.loads(payload.decode("utf-8") if isinstance(payload, bytes) else payload)
        if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
            raise ValidationException("Invalid webhook payload", code="INVALID_WEBHOOK_PAYLOAD")
        return event
