"""
Subscription lifecycle.

Covers the two membership products (monthly via a Stripe subscription, ad-hoc
via a one-off payment), pro-rata for mid-month joins, the ad-hoc termination
grace period, booking eligibility, and the credit grants made when Stripe
confirms a payment. Every grant is keyed by the external payment id so a
replayed webhook never credits twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.enums import (
    CreditSourceType,
    MembershipType,
    PaymentPurpose,
    PaymentType,
    SubscriptionType,
    UserStatus,
)
from ..core.exceptions import NotFoundException, ServiceException, ValidationException
from ..core.timezone_utils import (
    add_months,
    business_now,
    business_today,
    days_in_month,
    end_of_month,
    end_of_next_month,
)
from ..models.membership import Membership
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from ..utils.money import proportional_pence
from .base import BaseService
from .credit_service import CreditService
from .stripe_service import StripeService

logger = logging.getLogger(__name__)

AD_HOC_DESCRIPTION = "Ad-hoc one-month subscription"


@dataclass(frozen=True)
class ProrataResult:
    current_month_amount_pence: int
    next_month_amount_pence: int
    current_month_expiry: date
    next_month_expiry: date


@dataclass(frozen=True)
class SubscriptionStatus:
    can_book: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class MembershipStatus:
    can_book: bool
    reason: Optional[str]
    membership_type: Optional[str]
    subscription_type: Optional[str]
    subscription_end_date: Optional[date]
    suspension_date: Optional[date]
    termination_requested_at: Optional[datetime]


@dataclass(frozen=True)
class MonthlySubscriptionResult:
    customer_id: str
    subscription_id: str
    client_secret: Optional[str]
    prorata: ProrataResult


@dataclass(frozen=True)
class AdHocSubscriptionResult:
    customer_id: str
    payment_intent_id: str
    client_secret: str
    amount_pence: int


def calculate_prorata(join_date: date, monthly_amount_pence: Optional[int] = None) -> ProrataResult:
    """
    Split a mid-month join into the current month's share and next month's full fee.

    Remaining days count the join day itself. The share is rounded half-up to
    the penny.
    """
    monthly = (
        settings.monthly_subscription_amount_pence
        if monthly_amount_pence is None
        else monthly_amount_pence
    )
    if monthly <= 0:
        raise ValidationException("Monthly amount must be positive", code="INVALID_AMOUNT")
    total_days = days_in_month(join_date)
    remaining_days = total_days - join_date.day + 1
    return ProrataResult(
        current_month_amount_pence=proportional_pence(
            monthly, Decimal(remaining_days), Decimal(total_days)
        ),
        next_month_amount_pence=monthly,
        current_month_expiry=end_of_month(join_date),
        next_month_expiry=end_of_next_month(join_date),
    )


def calculate_suspension_date(termination_date: date) -> date:
    """Last day of the month after the termination month: terminate 10 March, suspended 30 April."""
    return end_of_next_month(termination_date)


class SubscriptionService(BaseService):
    def __init__(
        self,
        db: Session,
        *,
        credit_service: Optional[CreditService] = None,
        stripe_service: Optional[StripeService] = None,
    ):
        super().__init__(db)
        self.user_repository = RepositoryFactory.create_user_repository(db)
        self.membership_repository = RepositoryFactory.create_membership_repository(db)
        self.credit_service = credit_service or CreditService(db)
        self.stripe_service = stripe_service or StripeService(db)

    # ------------------------------------------------------------------ #
    # Eligibility
    # ------------------------------------------------------------------ #

    def check_subscription_status(
        self, user_id: str, today: Optional[date] = None
    ) -> SubscriptionStatus:
        """
        Decide whether a user may book right now.

        Ad-hoc members are covered through ``subscription_end_date`` inclusive
        and lose access on their ``suspension_date``.
        """
        today = today or business_today()
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            return SubscriptionStatus(False, "User not found")
        if user.status == UserStatus.SUSPENDED.value:
            return SubscriptionStatus(False, "Account is suspended")

        membership = self.membership_repository.get_by_user_id(user_id)
        if membership is None:
            return SubscriptionStatus(False, "No membership")

        if membership.type == MembershipType.AD_HOC.value:
            end_date = membership.subscription_end_date
            if end_date is not None and end_date < today:
                return SubscriptionStatus(False, "Ad-hoc subscription has ended")
            if membership.suspension_date is not None and membership.suspension_date <= today:
                return SubscriptionStatus(False, "Membership is suspended")
        return SubscriptionStatus(True)

    def can_user_book(self, user_id: str) -> bool:
        return self.check_subscription_status(user_id).can_book

    def get_membership_status(self, user_id: str) -> MembershipStatus:
        status = self.check_subscription_status(user_id)
        membership = self.membership_repository.get_by_user_id(user_id)
        return MembershipStatus(
            can_book=status.can_book,
            reason=status.reason,
            membership_type=membership.type if membership else None,
            subscription_type=membership.subscription_type if membership else None,
            subscription_end_date=membership.subscription_end_date if membership else None,
            suspension_date=membership.suspension_date if membership else None,
            termination_requested_at=membership.termination_requested_at if membership else None,
        )

    # ------------------------------------------------------------------ #
    # Ad-hoc termination
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("terminate_ad_hoc_subscription")
    def terminate_ad_hoc_subscription(
        self, user_id: str, termination_date: Optional[date] = None
    ) -> date:
        """
        Record a termination request and return the suspension date.

        Raises:
            NotFoundException: No membership
            ValidationException: Membership is not ad-hoc
        """
        termination_date = termination_date or business_today()
        with self.transaction():
            membership = self._require_membership(user_id, for_update=True)
            if membership.type != MembershipType.AD_HOC.value:
                raise ValidationException(
                    "Only ad-hoc subscriptions can be terminated",
                    code="NOT_AD_HOC_MEMBERSHIP",
                )
            suspension_date = calculate_suspension_date(termination_date)
            membership.termination_requested_at = business_now()
            membership.suspension_date = suspension_date
        self.log_operation(
            "ad_hoc_termination_requested",
            user_id=user_id,
            suspension_date=str(suspension_date),
        )
        return suspension_date

    # ------------------------------------------------------------------ #
    # Stripe customers and checkout
    # ------------------------------------------------------------------ #

    def get_or_create_stripe_customer_id(self, user: User) -> str:
        """
        Reuse the membership's customer, else one found by email, else create one.

        The resolved id is saved on the membership so later calls skip Stripe.
        """
        membership = self.membership_repository.get_by_user_id(user.id)
        existing = (membership.stripe_customer_id or "").strip() if membership else ""
        if existing:
            return existing

        customer_id = self.stripe_service.find_customer_by_email(user.email)
        if customer_id is None:
            customer_id = self.stripe_service.create_customer(
                user_id=user.id, email=user.email, name=user.full_name
            )
        if membership is not None:
            with self.transaction():
                membership.stripe_customer_id = customer_id
        return customer_id

    def _monthly_price_id(self) -> str:
        price_id = (settings.stripe_monthly_price_id or "").strip()
        if not price_id:
            raise ServiceException(
                "STRIPE_MONTHLY_PRICE_ID is not set", code="MONTHLY_PRICE_NOT_CONFIGURED"
            )
        return price_id

    @BaseService.measure_operation("create_monthly_subscription")
    def create_monthly_subscription(
        self, user_id: str, join_date: Optional[date] = None
    ) -> MonthlySubscriptionResult:
        """Start a monthly subscription. Credit is granted later, when the invoice is paid."""
        self.stripe_service._check_stripe_configured()
        join_date = join_date or business_today()
        user = self._require_user(user_id)
        prorata = calculate_prorata(join_date)
        customer_id = self.get_or_create_stripe_customer_id(user)
        subscription = self.stripe_service.create_subscription(
            customer_id=customer_id,
            price_id=self._monthly_price_id(),
            metadata={"userId": user_id},
        )
        self.log_operation(
            "monthly_subscription_created",
            user_id=user_id,
            subscription_id=subscription.subscription_id,
        )
        return MonthlySubscriptionResult(
            customer_id=customer_id,
            subscription_id=subscription.subscription_id,
            client_secret=subscription.client_secret,
            prorata=prorata,
        )

    @BaseService.measure_operation("create_monthly_checkout")
    def create_monthly_checkout(
        self,
        user_id: str,
        *,
        success_url: str,
        cancel_url: str,
        join_date: Optional[date] = None,
    ) -> str:
        """Hosted Checkout alternative to ``create_monthly_subscription``. Returns the session URL."""
        self.stripe_service._check_stripe_configured()
        user = self._require_user(user_id)
        prorata = calculate_prorata(join_date or business_today())
        customer_id = self.get_or_create_stripe_customer_id(user)
        return self.stripe_service.create_checkout_session_for_subscription(
            customer_id=customer_id,
            price_id=self._monthly_price_id(),
            user_id=user_id,
            prorated_amount_pence=prorata.current_month_amount_pence,
            success_url=success_url,
            cancel_url=cancel_url,
        )

    @BaseService.measure_operation("create_ad_hoc_subscription")
    def create_ad_hoc_subscription(
        self, user_id: str, purchase_date: Optional[date] = None
    ) -> AdHocSubscriptionResult:
        """Create the payment intent for a one-month ad-hoc membership."""
        self.stripe_service._check_stripe_configured()
        purchase_date = purchase_date or business_today()
        user = self._require_user(user_id)
        customer_id = self.get_or_create_stripe_customer_id(user)
        amount = settings.ad_hoc_subscription_amount_pence
        intent = self.stripe_service.create_payment_intent(
            user_id=user_id,
            amount_pence=amount,
            payment_type=PaymentType.AD_HOC_SUBSCRIPTION,
            customer_id=customer_id,
            metadata={
                "type": PaymentPurpose.AD_HOC_SUBSCRIPTION.value,
                "userId": user_id,
                "purchaseDate": purchase_date.isoformat(),
            },
            description=AD_HOC_DESCRIPTION,
            idempotency_key=f"ad_hoc_subscription:{user_id}:{purchase_date.isoformat()}",
        )
        return AdHocSubscriptionResult(
            customer_id=customer_id,
            payment_intent_id=intent.payment_intent_id,
            client_secret=intent.client_secret,
            amount_pence=amount,
        )

    # ------------------------------------------------------------------ #
    # Webhook-driven updates
    # ------------------------------------------------------------------ #

    @BaseService.measure_operation("link_monthly_subscription")
    def link_monthly_subscription(self, user_id: str, subscription_id: str) -> Membership:
        """Mark the membership as a permanent monthly one backed by ``subscription_id``."""
        with self.transaction():
            membership = self._require_membership(user_id, for_update=True)
            membership.stripe_subscription_id = subscription_id
            membership.type = MembershipType.PERMANENT.value
            membership.subscription_type = SubscriptionType.MONTHLY.value
            if membership.subscription_start_date is None:
                membership.subscription_start_date = business_today()
            membership.subscription_end_date = None
            membership.termination_requested_at = None
            membership.suspension_date = None
        self.log_operation(
            "monthly_subscription_linked", user_id=user_id, subscription_id=subscription_id
        )
        return membership

    @BaseService.measure_operation("process_monthly_payment")
    def process_monthly_payment(
        self,
        user_id: str,
        payment_date: date,
        amount_pence: Optional[int] = None,
        source_id: Optional[str] = None,
    ) -> bool:
        """
        Grant a month's credit expiring at the end of the payment month.

        Returns False when ``source_id`` was already credited.
        """
        amount = amount_pence or settings.monthly_subscription_amount_pence
        with self.transaction():
            if source_id and self.credit_service.has_credit_for_source_id(
                user_id=user_id,
                source_type=CreditSourceType.MONTHLY_SUBSCRIPTION,
                source_id=source_id,
            ):
                self.logger.info(
                    "Monthly payment already credited",
                    extra={"user_id": user_id, "source_id": source_id},
                )
                return False
            self.credit_service.grant(
                user_id=user_id,
                amount_pence=amount,
                expiry_date=end_of_month(payment_date),
                source_type=CreditSourceType.MONTHLY_SUBSCRIPTION,
                source_id=source_id,
                description="Monthly subscription payment",
                use_transaction=False,
            )
        return True

    @BaseService.measure_operation("process_initial_monthly_invoice")
    def process_initial_monthly_invoice(
        self,
        user_id: str,
        *,
        current_month_amount_pence: int,
        next_month_amount_pence: int,
        current_month_expiry: date,
        next_month_expiry: date,
        source_id: Optional[str] = None,
    ) -> bool:
        """
        Grant the two parts of a first invoice: the prorated current month and
        the full next month, each expiring at the end of its own month.
        """
        with self.transaction():
            if source_id and self.credit_service.has_credit_for_source_id(
                user_id=user_id,
                source_type=CreditSourceType.MONTHLY_SUBSCRIPTION,
                source_id=source_id,
            ):
                self.logger.info(
                    "Initial monthly invoice already credited",
                    extra={"user_id": user_id, "source_id": source_id},
                )
                return False
            if current_month_amount_pence > 0:
                self.credit_service.grant(
                    user_id=user_id,
                    amount_pence=current_month_amount_pence,
                    expiry_date=end_of_month(current_month_expiry),
                    source_type=CreditSourceType.MONTHLY_SUBSCRIPTION,
                    source_id=source_id,
                    description="Monthly subscription (prorated current month)",
                    use_transaction=False,
                )
            if next_month_amount_pence > 0:
                self.credit_service.grant(
                    user_id=user_id,
                    amount_pence=next_month_amount_pence,
                    expiry_date=end_of_month(next_month_expiry),
                    source_type=CreditSourceType.MONTHLY_SUBSCRIPTION,
                    source_id=source_id,
                    description="Monthly subscription payment",
                    use_transaction=False,
                )
        return True

    @BaseService.measure_operation("process_ad_hoc_payment")
    def process_ad_hoc_payment(
        self, user_id: str, purchase_date: date, source_id: Optional[str] = None
    ) -> bool:
        """
        Activate a paid ad-hoc month: grant its credit and extend the membership.

        Credit and membership both run to one calendar month after purchase.
        """
        end_date = add_months(purchase_date, 1)
        with self.transaction():
            if source_id and self.credit_service.has_credit_for_source_id(
                user_id=user_id,
                source_type=CreditSourceType.AD_HOC_SUBSCRIPTION,
                source_id=source_id,
            ):
                self.logger.info(
                    "Ad-hoc payment already credited",
                    extra={"user_id": user_id, "source_id": source_id},
                )
                return False
            membership = self._require_membership(user_id, for_update=True)
            membership.type = MembershipType.AD_HOC.value
            membership.subscription_type = SubscriptionType.AD_HOC.value
            membership.subscription_start_date = purchase_date
            membership.subscription_end_date = end_date
            membership.termination_requested_at = None
            membership.suspension_date = None
            self.credit_service.grant(
                user_id=user_id,
                amount_pence=settings.ad_hoc_subscription_amount_pence,
                expiry_date=end_date,
                source_type=CreditSourceType.AD_HOC_SUBSCRIPTION,
                source_id=source_id,
                description=AD_HOC_DESCRIPTION,
                use_transaction=False,
            )
        self.log_operation("ad_hoc_payment_processed", user_id=user_id, end_date=str(end_date))
        return True

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _require_user(self, user_id: str) -> User:
        user = self.user_repository.get_by_id(user_id)
        if user is None:
            raise NotFoundException("User not found", code="USER_NOT_FOUND")
        return user

    def _require_membership(self, user_id: str, for_update: bool = False) -> Membership:
        membership = self.membership_repository.get_by_user_id(user_id, for_update=for_update)
        if membership is None:
            raise NotFoundException("Membership not found", code="MEMBERSHIP_NOT_FOUND")
        return membership
