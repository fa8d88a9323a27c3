# backend/therapport/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Each request gets services bound to its own session; the booking service
shares its ledger and gateway collaborators so one unit of work sees one
session.
"""

from fastapi import Depends
from sqlalchemy.orm import Session

from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.credit_service import CreditService
from ...services.stripe_service import StripeService
from ...services.stripe_webhook_service import StripeWebhookService
from ...services.subscription_service import SubscriptionService
from ...services.voucher_service import VoucherService
from .database import get_db


def get_credit_service(db: Session = Depends(get_db)) -> CreditService:
    return CreditService(db)


def get_voucher_service(db: Session = Depends(get_db)) -> VoucherService:
    return VoucherService(db)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_stripe_service(db: Session = Depends(get_db)) -> StripeService:
    return StripeService(db)


def get_subscription_service(
    db: Session = Depends(get_db),
    credit_service: CreditService = Depends(get_credit_service),
    stripe_service: StripeService = Depends(get_stripe_service),
) -> SubscriptionService:
    return SubscriptionService(db, credit_service=credit_service, stripe_service=stripe_service)


def get_booking_service(
    db: Session = Depends(get_db),
    credit_service: CreditService = Depends(get_credit_service),
    voucher_service: VoucherService = Depends(get_voucher_service),
    availability_service: AvailabilityService = Depends(get_availability_service),
    stripe_service: StripeService = Depends(get_stripe_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
) -> BookingService:
    """Get BookingService instance with all ledger collaborators injected."""
    return BookingService(
        db,
        credit_service=credit_service,
        voucher_service=voucher_service,
        availability_service=availability_service,
        stripe_service=stripe_service,
        subscription_service=subscription_service,
    )


def get_stripe_webhook_service(
    db: Session = Depends(get_db),
    stripe_service: StripeService = Depends(get_stripe_service),
    subscription_service: SubscriptionService = Depends(get_subscription_service),
    booking_service: BookingService = Depends(get_booking_service),
) -> StripeWebhookService:
    return StripeWebhookService(
        db,
        stripe_service=stripe_service,
        subscription_service=subscription_service,
        booking_service=booking_service,
    )
