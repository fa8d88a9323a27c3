# backend/therapport/core/enums.py
"""
Core enums for the Therapport platform.

Values are stored verbatim in the database and appear in API payloads and
Stripe metadata, so they must never be renamed.
"""

from enum import Enum


class UserRole(str, Enum):
    PRACTITIONER = "practitioner"
    ADMIN = "admin"


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    REJECTED = "rejected"


class LocationName(str, Enum):
    """The two practice sites. Pricing is keyed on these."""

    PIMLICO = "Pimlico"
    KENSINGTON = "Kensington"


class BookingStatus(str, Enum):
    """Booking lifecycle statuses. cancelled is terminal."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class BookingType(str, Enum):
    PERMANENT_RECURRING = "permanent_recurring"
    AD_HOC = "ad_hoc"
    FREE = "free"
    INTERNAL = "internal"


class MembershipType(str, Enum):
    PERMANENT = "permanent"
    AD_HOC = "ad_hoc"


class SubscriptionType(str, Enum):
    MONTHLY = "monthly"
    AD_HOC = "ad_hoc"


class CreditSourceType(str, Enum):
    """Where a credit ledger grant came from."""

    MONTHLY_SUBSCRIPTION = "monthly_subscription"
    AD_HOC_SUBSCRIPTION = "ad_hoc_subscription"
    PAY_DIFFERENCE = "pay_difference"
    MANUAL = "manual"


class PaymentPurpose(str, Enum):
    """Value of the ``type`` key in Stripe payment intent metadata."""

    PAY_THE_DIFFERENCE = "pay_the_difference"
    PAY_THE_DIFFERENCE_UPDATE = "pay_the_difference_update"
    AD_HOC_SUBSCRIPTION = "ad_hoc_subscription"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class PaymentType(str, Enum):
    SUBSCRIPTION = "subscription"
    AD_HOC_SUBSCRIPTION = "ad_hoc_subscription"
    PAY_DIFFERENCE = "pay_difference"


class WebhookEventStatus(str, Enum):
    RECEIVED = "received"
    PROCESSED = "processed"
    FAILED = "failed"
