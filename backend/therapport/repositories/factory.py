# backend/therapport/repositories/factory.py
"""
Repository Factory for the Therapport platform.

Centralises repository creation so services never construct repositories
directly, which keeps them easy to swap in tests.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from .booking_repository import BookingRepository
    from .credit_repository import CreditRepository
    from .membership_repository import MembershipRepository, UserRepository
    from .payment_repository import PaymentRepository
    from .room_repository import RoomRepository
    from .voucher_repository import VoucherRepository
    from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """Factory class for creating repository instances."""

    @staticmethod
    def create_booking_repository(db: Session) -> "BookingRepository":
        """Create repository for booking and overlap queries."""
        from .booking_repository import BookingRepository

        return BookingRepository(db)

    @staticmethod
    def create_room_repository(db: Session) -> "RoomRepository":
        from .room_repository import RoomRepository

        return RoomRepository(db)

    @staticmethod
    def create_credit_repository(db: Session) -> "CreditRepository":
        """Create repository for credit ledger rows."""
        from .credit_repository import CreditRepository

        return CreditRepository(db)

    @staticmethod
    def create_voucher_repository(db: Session) -> "VoucherRepository":
        from .voucher_repository import VoucherRepository

        return VoucherRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        from .membership_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_membership_repository(db: Session) -> "MembershipRepository":
        from .membership_repository import MembershipRepository

        return MembershipRepository(db)

    @staticmethod
    def create_payment_repository(db: Session) -> "PaymentRepository":
        """Create repository for local Stripe payment records."""
        from .payment_repository import PaymentRepository

        return PaymentRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> "WebhookEventRepository":
        from .webhook_event_repository import WebhookEventRepository

        return WebhookEventRepository(db)
