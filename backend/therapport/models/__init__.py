"""
Database models for the Therapport platform.

Importing this package registers every table on ``Base.metadata``.
"""

from .booking import Booking
from .credit import CreditTransaction, FreeBookingVoucher
from .membership import Membership
from .payment import StripePayment
from .room import Location, Room
from .user import User
from .webhook_event import WebhookEvent

__all__ = [
    "Booking",
    "CreditTransaction",
    "FreeBookingVoucher",
    "Location",
    "Membership",
    "Room",
    "StripePayment",
    "User",
    "WebhookEvent",
]
