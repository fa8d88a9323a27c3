# backend/tests/unit/services/test_pay_difference_settlement.py
"""Turning a succeeded pay-the-difference intent into the booking it paid for."""

from datetime import date, time, timedelta
from unittest.mock import Mock
import uuid

import pytest

from therapport.core.enums import BookingStatus, CreditSourceType, MembershipType, PaymentPurpose
from therapport.core.exceptions import ValidationException
from therapport.models import Booking, CreditTransaction, Membership
from therapport.services.booking_service import (
    BookingService,
    PaymentRequiredResult,
    payment_intent_source_id,
)
from therapport.services.credit_service import CreditService
from therapport.services.stripe_service import PaymentIntentResult, StripeService

TODAY = date(2026, 3, 2)
DAY = date(2026, 3, 10)
INTENT_ID = "pi_3Pdiff"


@pytest.fixture
def service(db):
    return BookingService(db)


def _create_metadata(room_id: str) -> dict:
    return {
        "type": PaymentPurpose.PAY_THE_DIFFERENCE.value,
        "roomId": room_id,
        "date": DAY.isoformat(),
        "startTime": "14:00:00",
        "endTime": "16:00:00",
        "bookingType": "ad_hoc",
        "expectedAmountPence": "3200",
    }


def _pay_difference_rows(db):
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.source_type == CreditSourceType.PAY_DIFFERENCE.value)
        .all()
    )


class TestPaymentIntentSourceId:
    def test_is_a_stable_uuid(self):
        first = payment_intent_source_id(INTENT_ID)
        assert first == payment_intent_source_id(INTENT_ID)
        assert str(uuid.UUID(first)) == first
        assert first != payment_intent_source_id("pi_other")


class TestSettleCreate:
    def test_grants_then_books(self, service, user, kensington_room, add_credit, db):
        add_credit(user, 1000, expiry_date=TODAY + timedelta(days=20))

        booking = service.settle_pay_difference(
            payment_intent_id=INTENT_ID,
            user_id=user.id,
            amount_pence=3200,
            purpose=PaymentPurpose.PAY_THE_DIFFERENCE,
            metadata=_create_metadata(kensington_room.id),
        )

        assert isinstance(booking, Booking)
        assert booking.start_time == time(14, 0)
        assert booking.credit_used_pence == 4200
        (grant,) = _pay_difference_rows(db)
        assert grant.amount_pence == 3200
        assert grant.source_id == payment_intent_source_id(INTENT_ID)
        assert grant.expiry_date == date(2026, 3, 31)
        assert CreditService(db).get_available_pence(user.id) == 0

    def test_redelivery_does_not_grant_or_book_twice(self, service, user, kensington_room, add_credit, db):
        add_credit(user, 1000, expiry_date=TODAY + timedelta(days=20))
        kwargs = dict(
            payment_intent_id=INTENT_ID,
            user_id=user.id,
            amount_pence=3200,
            purpose="pay_the_difference",
            metadata=_create_metadata(kensington_room.id),
        )

        service.settle_pay_difference(**kwargs)
        assert service.settle_pay_difference(**kwargs) is None

        assert len(_pay_difference_rows(db)) == 1
        assert db.query(Booking).count() == 1

    def test_slot_taken_before_settlement_grants_nothing(
        self, service, user, make_user, kensington_room, add_booking, db
    ):
        add_booking(make_user(), kensington_room, DAY, "15:00", "16:00")

        result = service.settle_pay_difference(
            payment_intent_id=INTENT_ID,
            user_id=user.id,
            amount_pence=3200,
            purpose=PaymentPurpose.PAY_THE_DIFFERENCE,
            metadata=_create_metadata(kensington_room.id),
        )

        assert result is None
        assert _pay_difference_rows(db) == []

    def test_incomplete_metadata(self, service, user, kensington_room, db):
        metadata = _create_metadata(kensington_room.id)
        del metadata["startTime"]

        assert (
            service.settle_pay_difference(
                payment_intent_id=INTENT_ID,
                user_id=user.id,
                amount_pence=3200,
                purpose=PaymentPurpose.PAY_THE_DIFFERENCE,
                metadata=metadata,
            )
            is None
        )
        assert _pay_difference_rows(db) == []

    def test_failed_booking_revokes_the_grant(self, service, user, kensington_room, db):
        membership = db.query(Membership).filter(Membership.user_id == user.id).one()
        membership.type = MembershipType.AD_HOC.value
        membership.suspension_date = TODAY
        db.commit()

        with pytest.raises(ValidationException) as exc_info:
            service.settle_pay_difference(
                payment_intent_id=INTENT_ID,
                user_id=user.id,
                amount_pence=3200,
                purpose=PaymentPurpose.PAY_THE_DIFFERENCE,
                metadata=_create_metadata(kensington_room.id),
            )

        assert exc_info.value.code == "BOOKING_NOT_ALLOWED"
        (grant,) = _pay_difference_rows(db)
        assert grant.revoked is True
        assert CreditService(db).get_available_pence(user.id) == 0
        assert db.query(Booking).count() == 0

    def test_underpayment_keeps_the_grant_as_credit(self, user, kensington_room, add_credit, db):
        gateway = Mock(spec=StripeService)
        gateway.stripe_configured = True
        gateway.create_payment_intent.return_value = PaymentIntentResult(
            payment_intent_id="pi_again", client_secret="pi_again_secret", amount_pence=1200
        )
        add_credit(user, 1000, expiry_date=TODAY + timedelta(days=20))

        result = BookingService(db, stripe_service=gateway).settle_pay_difference(
            payment_intent_id=INTENT_ID,
            user_id=user.id,
            amount_pence=2000,
            purpose=PaymentPurpose.PAY_THE_DIFFERENCE,
            metadata=_create_metadata(kensington_room.id),
        )

        assert isinstance(result, PaymentRequiredResult)
        assert result.amount_pence == 1200
        (grant,) = _pay_difference_rows(db)
        assert grant.revoked is False
        assert grant.amount_pence == 2000
        assert CreditService(db).get_available_pence(user.id) == 3000
        assert db.query(Booking).count() == 0

    def test_rejects_non_settlement_purpose(self, service, user, kensington_room):
        with pytest.raises(ValidationException) as exc_info:
            service.settle_pay_difference(
                payment_intent_id=INTENT_ID,
                user_id=user.id,
                amount_pence=3200,
                purpose=PaymentPurpose.AD_HOC_SUBSCRIPTION,
                metadata=_create_metadata(kensington_room.id),
            )
        assert exc_info.value.code == "INVALID_PAYMENT_PURPOSE"


class TestSettleUpdate:
    def test_grants_then_applies_the_update(self, service, user, pimlico_room, add_credit, db):
        add_credit(user, 3000, expiry_date=TODAY + timedelta(days=20))
        booking = service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="11:00",
        )

        updated = service.settle_pay_difference(
            payment_intent_id=INTENT_ID,
            user_id=user.id,
            amount_pence=3000,
            purpose=PaymentPurpose.PAY_THE_DIFFERENCE_UPDATE,
            metadata={
                "type": PaymentPurpose.PAY_THE_DIFFERENCE_UPDATE.value,
                "bookingId": booking.id,
                "roomId": pimlico_room.id,
                "bookingDate": DAY.isoformat(),
                "startTime": "09:00:00",
                "endTime": "13:00:00",
            },
        )

        assert updated.id == booking.id
        assert updated.status == BookingStatus.CONFIRMED.value
        assert updated.end_time == time(13, 0)
        assert updated.credit_used_pence == 6000
        assert CreditService(db).get_available_pence(user.id) == 0

    def test_missing_booking_id(self, service, user, db):
        assert (
            service.settle_pay_difference(
                payment_intent_id=INTENT_ID,
                user_id=user.id,
                amount_pence=3000,
                purpose=PaymentPurpose.PAY_THE_DIFFERENCE_UPDATE,
                metadata={"type": "pay_the_difference_update"},
            )
            is None
        )
        assert _pay_difference_rows(db) == []
