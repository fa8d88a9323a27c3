# backend/tests/unit/services/test_booking_service.py
"""
BookingService against an in-memory database.

Now is Monday 2 March 2026 09:00 London. Bookings are made for Tuesday
10 March unless a test is about the date rules. Stripe is unconfigured unless
a test injects a mocked gateway.
"""

from datetime import date, time, timedelta
from decimal import Decimal
from unittest.mock import Mock

import pytest

from therapport.core.enums import (
    BookingStatus,
    CreditSourceType,
    MembershipType,
    PaymentPurpose,
    PaymentType,
)
from therapport.core.exceptions import (
    BookingConflictException,
    NotFoundException,
    PaymentGatewayUnavailableException,
    ValidationException,
)
from therapport.models import Booking, CreditTransaction
from therapport.services.booking_service import BookingService, PaymentRequiredResult
from therapport.services.credit_service import CreditService
from therapport.services.stripe_service import PaymentIntentResult, StripeService
from therapport.services.voucher_service import VoucherService

TODAY = date(2026, 3, 2)
DAY = date(2026, 3, 10)


@pytest.fixture
def stripe_gateway():
    gateway = Mock(spec=StripeService)
    gateway.stripe_configured = True
    gateway.create_payment_intent.side_effect = lambda **kwargs: PaymentIntentResult(
        payment_intent_id="pi_test_123",
        client_secret="pi_test_123_secret_abc",
        amount_pence=kwargs["amount_pence"],
    )
    return gateway


@pytest.fixture
def service(db):
    return BookingService(db)


@pytest.fixture
def paying_service(db, stripe_gateway):
    return BookingService(db, stripe_service=stripe_gateway)


def _credit_rows(db, user_id):
    return (
        db.query(CreditTransaction)
        .filter(CreditTransaction.user_id == user_id)
        .order_by(CreditTransaction.grant_date.asc())
        .all()
    )


class TestCreateBooking:
    def test_credit_is_drawn_fifo(self, service, user, pimlico_room, add_credit, enqueued_emails):
        """£50 (expires in 10 days) + £30 (in 40 days) funding a £60 booking leaves £0 and £20."""
        first = add_credit(
            user, 5000, grant_date=TODAY - timedelta(days=20), expiry_date=TODAY + timedelta(days=10)
        )
        second = add_credit(
            user, 3000, grant_date=TODAY - timedelta(days=5), expiry_date=TODAY + timedelta(days=40)
        )

        booking = service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="13:00",
        )

        assert isinstance(booking, Booking)
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.total_price_pence == 6000
        assert booking.price_per_hour_pence == 1500
        assert booking.credit_used_pence == 6000
        assert Decimal(booking.voucher_hours_used) == Decimal("0.00")
        assert booking.membership_id is not None
        assert first.remaining_pence == 0
        assert second.remaining_pence == 2000
        assert enqueued_emails == [("confirmation", booking.id)]

    def test_vouchers_cover_hours_before_credit(
        self, service, user, kensington_room, add_credit, add_voucher
    ):
        add_credit(user, 3000, expiry_date=TODAY + timedelta(days=20))
        voucher = add_voucher(user, "1.00")

        booking = service.create_booking(
            user_id=user.id,
            room_id=kensington_room.id,
            booking_date=DAY,
            start_time="14:00",
            end_time="16:00",
        )

        # Half the duration is voucher-funded, so half the £42 price is charged to credit
        assert Decimal(booking.voucher_hours_used) == Decimal("1.00")
        assert booking.credit_used_pence == 2100
        assert voucher.hours_remaining == Decimal("0.00")
        assert CreditService(service.db).get_available_pence(user.id) == 900

    def test_vouchers_alone_fund_the_booking(self, service, user, kensington_room, add_voucher):
        add_voucher(user, "3.00")

        booking = service.create_booking(
            user_id=user.id,
            room_id=kensington_room.id,
            booking_date=DAY,
            start_time="14:00",
            end_time="16:00",
        )

        assert booking.credit_used_pence == 0
        assert Decimal(booking.voucher_hours_used) == Decimal("2.00")
        assert VoucherService(service.db).get_available_hours(user.id) == Decimal("1.00")

    def test_short_spans_draw_voucher_hours_rounded_up(
        self, service, user, kensington_room, add_voucher, add_credit
    ):
        add_voucher(user, "1.00")
        add_credit(user, 1000, expiry_date=TODAY + timedelta(days=20))

        bookings = [
            service.create_booking(
                user_id=user.id,
                room_id=kensington_room.id,
                booking_date=DAY,
                start_time=start,
                end_time=end,
            )
            for start, end in [("09:00", "09:20"), ("09:20", "09:40"), ("09:40", "10:00")]
        ]

        hours = [Decimal(booking.voucher_hours_used) for booking in bookings]
        assert hours == [Decimal("0.34"), Decimal("0.34"), Decimal("0.32")]
        assert bookings[0].credit_used_pence == bookings[1].credit_used_pence == 0
        # The last 48 seconds fall outside the voucher and are charged to credit
        assert bookings[2].credit_used_pence > 0
        assert VoucherService(service.db).get_available_hours(user.id) == Decimal("0.00")

    def test_shortfall_requests_card_payment_and_creates_nothing(
        self, paying_service, stripe_gateway, user, kensington_room, add_credit, db
    ):
        credit = add_credit(user, 1000, expiry_date=TODAY + timedelta(days=20))

        result = paying_service.create_booking(
            user_id=user.id,
            room_id=kensington_room.id,
            booking_date=DAY,
            start_time="14:00",
            end_time="16:00",
        )

        assert isinstance(result, PaymentRequiredResult)
        assert result.amount_pence == 3200
        assert result.purpose == PaymentPurpose.PAY_THE_DIFFERENCE
        assert result.client_secret == "pi_test_123_secret_abc"
        assert db.query(Booking).count() == 0
        db.refresh(credit)
        assert credit.used_pence == 0

        kwargs = stripe_gateway.create_payment_intent.call_args.kwargs
        assert kwargs["amount_pence"] == 3200
        assert kwargs["payment_type"] == PaymentType.PAY_DIFFERENCE
        assert kwargs["metadata"] == {
            "type": "pay_the_difference",
            "userId": user.id,
            "expectedAmountPence": 3200,
            "roomId": kensington_room.id,
            "date": "2026-03-10",
            "startTime": "14:00:00",
            "endTime": "16:00:00",
            "bookingType": "ad_hoc",
        }
        assert kwargs["idempotency_key"].startswith("pay_the_difference-")

    def test_shortfall_without_gateway_is_rejected(self, service, user, kensington_room):
        with pytest.raises(PaymentGatewayUnavailableException) as exc_info:
            service.create_booking(
                user_id=user.id,
                room_id=kensington_room.id,
                booking_date=DAY,
                start_time="14:00",
                end_time="16:00",
            )
        assert exc_info.value.details == {"amount_pence": 4200}

    def test_conflict_leaves_ledgers_untouched(
        self, service, make_user, kensington_room, add_booking, add_credit, db
    ):
        other = make_user()
        add_booking(other, kensington_room, DAY, "15:00", "17:00")
        booker = make_user()
        credit = add_credit(booker, 9000, expiry_date=TODAY + timedelta(days=20))

        with pytest.raises(BookingConflictException):
            service.create_booking(
                user_id=booker.id,
                room_id=kensington_room.id,
                booking_date=DAY,
                start_time="14:00",
                end_time="16:00",
            )

        db.refresh(credit)
        assert credit.remaining_pence == 9000

    def test_adjacent_booking_is_allowed(
        self, service, make_user, kensington_room, add_booking, add_credit
    ):
        add_booking(make_user(), kensington_room, DAY, "16:00", "17:00")
        booker = make_user()
        add_credit(booker, 9000, expiry_date=TODAY + timedelta(days=20))

        booking = service.create_booking(
            user_id=booker.id,
            room_id=kensington_room.id,
            booking_date=DAY,
            start_time="14:00",
            end_time="16:00",
        )
        assert booking.end_time == time(16, 0)

    @pytest.mark.parametrize(
        "booking_date,start,code",
        [
            (date(2026, 3, 1), "10:00", "BOOKING_DATE_IN_PAST"),
            (date(2026, 4, 3), "10:00", "BOOKING_TOO_FAR_AHEAD"),
            (TODAY, "08:00", "BOOKING_START_IN_PAST"),
        ],
    )
    def test_booking_window(self, service, user, pimlico_room, add_credit, booking_date, start, code):
        add_credit(user, 9000, expiry_date=date(2026, 4, 30))

        with pytest.raises(ValidationException) as exc_info:
            service.create_booking(
                user_id=user.id,
                room_id=pimlico_room.id,
                booking_date=booking_date,
                start_time=start,
                end_time="11:00",
            )
        assert exc_info.value.code == code

    def test_last_day_of_advance_window_is_bookable(self, service, user, pimlico_room, add_credit):
        add_credit(user, 9000, expiry_date=date(2026, 4, 30))

        booking = service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=date(2026, 4, 2),
            start_time="10:00",
            end_time="11:00",
        )
        assert booking.booking_date == date(2026, 4, 2)

    def test_expired_ad_hoc_member_cannot_book(self, service, make_user, pimlico_room):
        lapsed = make_user(
            membership_type=MembershipType.AD_HOC, subscription_end_date=TODAY - timedelta(days=1)
        )

        with pytest.raises(ValidationException) as exc_info:
            service.create_booking(
                user_id=lapsed.id,
                room_id=pimlico_room.id,
                booking_date=DAY,
                start_time="10:00",
                end_time="11:00",
            )
        assert exc_info.value.code == "BOOKING_NOT_ALLOWED"

    def test_unknown_room(self, service, user):
        with pytest.raises(NotFoundException):
            service.create_booking(
                user_id=user.id,
                room_id="01HZZZZZZZZZZZZZZZZZZZZZZZ",
                booking_date=DAY,
                start_time="10:00",
                end_time="11:00",
            )

    def test_quote_previews_funding(self, service, user, kensington_room, add_credit):
        add_credit(user, 1000, expiry_date=TODAY + timedelta(days=20))

        quote = service.get_quote(
            user.id,
            room_id=kensington_room.id,
            booking_date=DAY,
            start_time="14:00",
            end_time="16:00",
        )

        assert quote.price.total_pence == 4200
        assert quote.funding.credit_pence == 4200
        assert quote.funding.shortfall_pence == 3200


class TestUpdateBooking:
    @pytest.fixture
    def booked(self, service, user, pimlico_room, add_credit):
        self.credit = add_credit(user, 10000, expiry_date=TODAY + timedelta(days=20))
        return service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="13:00",
        )

    def test_shrinking_refunds_the_difference(self, service, user, booked):
        updated = service.update_booking(booked.id, user.id, end_time="11:00")

        assert updated.total_price_pence == 3000
        assert updated.credit_used_pence == 3000
        assert self.credit.remaining_pence == 7000

    def test_growing_draws_the_difference(self, service, user, booked):
        updated = service.update_booking(booked.id, user.id, start_time="08:00", end_time="14:00")

        assert updated.total_price_pence == 9000
        assert updated.credit_used_pence == 9000
        assert self.credit.remaining_pence == 1000

    def test_moving_to_the_afternoon_reprices(self, service, user, booked):
        updated = service.update_booking(booked.id, user.id, start_time="15:00", end_time="19:00")

        assert updated.total_price_pence == 8000
        assert updated.start_time == time(15, 0)
        assert self.credit.remaining_pence == 2000

    def test_shortfall_requests_update_payment(self, db, stripe_gateway, user, booked):
        paying = BookingService(db, stripe_service=stripe_gateway)

        result = paying.update_booking(booked.id, user.id, start_time="08:00", end_time="22:00")

        assert isinstance(result, PaymentRequiredResult)
        assert result.purpose == PaymentPurpose.PAY_THE_DIFFERENCE_UPDATE
        # 7h at £15 + 7h at £20 = £245, against £40 free credit plus the £60 already drawn
        assert result.amount_pence == 24500 - 10000
        metadata = stripe_gateway.create_payment_intent.call_args.kwargs["metadata"]
        assert metadata["bookingId"] == booked.id
        assert metadata["type"] == "pay_the_difference_update"
        db.refresh(booked)
        assert booked.end_time == time(13, 0)

    def test_shrinking_never_refunds_into_an_expired_grant(
        self, service, user, pimlico_room, add_credit, db
    ):
        live = add_credit(
            user, 10000, grant_date=date(2026, 2, 1), expiry_date=date(2026, 3, 31)
        )
        spent = add_credit(
            user,
            2000,
            used_pence=2000,
            grant_date=date(2026, 2, 20),
            expiry_date=date(2026, 2, 28),
        )
        booking = service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="13:00",
        )

        service.update_booking(booking.id, user.id, end_time="11:00")

        assert live.remaining_pence == 7000
        assert spent.used_pence == 2000
        assert CreditService(db).get_available_pence(user.id) == 7000

    def test_shrinking_after_the_grant_expired_regrants_the_refund(
        self, service, user, pimlico_room, add_credit, db
    ):
        grant = add_credit(user, 6000, expiry_date=TODAY + timedelta(days=3))
        booking = service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="13:00",
        )
        grant.expiry_date = TODAY - timedelta(days=1)
        db.commit()

        service.update_booking(booking.id, user.id, end_time="11:00")

        assert grant.used_pence == 6000
        regrant = (
            db.query(CreditTransaction)
            .filter(CreditTransaction.source_id == booking.id)
            .one()
        )
        assert regrant.amount_pence == 3000
        assert regrant.source_type == CreditSourceType.MANUAL.value
        assert regrant.expiry_date == date(2026, 3, 31)
        assert CreditService(db).get_available_pence(user.id) == 3000

    def test_conflicting_move_is_rejected(
        self, service, user, booked, make_user, pimlico_room, add_booking
    ):
        add_booking(make_user(), pimlico_room, DAY, "14:00", "15:00")

        with pytest.raises(BookingConflictException):
            service.update_booking(booked.id, user.id, end_time="14:30")

    def test_other_users_cannot_update(self, service, booked, make_user):
        with pytest.raises(NotFoundException):
            service.update_booking(booked.id, make_user().id, end_time="11:00")

    def test_admin_can_update_any_booking(self, service, booked, admin):
        updated = service.update_booking(booked.id, admin.id, end_time="10:00", is_admin=True)
        assert updated.credit_used_pence == 1500

    def test_inside_notice_window(self, service, user, pimlico_room, add_booking):
        soon = add_booking(user, pimlico_room, date(2026, 3, 3), "08:00", "09:00")

        with pytest.raises(ValidationException) as exc_info:
            service.update_booking(soon.id, user.id, end_time="10:00")
        assert exc_info.value.code == "INSIDE_CANCELLATION_WINDOW"


class TestCancelBooking:
    def test_cancel_refunds_consumed_credit(self, service, user, pimlico_room, add_credit, enqueued_emails):
        add_credit(user, 6000, expiry_date=TODAY + timedelta(days=5))
        booking = service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="13:00",
        )

        cancelled = service.cancel_booking(booking.id, user.id)

        assert cancelled.status == BookingStatus.CANCELLED.value
        assert cancelled.cancellation_reason == "Cancelled by user"
        assert cancelled.cancelled_at is not None
        refund = (
            service.db.query(CreditTransaction)
            .filter(CreditTransaction.source_id == booking.id)
            .one()
        )
        assert refund.amount_pence == 6000
        assert refund.source_type == CreditSourceType.MANUAL.value
        assert refund.expiry_date == date(2026, 3, 31)
        assert CreditService(service.db).get_available_pence(user.id) == 6000
        assert enqueued_emails[-1] == ("cancellation", booking.id)

    def test_voucher_hours_are_not_returned(self, service, user, pimlico_room, add_voucher):
        add_voucher(user, "2.00")
        booking = service.create_booking(
            user_id=user.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="11:00",
        )

        service.cancel_booking(booking.id, user.id)

        assert VoucherService(service.db).get_available_hours(user.id) == Decimal("0.00")
        assert service.db.query(CreditTransaction).count() == 0

    def test_cancel_frees_the_slot(self, service, user, pimlico_room, add_booking, make_user, add_credit):
        booking = add_booking(user, pimlico_room, DAY, "09:00", "11:00")
        service.cancel_booking(booking.id, user.id)

        other = make_user()
        add_credit(other, 5000, expiry_date=TODAY + timedelta(days=20))
        rebooked = service.create_booking(
            user_id=other.id,
            room_id=pimlico_room.id,
            booking_date=DAY,
            start_time="09:00",
            end_time="11:00",
        )
        assert rebooked.status == BookingStatus.CONFIRMED.value

    @pytest.mark.parametrize("start", ["08:00", "09:00"])
    def test_cannot_cancel_within_24_hours(self, service, user, pimlico_room, add_booking, start):
        booking = add_booking(user, pimlico_room, date(2026, 3, 3), start, "10:00")

        with pytest.raises(ValidationException) as exc_info:
            service.cancel_booking(booking.id, user.id)
        assert exc_info.value.code == "INSIDE_CANCELLATION_WINDOW"

    def test_just_outside_the_window(self, service, user, pimlico_room, add_booking):
        booking = add_booking(user, pimlico_room, date(2026, 3, 3), "09:30", "10:00")
        assert service.cancel_booking(booking.id, user.id).status == BookingStatus.CANCELLED.value

    def test_cancel_twice(self, service, user, pimlico_room, add_booking):
        booking = add_booking(user, pimlico_room, DAY, "09:00", "10:00")
        service.cancel_booking(booking.id, user.id)

        with pytest.raises(ValidationException) as exc_info:
            service.cancel_booking(booking.id, user.id)
        assert exc_info.value.code == "BOOKING_ALREADY_CANCELLED"

    def test_admin_cancels_for_a_member(self, service, user, admin, pimlico_room, add_booking):
        booking = add_booking(user, pimlico_room, DAY, "09:00", "10:00", credit_used_pence=1500)

        cancelled = service.cancel_booking(booking.id, admin.id, is_admin=True)

        assert cancelled.cancellation_reason == "Cancelled by admin"
        refund = service.db.query(CreditTransaction).one()
        assert refund.user_id == user.id

    def test_non_owner_gets_not_found(self, service, user, make_user, pimlico_room, add_booking):
        booking = add_booking(user, pimlico_room, DAY, "09:00", "10:00")

        with pytest.raises(NotFoundException):
            service.cancel_booking(booking.id, make_user().id)


class TestListBookings:
    def test_filters_by_status_and_date(self, service, user, pimlico_room, add_booking):
        add_booking(user, pimlico_room, DAY, "09:00", "10:00")
        add_booking(user, pimlico_room, date(2026, 3, 11), "09:00", "10:00")
        add_booking(
            user, pimlico_room, date(2026, 3, 12), "09:00", "10:00", status=BookingStatus.CANCELLED
        )

        confirmed = service.list_user_bookings(user.id, status="confirmed")
        assert [b.booking_date for b in confirmed] == [DAY, date(2026, 3, 11)]

        from_eleventh = service.list_user_bookings(user.id, from_date=date(2026, 3, 11))
        assert len(from_eleventh) == 2

    def test_rejects_unknown_status(self, service, user):
        with pytest.raises(ValidationException) as exc_info:
            service.list_user_bookings(user.id, status="pending")
        assert exc_info.value.code == "INVALID_STATUS"
