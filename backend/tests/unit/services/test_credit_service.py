# backend/tests/unit/services/test_credit_service.py
"""
Credit ledger tests against an in-memory database.

The clock is frozen at Monday 2 March 2026 (see conftest), so ``TODAY``
below is the business "today" the service sees.
"""

from datetime import date, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from therapport.core.enums import CreditSourceType
from therapport.core.exceptions import (
    InsufficientCreditException,
    LedgerIntegrityException,
    NotFoundException,
    ValidationException,
)
from therapport.models import CreditTransaction
from therapport.services.credit_service import CreditService

TODAY = date(2026, 3, 2)


@pytest.fixture
def service(db):
    return CreditService(db)


class TestGrant:
    def test_grant_starts_unused(self, service, user):
        row = service.grant(
            user_id=user.id,
            amount_pence=10500,
            expiry_date=date(2026, 3, 31),
            source_type=CreditSourceType.MONTHLY_SUBSCRIPTION,
            source_id="in_123",
        )

        assert row.used_pence == 0
        assert row.remaining_pence == 10500
        assert row.grant_date == TODAY
        assert row.revoked is False
        assert service.get_available_pence(user.id) == 10500

    @pytest.mark.parametrize("amount", [0, -100])
    def test_grant_rejects_non_positive(self, service, user, amount):
        with pytest.raises(ValidationException) as exc_info:
            service.grant(
                user_id=user.id,
                amount_pence=amount,
                expiry_date=date(2026, 3, 31),
                source_type=CreditSourceType.MANUAL,
            )
        assert exc_info.value.code == "INVALID_CREDIT_AMOUNT"

    def test_grant_rejects_unknown_source_type(self, service, user):
        with pytest.raises(ValueError):
            service.grant(
                user_id=user.id,
                amount_pence=100,
                expiry_date=date(2026, 3, 31),
                source_type="gift",
            )


class TestUse:
    def test_fifo_consumes_oldest_grant_first(self, service, user, add_credit):
        older = add_credit(
            user, 5000, grant_date=TODAY - timedelta(days=20), expiry_date=TODAY + timedelta(days=10)
        )
        newer = add_credit(
            user, 3000, grant_date=TODAY - timedelta(days=5), expiry_date=TODAY + timedelta(days=40)
        )

        usage = service.use(user_id=user.id, amount_pence=6000)

        assert usage.total_pence == 6000
        assert [(a.transaction_id, a.amount_pence) for a in usage.allocations] == [
            (older.id, 5000),
            (newer.id, 1000),
        ]
        assert older.remaining_pence == 0
        assert older.used_pence == 5000
        assert newer.remaining_pence == 2000
        assert service.get_available_pence(user.id) == 2000

    def test_insufficient_credit_leaves_ledger_untouched(self, service, user, add_credit, db):
        row = add_credit(user, 5000, expiry_date=TODAY + timedelta(days=10))

        with pytest.raises(InsufficientCreditException) as exc_info:
            service.use(user_id=user.id, amount_pence=5001)

        assert exc_info.value.details == {"requested_pence": 5001, "available_pence": 5000}
        db.refresh(row)
        assert row.used_pence == 0
        assert row.remaining_pence == 5000

    def test_expired_and_revoked_grants_are_not_spendable(self, service, user, add_credit):
        add_credit(user, 4000, expiry_date=TODAY - timedelta(days=1))
        add_credit(user, 2500, expiry_date=TODAY + timedelta(days=5), revoked=True)
        valid = add_credit(user, 1000, expiry_date=TODAY)

        assert service.get_available_pence(user.id) == 1000
        with pytest.raises(InsufficientCreditException):
            service.use(user_id=user.id, amount_pence=1500)

        service.use(user_id=user.id, amount_pence=1000)
        assert valid.remaining_pence == 0

    def test_zero_amount_is_a_noop(self, service, user):
        assert service.use(user_id=user.id, amount_pence=0).total_pence == 0

    def test_other_users_credit_is_invisible(self, service, make_user, add_credit):
        owner = make_user()
        stranger = make_user()
        add_credit(owner, 5000, expiry_date=TODAY + timedelta(days=10))

        with pytest.raises(InsufficientCreditException):
            service.use(user_id=stranger.id, amount_pence=100)


class TestRefund:
    def test_refund_returns_consumption(self, service, user, add_credit):
        row = add_credit(user, 5000, used_pence=3000, expiry_date=TODAY + timedelta(days=10))

        service.refund(transaction_id=row.id, amount_pence=1000)

        assert row.used_pence == 2000
        assert row.remaining_pence == 3000

    def test_refund_more_than_used_is_rejected(self, service, user, add_credit, db):
        row = add_credit(user, 5000, used_pence=500, expiry_date=TODAY + timedelta(days=10))

        with pytest.raises(LedgerIntegrityException):
            service.refund(transaction_id=row.id, amount_pence=501)

        db.refresh(row)
        assert row.used_pence == 500

    def test_refund_into_expired_grant_is_allowed(self, service, user, add_credit):
        row = add_credit(user, 5000, used_pence=5000, expiry_date=TODAY - timedelta(days=3))

        service.refund(transaction_id=row.id, amount_pence=5000)

        assert row.remaining_pence == 5000
        assert service.get_available_pence(user.id) == 0

    def test_refund_unknown_transaction(self, service):
        with pytest.raises(NotFoundException):
            service.refund(transaction_id="01HZZZZZZZZZZZZZZZZZZZZZZZ", amount_pence=100)

    def test_refund_usage_gives_back_latest_expiry_first(self, service, user, add_credit):
        older = add_credit(
            user,
            5000,
            used_pence=5000,
            grant_date=TODAY - timedelta(days=20),
            expiry_date=TODAY + timedelta(days=10),
        )
        newer = add_credit(
            user,
            3000,
            used_pence=1000,
            grant_date=TODAY - timedelta(days=5),
            expiry_date=TODAY + timedelta(days=40),
        )

        usage = service.refund_usage(user_id=user.id, amount_pence=1500)

        assert usage.total_pence == 1500
        assert newer.used_pence == 0
        assert older.used_pence == 4500
        assert service.get_available_pence(user.id) == 3500

    def test_refund_usage_beyond_consumption_is_rejected(self, service, user, add_credit):
        add_credit(user, 5000, used_pence=200, expiry_date=TODAY + timedelta(days=10))

        with pytest.raises(LedgerIntegrityException):
            service.refund_usage(user_id=user.id, amount_pence=300)

    def test_refund_usage_skips_expired_and_revoked_grants(self, service, user, add_credit, db):
        live = add_credit(user, 5000, used_pence=1000, expiry_date=TODAY + timedelta(days=10))
        expired = add_credit(
            user,
            2000,
            used_pence=2000,
            grant_date=TODAY - timedelta(days=1),
            expiry_date=TODAY - timedelta(days=1),
        )
        revoked = add_credit(
            user, 3000, used_pence=3000, expiry_date=TODAY + timedelta(days=60), revoked=True
        )

        usage = service.refund_usage(
            user_id=user.id, amount_pence=1500, fallback_expiry=date(2026, 3, 31), source_id="bk-1"
        )

        assert live.used_pence == 0
        assert expired.used_pence == 2000
        assert revoked.used_pence == 3000
        assert usage.total_pence == 1500
        regrant = db.query(CreditTransaction).filter(CreditTransaction.source_id == "bk-1").one()
        assert regrant.amount_pence == 500
        assert regrant.expiry_date == date(2026, 3, 31)
        assert service.get_available_pence(user.id) == 5500


class TestRevoke:
    def test_revoke_unused_grant(self, service, user, add_credit):
        row = add_credit(
            user,
            2000,
            expiry_date=TODAY + timedelta(days=10),
            source_type=CreditSourceType.PAY_DIFFERENCE,
            source_id="settle-1",
        )

        assert service.revoke(user_id=user.id, source_id="settle-1") == 1
        assert row.revoked is True
        assert service.get_available_pence(user.id) == 0
        assert not service.has_credit_for_source_id(
            user_id=user.id, source_type=CreditSourceType.PAY_DIFFERENCE, source_id="settle-1"
        )

    def test_revoke_is_a_noop_without_match(self, service, user):
        assert service.revoke(user_id=user.id, source_id="missing") == 0

    def test_revoke_refuses_consumed_grant(self, service, user, add_credit, db):
        row = add_credit(
            user,
            2000,
            used_pence=1,
            expiry_date=TODAY + timedelta(days=10),
            source_type=CreditSourceType.PAY_DIFFERENCE,
            source_id="settle-2",
        )

        with pytest.raises(LedgerIntegrityException):
            service.revoke(user_id=user.id, source_id="settle-2")

        db.refresh(row)
        assert row.revoked is False


class TestBalance:
    def test_balance_totals(self, service, user, add_credit):
        add_credit(user, 5000, used_pence=2000, expiry_date=TODAY + timedelta(days=10))
        add_credit(user, 3000, expiry_date=TODAY - timedelta(days=1))
        add_credit(user, 1000, expiry_date=TODAY + timedelta(days=10), revoked=True)

        balance = service.get_balance(user.id)

        assert balance.total_available_pence == 3000
        assert balance.total_granted_pence == 9000
        assert balance.total_used_pence == 2000

    def test_balance_for_user_without_credit(self, service, user):
        balance = service.get_balance(user.id)
        assert (balance.total_available_pence, balance.total_granted_pence) == (0, 0)

    def test_summary_groups_by_expiry_month(self, service, user, add_credit):
        add_credit(user, 1000, expiry_date=date(2026, 3, 31))
        add_credit(user, 2000, expiry_date=date(2026, 3, 20))
        add_credit(user, 4000, expiry_date=date(2026, 4, 30))

        summary = service.get_summary(user.id)

        assert [(b.month, b.remaining_pence, b.transaction_count) for b in summary.by_expiry_month] == [
            ("2026-03", 3000, 2),
            ("2026-04", 4000, 1),
        ]
        assert summary.by_expiry_month[0].earliest_expiry == date(2026, 3, 20)
        assert all(isinstance(row, CreditTransaction) for row in summary.available)
        assert summary.balance.total_available_pence == 7000


class TestConservation:
    @pytest.fixture
    def ledger(self, user, add_credit):
        add_credit(
            user,
            5000,
            grant_date=TODAY - timedelta(days=20),
            expiry_date=TODAY + timedelta(days=10),
        )
        add_credit(
            user,
            3000,
            grant_date=TODAY - timedelta(days=5),
            expiry_date=TODAY + timedelta(days=40),
        )
        add_credit(
            user,
            2000,
            grant_date=TODAY,
            expiry_date=TODAY + timedelta(days=25),
            source_type=CreditSourceType.PAY_DIFFERENCE,
            source_id="settle-c",
        )
        add_credit(
            user,
            1000,
            used_pence=1000,
            grant_date=TODAY - timedelta(days=40),
            expiry_date=TODAY - timedelta(days=2),
        )

    @pytest.mark.parametrize(
        "steps",
        [
            [("use", 4000), ("refund_usage", 1500), ("use", 2000), ("revoke", None)],
            [("use", 7000), ("refund_usage", 3000), ("revoke", None), ("use", 1000)],
            [("use", 1000), ("refund_usage", 2500), ("use", 500), ("refund", 200)],
            [("revoke", None), ("use", 8000), ("refund_usage", 8000), ("refund_usage", 100)],
        ],
    )
    def test_every_row_balances_after_mixed_movements(self, service, user, ledger, db, steps):
        for operation, amount in steps:
            if operation == "use":
                service.use(user_id=user.id, amount_pence=amount)
            elif operation == "refund_usage":
                service.refund_usage(
                    user_id=user.id, amount_pence=amount, fallback_expiry=date(2026, 3, 31)
                )
            elif operation == "refund":
                row = (
                    db.query(CreditTransaction)
                    .filter(CreditTransaction.user_id == user.id, CreditTransaction.used_pence > 0)
                    .first()
                )
                service.refund(transaction_id=row.id, amount_pence=amount)
            else:
                service.revoke(user_id=user.id, source_id="settle-c")

        rows = db.query(CreditTransaction).filter(CreditTransaction.user_id == user.id).all()
        for row in rows:
            db.refresh(row)
            assert row.used_pence + row.remaining_pence == row.amount_pence
            assert row.used_pence >= 0
            assert row.remaining_pence >= 0

    def test_database_rejects_an_unbalanced_row(self, user, add_credit, db):
        row = add_credit(user, 5000, expiry_date=TODAY + timedelta(days=10))

        row.used_pence = 1000
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()
