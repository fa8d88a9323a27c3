# backend/alembic/versions/001_initial_schema.py
"""Initial schema - rooms, memberships, bookings and both ledgers

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-03-01 00:00:00.000000

Creates every table in its final form and seeds the two practice locations
with their rooms (Pimlico A-D, Kensington 1-6).

Ledger tables carry check constraints for conservation
(used + remaining = amount) and non-negative balances.
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
import ulid

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ROOMS = {
    "Pimlico": ["A", "B", "C", "D"],
    "Kensington": ["1", "2", "3", "4", "5", "6"],
}


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Create the booking engine schema."""
    print("Creating booking engine schema...")

    op.create_table(
        "users",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="practitioner"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "locations",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("name", sa.String(50), nullable=False, unique=True),
    )

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "location_id",
            sa.String(26),
            sa.ForeignKey("locations.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("room_number", sa.Integer(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint("location_id", "room_number", name="uq_rooms_location_number"),
    )
    op.create_index("ix_rooms_location_id", "rooms", ["location_id"])

    op.create_table(
        "memberships",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(26),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("type", sa.String(20), nullable=False, server_default="ad_hoc"),
        sa.Column("subscription_type", sa.String(20), nullable=True),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
        sa.Column("subscription_start_date", sa.Date(), nullable=True),
        sa.Column("subscription_end_date", sa.Date(), nullable=True),
        sa.Column("termination_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("suspension_date", sa.Date(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_memberships_stripe_customer_id", "memberships", ["stripe_customer_id"])
    op.create_index(
        "ix_memberships_stripe_subscription_id", "memberships", ["stripe_subscription_id"]
    )

    op.create_table(
        "bookings",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("user_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "room_id", sa.String(26), sa.ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("membership_id", sa.String(26), sa.ForeignKey("memberships.id"), nullable=True),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("price_per_hour_pence", sa.Integer(), nullable=False),
        sa.Column("total_price_pence", sa.Integer(), nullable=False),
        sa.Column("credit_used_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("voucher_hours_used", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="confirmed"),
        sa.Column("booking_type", sa.String(30), nullable=False, server_default="ad_hoc"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_time > start_time", name="ck_bookings_time_order"),
        sa.CheckConstraint("total_price_pence >= 0", name="ck_bookings_price_non_negative"),
        sa.CheckConstraint("credit_used_pence >= 0", name="ck_bookings_credit_non_negative"),
        sa.CheckConstraint("voucher_hours_used >= 0", name="ck_bookings_voucher_non_negative"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_room_date_status", "bookings", ["room_id", "booking_date", "status"])
    op.create_index("ix_bookings_user_date", "bookings", ["user_id", "booking_date"])

    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id", sa.String(26), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("amount_pence", sa.Integer(), nullable=False),
        sa.Column("used_pence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("remaining_pence", sa.Integer(), nullable=False),
        sa.Column("grant_date", sa.Date(), nullable=False),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("source_type", sa.String(30), nullable=False),
        sa.Column("source_id", sa.String(64), nullable=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("amount_pence > 0", name="ck_credit_amount_positive"),
        sa.CheckConstraint("used_pence >= 0", name="ck_credit_used_non_negative"),
        sa.CheckConstraint("remaining_pence >= 0", name="ck_credit_remaining_non_negative"),
        sa.CheckConstraint(
            "used_pence + remaining_pence = amount_pence", name="ck_credit_conservation"
        ),
    )
    op.create_index(
        "ix_credit_transactions_user_grant", "credit_transactions", ["user_id", "grant_date"]
    )
    op.create_index(
        "ix_credit_transactions_source",
        "credit_transactions",
        ["user_id", "source_type", "source_id"],
    )

    op.create_table(
        "free_booking_vouchers",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id", sa.String(26), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("hours_allocated", sa.Numeric(10, 2), nullable=False),
        sa.Column("hours_used", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("expiry_date", sa.Date(), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("hours_allocated > 0", name="ck_voucher_allocated_positive"),
        sa.CheckConstraint("hours_used >= 0", name="ck_voucher_used_non_negative"),
        sa.CheckConstraint("hours_used <= hours_allocated", name="ck_voucher_not_overdrawn"),
    )
    op.create_index(
        "ix_free_booking_vouchers_user_expiry", "free_booking_vouchers", ["user_id", "expiry_date"]
    )

    op.create_table(
        "stripe_payments",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column(
            "user_id", sa.String(26), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=False, unique=True),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("amount_pence", sa.Integer(), nullable=False, comment="Amount in pence"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="gbp"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_type", sa.String(30), nullable=False),
        sa.Column("metadata", JSONB(astext_type=sa.Text()), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_stripe_payments_user_id", "stripe_payments", ["user_id"])

    op.create_table(
        "webhook_events",
        sa.Column("id", sa.String(26), primary_key=True),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("event_type", sa.String(100), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("payload", JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("processing_error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "received_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("source", "event_id", name="uq_webhook_events_source_event_id"),
    )
    op.create_index("ix_webhook_events_status", "webhook_events", ["status"])
    op.create_index("ix_webhook_events_received_at", "webhook_events", ["received_at"])

    print("Seeding locations and rooms...")
    locations_table = sa.table("locations", sa.column("id", sa.String), sa.column("name", sa.String))
    rooms_table = sa.table(
        "rooms",
        sa.column("id", sa.String),
        sa.column("location_id", sa.String),
        sa.column("name", sa.String),
        sa.column("room_number", sa.Integer),
        sa.column("active", sa.Boolean),
    )
    for location_name, room_names in ROOMS.items():
        location_id = str(ulid.ULID())
        op.bulk_insert(locations_table, [{"id": location_id, "name": location_name}])
        op.bulk_insert(
            rooms_table,
            [
                {
                    "id": str(ulid.ULID()),
                    "location_id": location_id,
                    "name": room_name,
                    "room_number": number,
                    "active": True,
                }
                for number, room_name in enumerate(room_names, start=1)
            ],
        )

    print("Initial schema created successfully!")


def downgrade() -> None:
    """Drop all booking engine tables."""
    print("Dropping booking engine schema...")
    for table in (
        "webhook_events",
        "stripe_payments",
        "free_booking_vouchers",
        "credit_transactions",
        "bookings",
        "memberships",
        "rooms",
        "locations",
        "users",
    ):
        op.drop_table(table)
