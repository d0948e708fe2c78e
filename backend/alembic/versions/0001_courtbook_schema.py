# backend/alembic/versions/0001_courtbook_schema.py
"""Court booking schema

Revision ID: 0001_courtbook_schema
Revises:
Create Date: 2026-10-16 00:00:00.000000

Venues and their policy rows, availability windows, slot templates and
instances, bookings with recurring occurrences, payments, external
calendar blocks and the audit trail.

Active bookings are unique per exact (venue, date, start, end) through a
partial index that ignores cancelled rows.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_courtbook_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_SLOT_PREDICATE = sa.text("status <> 'cancelled'")


def _ulid_pk() -> sa.Column:
    return sa.Column("id", sa.String(26), primary_key=True)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        _ulid_pk(),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_venue_owner", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_renter", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
    )
    op.create_index("ix_users_id", "users", ["id"])

    op.create_table(
        "venues",
        _ulid_pk(),
        sa.Column("owner_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(10, 2), nullable=False),
        sa.Column("instant_booking", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("insurance_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("max_advance_booking_days", sa.Integer(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("hourly_rate >= 0", name="check_venue_hourly_rate"),
    )
    op.create_index("ix_venues_id", "venues", ["id"])
    op.create_index("ix_venues_owner_id", "venues", ["owner_id"])

    op.create_table(
        "venue_admin_configs",
        _ulid_pk(),
        sa.Column(
            "venue_id",
            sa.String(26),
            sa.ForeignKey("venues.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("min_advance_booking_days", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("min_advance_lead_time_hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("same_day_cutoff_time", sa.Time(), nullable=True),
        sa.Column("blackout_dates", sa.JSON(), nullable=False),
        sa.Column("holiday_dates", sa.JSON(), nullable=False),
        sa.Column("operating_hours", sa.JSON(), nullable=False),
        sa.Column("drop_in_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("drop_in_price", sa.Numeric(10, 2), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "availability",
        _ulid_pk(),
        sa.Column(
            "venue_id", sa.String(26), sa.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("start_time < end_time", name="check_availability_time_order"),
    )
    op.create_index("ix_availability_venue_date", "availability", ["venue_id", "date"])

    op.create_table(
        "slot_templates",
        _ulid_pk(),
        sa.Column(
            "venue_id", sa.String(26), sa.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("action_type", sa.String(40), nullable=False),
        sa.Column("day_of_week", sa.Integer(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("slot_interval_minutes", sa.Integer(), nullable=False, server_default="60"),
        sa.Column("blocks_inventory", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="check_slot_template_weekday"),
        sa.CheckConstraint("start_time < end_time", name="check_slot_template_time_order"),
        sa.CheckConstraint("slot_interval_minutes > 0", name="check_slot_template_interval"),
    )

    op.create_table(
        "slot_instances",
        _ulid_pk(),
        sa.Column(
            "venue_id", sa.String(26), sa.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "template_id",
            sa.String(26),
            sa.ForeignKey("slot_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("action_type", sa.String(40), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("blocks_inventory", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.UniqueConstraint(
            "venue_id",
            "date",
            "start_time",
            "end_time",
            "action_type",
            name="uq_slot_instances_interval",
        ),
        sa.CheckConstraint("start_time < end_time", name="check_slot_instance_time_order"),
    )
    op.create_index("ix_slot_instances_venue_date", "slot_instances", ["venue_id", "date"])

    op.create_table(
        "slot_modal_content",
        _ulid_pk(),
        sa.Column("action_type", sa.String(40), nullable=False, unique=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("bullet_points", sa.JSON(), nullable=False),
        sa.Column("cta_label", sa.String(100), nullable=True),
    )

    op.create_table(
        "slot_pricing",
        _ulid_pk(),
        sa.Column(
            "slot_instance_id",
            sa.String(26),
            sa.ForeignKey("slot_instances.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="usd"),
        sa.Column("unit", sa.String(20), nullable=False, server_default="person"),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="on_site"),
        sa.CheckConstraint("amount_cents >= 0", name="check_slot_pricing_amount"),
        sa.CheckConstraint("unit IN ('hour', 'person', 'session')", name="check_slot_pricing_unit"),
        sa.CheckConstraint(
            "payment_method IN ('on_site', 'in_app')", name="check_slot_pricing_method"
        ),
    )

    op.create_table(
        "bookings",
        _ulid_pk(),
        sa.Column("venue_id", sa.String(26), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("renter_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("insurance_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("insurance_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurring_type", sa.String(10), nullable=False, server_default="none"),
        sa.Column("recurring_end_date", sa.Date(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("start_time < end_time", name="check_booking_time_order"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_booking_status",
        ),
        sa.CheckConstraint(
            "recurring_type IN ('none', 'weekly', 'monthly')", name="check_booking_recurring_type"
        ),
        sa.CheckConstraint("total_amount >= 0", name="check_booking_total_amount"),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_venue_id", "bookings", ["venue_id"])
    op.create_index("ix_bookings_renter_id", "bookings", ["renter_id"])
    op.create_index("ix_bookings_date", "bookings", ["date"])
    op.create_index("ix_bookings_status", "bookings", ["status"])
    op.create_index("ix_bookings_venue_date_status", "bookings", ["venue_id", "date", "status"])
    op.create_index(
        "uq_bookings_active_slot",
        "bookings",
        ["venue_id", "date", "start_time", "end_time"],
        unique=True,
        postgresql_where=ACTIVE_SLOT_PREDICATE,
        sqlite_where=ACTIVE_SLOT_PREDICATE,
    )

    op.create_table(
        "recurring_bookings",
        _ulid_pk(),
        sa.Column(
            "parent_booking_id",
            sa.String(26),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("venue_id", sa.String(26), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("renter_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("insurance_required", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("insurance_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.CheckConstraint("start_time < end_time", name="check_recurring_booking_time_order"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="check_recurring_booking_status",
        ),
    )
    op.create_index(
        "ix_recurring_bookings_parent_booking_id", "recurring_bookings", ["parent_booking_id"]
    )
    op.create_index(
        "ix_recurring_bookings_venue_date_status",
        "recurring_bookings",
        ["venue_id", "date", "status"],
    )

    op.create_table(
        "payments",
        _ulid_pk(),
        sa.Column(
            "booking_id",
            sa.String(26),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("renter_id", sa.String(26), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("venue_id", sa.String(26), sa.ForeignKey("venues.id"), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("platform_fee", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("venue_owner_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("stripe_payment_intent_id", sa.String(255), nullable=True),
        sa.Column("stripe_setup_intent_id", sa.String(255), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refunded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_amount", sa.Numeric(10, 2), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending', 'authorized', 'paid', 'failed', 'refunded')",
            name="check_payment_status",
        ),
        sa.CheckConstraint("amount >= 0", name="check_payment_amount"),
    )
    op.create_index(
        "ix_payments_stripe_payment_intent_id", "payments", ["stripe_payment_intent_id"]
    )

    op.create_table(
        "external_availability_blocks",
        _ulid_pk(),
        sa.Column(
            "venue_id", sa.String(26), sa.ForeignKey("venues.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("source_event_id", sa.String(255), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        _created_at(),
        sa.CheckConstraint("start_at < end_at", name="check_external_block_time_order"),
        sa.CheckConstraint("status IN ('active', 'cancelled')", name="check_external_block_status"),
    )
    op.create_index(
        "ix_external_blocks_venue_status", "external_availability_blocks", ["venue_id", "status"]
    )

    op.create_table(
        "audit_logs",
        _ulid_pk(),
        sa.Column("table_name", sa.String(50), nullable=False),
        sa.Column("record_id", sa.String(64), nullable=False),
        sa.Column("action", sa.String(10), nullable=False),
        sa.Column("actor_id", sa.String(26), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column(
            "occurred_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
    )
    op.create_index("ix_audit_logs_record", "audit_logs", ["table_name", "record_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("external_availability_blocks")
    op.drop_table("payments")
    op.drop_table("recurring_bookings")
    op.drop_index("uq_bookings_active_slot", table_name="bookings")
    op.drop_table("bookings")
    op.drop_table("slot_pricing")
    op.drop_table("slot_modal_content")
    op.drop_table("slot_instances")
    op.drop_table("slot_templates")
    op.drop_table("availability")
    op.drop_table("venue_admin_configs")
    op.drop_table("venues")
    op.drop_table("users")
