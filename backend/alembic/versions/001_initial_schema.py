"""Initial schema: equipment, events, event equipment lines, registrations,
notifications with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Equipment table
    op.create_table(
        "equipment",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("category", sa.String(50), nullable=True),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("rented_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        *_timestamps(),
        sa.CheckConstraint("quantity >= 0", name="check_equipment_quantity_non_negative"),
        sa.CheckConstraint("rented_count >= 0", name="check_equipment_rented_non_negative"),
        sa.CheckConstraint("unit_price >= 0", name="check_equipment_price_non_negative"),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')", name="check_equipment_status"
        ),
    )
    op.create_index("ix_equipment_id", "equipment", ["id"])
    op.create_index("ix_equipment_vendor_id", "equipment", ["vendor_id"])
    # Catalog listing: WHERE status = 'approved' AND quantity > 0
    op.create_index("ix_equipment_status_quantity", "equipment", ["status", "quantity"])

    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("organizer_id", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False),
        sa.Column("confirmed_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("waitlist_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("waitlist_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("capacity > 0", name="check_event_capacity_positive"),
        sa.CheckConstraint("confirmed_count >= 0", name="check_confirmed_non_negative"),
        sa.CheckConstraint("confirmed_count <= capacity", name="check_confirmed_lte_capacity"),
        sa.CheckConstraint("waitlist_count >= 0", name="check_waitlist_non_negative"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    op.create_index("ix_events_date", "events", ["date"])

    # Equipment reserved per event; unit_price is the snapshot at booking time
    op.create_table(
        "event_equipment",
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("equipment_id", sa.Integer(), sa.ForeignKey("equipment.id"), primary_key=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.CheckConstraint("quantity > 0", name="check_event_equipment_quantity_positive"),
    )
    op.create_index("ix_event_equipment_equipment_id", "event_equipment", ["equipment_id"])

    # Registrations (tickets)
    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "event_id",
            sa.Integer(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("ticket_number", sa.String(32), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'waitlisted', 'cancelled')",
            name="check_registration_status",
        ),
    )
    op.create_index("ix_registrations_id", "registrations", ["id"])
    op.create_index("ix_registrations_event_id", "registrations", ["event_id"])
    op.create_index("ix_registrations_user_id", "registrations", ["user_id"])
    op.create_index("uq_registrations_ticket_number", "registrations", ["ticket_number"], unique=True)
    # One live registration per user per event; cancelled rows do not count
    op.create_index(
        "uq_registrations_active_user_event",
        "registrations",
        ["event_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("status != 'cancelled'"),
        sqlite_where=sa.text("status != 'cancelled'"),
    )
    # Waitlist head: WHERE event_id = ? AND status = 'waitlisted' ORDER BY id
    op.create_index("ix_registrations_event_status", "registrations", ["event_id", "status", "id"])

    # In-app notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.String(1000), nullable=False),
        sa.Column("event_id", sa.Integer(), nullable=True),
        sa.Column("registration_id", sa.Integer(), nullable=True),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_notifications_id", "notifications", ["id"])
    op.create_index("ix_notifications_user_read", "notifications", ["user_id", "read"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("registrations")
    op.drop_table("event_equipment")
    op.drop_table("events")
    op.drop_table("equipment")
