"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum("user", "organizer", "admin", name="user_role")
event_type = sa.Enum(
    "conference", "music_concert", "networking", "workshop", "other", name="event_type"
)
event_status = sa.Enum("draft", "published", "cancelled", "completed", name="event_status")
ticket_type = sa.Enum("general", "vip", name="ticket_type")
registration_status = sa.Enum(
    "pending", "confirmed", "cancelled", "refunded", name="registration_status"
)
payment_status = sa.Enum("pending", "completed", "failed", "refunded", name="payment_status")
notification_type = sa.Enum(
    "registration", "reminder", "cancellation", "update", name="notification_type"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("image_url", sa.String(length=500), nullable=True),
        sa.Column("role", user_role, nullable=False, server_default="user"),
        sa.Column("onboarding_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("organizer_name", sa.String(length=200), nullable=True),
        sa.Column("phone_number", sa.String(length=40), nullable=True),
        sa.Column("organization_name", sa.String(length=200), nullable=True),
        sa.Column("became_organizer_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "events",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(length=300), nullable=False),
        sa.Column("type", event_type, nullable=False),
        sa.Column("general_ticket_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("vip_ticket_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("vip_perks", sa.Text(), nullable=False),
        sa.Column("max_attendees", sa.Integer(), nullable=False),
        sa.Column(
            "organizer_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("status", event_status, nullable=False, server_default="draft"),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("end_date > start_date", name="ck_events_dates_ordered"),
        sa.CheckConstraint("max_attendees >= 1", name="ck_events_max_attendees_positive"),
        sa.CheckConstraint(
            "general_ticket_price >= 0 AND vip_ticket_price >= 0",
            name="ck_events_prices_non_negative",
        ),
    )
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    op.create_index("ix_events_type", "events", ["type"])
    op.create_index("ix_events_start_date", "events", ["start_date"])
    op.create_index("ix_events_status", "events", ["status"])

    op.create_table(
        "registrations",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "event_id",
            sa.Uuid(),
            sa.ForeignKey("events.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ticket_type", ticket_type, nullable=False),
        sa.Column("status", registration_status, nullable=False, server_default="pending"),
        sa.Column("payment_status", payment_status, nullable=False, server_default="pending"),
        sa.Column("total_amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("dietary_requirements", sa.Text(), nullable=True),
        sa.Column("special_needs", sa.Text(), nullable=True),
        sa.Column("emergency_contact", sa.Text(), nullable=True),
        sa.Column("checkout_session_id", sa.String(length=255), nullable=True),
        sa.Column("payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_registrations_user_event", "registrations", ["user_id", "event_id"])
    op.create_index("ix_registrations_event_id", "registrations", ["event_id"])
    op.create_index("ix_registrations_status", "registrations", ["status"])
    op.create_index(
        "ix_registrations_checkout_session_id",
        "registrations",
        ["checkout_session_id"],
        unique=True,
    )

    op.create_table(
        "tickets",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "registration_id",
            sa.Uuid(),
            sa.ForeignKey("registrations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("ticket_number", sa.String(length=32), nullable=False),
        sa.Column("qr_code", sa.Text(), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tickets_registration_id", "tickets", ["registration_id"], unique=True)
    op.create_index("ix_tickets_ticket_number", "tickets", ["ticket_number"], unique=True)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", notification_type, nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "event_id",
            sa.Uuid(),
            sa.ForeignKey("events.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])
    op.create_index("ix_notifications_event_id", "notifications", ["event_id"])


def downgrade() -> None:
    op.drop_table("notifications")
    op.drop_table("tickets")
    op.drop_table("registrations")
    op.drop_table("events")
    op.drop_table("users")

    bind = op.get_bind()
    for enum in (
        notification_type,
        payment_status,
        registration_status,
        ticket_type,
        event_status,
        event_type,
        user_role,
    ):
        enum.drop(bind, checkfirst=True)
