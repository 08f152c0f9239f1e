from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatherhub.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin, enum_column
from gatherhub.models.user import User


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class EventType(str, Enum):
    CONFERENCE = "conference"
    MUSIC_CONCERT = "music_concert"
    NETWORKING = "networking"
    WORKSHOP = "workshop"
    OTHER = "other"


class Event(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "events"
    __table_args__ = (
        sa.Index("ix_events_organizer_id", "organizer_id"),
        sa.Index("ix_events_type", "type"),
        sa.Index("ix_events_start_date", "start_date"),
        sa.Index("ix_events_status", "status"),
        sa.CheckConstraint("end_date > start_date", name="ck_events_dates_ordered"),
        sa.CheckConstraint("max_attendees >= 1", name="ck_events_max_attendees_positive"),
        sa.CheckConstraint(
            "general_ticket_price >= 0 AND vip_ticket_price >= 0",
            name="ck_events_prices_non_negative",
        ),
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    type: Mapped[EventType] = mapped_column(enum_column(EventType, "event_type"), nullable=False)

    general_ticket_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    vip_ticket_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    vip_perks: Mapped[str] = mapped_column(Text, nullable=False, default="")
    max_attendees: Mapped[int] = mapped_column(Integer, nullable=False)

    organizer_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    status: Mapped[EventStatus] = mapped_column(
        enum_column(EventStatus, "event_status"),
        nullable=False,
        default=EventStatus.DRAFT,
        server_default=EventStatus.DRAFT.value,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    organizer: Mapped[User] = relationship(lazy="joined", innerjoin=True)

    @property
    def organizer_name(self) -> str:
        return self.organizer.organizer_name or self.organizer.name
