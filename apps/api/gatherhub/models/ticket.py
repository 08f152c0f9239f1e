from __future__ import annotations

import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gatherhub.core.time import utcnow
from gatherhub.models.base import Base, UUIDPrimaryKeyMixin
from gatherhub.models.registration import Registration


class Ticket(Base, UUIDPrimaryKeyMixin):
    __tablename__ = "tickets"
    __table_args__ = (
        sa.Index("ix_tickets_registration_id", "registration_id", unique=True),
        sa.Index("ix_tickets_ticket_number", "ticket_number", unique=True),
    )

    registration_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid(as_uuid=True),
        ForeignKey("registrations.id", ondelete="CASCADE"),
        nullable=False,
    )
    ticket_number: Mapped[str] = mapped_column(String(32), nullable=False)
    # Signed payload encoded into the QR image
    qr_code: Mapped[str] = mapped_column(Text, nullable=False)
    is_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=sa.false())
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=sa.func.now()
    )

    registration: Mapped[Registration] = relationship(back_populates="ticket", lazy="joined")
