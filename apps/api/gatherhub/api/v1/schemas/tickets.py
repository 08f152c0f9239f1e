from __future__ import annotations

from uuid import UUID

from pydantic import Field

from gatherhub.api.v1.schemas.common import SchemaBase, UTCDateTime


class TicketOut(SchemaBase):
    id: UUID
    registration_id: UUID
    ticket_number: str
    qr_code: str
    is_used: bool
    used_at: UTCDateTime | None = None
    created_at: UTCDateTime


class CheckInIn(SchemaBase):
    # Either the printed ticket number or the scanned QR payload
    code: str = Field(min_length=1, max_length=512)


class CheckInOut(SchemaBase):
    ticket_id: UUID
    ticket_number: str
    registration_id: UUID
    event_id: UUID
    attendee_name: str
    ticket_type: str
    used_at: UTCDateTime
