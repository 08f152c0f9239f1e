from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import Field

from gatherhub.api.v1.schemas.common import SchemaBase, UTCDateTime
from gatherhub.api.v1.schemas.events import EventSummaryOut
from gatherhub.api.v1.schemas.tickets import TicketOut
from gatherhub.models.registration import PaymentStatus, RegistrationStatus, TicketType


class RegistrationDetails(SchemaBase):
    dietary_requirements: str | None = Field(default=None, max_length=1000)
    special_needs: str | None = Field(default=None, max_length=1000)
    emergency_contact: str | None = Field(default=None, max_length=300)


class CheckoutCreate(RegistrationDetails):
    ticket_type: TicketType


class RegistrationCreate(CheckoutCreate):
    event_id: UUID


class RegistrationOut(SchemaBase):
    id: UUID
    user_id: str
    event_id: UUID
    ticket_type: TicketType
    status: RegistrationStatus
    payment_status: PaymentStatus
    total_amount: Decimal
    currency: str
    dietary_requirements: str | None = None
    special_needs: str | None = None
    emergency_contact: str | None = None
    confirmed_at: UTCDateTime | None = None
    cancelled_at: UTCDateTime | None = None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class RegistrationDetailOut(RegistrationOut):
    event: EventSummaryOut
    ticket: TicketOut | None = None


class AttendeeOut(RegistrationOut):
    attendee_name: str
    attendee_email: str
    ticket_number: str | None = None
    checked_in: bool = False


class CheckoutOut(SchemaBase):
    registration_id: UUID
    status: RegistrationStatus
    session_id: str | None = None
    url: str | None = None


class VerifyPaymentIn(SchemaBase):
    # Empty values are rejected by the handler with a 400, not a 422
    session_id: str = ""


class VerifyPaymentOut(SchemaBase):
    success: bool
    message: str
    registration_id: UUID


class RegistrationStatusUpdate(SchemaBase):
    status: RegistrationStatus
