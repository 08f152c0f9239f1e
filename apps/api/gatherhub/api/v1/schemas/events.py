from __future__ import annotations

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from pydantic import Field, model_validator

from gatherhub.api.v1.schemas.common import AwareDateTime, PageOut, SchemaBase, UTCDateTime
from gatherhub.models.event import EventStatus, EventType

Price = Annotated[Decimal, Field(ge=0, max_digits=10, decimal_places=2)]


class EventCreate(SchemaBase):
    name: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    start_date: AwareDateTime
    end_date: AwareDateTime
    location: str = Field(min_length=1, max_length=300)
    type: EventType
    general_ticket_price: Price
    vip_ticket_price: Price
    vip_perks: str = ""
    max_attendees: int = Field(ge=1)
    status: EventStatus | None = None

    @model_validator(mode="after")
    def _validate_time_bounds(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class EventUpdate(SchemaBase):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, min_length=1)
    start_date: AwareDateTime | None = None
    end_date: AwareDateTime | None = None
    location: str | None = Field(default=None, min_length=1, max_length=300)
    type: EventType | None = None
    general_ticket_price: Price | None = None
    vip_ticket_price: Price | None = None
    vip_perks: str | None = None
    max_attendees: int | None = Field(default=None, ge=1)
    status: EventStatus | None = None

    @model_validator(mode="after")
    def _validate_time_bounds(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self


class EventOut(SchemaBase):
    id: UUID
    name: str
    description: str
    start_date: UTCDateTime
    end_date: UTCDateTime
    location: str
    type: EventType
    general_ticket_price: Decimal
    vip_ticket_price: Decimal
    vip_perks: str
    max_attendees: int
    status: EventStatus
    organizer_id: str
    organizer_name: str
    created_at: UTCDateTime
    updated_at: UTCDateTime
    cancelled_at: UTCDateTime | None = None


class EventDetailOut(EventOut):
    seats_held: int
    seats_remaining: int


class FeaturedEventOut(EventOut):
    registration_count: int


class EventListOut(PageOut):
    items: list[EventOut]


class EventSummaryOut(SchemaBase):
    id: UUID
    name: str
    start_date: UTCDateTime
    end_date: UTCDateTime
    location: str
    status: EventStatus


class EventStatusUpdate(SchemaBase):
    status: EventStatus
