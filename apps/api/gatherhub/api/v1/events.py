from __future__ import annotations

import csv
import io
from datetime import datetime
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status

from gatherhub.api.v1.schemas.events import (
    EventCreate,
    EventDetailOut,
    EventListOut,
    EventOut,
    EventUpdate,
    FeaturedEventOut,
)
from gatherhub.api.v1.schemas.registrations import (
    AttendeeOut,
    CheckoutCreate,
    CheckoutOut,
    RegistrationOut,
)
from gatherhub.auth.deps import CurrentUser, DBSession, OptionalUser, OrganizerUser
from gatherhub.models import Registration
from gatherhub.models.event import EventStatus, EventType
from gatherhub.models.registration import RegistrationStatus
from gatherhub.payments.base import PaymentGateway
from gatherhub.payments.factory import get_payment_gateway
from gatherhub.services import events_service, registration_service

router = APIRouter(prefix="/events", tags=["events"])

Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]


def attendee_out(registration: Registration) -> AttendeeOut:
    ticket = registration.ticket
    return AttendeeOut(
        **RegistrationOut.model_validate(registration).model_dump(),
        attendee_name=registration.user.name,
        attendee_email=registration.user.email,
        ticket_number=ticket.ticket_number if ticket else None,
        checked_in=bool(ticket and ticket.is_used),
    )


@router.get("", response_model=EventListOut)
def list_events(
    db: DBSession,
    viewer: OptionalUser,
    search: str | None = Query(default=None, min_length=1, max_length=200),
    type: EventType | None = None,
    location: str | None = Query(default=None, min_length=1, max_length=300),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    min_price: Decimal | None = Query(default=None, ge=0),
    max_price: Decimal | None = Query(default=None, ge=0),
    status: EventStatus | None = None,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
):
    items, total = events_service.list_events(
        db,
        viewer,
        search=search,
        type=type,
        location=location,
        start_date=start_date,
        end_date=end_date,
        min_price=min_price,
        max_price=max_price,
        status=status,
        page=page,
        page_size=page_size,
    )
    return EventListOut(
        items=[EventOut.model_validate(e) for e in items],
        page=page,
        page_size=page_size,
        total=total,
    )


@router.get("/upcoming", response_model=list[EventOut])
def upcoming_events(db: DBSession, limit: int = Query(default=5, ge=1, le=10)):
    return events_service.upcoming_events(db, limit=limit)


@router.get("/featured", response_model=list[FeaturedEventOut])
def featured_events(db: DBSession, limit: int = Query(default=3, ge=1, le=10)):
    return [
        FeaturedEventOut(**EventOut.model_validate(event).model_dump(), registration_count=count)
        for event, count in events_service.featured_events(db, limit=limit)
    ]


@router.post("", response_model=EventOut, status_code=status.HTTP_201_CREATED)
def create_event(payload: EventCreate, db: DBSession, organizer: OrganizerUser):
    return events_service.create_event(db, organizer, payload)


@router.get("/{event_id}", response_model=EventDetailOut)
def get_event(event_id: UUID, db: DBSession, viewer: OptionalUser):
    event, held = events_service.get_event_detail(db, viewer, event_id)
    return EventDetailOut(
        **EventOut.model_validate(event).model_dump(),
        seats_held=held,
        seats_remaining=max(0, event.max_attendees - held),
    )


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: UUID, payload: EventUpdate, db: DBSession, organizer: OrganizerUser, gateway: Gateway
):
    return events_service.update_event(db, organizer, event_id, payload, gateway)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(event_id: UUID, db: DBSession, organizer: OrganizerUser):
    events_service.delete_event(db, organizer, event_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{event_id}/publish", response_model=EventOut)
def publish_event(event_id: UUID, db: DBSession, organizer: OrganizerUser):
    return events_service.publish_event(db, organizer, event_id)


@router.post("/{event_id}/cancel", response_model=EventOut)
def cancel_event(event_id: UUID, db: DBSession, organizer: OrganizerUser, gateway: Gateway):
    return events_service.cancel_event(db, organizer, event_id, gateway)


@router.post("/{event_id}/checkout", response_model=CheckoutOut, status_code=status.HTTP_201_CREATED)
def create_checkout(
    event_id: UUID, payload: CheckoutCreate, db: DBSession, user: CurrentUser, gateway: Gateway
):
    registration, session = registration_service.create_checkout(db, user, event_id, payload, gateway)
    return CheckoutOut(
        registration_id=registration.id,
        status=registration.status,
        session_id=session.id if session else None,
        url=session.url if session else None,
    )


@router.get("/{event_id}/registrations", response_model=list[AttendeeOut])
def list_event_registrations(
    event_id: UUID,
    db: DBSession,
    organizer: OrganizerUser,
    status: RegistrationStatus | None = None,
):
    registrations = registration_service.list_event_registrations(db, organizer, event_id, status)
    return [attendee_out(r) for r in registrations]


CSV_COLUMNS = [
    "registration_id",
    "attendee_name",
    "attendee_email",
    "ticket_type",
    "status",
    "payment_status",
    "total_amount",
    "ticket_number",
    "checked_in",
    "dietary_requirements",
    "special_needs",
    "emergency_contact",
    "registered_at",
]


@router.get("/{event_id}/registrations.csv")
def export_event_registrations(
    event_id: UUID,
    db: DBSession,
    organizer: OrganizerUser,
    status: RegistrationStatus | None = None,
):
    registrations = registration_service.list_event_registrations(db, organizer, event_id, status)

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(CSV_COLUMNS)
    for r in registrations:
        a = attendee_out(r)
        writer.writerow(
            [
                a.id,
                a.attendee_name,
                a.attendee_email,
                a.ticket_type.value,
                a.status.value,
                a.payment_status.value,
                f"{a.total_amount:.2f}",
                a.ticket_number or "",
                "yes" if a.checked_in else "no",
                a.dietary_requirements or "",
                a.special_needs or "",
                a.emergency_contact or "",
                a.created_at.isoformat(),
            ]
        )

    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="event-{event_id}-registrations.csv"'},
    )
