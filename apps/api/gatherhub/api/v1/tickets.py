from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Response

from gatherhub.api.v1.schemas.tickets import CheckInIn, CheckInOut, TicketOut
from gatherhub.auth.deps import CurrentUser, DBSession, OrganizerUser
from gatherhub.services import ticket_service

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("", response_model=list[TicketOut])
def list_tickets(db: DBSession, user: CurrentUser):
    return ticket_service.list_tickets(db, user)


@router.post("/check-in", response_model=CheckInOut)
def check_in(payload: CheckInIn, db: DBSession, staff: OrganizerUser):
    ticket = ticket_service.check_in(db, staff, payload.code)
    registration = ticket.registration
    return CheckInOut(
        ticket_id=ticket.id,
        ticket_number=ticket.ticket_number,
        registration_id=registration.id,
        event_id=registration.event_id,
        attendee_name=registration.user.name,
        ticket_type=registration.ticket_type.value,
        used_at=ticket.used_at,
    )


@router.get("/{ticket_id}", response_model=TicketOut)
def get_ticket(ticket_id: UUID, db: DBSession, user: CurrentUser):
    return ticket_service.get_ticket(db, user, ticket_id)


@router.get("/{ticket_id}/qr.png")
def ticket_qr(ticket_id: UUID, db: DBSession, user: CurrentUser):
    ticket = ticket_service.get_ticket(db, user, ticket_id)
    png = ticket_service.render_qr_png(ticket.qr_code)
    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": f'inline; filename="{ticket.ticket_number}.png"'},
    )
