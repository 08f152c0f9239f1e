from __future__ import annotations

import hashlib
import hmac
import io
import secrets
import uuid

import qrcode
import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gatherhub.core.config import settings
from gatherhub.core.time import utcnow
from gatherhub.models import Event, Registration, Ticket, User
from gatherhub.models.event import EventStatus
from gatherhub.models.registration import RegistrationStatus
from gatherhub.models.user import UserRole
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import ConflictError, NotFoundError, PermissionDeniedError

logger = structlog.get_logger()

QR_PREFIX = "GH1"
TICKET_NUMBER_PREFIX = "GH-"
# Unambiguous characters only (no 0/O, 1/I)
TICKET_NUMBER_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
TICKET_NUMBER_LENGTH = 10


def _new_ticket_number() -> str:
    return TICKET_NUMBER_PREFIX + "".join(
        secrets.choice(TICKET_NUMBER_ALPHABET) for _ in range(TICKET_NUMBER_LENGTH)
    )


def _signature(ticket_number: str, registration_id: uuid.UUID) -> str:
    msg = f"{ticket_number}:{registration_id}".encode("utf-8")
    return hmac.new(
        settings.ticket_signing_secret.encode("utf-8"), msg, hashlib.sha256
    ).hexdigest()[:32]


def qr_payload(ticket_number: str, registration_id: uuid.UUID) -> str:
    return f"{QR_PREFIX}:{ticket_number}:{registration_id}:{_signature(ticket_number, registration_id)}"


def parse_check_in_code(code: str) -> str:
    """Return the ticket number for a typed ticket number or a scanned QR payload."""
    code = code.strip()
    if not code.startswith(f"{QR_PREFIX}:"):
        return code.upper()

    parts = code.split(":")
    if len(parts) != 4:
        raise ConflictError(ErrorCode.TICKET_INVALID.value, "malformed ticket code")
    _, ticket_number, registration_id, signature = parts
    try:
        expected = _signature(ticket_number, uuid.UUID(registration_id))
    except ValueError:
        raise ConflictError(ErrorCode.TICKET_INVALID.value, "malformed ticket code") from None
    if not hmac.compare_digest(signature, expected):
        raise ConflictError(ErrorCode.TICKET_INVALID.value, "ticket signature mismatch")
    return ticket_number


def render_qr_png(payload: str) -> bytes:
    qr = qrcode.QRCode(version=1, box_size=10, border=4)
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def issue_ticket(db: Session, registration: Registration) -> Ticket:
    """Add the ticket for a freshly confirmed registration. The caller commits."""
    ticket_number = _new_ticket_number()
    while db.scalar(select(Ticket.id).where(Ticket.ticket_number == ticket_number)) is not None:
        ticket_number = _new_ticket_number()

    ticket = Ticket(
        registration=registration,
        ticket_number=ticket_number,
        qr_code=qr_payload(ticket_number, registration.id),
    )
    db.add(ticket)
    return ticket


def can_view_registration(user: User, registration: Registration) -> bool:
    return (
        user.role == UserRole.ADMIN
        or registration.user_id == user.id
        or registration.event.organizer_id == user.id
    )


def list_tickets(db: Session, user: User) -> list[Ticket]:
    stmt = (
        select(Ticket)
        .join(Registration, Ticket.registration_id == Registration.id)
        .join(Event, Registration.event_id == Event.id)
        .where(Registration.user_id == user.id)
        .order_by(Event.start_date.asc())
    )
    return list(db.scalars(stmt).unique().all())


def get_ticket(db: Session, user: User, ticket_id: uuid.UUID) -> Ticket:
    ticket = db.get(Ticket, ticket_id)
    if ticket is None or not can_view_registration(user, ticket.registration):
        raise NotFoundError(ErrorCode.TICKET_NOT_FOUND.value, "ticket not found")
    return ticket


def check_in(db: Session, staff: User, code: str) -> Ticket:
    ticket_number = parse_check_in_code(code)
    ticket = db.scalar(select(Ticket).where(Ticket.ticket_number == ticket_number))
    if ticket is None:
        raise NotFoundError(ErrorCode.TICKET_NOT_FOUND.value, "ticket not found")

    registration = ticket.registration
    event = registration.event
    if staff.role != UserRole.ADMIN and event.organizer_id != staff.id:
        raise PermissionDeniedError(
            ErrorCode.NOT_EVENT_ORGANIZER.value, "not organizer for this event"
        )
    if event.status == EventStatus.CANCELLED:
        raise ConflictError(ErrorCode.EVENT_CANCELLED.value, "event is cancelled")
    if registration.status != RegistrationStatus.CONFIRMED:
        raise ConflictError(ErrorCode.TICKET_NOT_ACTIVE.value, "registration is not confirmed")

    now = utcnow()
    result = db.execute(
        update(Ticket)
        .where(Ticket.id == ticket.id, Ticket.is_used.is_(False))
        .values(is_used=True, used_at=now)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ConflictError(ErrorCode.TICKET_ALREADY_USED.value, "ticket already used")
    db.commit()
    db.refresh(ticket)

    logger.info(
        "ticket_checked_in",
        ticket_id=str(ticket.id),
        event_id=str(event.id),
        checked_in_by=staff.id,
    )
    return ticket
