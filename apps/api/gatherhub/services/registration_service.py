from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from gatherhub.api.v1.schemas.registrations import CheckoutCreate, RegistrationCreate
from gatherhub.core.config import settings
from gatherhub.core.time import as_utc, utcnow
from gatherhub.models import Event, Registration, Ticket, User
from gatherhub.models.event import EventStatus
from gatherhub.models.notification import NotificationType
from gatherhub.models.registration import PaymentStatus, RegistrationStatus, TicketType
from gatherhub.models.user import UserRole
from gatherhub.payments.base import CheckoutSession, LineItem, PaymentEvent, PaymentGateway
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
)
from gatherhub.services.notification_service import notify
from gatherhub.services.ticket_service import can_view_registration, issue_ticket
from gatherhub.worker.tasks import enqueue, send_ticket_confirmation_email

logger = structlog.get_logger()

ACTIVE_STATUSES = (RegistrationStatus.PENDING, RegistrationStatus.CONFIRMED)

# Outcomes of confirming a paid checkout
CONFIRMED = "confirmed"
NOT_PENDING = "not_pending"
EVENT_FULL_REFUNDED = "event_full_refunded"


def _hold_cutoff(now: datetime | None = None) -> datetime:
    return (now or utcnow()) - timedelta(minutes=settings.registration_hold_minutes)


def seats_held(db: Session, event_id: uuid.UUID, exclude_registration_id: uuid.UUID | None = None) -> int:
    """Confirmed registrations plus pending ones still inside the checkout hold window."""
    stmt = (
        select(func.count())
        .select_from(Registration)
        .where(
            Registration.event_id == event_id,
            or_(
                Registration.status == RegistrationStatus.CONFIRMED,
                and_(
                    Registration.status == RegistrationStatus.PENDING,
                    Registration.updated_at >= _hold_cutoff(),
                ),
            ),
        )
    )
    if exclude_registration_id is not None:
        stmt = stmt.where(Registration.id != exclude_registration_id)
    return int(db.scalar(stmt) or 0)


def lock_event(db: Session, event_id: uuid.UUID) -> Event:
    event = db.scalar(
        select(Event)
        .where(Event.id == event_id)
        .with_for_update(of=Event)
        .execution_options(populate_existing=True)
    )
    if event is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def _lock_registration(db: Session, registration_id: uuid.UUID) -> Registration | None:
    return db.scalar(
        select(Registration)
        .where(Registration.id == registration_id)
        .with_for_update(of=Registration)
        .execution_options(populate_existing=True)
    )


def _ticket_price(event: Event, ticket_type: TicketType) -> Decimal:
    if ticket_type == TicketType.VIP:
        return event.vip_ticket_price
    return event.general_ticket_price


def _minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


def _ensure_open_for_registration(event: Event) -> None:
    if event.status == EventStatus.CANCELLED:
        raise ConflictError(ErrorCode.EVENT_CANCELLED.value, "event is cancelled")
    if event.status != EventStatus.PUBLISHED:
        raise ConflictError(ErrorCode.EVENT_NOT_PUBLISHED.value, "event is not published")
    if as_utc(event.start_date) <= utcnow():
        raise ConflictError(ErrorCode.EVENT_ALREADY_STARTED.value, "event has already started")


def _after_confirmation(db: Session, registration: Registration, ticket: Ticket) -> None:
    notify(
        db,
        [registration.user_id],
        title="Registration Successful",
        message=f'Successfully registered for "{registration.event.name}"!',
        type=NotificationType.REGISTRATION,
        event_id=registration.event_id,
    )
    enqueue(send_ticket_confirmation_email, str(ticket.id))


def _mark_refunded(registration: Registration, now: datetime) -> None:
    registration.status = RegistrationStatus.REFUNDED
    registration.payment_status = PaymentStatus.REFUNDED
    if registration.cancelled_at is None:
        registration.cancelled_at = now


def refund_registration(db: Session, registration: Registration, gateway: PaymentGateway) -> None:
    """Refund a paid registration at the processor and mark it refunded. The caller commits."""
    if registration.payment_status != PaymentStatus.COMPLETED or not registration.payment_intent_id:
        raise ConflictError(
            ErrorCode.INVALID_STATUS_TRANSITION.value, "registration has no captured payment to refund"
        )
    gateway.refund(registration.payment_intent_id, idempotency_key=f"refund-{registration.id}")
    _mark_refunded(registration, utcnow())
    db.add(registration)
    logger.info("registration_refunded", registration_id=str(registration.id))


def is_paid(registration: Registration) -> bool:
    return (
        registration.payment_status == PaymentStatus.COMPLETED
        and registration.payment_intent_id is not None
        and registration.total_amount > 0
    )


def create_registration(db: Session, user: User, payload: RegistrationCreate) -> Registration:
    event = lock_event(db, payload.event_id)
    try:
        _ensure_open_for_registration(event)

        existing = db.scalar(
            select(Registration)
            .where(
                Registration.user_id == user.id,
                Registration.event_id == event.id,
                Registration.status.in_(ACTIVE_STATUSES),
            )
            .order_by(Registration.created_at.desc())
            .limit(1)
        )
        if existing is not None and existing.status == RegistrationStatus.CONFIRMED:
            raise ConflictError(
                ErrorCode.REGISTRATION_EXISTS.value, "already registered for this event"
            )

        held = seats_held(db, event.id, exclude_registration_id=existing.id if existing else None)
        if held >= event.max_attendees:
            raise ConflictError(ErrorCode.EVENT_FULL.value, "event is full")
    except ServiceError:
        db.rollback()
        raise

    now = utcnow()
    amount = _ticket_price(event, payload.ticket_type)
    registration = existing or Registration(user_id=user.id, event_id=event.id)
    registration.ticket_type = payload.ticket_type
    registration.total_amount = amount
    registration.currency = settings.payment_currency
    registration.dietary_requirements = payload.dietary_requirements
    registration.special_needs = payload.special_needs
    registration.emergency_contact = payload.emergency_contact
    # Restarts the checkout hold for a reused pending registration
    registration.updated_at = now
    db.add(registration)

    ticket: Ticket | None = None
    if amount == 0:
        registration.status = RegistrationStatus.CONFIRMED
        registration.payment_status = PaymentStatus.COMPLETED
        registration.confirmed_at = now
        db.flush()
        ticket = issue_ticket(db, registration)

    db.commit()
    db.refresh(registration)

    logger.info(
        "registration_created",
        registration_id=str(registration.id),
        event_id=str(event.id),
        ticket_type=registration.ticket_type.value,
        status=registration.status.value,
        reused=existing is not None,
    )

    if ticket is not None:
        _after_confirmation(db, registration, ticket)
    return registration


def create_checkout(
    db: Session,
    user: User,
    event_id: uuid.UUID,
    payload: CheckoutCreate,
    gateway: PaymentGateway,
) -> tuple[Registration, CheckoutSession | None]:
    previous = db.scalar(
        select(Registration)
        .where(
            Registration.user_id == user.id,
            Registration.event_id == event_id,
            Registration.status == RegistrationStatus.PENDING,
            Registration.checkout_session_id.is_not(None),
        )
        .order_by(Registration.created_at.desc())
        .limit(1)
    )
    if previous is not None and _settle_previous_checkout(db, previous, gateway):
        return previous, None

    registration = create_registration(
        db, user, RegistrationCreate(event_id=event_id, **payload.model_dump())
    )
    if registration.status == RegistrationStatus.CONFIRMED:
        return registration, None

    event = registration.event
    base_url = settings.public_base_url.rstrip("/")
    session = gateway.create_checkout_session(
        expires_at=utcnow() + timedelta(minutes=settings.registration_hold_minutes),
        line_item=LineItem(
            name=f"{event.name} - {registration.ticket_type.value.upper()} ticket",
            description=(event.vip_perks or None) if registration.ticket_type == TicketType.VIP else None,
            unit_amount=_minor_units(registration.total_amount),
            currency=registration.currency,
        ),
        customer_email=user.email or None,
        metadata={
            "registration_id": str(registration.id),
            "event_id": str(event.id),
            "user_id": user.id,
            "ticket_type": registration.ticket_type.value,
        },
        success_url=f"{base_url}/events/{event.id}/registration/success?session_id={{CHECKOUT_SESSION_ID}}",
        cancel_url=f"{base_url}/events/{event.id}",
    )

    registration.checkout_session_id = session.id
    db.add(registration)
    db.commit()
    db.refresh(registration)

    logger.info(
        "checkout_session_created",
        registration_id=str(registration.id),
        session_id=session.id,
        amount=str(registration.total_amount),
    )
    return registration, session


def _registration_id_from(session: CheckoutSession) -> uuid.UUID | None:
    raw = session.metadata.get("registration_id")
    if not raw:
        return None
    try:
        return uuid.UUID(raw)
    except ValueError:
        return None


def _settle_previous_checkout(
    db: Session, registration: Registration, gateway: PaymentGateway
) -> bool:
    """Close the checkout a pending registration is waiting on before a new one is opened.

    Returns True when that checkout turned out to be paid and the registration
    is now confirmed, in which case no new checkout is needed.
    """
    session_id = registration.checkout_session_id
    session = gateway.retrieve_checkout_session(session_id)
    if session.is_paid:
        outcome = _confirm_paid(db, registration, session, gateway)
        if outcome == EVENT_FULL_REFUNDED:
            raise ConflictError(
                ErrorCode.EVENT_FULL.value,
                "event filled up before the payment completed; the payment has been refunded",
            )
        if outcome == CONFIRMED:
            return True
        if registration.status == RegistrationStatus.CONFIRMED:
            _refund_duplicate_payment(registration, session, gateway)
            return True
        _refund_late_payment(db, registration, session, gateway)
        return False

    # Detach first so the expiry webhook for the old session does not release the seat
    registration.checkout_session_id = None
    db.add(registration)
    db.commit()
    if session.status == "open":
        gateway.expire_checkout_session(session_id)
    logger.info(
        "previous_checkout_closed", registration_id=str(registration.id), session_id=session_id
    )
    return False


def _confirm_paid(
    db: Session, registration: Registration, session: CheckoutSession, gateway: PaymentGateway
) -> str:
    """Move a pending registration to confirmed once its payment has been captured.

    Capacity is counted again under the event lock: a hold that lapsed while
    the payer sat on the checkout page may have been taken by someone else,
    and then the payment is refunded instead.
    """
    event = lock_event(db, registration.event_id)
    _lock_registration(db, registration.id)
    if registration.status != RegistrationStatus.PENDING:
        db.rollback()
        db.refresh(registration)
        return NOT_PENDING

    if seats_held(db, event.id, exclude_registration_id=registration.id) >= event.max_attendees:
        _refund_late_payment(db, registration, session, gateway)
        notify(
            db,
            [registration.user_id],
            title="Registration unsuccessful",
            message=(
                f'"{event.name}" filled up before your payment completed. '
                "Your payment has been refunded."
            ),
            type=NotificationType.UPDATE,
            event_id=event.id,
        )
        logger.warning(
            "payment_refunded_event_full",
            registration_id=str(registration.id),
            event_id=str(event.id),
            session_id=session.id,
        )
        return EVENT_FULL_REFUNDED

    now = utcnow()
    result = db.execute(
        update(Registration)
        .where(
            Registration.id == registration.id,
            Registration.status == RegistrationStatus.PENDING,
        )
        .values(
            status=RegistrationStatus.CONFIRMED,
            payment_status=PaymentStatus.COMPLETED,
            payment_intent_id=session.payment_intent_id,
            confirmed_at=now,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        db.refresh(registration)
        return NOT_PENDING

    db.refresh(registration)
    ticket = issue_ticket(db, registration)
    db.commit()

    logger.info(
        "registration_confirmed",
        registration_id=str(registration.id),
        event_id=str(registration.event_id),
        session_id=session.id,
    )
    _after_confirmation(db, registration, ticket)
    return CONFIRMED


def _refund_late_payment(
    db: Session, registration: Registration, session: CheckoutSession, gateway: PaymentGateway
) -> None:
    # Paid after the registration was cancelled (expired hold or cancelled event)
    if registration.payment_status == PaymentStatus.REFUNDED or not session.payment_intent_id:
        return
    gateway.refund(session.payment_intent_id, idempotency_key=f"refund-{session.id}")
    registration.payment_intent_id = session.payment_intent_id
    _mark_refunded(registration, utcnow())
    db.add(registration)
    db.commit()
    logger.warning(
        "late_payment_refunded",
        registration_id=str(registration.id),
        session_id=session.id,
    )


def _refund_duplicate_payment(
    registration: Registration, session: CheckoutSession, gateway: PaymentGateway
) -> bool:
    """Refund a second captured payment for an already confirmed registration."""
    if not session.payment_intent_id or session.payment_intent_id == registration.payment_intent_id:
        return False
    gateway.refund(session.payment_intent_id, idempotency_key=f"refund-{session.id}")
    logger.warning(
        "duplicate_payment_refunded",
        registration_id=str(registration.id),
        session_id=session.id,
        payment_intent_id=session.payment_intent_id,
    )
    return True


def verify_payment_session(
    db: Session, user: User, session_id: str, gateway: PaymentGateway
) -> tuple[Registration, bool]:
    """Confirm the caller's registration from a completed checkout session.

    Returns the registration and whether it had already been confirmed, so
    repeated calls for the same session confirm once and issue one ticket.
    """
    session_id = (session_id or "").strip()
    if not session_id:
        raise BadRequestError(ErrorCode.SESSION_ID_REQUIRED.value, "session id is required")

    session = gateway.retrieve_checkout_session(session_id)
    if not session.is_paid:
        logger.warning(
            "payment_verification_failed",
            session_id=session_id,
            payment_status=session.payment_status,
            status=session.status,
        )
        raise BadRequestError(
            ErrorCode.PAYMENT_NOT_COMPLETED.value,
            f"payment not successful (status: {session.payment_status}, {session.status})",
        )

    registration_id = _registration_id_from(session)
    if registration_id is None:
        raise ServiceError(
            ErrorCode.PAYMENT_METADATA_MISSING.value,
            "registration id not found in checkout session metadata",
        )

    registration = db.get(Registration, registration_id)
    if registration is None or registration.user_id != user.id:
        raise NotFoundError(
            ErrorCode.REGISTRATION_NOT_FOUND.value,
            "registration not found or does not belong to user",
        )

    if registration.status == RegistrationStatus.CONFIRMED:
        _refund_duplicate_payment(registration, session, gateway)
        return registration, True

    outcome = _confirm_paid(db, registration, session, gateway)
    if outcome == CONFIRMED:
        return registration, False
    if outcome == EVENT_FULL_REFUNDED:
        raise ConflictError(
            ErrorCode.EVENT_FULL.value,
            "event filled up before the payment completed; the payment has been refunded",
        )
    if registration.status == RegistrationStatus.CONFIRMED:
        _refund_duplicate_payment(registration, session, gateway)
        return registration, True

    _refund_late_payment(db, registration, session, gateway)
    raise ConflictError(
        ErrorCode.REGISTRATION_NOT_ACTIVE.value,
        "registration is no longer active; the payment has been refunded",
    )


def handle_payment_event(db: Session, event: PaymentEvent, gateway: PaymentGateway) -> str:
    """Apply a verified payment processor webhook. Returns a short outcome label."""
    if event.type in {"checkout.session.completed", "checkout.session.async_payment_succeeded"}:
        session = event.session
        if session is None or not session.is_paid:
            return "ignored_unpaid"
        registration_id = _registration_id_from(session)
        registration = db.get(Registration, registration_id) if registration_id else None
        if registration is None:
            logger.warning("payment_webhook_unknown_registration", session_id=session.id)
            return "unknown_registration"
        if registration.status != RegistrationStatus.CONFIRMED:
            outcome = _confirm_paid(db, registration, session, gateway)
            if outcome == CONFIRMED:
                return "confirmed"
            if outcome == EVENT_FULL_REFUNDED:
                return "refunded_event_full"
        if registration.status == RegistrationStatus.CONFIRMED:
            if _refund_duplicate_payment(registration, session, gateway):
                return "refunded_duplicate_payment"
            return "already_confirmed"
        _refund_late_payment(db, registration, session, gateway)
        return "refunded_late_payment"

    if event.type in {"checkout.session.expired", "checkout.session.async_payment_failed"}:
        session = event.session
        if session is None:
            return "ignored"
        registration_id = _registration_id_from(session)
        registration = db.get(Registration, registration_id) if registration_id else None
        if registration is None:
            registration = db.scalar(
                select(Registration).where(Registration.checkout_session_id == session.id)
            )
        if registration is None or registration.status != RegistrationStatus.PENDING:
            return "ignored"
        # Only the session the registration is currently waiting on releases the seat
        if registration.checkout_session_id != session.id:
            return "ignored_stale_session"
        registration.status = RegistrationStatus.CANCELLED
        registration.payment_status = PaymentStatus.FAILED
        registration.cancelled_at = utcnow()
        db.add(registration)
        db.commit()
        logger.info("registration_checkout_expired", registration_id=str(registration.id))
        return "cancelled"

    if event.type == "charge.refunded":
        if not event.payment_intent_id:
            return "ignored"
        registration = db.scalar(
            select(Registration).where(Registration.payment_intent_id == event.payment_intent_id)
        )
        if registration is None or registration.status == RegistrationStatus.REFUNDED:
            return "ignored"
        _mark_refunded(registration, utcnow())
        db.add(registration)
        db.commit()
        notify(
            db,
            [registration.user_id],
            title="Refund processed",
            message=f'Your payment for "{registration.event.name}" has been refunded.',
            type=NotificationType.UPDATE,
            event_id=registration.event_id,
        )
        logger.info("registration_refunded_externally", registration_id=str(registration.id))
        return "refunded"

    return "ignored"


def get_registration(db: Session, user: User, registration_id: uuid.UUID) -> Registration:
    registration = db.get(Registration, registration_id)
    if registration is None or not can_view_registration(user, registration):
        raise NotFoundError(ErrorCode.REGISTRATION_NOT_FOUND.value, "registration not found")
    return registration


def list_user_registrations(db: Session, user: User) -> list[Registration]:
    stmt = (
        select(Registration)
        .where(Registration.user_id == user.id)
        .order_by(Registration.created_at.desc())
    )
    return list(db.scalars(stmt).unique().all())


def cancel_registration(
    db: Session, user: User, registration_id: uuid.UUID, gateway: PaymentGateway
) -> Registration:
    registration = _lock_registration(db, registration_id)
    if registration is None or registration.user_id != user.id:
        db.rollback()
        raise NotFoundError(ErrorCode.REGISTRATION_NOT_FOUND.value, "registration not found")

    try:
        if registration.status not in ACTIVE_STATUSES:
            raise ConflictError(
                ErrorCode.REGISTRATION_NOT_CANCELLABLE.value,
                f"registration is already {registration.status.value}",
            )
        if (
            registration.status == RegistrationStatus.CONFIRMED
            and as_utc(registration.event.start_date) <= utcnow()
        ):
            raise ConflictError(
                ErrorCode.EVENT_ALREADY_STARTED.value, "cannot cancel after the event has started"
            )

        if registration.status == RegistrationStatus.CONFIRMED and is_paid(registration):
            refund_registration(db, registration, gateway)
        else:
            registration.status = RegistrationStatus.CANCELLED
            registration.cancelled_at = utcnow()
            db.add(registration)
    except ServiceError:
        db.rollback()
        raise

    db.commit()
    db.refresh(registration)
    logger.info(
        "registration_cancelled",
        registration_id=str(registration.id),
        status=registration.status.value,
    )
    return registration


def _require_event_manager(user: User, event: Event) -> None:
    if user.role == UserRole.ADMIN:
        return
    if event.organizer_id != user.id:
        raise PermissionDeniedError(
            ErrorCode.NOT_EVENT_ORGANIZER.value, "not organizer for this event"
        )


def list_event_registrations(
    db: Session,
    user: User,
    event_id: uuid.UUID,
    status: RegistrationStatus | None = None,
) -> list[Registration]:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    _require_event_manager(user, event)

    stmt = (
        select(Registration)
        .where(Registration.event_id == event.id)
        .order_by(Registration.created_at.asc())
    )
    if status is not None:
        stmt = stmt.where(Registration.status == status)
    return list(db.scalars(stmt).unique().all())


def list_organizer_attendees(
    db: Session, user: User, status: RegistrationStatus | None = None, limit: int = 200
) -> list[Registration]:
    stmt = (
        select(Registration)
        .join(Event, Registration.event_id == Event.id)
        .order_by(Registration.created_at.desc())
        .limit(limit)
    )
    if user.role != UserRole.ADMIN:
        stmt = stmt.where(Event.organizer_id == user.id)
    if status is not None:
        stmt = stmt.where(Registration.status == status)
    return list(db.scalars(stmt).unique().all())


def update_registration_status(
    db: Session,
    user: User,
    registration_id: uuid.UUID,
    status: RegistrationStatus,
    gateway: PaymentGateway,
) -> Registration:
    registration = _lock_registration(db, registration_id)
    if registration is None:
        db.rollback()
        raise NotFoundError(ErrorCode.REGISTRATION_NOT_FOUND.value, "registration not found")

    try:
        _require_event_manager(user, registration.event)
    except ServiceError:
        db.rollback()
        raise

    current = registration.status
    if current == status:
        db.rollback()
        return registration

    ticket: Ticket | None = None
    now = utcnow()
    try:
        if status == RegistrationStatus.CONFIRMED and current == RegistrationStatus.PENDING:
            if seats_held(db, registration.event_id, exclude_registration_id=registration.id) >= registration.event.max_attendees:
                raise ConflictError(ErrorCode.EVENT_FULL.value, "event is full")
            registration.status = RegistrationStatus.CONFIRMED
            registration.confirmed_at = now
            if registration.total_amount == 0:
                registration.payment_status = PaymentStatus.COMPLETED
            db.add(registration)
            db.flush()
            ticket = issue_ticket(db, registration)
        elif status == RegistrationStatus.CANCELLED and current in ACTIVE_STATUSES:
            if current == RegistrationStatus.CONFIRMED and is_paid(registration):
                raise ConflictError(
                    ErrorCode.INVALID_STATUS_TRANSITION.value,
                    "paid registrations must be refunded, not cancelled",
                )
            registration.status = RegistrationStatus.CANCELLED
            registration.cancelled_at = now
            db.add(registration)
        elif status == RegistrationStatus.REFUNDED and current in (
            RegistrationStatus.CONFIRMED,
            RegistrationStatus.CANCELLED,
        ):
            refund_registration(db, registration, gateway)
        else:
            raise ConflictError(
                ErrorCode.INVALID_STATUS_TRANSITION.value,
                f"cannot change registration from {current.value} to {status.value}",
            )
    except ServiceError:
        db.rollback()
        raise

    db.commit()
    db.refresh(registration)

    logger.info(
        "registration_status_changed",
        registration_id=str(registration.id),
        from_status=current.value,
        to_status=registration.status.value,
        changed_by=user.id,
    )

    if ticket is not None:
        _after_confirmation(db, registration, ticket)
    else:
        notify(
            db,
            [registration.user_id],
            title="Registration updated",
            message=(
                f'Your registration for "{registration.event.name}" is now '
                f"{registration.status.value}."
            ),
            type=NotificationType.UPDATE,
            event_id=registration.event_id,
        )
    return registration
