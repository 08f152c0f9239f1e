from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from gatherhub.api.v1.schemas.events import EventCreate, EventUpdate
from gatherhub.core.time import as_utc, utcnow
from gatherhub.models import Event, Registration, User
from gatherhub.models.event import EventStatus, EventType
from gatherhub.models.notification import NotificationType
from gatherhub.models.registration import RegistrationStatus
from gatherhub.models.user import UserRole
from gatherhub.payments.base import PaymentGateway
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ServiceError,
    ValidationError,
)
from gatherhub.services.notification_service import notify
from gatherhub.services.registration_service import (
    ACTIVE_STATUSES,
    is_paid,
    lock_event,
    refund_registration,
    seats_held,
)
from gatherhub.worker.tasks import enqueue, send_event_cancellation_emails

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 20
REQUIRED_FIELDS = (
    "name",
    "description",
    "location",
    "type",
    "general_ticket_price",
    "vip_ticket_price",
    "max_attendees",
    "start_date",
    "end_date",
    "vip_perks",
)


def _is_admin(user: User | None) -> bool:
    return user is not None and user.role == UserRole.ADMIN


def _is_organizer(user: User) -> bool:
    return user.role in {UserRole.ORGANIZER, UserRole.ADMIN}


def _can_manage(user: User | None, event: Event) -> bool:
    return user is not None and (_is_admin(user) or event.organizer_id == user.id)


def _require_manage_permission(user: User, event: Event) -> None:
    if not _can_manage(user, event):
        raise PermissionDeniedError(
            ErrorCode.NOT_EVENT_ORGANIZER.value, "not organizer for this event"
        )


def _ensure_publishable(start_date: datetime) -> None:
    if as_utc(start_date) <= utcnow():
        raise ValidationError(
            ErrorCode.EVENT_INVALID.value, "start_date must be in the future to publish"
        )


def create_event(db: Session, organizer: User, payload: EventCreate) -> Event:
    if not _is_organizer(organizer):
        raise PermissionDeniedError(
            ErrorCode.ORGANIZER_ROLE_REQUIRED.value, "only organizers or admins can create events"
        )

    status = payload.status or EventStatus.DRAFT
    if status == EventStatus.CANCELLED:
        raise ValidationError(ErrorCode.EVENT_INVALID.value, "cannot create a cancelled event")
    if status == EventStatus.COMPLETED:
        raise ValidationError(ErrorCode.EVENT_INVALID.value, "cannot create a completed event")
    if status == EventStatus.PUBLISHED:
        _ensure_publishable(payload.start_date)

    event = Event(
        name=payload.name.strip(),
        description=payload.description,
        start_date=payload.start_date,
        end_date=payload.end_date,
        location=payload.location.strip(),
        type=payload.type,
        general_ticket_price=payload.general_ticket_price,
        vip_ticket_price=payload.vip_ticket_price,
        vip_perks=payload.vip_perks,
        max_attendees=payload.max_attendees,
        status=status,
        organizer_id=organizer.id,
    )
    db.add(event)
    db.commit()
    db.refresh(event)

    logger.info("event_created", event_id=str(event.id), status=event.status.value)
    return event


def get_event(db: Session, viewer: User | None, event_id: uuid.UUID) -> Event:
    event = db.get(Event, event_id)
    if event is None:
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    # Drafts are invisible to everyone but their organizer and admins
    if event.status == EventStatus.DRAFT and not _can_manage(viewer, event):
        raise NotFoundError(ErrorCode.EVENT_NOT_FOUND.value, "event not found")
    return event


def get_event_detail(db: Session, viewer: User | None, event_id: uuid.UUID) -> tuple[Event, int]:
    event = get_event(db, viewer, event_id)
    return event, seats_held(db, event.id)


def update_event(
    db: Session, user: User, event_id: uuid.UUID, patch: EventUpdate, gateway: PaymentGateway
) -> Event:
    event = lock_event(db, event_id)
    try:
        _require_manage_permission(user, event)

        patch_data = patch.model_dump(exclude_unset=True)
        new_status = patch_data.pop("status", None)
        for key in REQUIRED_FIELDS:
            if key in patch_data and patch_data[key] is None:
                raise ValidationError(ErrorCode.EVENT_INVALID.value, f"{key} cannot be null")

        if event.status in {EventStatus.CANCELLED, EventStatus.COMPLETED} and patch_data:
            raise ConflictError(
                ErrorCode.EVENT_CANCELLED.value
                if event.status == EventStatus.CANCELLED
                else ErrorCode.INVALID_STATUS_TRANSITION.value,
                f"cannot edit a {event.status.value} event",
            )

        new_start = patch_data.get("start_date", event.start_date)
        new_end = patch_data.get("end_date", event.end_date)
        if as_utc(new_end) <= as_utc(new_start):
            raise ValidationError(ErrorCode.EVENT_INVALID.value, "end_date must be after start_date")

        if "max_attendees" in patch_data:
            held = seats_held(db, event.id)
            if patch_data["max_attendees"] < held:
                raise ConflictError(
                    ErrorCode.CAPACITY_BELOW_HELD.value,
                    f"max_attendees cannot be below the {held} seats already held",
                )

        for key, value in patch_data.items():
            setattr(event, key, value)
        db.add(event)
    except ServiceError:
        db.rollback()
        raise

    if new_status is not None and new_status != event.status:
        # Status changes go through the same rules as the dedicated endpoints
        db.flush()
        return _apply_status(db, user, event, new_status, gateway)

    db.commit()
    db.refresh(event)
    logger.info("event_updated", event_id=str(event.id), fields=sorted(patch_data))
    return event


def _apply_status(
    db: Session, user: User, event: Event, status: EventStatus, gateway: PaymentGateway
) -> Event:
    if status == EventStatus.PUBLISHED:
        return _publish_locked(db, event)
    if status == EventStatus.CANCELLED:
        return _cancel_locked(db, user, event, gateway)
    if status == EventStatus.DRAFT:
        return _unpublish_locked(db, event)
    return _complete_locked(db, event)


def set_event_status(
    db: Session, user: User, event_id: uuid.UUID, status: EventStatus, gateway: PaymentGateway
) -> Event:
    event = lock_event(db, event_id)
    try:
        _require_manage_permission(user, event)
    except ServiceError:
        db.rollback()
        raise
    if event.status == status:
        db.rollback()
        return event
    return _apply_status(db, user, event, status, gateway)


def publish_event(db: Session, user: User, event_id: uuid.UUID) -> Event:
    event = lock_event(db, event_id)
    try:
        _require_manage_permission(user, event)
    except ServiceError:
        db.rollback()
        raise
    return _publish_locked(db, event)


def _publish_locked(db: Session, event: Event) -> Event:
    try:
        if event.status == EventStatus.CANCELLED:
            raise ConflictError(ErrorCode.EVENT_CANCELLED.value, "cannot publish a cancelled event")
        if event.status == EventStatus.COMPLETED:
            raise ConflictError(
                ErrorCode.INVALID_STATUS_TRANSITION.value, "cannot publish a completed event"
            )
        _ensure_publishable(event.start_date)
    except ServiceError:
        db.rollback()
        raise

    event.status = EventStatus.PUBLISHED
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("event_published", event_id=str(event.id))
    return event


def _unpublish_locked(db: Session, event: Event) -> Event:
    try:
        if event.status != EventStatus.PUBLISHED:
            raise ConflictError(
                ErrorCode.INVALID_STATUS_TRANSITION.value,
                f"cannot move a {event.status.value} event back to draft",
            )
        if seats_held(db, event.id) > 0:
            raise ConflictError(
                ErrorCode.EVENT_HAS_REGISTRATIONS.value,
                "event has registrations; cancel it instead",
            )
    except ServiceError:
        db.rollback()
        raise

    event.status = EventStatus.DRAFT
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("event_unpublished", event_id=str(event.id))
    return event


def _complete_locked(db: Session, event: Event) -> Event:
    try:
        if event.status != EventStatus.PUBLISHED:
            raise ConflictError(
                ErrorCode.INVALID_STATUS_TRANSITION.value,
                f"cannot complete a {event.status.value} event",
            )
        if as_utc(event.end_date) > utcnow():
            raise ConflictError(
                ErrorCode.INVALID_STATUS_TRANSITION.value, "event has not ended yet"
            )
    except ServiceError:
        db.rollback()
        raise

    event.status = EventStatus.COMPLETED
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("event_completed", event_id=str(event.id))
    return event


def cancel_event(db: Session, user: User, event_id: uuid.UUID, gateway: PaymentGateway) -> Event:
    event = lock_event(db, event_id)
    return _cancel_locked(db, user, event, gateway)


def _cancel_locked(db: Session, user: User, event: Event, gateway: PaymentGateway) -> Event:
    try:
        _require_manage_permission(user, event)
        if event.status == EventStatus.CANCELLED:
            raise ConflictError(ErrorCode.EVENT_CANCELLED.value, "event is already cancelled")
        if event.status == EventStatus.COMPLETED:
            raise ConflictError(
                ErrorCode.INVALID_STATUS_TRANSITION.value, "cannot cancel a completed event"
            )
    except ServiceError:
        db.rollback()
        raise

    now = utcnow()
    event.status = EventStatus.CANCELLED
    event.cancelled_at = now
    db.add(event)

    affected = db.scalars(
        select(Registration).where(
            Registration.event_id == event.id,
            Registration.status.in_(ACTIVE_STATUSES),
        )
    ).unique().all()

    refund_failures = 0
    for registration in affected:
        if registration.status == RegistrationStatus.CONFIRMED and is_paid(registration):
            try:
                refund_registration(db, registration, gateway)
                continue
            except ExternalServiceError:
                # Left cancelled with payment_status=completed so it shows up as owed
                refund_failures += 1
                logger.error("event_cancel_refund_failed", registration_id=str(registration.id))
        registration.status = RegistrationStatus.CANCELLED
        registration.cancelled_at = now
        db.add(registration)

    db.commit()
    db.refresh(event)

    logger.info(
        "event_cancelled",
        event_id=str(event.id),
        registrations=len(affected),
        refund_failures=refund_failures,
    )

    notify(
        db,
        [r.user_id for r in affected],
        title="Event cancelled",
        message=f'"{event.name}" has been cancelled by the organizer.',
        type=NotificationType.CANCELLATION,
        event_id=event.id,
    )
    if affected:
        enqueue(send_event_cancellation_emails, str(event.id), [str(r.id) for r in affected])
    return event


def delete_event(db: Session, user: User, event_id: uuid.UUID) -> None:
    event = lock_event(db, event_id)
    try:
        _require_manage_permission(user, event)
        registrations = db.scalar(
            select(func.count()).select_from(Registration).where(Registration.event_id == event.id)
        )
        if registrations:
            raise ConflictError(
                ErrorCode.EVENT_HAS_REGISTRATIONS.value,
                "event has registrations; cancel it instead",
            )
    except ServiceError:
        db.rollback()
        raise

    db.delete(event)
    db.commit()
    logger.info("event_deleted", event_id=str(event_id))


def list_events(
    db: Session,
    viewer: User | None,
    *,
    search: str | None = None,
    type: EventType | None = None,
    location: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    min_price: Decimal | None = None,
    max_price: Decimal | None = None,
    status: EventStatus | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[Event], int]:
    filters = []
    if status is not None and _is_admin(viewer):
        filters.append(Event.status == status)
    else:
        filters.append(Event.status == EventStatus.PUBLISHED)

    if search:
        like = f"%{search.strip()}%"
        filters.append(or_(Event.name.ilike(like), Event.description.ilike(like)))
    if type is not None:
        filters.append(Event.type == type)
    if location:
        filters.append(Event.location.ilike(f"%{location.strip()}%"))
    if start_date is not None:
        filters.append(Event.start_date >= as_utc(start_date).astimezone(timezone.utc))
    if end_date is not None:
        filters.append(Event.start_date <= as_utc(end_date).astimezone(timezone.utc))
    if min_price is not None:
        filters.append(Event.general_ticket_price >= min_price)
    if max_price is not None:
        filters.append(Event.general_ticket_price <= max_price)

    total = db.scalar(select(func.count()).select_from(Event).where(*filters)) or 0
    items = db.scalars(
        select(Event)
        .where(*filters)
        .order_by(Event.start_date.asc(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return list(items), int(total)


def upcoming_events(db: Session, limit: int = 5) -> list[Event]:
    stmt = (
        select(Event)
        .where(Event.status == EventStatus.PUBLISHED, Event.start_date > utcnow())
        .order_by(Event.start_date.asc())
        .limit(limit)
    )
    return list(db.scalars(stmt).all())


def featured_events(db: Session, limit: int = 3) -> list[tuple[Event, int]]:
    counts = (
        select(Registration.event_id, func.count().label("confirmed"))
        .where(Registration.status == RegistrationStatus.CONFIRMED)
        .group_by(Registration.event_id)
        .subquery()
    )
    confirmed = func.coalesce(counts.c.confirmed, 0)
    stmt = (
        select(Event, confirmed)
        .outerjoin(counts, counts.c.event_id == Event.id)
        .where(Event.status == EventStatus.PUBLISHED, Event.start_date > utcnow())
        .order_by(confirmed.desc(), Event.start_date.asc())
        .limit(limit)
    )
    return [(event, int(count)) for event, count in db.execute(stmt).all()]


def list_organizer_events(
    db: Session, user: User, status: EventStatus | None = None
) -> list[Event]:
    stmt = select(Event).order_by(Event.start_date.desc())
    if not _is_admin(user):
        stmt = stmt.where(Event.organizer_id == user.id)
    if status is not None:
        stmt = stmt.where(Event.status == status)
    return list(db.scalars(stmt).all())


def admin_list_events(
    db: Session, *, query: str | None = None, status: EventStatus | None = None, limit: int = 100
) -> list[Event]:
    stmt = select(Event).order_by(Event.created_at.desc()).limit(limit)
    if query:
        like = f"%{query.strip()}%"
        stmt = stmt.where(or_(Event.name.ilike(like), Event.location.ilike(like)))
    if status is not None:
        stmt = stmt.where(Event.status == status)
    return list(db.scalars(stmt).all())
