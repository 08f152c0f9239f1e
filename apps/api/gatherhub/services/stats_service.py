from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gatherhub.core.time import as_utc, utcnow
from gatherhub.models import Event, Registration, Ticket, User
from gatherhub.models.event import EventStatus
from gatherhub.models.registration import PaymentStatus, RegistrationStatus, TicketType
from gatherhub.models.user import UserRole

RECENT_REGISTRATIONS = 5
UPCOMING_EVENTS = 3


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal("0.01"))


def _grouped_counts(db: Session, column, *where) -> dict[str, int]:
    rows = db.execute(select(column, func.count()).where(*where).group_by(column)).all()
    return {key.value: int(count) for key, count in rows}


def organizer_stats(db: Session, user: User) -> dict[str, Any]:
    """Dashboard figures for the caller's events (every event for admins).

    Revenue only counts registrations whose payment completed and was not refunded.
    """
    scope = [] if user.role == UserRole.ADMIN else [Event.organizer_id == user.id]

    total_events = db.scalar(select(func.count()).select_from(Event).where(*scope)) or 0
    published_events = (
        db.scalar(
            select(func.count())
            .select_from(Event)
            .where(*scope, Event.status == EventStatus.PUBLISHED)
        )
        or 0
    )

    confirmed = db.scalars(
        select(Registration)
        .join(Event, Registration.event_id == Event.id)
        .where(*scope, Registration.status == RegistrationStatus.CONFIRMED)
        .order_by(Registration.confirmed_at.desc())
    ).unique().all()

    total_revenue = Decimal("0.00")
    monthly: dict[str, Decimal] = defaultdict(lambda: Decimal("0.00"))
    distribution = {TicketType.GENERAL: 0, TicketType.VIP: 0}
    for registration in confirmed:
        distribution[registration.ticket_type] += 1
        if registration.payment_status != PaymentStatus.COMPLETED:
            continue
        amount = _money(registration.total_amount)
        total_revenue += amount
        paid_at = as_utc(registration.confirmed_at or registration.created_at)
        monthly[paid_at.strftime("%Y-%m")] += amount

    recent = [
        {
            "id": r.id,
            "event_name": r.event.name,
            "ticket_type": r.ticket_type,
            "amount": _money(r.total_amount),
            "date": r.confirmed_at or r.created_at,
        }
        for r in confirmed[:RECENT_REGISTRATIONS]
    ]

    counts = (
        select(Registration.event_id, func.count().label("confirmed"))
        .where(Registration.status == RegistrationStatus.CONFIRMED)
        .group_by(Registration.event_id)
        .subquery()
    )
    registration_count = func.coalesce(counts.c.confirmed, 0)
    upcoming_rows = db.execute(
        select(Event.id, Event.name, Event.start_date, registration_count)
        .outerjoin(counts, counts.c.event_id == Event.id)
        .where(*scope, Event.status == EventStatus.PUBLISHED, Event.start_date > utcnow())
        .order_by(Event.start_date.asc())
        .limit(UPCOMING_EVENTS)
    ).all()

    return {
        "total_events": int(total_events),
        "published_events": int(published_events),
        "total_registrations": len(confirmed),
        "total_revenue": total_revenue,
        "recent_registrations": recent,
        "upcoming_events": [
            {"id": row[0], "name": row[1], "start_date": row[2], "registration_count": int(row[3])}
            for row in upcoming_rows
        ],
        "ticket_distribution": [
            {"ticket_type": ticket_type, "count": count} for ticket_type, count in distribution.items()
        ],
        "monthly_revenue": [
            {"month": month, "revenue": revenue} for month, revenue in sorted(monthly.items())
        ],
    }


def admin_stats(db: Session) -> dict[str, Any]:
    revenue = db.scalar(
        select(func.coalesce(func.sum(Registration.total_amount), 0)).where(
            Registration.status == RegistrationStatus.CONFIRMED,
            Registration.payment_status == PaymentStatus.COMPLETED,
        )
    )
    tickets_issued = db.scalar(select(func.count()).select_from(Ticket)) or 0
    tickets_checked_in = (
        db.scalar(select(func.count()).select_from(Ticket).where(Ticket.is_used.is_(True))) or 0
    )

    return {
        "users_by_role": _grouped_counts(db, User.role),
        "events_by_status": _grouped_counts(db, Event.status),
        "registrations_by_status": _grouped_counts(db, Registration.status),
        "total_revenue": _money(revenue),
        "tickets_issued": int(tickets_issued),
        "tickets_checked_in": int(tickets_checked_in),
    }
