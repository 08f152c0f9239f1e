"""Periodic housekeeping run by the worker's beat schedule."""

from __future__ import annotations

from datetime import timedelta

import structlog
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from gatherhub.core.config import settings
from gatherhub.core.time import utcnow
from gatherhub.models import Event, Registration
from gatherhub.models.event import EventStatus
from gatherhub.models.notification import NotificationType
from gatherhub.models.registration import RegistrationStatus
from gatherhub.services.notification_service import notify

logger = structlog.get_logger()


def send_event_reminders(db: Session) -> int:
    """Remind confirmed attendees of published events starting within the lead window.

    Each registration is reminded at most once.
    """
    now = utcnow()
    horizon = now + timedelta(hours=settings.reminder_lead_hours)

    due = db.scalars(
        select(Registration)
        .join(Event, Registration.event_id == Event.id)
        .where(
            Event.status == EventStatus.PUBLISHED,
            Event.start_date > now,
            Event.start_date <= horizon,
            Registration.status == RegistrationStatus.CONFIRMED,
            Registration.reminder_sent_at.is_(None),
        )
    ).unique().all()

    sent = 0
    for registration in due:
        # Claim the reminder first so a concurrent run skips it
        claimed = db.execute(
            update(Registration)
            .where(Registration.id == registration.id, Registration.reminder_sent_at.is_(None))
            .values(reminder_sent_at=now)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        if claimed.rowcount != 1:
            continue

        event = registration.event
        sent += notify(
            db,
            [registration.user_id],
            title="Event reminder",
            message=f'"{event.name}" starts soon at {event.location}.',
            type=NotificationType.REMINDER,
            event_id=event.id,
        )

    logger.info("event_reminders_sent", count=sent)
    return sent


def complete_past_events(db: Session) -> int:
    result = db.execute(
        update(Event)
        .where(Event.status == EventStatus.PUBLISHED, Event.end_date <= utcnow())
        .values(status=EventStatus.COMPLETED, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    completed = result.rowcount or 0
    logger.info("past_events_completed", count=completed)
    return completed
