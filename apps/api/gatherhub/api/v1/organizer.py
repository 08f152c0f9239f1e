from __future__ import annotations

from fastapi import APIRouter, Query

from gatherhub.api.v1.events import attendee_out
from gatherhub.api.v1.schemas.events import EventOut
from gatherhub.api.v1.schemas.registrations import AttendeeOut
from gatherhub.api.v1.schemas.stats import OrganizerStatsOut
from gatherhub.auth.deps import DBSession, OrganizerUser
from gatherhub.models.event import EventStatus
from gatherhub.models.registration import RegistrationStatus
from gatherhub.services import events_service, registration_service, stats_service

router = APIRouter(prefix="/organizer", tags=["organizer"])


@router.get("/events", response_model=list[EventOut])
def organizer_events(db: DBSession, organizer: OrganizerUser, status: EventStatus | None = None):
    return events_service.list_organizer_events(db, organizer, status)


@router.get("/stats", response_model=OrganizerStatsOut)
def organizer_stats(db: DBSession, organizer: OrganizerUser):
    return stats_service.organizer_stats(db, organizer)


@router.get("/attendees", response_model=list[AttendeeOut])
def organizer_attendees(
    db: DBSession,
    organizer: OrganizerUser,
    status: RegistrationStatus | None = None,
    limit: int = Query(default=200, ge=1, le=1000),
):
    registrations = registration_service.list_organizer_attendees(db, organizer, status, limit)
    return [attendee_out(r) for r in registrations]
