from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from gatherhub.api.v1.schemas.notifications import MarkedReadOut, NotificationListOut, NotificationOut
from gatherhub.api.v1.schemas.registrations import RegistrationDetailOut
from gatherhub.api.v1.schemas.users import BecomeOrganizerIn, SetRoleIn, UserOut
from gatherhub.auth.deps import CurrentUser, DBSession
from gatherhub.identity.base import IdentityProvider
from gatherhub.identity.factory import get_identity_provider
from gatherhub.services import notification_service, registration_service, user_service

router = APIRouter(prefix="/me", tags=["me"])

Identity = Annotated[IdentityProvider, Depends(get_identity_provider)]


@router.get("", response_model=UserOut)
def me(user: CurrentUser):
    return user


@router.post("/become-organizer", response_model=UserOut)
def become_organizer(payload: BecomeOrganizerIn, db: DBSession, user: CurrentUser, identity: Identity):
    return user_service.become_organizer(
        db,
        user,
        organizer_name=payload.organizer_name,
        phone_number=payload.phone_number,
        organization_name=payload.organization_name,
        identity=identity,
    )


@router.post("/role", response_model=UserOut)
def set_role(payload: SetRoleIn, db: DBSession, user: CurrentUser, identity: Identity):
    return user_service.set_role(db, user, payload.role, payload.onboarding_complete, identity)


@router.get("/registrations", response_model=list[RegistrationDetailOut])
def my_registrations(db: DBSession, user: CurrentUser):
    return registration_service.list_user_registrations(db, user)


@router.get("/notifications", response_model=NotificationListOut)
def my_notifications(
    db: DBSession,
    user: CurrentUser,
    unread_only: bool = False,
    limit: int = Query(default=50, ge=1, le=200),
):
    items, unread = notification_service.list_notifications(
        db, user, unread_only=unread_only, limit=limit
    )
    return NotificationListOut(items=[NotificationOut.model_validate(n) for n in items], unread=unread)


@router.post("/notifications/read-all", response_model=MarkedReadOut)
def mark_all_notifications_read(db: DBSession, user: CurrentUser):
    return MarkedReadOut(updated=notification_service.mark_all_read(db, user))


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(notification_id: UUID, db: DBSession, user: CurrentUser):
    return notification_service.mark_read(db, user, notification_id)
