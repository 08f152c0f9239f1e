from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from gatherhub.api.v1.schemas.events import EventOut, EventStatusUpdate
from gatherhub.api.v1.schemas.stats import AdminStatsOut
from gatherhub.api.v1.schemas.users import AdminUserUpdate, UserOut, UserSyncOut
from gatherhub.auth.deps import AdminUser, DBSession, require_role
from gatherhub.identity.base import IdentityProvider
from gatherhub.identity.factory import get_identity_provider
from gatherhub.models.event import EventStatus
from gatherhub.models.user import UserRole
from gatherhub.payments.base import PaymentGateway
from gatherhub.payments.factory import get_payment_gateway
from gatherhub.services import events_service, stats_service, user_service

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_role(UserRole.ADMIN))],
)

Identity = Annotated[IdentityProvider, Depends(get_identity_provider)]
Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]


@router.get("/stats", response_model=AdminStatsOut)
def admin_stats(db: DBSession):
    return stats_service.admin_stats(db)


@router.get("/users", response_model=list[UserOut])
def list_users(
    db: DBSession,
    query: str | None = Query(default=None, min_length=1),
    role: UserRole | None = None,
    limit: int = Query(default=50, ge=1, le=200),
):
    return user_service.list_users(db, query=query, role=role, limit=limit)


@router.post("/users/sync", response_model=UserSyncOut)
def sync_users(db: DBSession, identity: Identity, page_size: int = Query(default=100, ge=1, le=500)):
    return user_service.sync_all_identity_users(db, identity, page_size=page_size)


@router.patch("/users/{user_id}", response_model=UserOut)
def update_user(
    user_id: str, payload: AdminUserUpdate, db: DBSession, admin: AdminUser, identity: Identity
):
    return user_service.admin_update_user(db, admin, user_id, payload.role, identity)


@router.get("/events", response_model=list[EventOut])
def list_events(
    db: DBSession,
    query: str | None = Query(default=None, min_length=1),
    status: EventStatus | None = None,
    limit: int = Query(default=100, ge=1, le=500),
):
    return events_service.admin_list_events(db, query=query, status=status, limit=limit)


@router.patch("/events/{event_id}/status", response_model=EventOut)
def set_event_status(
    event_id: UUID, payload: EventStatusUpdate, db: DBSession, admin: AdminUser, gateway: Gateway
):
    return events_service.set_event_status(db, admin, event_id, payload.status, gateway)
