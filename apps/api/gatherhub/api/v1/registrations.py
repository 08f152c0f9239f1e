from __future__ import annotations

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from gatherhub.api.v1.schemas.registrations import (
    RegistrationCreate,
    RegistrationDetailOut,
    RegistrationOut,
    RegistrationStatusUpdate,
    VerifyPaymentIn,
    VerifyPaymentOut,
)
from gatherhub.auth.deps import CurrentUser, DBSession, OrganizerUser
from gatherhub.payments.base import PaymentGateway
from gatherhub.payments.factory import get_payment_gateway
from gatherhub.services import registration_service

router = APIRouter(prefix="/registrations", tags=["registrations"])

Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]


@router.post("", response_model=RegistrationOut, status_code=status.HTTP_201_CREATED)
def create_registration(payload: RegistrationCreate, db: DBSession, user: CurrentUser):
    return registration_service.create_registration(db, user, payload)


@router.post("/verify-payment", response_model=VerifyPaymentOut)
def verify_payment(payload: VerifyPaymentIn, db: DBSession, user: CurrentUser, gateway: Gateway):
    registration, already_confirmed = registration_service.verify_payment_session(
        db, user, payload.session_id, gateway
    )
    message = "Registration already confirmed" if already_confirmed else "Payment verified and registration confirmed"
    return VerifyPaymentOut(success=True, message=message, registration_id=registration.id)


@router.get("/{registration_id}", response_model=RegistrationDetailOut)
def get_registration(registration_id: UUID, db: DBSession, user: CurrentUser):
    return registration_service.get_registration(db, user, registration_id)


@router.post("/{registration_id}/cancel", response_model=RegistrationOut)
def cancel_registration(registration_id: UUID, db: DBSession, user: CurrentUser, gateway: Gateway):
    return registration_service.cancel_registration(db, user, registration_id, gateway)


@router.patch("/{registration_id}/status", response_model=RegistrationOut)
def update_registration_status(
    registration_id: UUID,
    payload: RegistrationStatusUpdate,
    db: DBSession,
    organizer: OrganizerUser,
    gateway: Gateway,
):
    return registration_service.update_registration_status(
        db, organizer, registration_id, payload.status, gateway
    )
