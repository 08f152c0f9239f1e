from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Request
from svix.webhooks import Webhook, WebhookVerificationError

from gatherhub.auth.deps import DBSession
from gatherhub.core.config import settings
from gatherhub.payments.base import PaymentGateway
from gatherhub.payments.factory import get_payment_gateway
from gatherhub.services import registration_service, user_service
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import BadRequestError, ExternalServiceError

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]


@router.post("/identity")
async def identity_webhook(request: Request, db: DBSession):
    if not settings.identity_webhook_secret:
        raise ExternalServiceError(
            ErrorCode.WEBHOOK_NOT_CONFIGURED.value, "identity webhook secret is not configured"
        )

    payload = await request.body()
    try:
        body = Webhook(settings.identity_webhook_secret).verify(payload, dict(request.headers))
    except WebhookVerificationError as exc:
        logger.warning("identity_webhook_rejected", reason=str(exc))
        raise BadRequestError(ErrorCode.WEBHOOK_SIGNATURE_INVALID.value, str(exc)) from None
    except ValueError:
        # Signed correctly but not JSON
        raise BadRequestError(ErrorCode.WEBHOOK_PAYLOAD_INVALID.value, "webhook body is not JSON") from None

    if not isinstance(body, dict):
        raise BadRequestError(ErrorCode.WEBHOOK_PAYLOAD_INVALID.value, "webhook body is not an object")
    event_type = body.get("type")
    data = body.get("data")
    if not isinstance(data, dict):
        raise BadRequestError(ErrorCode.WEBHOOK_PAYLOAD_INVALID.value, "webhook payload has no data")

    if event_type in {"user.created", "user.updated"}:
        user = user_service.sync_identity_user(db, data)
        return {"received": True, "type": event_type, "user_id": user.id}

    if event_type == "user.deleted":
        user_id = data.get("id")
        if not isinstance(user_id, str) or not user_id:
            raise BadRequestError(ErrorCode.WEBHOOK_PAYLOAD_INVALID.value, "webhook payload has no user id")
        deleted = user_service.delete_identity_user(db, user_id)
        return {"received": True, "type": event_type, "deleted": deleted}

    logger.info("identity_webhook_ignored", type=event_type)
    return {"received": True, "type": event_type}


@router.post("/stripe")
async def stripe_webhook(request: Request, db: DBSession, gateway: Gateway):
    payload = await request.body()
    event = gateway.construct_event(payload, request.headers.get("stripe-signature"))

    outcome = registration_service.handle_payment_event(db, event, gateway)
    logger.info("payment_webhook_processed", type=event.type, outcome=outcome)
    return {"received": True, "type": event.type, "outcome": outcome}
