from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import stripe
import structlog

from gatherhub.payments.base import CheckoutSession, LineItem, PaymentEvent, PaymentGateway
from gatherhub.services.error_codes import ErrorCode
from gatherhub.services.exceptions import BadRequestError, ExternalServiceError

logger = structlog.get_logger()

# Stripe only accepts checkout expiries between 30 minutes and 24 hours out
MIN_SESSION_LIFETIME = timedelta(minutes=30, seconds=30)
MAX_SESSION_LIFETIME = timedelta(hours=24)

CHECKOUT_SESSION_EVENTS = {
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
    "checkout.session.async_payment_failed",
    "checkout.session.expired",
}


def _payment_intent_id(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


def _to_session(obj: Any) -> CheckoutSession:
    metadata = obj.get("metadata") or {}
    return CheckoutSession(
        id=obj["id"],
        url=obj.get("url"),
        status=obj.get("status"),
        payment_status=obj.get("payment_status"),
        payment_intent_id=_payment_intent_id(obj.get("payment_intent")),
        metadata={str(k): str(v) for k, v in metadata.items()},
    )


class StripePaymentGateway(PaymentGateway):
    def __init__(self, api_key: str | None, webhook_secret: str | None) -> None:
        self._api_key = api_key
        self._webhook_secret = webhook_secret

    def _require_key(self) -> str:
        if not self._api_key:
            raise ExternalServiceError(
                ErrorCode.PAYMENT_PROVIDER_ERROR.value, "payment processor is not configured"
            )
        return self._api_key

    def create_checkout_session(
        self,
        *,
        line_item: LineItem,
        customer_email: str | None,
        metadata: dict[str, str],
        success_url: str,
        cancel_url: str,
        idempotency_key: str | None = None,
        expires_at: datetime | None = None,
    ) -> CheckoutSession:
        product_data: dict[str, Any] = {"name": line_item.name}
        if line_item.description:
            product_data["description"] = line_item.description

        params: dict[str, Any] = {
            "mode": "payment",
            "line_items": [
                {
                    "price_data": {
                        "currency": line_item.currency,
                        "unit_amount": line_item.unit_amount,
                        "product_data": product_data,
                    },
                    "quantity": line_item.quantity,
                }
            ],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            params["customer_email"] = customer_email
        if expires_at is not None:
            now = datetime.now(timezone.utc)
            bounded = min(max(expires_at, now + MIN_SESSION_LIFETIME), now + MAX_SESSION_LIFETIME)
            params["expires_at"] = int(bounded.timestamp())

        try:
            session = stripe.checkout.Session.create(
                api_key=self._require_key(),
                idempotency_key=idempotency_key,
                **params,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_create_failed", error=str(exc))
            raise ExternalServiceError(
                ErrorCode.PAYMENT_PROVIDER_ERROR.value, "failed to create checkout session"
            ) from exc

        return _to_session(session)

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self._require_key())
        except stripe.InvalidRequestError as exc:
            raise BadRequestError(
                ErrorCode.PAYMENT_NOT_COMPLETED.value, "unknown checkout session"
            ) from exc
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_retrieve_failed", session_id=session_id, error=str(exc))
            raise ExternalServiceError(
                ErrorCode.PAYMENT_PROVIDER_ERROR.value, "failed to verify payment session"
            ) from exc
        return _to_session(session)

    def expire_checkout_session(self, session_id: str) -> CheckoutSession | None:
        try:
            session = stripe.checkout.Session.expire(session_id, api_key=self._require_key())
        except stripe.InvalidRequestError as exc:
            # Already completed or expired
            logger.warning("stripe_checkout_expire_skipped", session_id=session_id, error=str(exc))
            return None
        except stripe.StripeError as exc:
            logger.error("stripe_checkout_expire_failed", session_id=session_id, error=str(exc))
            raise ExternalServiceError(
                ErrorCode.PAYMENT_PROVIDER_ERROR.value, "failed to close checkout session"
            ) from exc
        return _to_session(session)

    def refund(self, payment_intent_id: str, *, idempotency_key: str | None = None) -> str:
        try:
            refund = stripe.Refund.create(
                api_key=self._require_key(),
                payment_intent=payment_intent_id,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            logger.error("stripe_refund_failed", payment_intent_id=payment_intent_id, error=str(exc))
            raise ExternalServiceError(ErrorCode.REFUND_FAILED.value, "refund failed") from exc
        return refund["id"]

    def construct_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        if not self._webhook_secret:
            raise ExternalServiceError(
                ErrorCode.WEBHOOK_NOT_CONFIGURED.value, "stripe webhook secret is not configured"
            )
        if not signature:
            raise BadRequestError(
                ErrorCode.WEBHOOK_SIGNATURE_INVALID.value, "missing stripe-signature header"
            )

        try:
            event = stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as exc:
            raise BadRequestError(
                ErrorCode.WEBHOOK_SIGNATURE_INVALID.value, "invalid stripe webhook"
            ) from exc

        event_type = event["type"]
        obj = event["data"]["object"]
        if event_type in CHECKOUT_SESSION_EVENTS:
            return PaymentEvent(type=event_type, session=_to_session(obj))
        if event_type.startswith("charge."):
            return PaymentEvent(type=event_type, payment_intent_id=_payment_intent_id(obj.get("payment_intent")))
        return PaymentEvent(type=event_type)
