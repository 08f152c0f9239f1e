from __future__ import annotations

from functools import lru_cache

from gatherhub.core.config import settings
from gatherhub.payments.base import PaymentGateway
from gatherhub.payments.stripe_gateway import StripePaymentGateway


@lru_cache(maxsize=1)
def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway(settings.stripe_secret_key, settings.stripe_webhook_secret)
