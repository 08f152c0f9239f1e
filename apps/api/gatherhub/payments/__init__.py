from gatherhub.payments.base import CheckoutSession, LineItem, PaymentEvent, PaymentGateway
from gatherhub.payments.stripe_gateway import StripePaymentGateway

__all__ = [
    "CheckoutSession",
    "LineItem",
    "PaymentEvent",
    "PaymentGateway",
    "StripePaymentGateway",
]
