from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class LineItem:
    name: str
    unit_amount: int  # minor units (cents)
    currency: str
    description: str | None = None
    quantity: int = 1


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    url: str | None = None
    status: str | None = None
    payment_status: str | None = None
    payment_intent_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid" and self.status == "complete"


@dataclass(frozen=True)
class PaymentEvent:
    type: str
    session: CheckoutSession | None = None
    payment_intent_id: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
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
        """Create a hosted checkout session and return its id and redirect URL."""

    @abstractmethod
    def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        """Fetch the current state of a checkout session."""

    @abstractmethod
    def expire_checkout_session(self, session_id: str) -> CheckoutSession | None:
        """Close an open checkout session so it can no longer be paid.

        Returns None when the session was no longer open.
        """

    @abstractmethod
    def refund(self, payment_intent_id: str, *, idempotency_key: str | None = None) -> str:
        """Refund a captured payment in full and return the refund id."""

    @abstractmethod
    def construct_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        """Verify a webhook delivery and decode it."""
