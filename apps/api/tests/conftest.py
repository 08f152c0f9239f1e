from __future__ import annotations

import base64
import os
import tempfile
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Any

import pytest
from fastapi.testclient import TestClient

# Ensure auth mode + secrets are set before app import
_DB_DIR = tempfile.mkdtemp(prefix="gatherhub-tests-")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("AUTH_MODE", "jwt")
os.environ.setdefault("AUTH_JWT_SECRET", "test_session_secret_32_chars_minimum")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")
os.environ.setdefault("EMAIL_BACKEND", "console")
os.environ.setdefault("IDENTITY_BACKEND", "local")
os.environ.setdefault(
    "IDENTITY_WEBHOOK_SECRET", "whsec_" + base64.b64encode(b"test-identity-webhook-key").decode()
)
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_stripe")
os.environ.setdefault("TICKET_SIGNING_SECRET", "test_ticket_signing_secret")

from gatherhub.db import SessionLocal, engine  # noqa: E402
from gatherhub.identity.base import IdentityProvider  # noqa: E402
from gatherhub.identity.factory import get_identity_provider  # noqa: E402
from gatherhub.mailer.factory import get_email_sender  # noqa: E402
from gatherhub.main import app  # noqa: E402
from gatherhub.models import Base  # noqa: E402
from gatherhub.payments.base import (  # noqa: E402
    CheckoutSession,
    LineItem,
    PaymentEvent,
    PaymentGateway,
)
from gatherhub.payments.factory import get_payment_gateway  # noqa: E402
from gatherhub.services.error_codes import ErrorCode  # noqa: E402
from gatherhub.services.exceptions import BadRequestError  # noqa: E402
from tests.utils import VALID_STRIPE_SIGNATURE  # noqa: E402

Base.metadata.create_all(engine)


class FakePaymentGateway(PaymentGateway):
    """In-memory stand-in for the Stripe gateway."""

    def __init__(self) -> None:
        self.sessions: dict[str, CheckoutSession] = {}
        self.line_items: dict[str, LineItem] = {}
        self.refunds: list[str] = []
        self.expired: list[str] = []
        self.expires_at: dict[str, datetime | None] = {}
        self.next_event: PaymentEvent | None = None

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
        session_id = f"cs_test_{uuid.uuid4().hex[:12]}"
        session = CheckoutSession(
            id=session_id,
            url=f"https://checkout.example.test/{session_id}",
            status="open",
            payment_status="unpaid",
            metadata=dict(metadata),
        )
        self.sessions[session_id] = session
        self.line_items[session_id] = line_item
        self.expires_at[session_id] = expires_at
        return session

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise BadRequestError(ErrorCode.PAYMENT_NOT_COMPLETED.value, "no such checkout session")
        return session

    def expire_checkout_session(self, session_id: str) -> CheckoutSession | None:
        session = self.sessions.get(session_id)
        if session is None or session.status != "open":
            return None
        expired = replace(session, status="expired")
        self.sessions[session_id] = expired
        self.expired.append(session_id)
        return expired

    def refund(self, payment_intent_id: str, *, idempotency_key: str | None = None) -> str:
        self.refunds.append(payment_intent_id)
        return f"re_{len(self.refunds)}"

    def construct_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        if signature != VALID_STRIPE_SIGNATURE:
            raise BadRequestError(ErrorCode.WEBHOOK_SIGNATURE_INVALID.value, "invalid stripe webhook")
        assert self.next_event is not None
        return self.next_event

    def mark_paid(self, session_id: str, payment_intent_id: str | None = None) -> CheckoutSession:
        paid = replace(
            self.sessions[session_id],
            status="complete",
            payment_status="paid",
            payment_intent_id=payment_intent_id or f"pi_{session_id}",
        )
        self.sessions[session_id] = paid
        return paid


class FakeIdentityProvider(IdentityProvider):
    def __init__(self) -> None:
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.users: list[Any] = []
        self.pages: list[tuple[int, int]] = []

    def update_public_metadata(self, user_id: str, metadata: dict[str, Any]) -> None:
        self.updates.append((user_id, dict(metadata)))

    def list_users(self, *, limit: int, offset: int) -> list[dict[str, Any]]:
        self.pages.append((limit, offset))
        return self.users[offset : offset + limit]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


@pytest.fixture
def db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def clean_db():
    # Ensure a clean slate for each test
    db = SessionLocal()
    try:
        for table in reversed(Base.metadata.sorted_tables):
            db.execute(table.delete())
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture(autouse=True)
def payment_gateway():
    gateway = FakePaymentGateway()
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield gateway
    app.dependency_overrides.pop(get_payment_gateway, None)


@pytest.fixture(autouse=True)
def identity_provider():
    provider = FakeIdentityProvider()
    app.dependency_overrides[get_identity_provider] = lambda: provider
    yield provider
    app.dependency_overrides.pop(get_identity_provider, None)


@pytest.fixture(autouse=True)
def outbox():
    sender = get_email_sender()
    sender.outbox.clear()
    yield sender.outbox
    sender.outbox.clear()
