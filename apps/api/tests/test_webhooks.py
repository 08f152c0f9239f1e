from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

from fastapi.testclient import TestClient
from svix.webhooks import Webhook

from gatherhub.core.config import settings
from gatherhub.models import User
from gatherhub.models.user import UserRole
from gatherhub.payments.base import PaymentEvent
from tests.utils import VALID_STRIPE_SIGNATURE, auth_headers, create_event, create_published_event, make_token

ORGANIZER = make_token("user_org", role="organizer")


def _identity_headers(body: bytes, msg_id: str = "msg_1", sent_at: datetime | None = None) -> dict[str, str]:
    sent_at = sent_at or datetime.now(timezone.utc)
    signature = Webhook(settings.identity_webhook_secret).sign(msg_id, sent_at, body.decode("utf-8"))
    return {
        "svix-id": msg_id,
        "svix-timestamp": str(int(sent_at.timestamp())),
        "svix-signature": signature,
        "Content-Type": "application/json",
    }


def _send_identity(client: TestClient, payload: dict, **header_kwargs):
    body = json.dumps(payload).encode("utf-8")
    return client.post("/v1/webhooks/identity", content=body, headers=_identity_headers(body, **header_kwargs))


def _user_payload(user_id: str = "user_hook", **overrides) -> dict:
    data = {
        "id": user_id,
        "first_name": "Hana",
        "last_name": "Hook",
        "primary_email_address_id": "idn_2",
        "email_addresses": [
            {"id": "idn_1", "email_address": "old@example.com"},
            {"id": "idn_2", "email_address": "hana@example.com"},
        ],
        "image_url": "https://img.example.test/hana.png",
        "public_metadata": {"role": "organizer", "onboardingComplete": True},
    }
    data.update(overrides)
    return data


def test_identity_user_created_builds_mirror(client: TestClient, db_session):
    resp = _send_identity(client, {"type": "user.created", "data": _user_payload()})
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "type": "user.created", "user_id": "user_hook"}

    user = db_session.get(User, "user_hook")
    assert user is not None
    assert user.email == "hana@example.com"
    assert user.name == "Hana Hook"
    assert user.role == UserRole.ORGANIZER
    assert user.onboarding_complete is True
    assert user.became_organizer_at is not None


def test_identity_user_updated_refreshes_profile(client: TestClient):
    _send_identity(client, {"type": "user.created", "data": _user_payload(public_metadata={})})

    resp = _send_identity(
        client,
        {"type": "user.updated", "data": _user_payload(first_name="Hannah", public_metadata={})},
        msg_id="msg_2",
    )
    assert resp.status_code == 200

    me = client.get("/v1/me", headers=auth_headers(make_token("user_hook"))).json()
    assert me["name"] == "Hannah Hook"
    assert me["role"] == "user"


def test_identity_user_deleted(client: TestClient, db_session):
    _send_identity(client, {"type": "user.created", "data": _user_payload()})

    resp = _send_identity(client, {"type": "user.deleted", "data": {"id": "user_hook"}}, msg_id="msg_3")
    assert resp.status_code == 200
    assert resp.json()["deleted"] is True
    assert db_session.get(User, "user_hook") is None

    again = _send_identity(client, {"type": "user.deleted", "data": {"id": "user_hook"}}, msg_id="msg_4")
    assert again.json()["deleted"] is False


def test_identity_user_deleted_refused_while_owning_events(client: TestClient):
    token = make_token("user_host", role="organizer")
    assert create_event(client, token).status_code == 201

    resp = _send_identity(client, {"type": "user.deleted", "data": {"id": "user_host"}})
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "USER_OWNS_EVENTS"


def test_identity_webhook_rejects_bad_signatures(client: TestClient):
    body = json.dumps({"type": "user.created", "data": _user_payload()}).encode("utf-8")

    headers = _identity_headers(body)
    headers["svix-signature"] = "v1,AAAA"
    resp = client.post("/v1/webhooks/identity", content=body, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "WEBHOOK_SIGNATURE_INVALID"

    missing = client.post("/v1/webhooks/identity", content=body)
    assert missing.status_code == 400

    stale = _send_identity(
        client,
        {"type": "user.created", "data": _user_payload()},
        sent_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )
    assert stale.status_code == 400


def test_identity_webhook_ignores_unknown_types(client: TestClient):
    resp = _send_identity(client, {"type": "session.created", "data": {"id": "sess_1"}})
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "type": "session.created"}

    no_data = _send_identity(client, {"type": "user.created"})
    assert no_data.status_code == 400
    assert no_data.json()["detail"]["code"] == "WEBHOOK_PAYLOAD_INVALID"

    listing = _send_identity(client, [{"type": "user.created"}])
    assert listing.status_code == 400
    assert listing.json()["detail"]["code"] == "WEBHOOK_PAYLOAD_INVALID"


def test_identity_webhook_rejects_signed_non_json(client: TestClient):
    body = b"not json"
    resp = client.post("/v1/webhooks/identity", content=body, headers=_identity_headers(body))
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "WEBHOOK_PAYLOAD_INVALID"


def _send_stripe(client: TestClient, signature: str = VALID_STRIPE_SIGNATURE):
    return client.post("/v1/webhooks/stripe", content=b"{}", headers={"stripe-signature": signature})


def _start_checkout(client: TestClient, token: str) -> dict:
    event_id = create_published_event(client, ORGANIZER)
    resp = client.post(
        f"/v1/events/{event_id}/checkout", json={"ticket_type": "general"}, headers=auth_headers(token)
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_stripe_checkout_completed_confirms_once(client: TestClient, payment_gateway, outbox):
    token = make_token("user_buyer")
    checkout = _start_checkout(client, token)
    paid = payment_gateway.mark_paid(checkout["session_id"])
    payment_gateway.next_event = PaymentEvent(type="checkout.session.completed", session=paid)

    resp = _send_stripe(client)
    assert resp.status_code == 200
    assert resp.json() == {"received": True, "type": "checkout.session.completed", "outcome": "confirmed"}

    replay = _send_stripe(client)
    assert replay.json()["outcome"] == "already_confirmed"

    tickets = client.get("/v1/tickets", headers=auth_headers(token)).json()
    assert len(tickets) == 1
    assert len(outbox) == 1

    verified = client.post(
        "/v1/registrations/verify-payment",
        json={"session_id": checkout["session_id"]},
        headers=auth_headers(token),
    )
    assert verified.json()["message"] == "Registration already confirmed"


def test_stripe_unpaid_completion_is_ignored(client: TestClient, payment_gateway):
    checkout = _start_checkout(client, make_token("user_buyer"))
    session = payment_gateway.sessions[checkout["session_id"]]
    payment_gateway.next_event = PaymentEvent(type="checkout.session.completed", session=session)

    assert _send_stripe(client).json()["outcome"] == "ignored_unpaid"


def test_stripe_expired_session_releases_seat(client: TestClient, payment_gateway):
    token = make_token("user_buyer")
    checkout = _start_checkout(client, token)
    session = payment_gateway.sessions[checkout["session_id"]]
    payment_gateway.next_event = PaymentEvent(type="checkout.session.expired", session=session)

    resp = _send_stripe(client)
    assert resp.json()["outcome"] == "cancelled"

    detail = client.get(f"/v1/registrations/{checkout['registration_id']}", headers=auth_headers(token)).json()
    assert detail["status"] == "cancelled"
    assert detail["payment_status"] == "failed"


def test_stripe_charge_refunded_marks_registration(client: TestClient, payment_gateway):
    token = make_token("user_buyer")
    checkout = _start_checkout(client, token)
    paid = payment_gateway.mark_paid(checkout["session_id"], payment_intent_id="pi_refund_me")
    payment_gateway.next_event = PaymentEvent(type="checkout.session.completed", session=paid)
    assert _send_stripe(client).json()["outcome"] == "confirmed"

    payment_gateway.next_event = PaymentEvent(type="charge.refunded", payment_intent_id="pi_refund_me")
    assert _send_stripe(client).json()["outcome"] == "refunded"

    detail = client.get(f"/v1/registrations/{checkout['registration_id']}", headers=auth_headers(token)).json()
    assert detail["status"] == "refunded"
    assert detail["payment_status"] == "refunded"

    assert _send_stripe(client).json()["outcome"] == "ignored"


def test_stripe_webhook_rejects_invalid_signature(client: TestClient):
    resp = _send_stripe(client, signature="t=1,v1=forged")
    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "WEBHOOK_SIGNATURE_INVALID"


def test_stripe_second_paid_session_is_refunded(client: TestClient, payment_gateway):
    token = make_token("user_buyer")
    checkout = _start_checkout(client, token)
    event_id = client.get(
        f"/v1/registrations/{checkout['registration_id']}", headers=auth_headers(token)
    ).json()["event_id"]
    stale_session = payment_gateway.sessions[checkout["session_id"]]

    again = client.post(
        f"/v1/events/{event_id}/checkout", json={"ticket_type": "general"}, headers=auth_headers(token)
    ).json()
    paid = payment_gateway.mark_paid(again["session_id"], payment_intent_id="pi_kept")
    payment_gateway.next_event = PaymentEvent(type="checkout.session.completed", session=paid)
    assert _send_stripe(client).json()["outcome"] == "confirmed"

    # The closed session's expiry no longer belongs to the registration
    payment_gateway.next_event = PaymentEvent(type="checkout.session.expired", session=stale_session)
    assert _send_stripe(client).json()["outcome"] == "ignored"

    double = payment_gateway.mark_paid(checkout["session_id"], payment_intent_id="pi_double")
    payment_gateway.next_event = PaymentEvent(type="checkout.session.completed", session=double)
    assert _send_stripe(client).json()["outcome"] == "refunded_duplicate_payment"
    assert payment_gateway.refunds == ["pi_double"]

    detail = client.get(f"/v1/registrations/{checkout['registration_id']}", headers=auth_headers(token)).json()
    assert detail["status"] == "confirmed"
    assert detail["payment_status"] == "completed"


def test_stripe_expiry_of_replaced_session_keeps_hold(client: TestClient, payment_gateway):
    token = make_token("user_buyer")
    checkout = _start_checkout(client, token)
    event_id = client.get(
        f"/v1/registrations/{checkout['registration_id']}", headers=auth_headers(token)
    ).json()["event_id"]
    stale_session = payment_gateway.sessions[checkout["session_id"]]

    again = client.post(
        f"/v1/events/{event_id}/checkout", json={"ticket_type": "general"}, headers=auth_headers(token)
    ).json()
    assert again["session_id"] != checkout["session_id"]

    payment_gateway.next_event = PaymentEvent(type="checkout.session.expired", session=stale_session)
    assert _send_stripe(client).json()["outcome"] == "ignored_stale_session"

    detail = client.get(f"/v1/registrations/{checkout['registration_id']}", headers=auth_headers(token)).json()
    assert detail["status"] == "pending"
