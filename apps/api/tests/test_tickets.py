from __future__ import annotations

import uuid

from fastapi.testclient import TestClient

from gatherhub.services.ticket_service import parse_check_in_code, qr_payload
from tests.utils import auth_headers, create_published_event, make_token

ORGANIZER = make_token("user_org", role="organizer")


def _free_ticket(client: TestClient, token: str, **event_overrides) -> tuple[str, dict]:
    event_id = create_published_event(client, ORGANIZER, general_ticket_price="0", **event_overrides)
    resp = client.post(
        "/v1/registrations",
        json={"event_id": event_id, "ticket_type": "general"},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, resp.text
    [ticket] = client.get("/v1/tickets", headers=auth_headers(token)).json()
    return event_id, ticket


def _check_in(client: TestClient, token: str, code: str):
    return client.post("/v1/tickets/check-in", json={"code": code}, headers=auth_headers(token))


def test_ticket_detail_and_qr_image(client: TestClient):
    owner = make_token("user_owner")
    _, ticket = _free_ticket(client, owner)

    detail = client.get(f"/v1/tickets/{ticket['id']}", headers=auth_headers(owner))
    assert detail.status_code == 200
    assert detail.json()["qr_code"].startswith("GH1:")
    assert detail.json()["is_used"] is False
    assert detail.headers["cache-control"] == "no-store"

    qr = client.get(f"/v1/tickets/{ticket['id']}/qr.png", headers=auth_headers(owner))
    assert qr.status_code == 200
    assert qr.headers["content-type"] == "image/png"
    assert qr.content.startswith(b"\x89PNG")

    stranger = client.get(f"/v1/tickets/{ticket['id']}", headers=auth_headers(make_token("user_x")))
    assert stranger.status_code == 404

    organizer_view = client.get(f"/v1/tickets/{ticket['id']}", headers=auth_headers(ORGANIZER))
    assert organizer_view.status_code == 200


def test_check_in_by_ticket_number_then_reject_reuse(client: TestClient):
    owner = make_token("user_owner", name="Olga Owner")
    event_id, ticket = _free_ticket(client, owner)

    resp = _check_in(client, ORGANIZER, ticket["ticket_number"].lower())
    assert resp.status_code == 200
    body = resp.json()
    assert body["ticket_id"] == ticket["id"]
    assert body["event_id"] == event_id
    assert body["attendee_name"] == "Olga Owner"
    assert body["ticket_type"] == "general"
    assert body["used_at"] is not None

    again = _check_in(client, ORGANIZER, ticket["ticket_number"])
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "TICKET_ALREADY_USED"

    attendees = client.get(f"/v1/events/{event_id}/registrations", headers=auth_headers(ORGANIZER)).json()
    assert attendees[0]["checked_in"] is True


def test_check_in_by_scanned_qr_payload(client: TestClient):
    _, ticket = _free_ticket(client, make_token("user_owner"))

    resp = _check_in(client, ORGANIZER, ticket["qr_code"])
    assert resp.status_code == 200
    assert resp.json()["ticket_number"] == ticket["ticket_number"]


def test_tampered_qr_payload_rejected(client: TestClient):
    _, ticket = _free_ticket(client, make_token("user_owner"))
    prefix, number, registration_id, _signature = ticket["qr_code"].split(":")

    forged = f"{prefix}:{number}:{registration_id}:{'0' * 32}"
    resp = _check_in(client, ORGANIZER, forged)
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "TICKET_INVALID"

    malformed = _check_in(client, ORGANIZER, "GH1:only-two")
    assert malformed.status_code == 409


def test_check_in_permissions(client: TestClient):
    owner = make_token("user_owner")
    _, ticket = _free_ticket(client, owner)

    as_attendee = _check_in(client, owner, ticket["ticket_number"])
    assert as_attendee.status_code == 403

    other_org = make_token("user_org2", role="organizer")
    as_other = _check_in(client, other_org, ticket["ticket_number"])
    assert as_other.status_code == 403
    assert as_other.json()["detail"]["code"] == "NOT_EVENT_ORGANIZER"

    as_admin = _check_in(client, make_token("user_admin", role="admin"), ticket["ticket_number"])
    assert as_admin.status_code == 200


def test_check_in_rejects_unknown_and_inactive_tickets(client: TestClient):
    unknown = _check_in(client, ORGANIZER, "GH-NOSUCHTIX")
    assert unknown.status_code == 404

    owner = make_token("user_owner")
    _, ticket = _free_ticket(client, owner)
    cancel = client.post(f"/v1/registrations/{ticket['registration_id']}/cancel", headers=auth_headers(owner))
    assert cancel.json()["status"] == "cancelled"

    resp = _check_in(client, ORGANIZER, ticket["ticket_number"])
    assert resp.status_code == 409
    assert resp.json()["detail"]["code"] == "TICKET_NOT_ACTIVE"


def test_parse_check_in_code_normalizes_typed_numbers():
    assert parse_check_in_code("  gh-abcd234567 ") == "GH-ABCD234567"

    registration_id = uuid.uuid4()
    payload = qr_payload("GH-ABCD234567", registration_id)
    assert parse_check_in_code(payload) == "GH-ABCD234567"
