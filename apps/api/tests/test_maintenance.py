from __future__ import annotations

import uuid
from datetime import timedelta

from fastapi.testclient import TestClient
from kombu.exceptions import OperationalError
from sqlalchemy import update

from gatherhub.core.time import utcnow
from gatherhub.models import Event
from gatherhub.worker import tasks
from tests.utils import auth_headers, create_event, create_published_event, in_days, make_token

ORGANIZER = make_token("user_org", role="organizer")


def _register_free(client: TestClient, token: str, event_id: str) -> None:
    resp = client.post(
        "/v1/registrations",
        json={"event_id": event_id, "ticket_type": "general"},
        headers=auth_headers(token),
    )
    assert resp.status_code == 201, resp.text


def test_reminders_sent_once_for_events_starting_soon(client: TestClient):
    attendee = make_token("user_att")
    soon = create_published_event(
        client,
        ORGANIZER,
        name="Soon",
        general_ticket_price="0",
        start_date=in_days(0.5).isoformat(),
        end_date=in_days(0.6).isoformat(),
    )
    later = create_published_event(client, ORGANIZER, name="Later", general_ticket_price="0")
    _register_free(client, attendee, soon)
    _register_free(client, attendee, later)

    assert tasks.send_event_reminders() == {"sent": 1}
    assert tasks.send_event_reminders() == {"sent": 0}

    items = client.get("/v1/me/notifications", headers=auth_headers(attendee)).json()["items"]
    reminders = [n for n in items if n["type"] == "reminder"]
    assert len(reminders) == 1
    assert reminders[0]["event_id"] == soon
    assert '"Soon"' in reminders[0]["message"]


def test_complete_past_events_only_touches_published(client: TestClient, db_session):
    published = create_published_event(client, ORGANIZER, name="Done")
    draft = create_event(client, ORGANIZER, name="Old draft").json()["id"]

    past_start = utcnow() - timedelta(days=2)
    db_session.execute(
        update(Event)
        .where(Event.id.in_([uuid.UUID(published), uuid.UUID(draft)]))
        .values(start_date=past_start, end_date=past_start + timedelta(hours=3))
    )
    db_session.commit()

    assert tasks.complete_past_events() == {"completed": 1}
    assert tasks.complete_past_events() == {"completed": 0}

    detail = client.get(f"/v1/events/{published}").json()
    assert detail["status"] == "completed"
    own = client.get(f"/v1/events/{draft}", headers=auth_headers(ORGANIZER)).json()
    assert own["status"] == "draft"


class _UnreachableBrokerTask:
    name = "unreachable"

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def delay(self, *args):
        self.calls.append(args)
        raise OperationalError("broker down")


def test_enqueue_survives_broker_outage():
    task = _UnreachableBrokerTask()
    tasks.enqueue(task, "abc")
    assert task.calls == [("abc",)]


def test_missing_ticket_email_is_skipped(outbox):
    result = tasks.send_ticket_confirmation_email(str(uuid.uuid4()))
    assert result["sent"] is False
    assert outbox == []
