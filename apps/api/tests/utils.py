from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from fastapi.testclient import TestClient

from gatherhub.core.config import settings

VALID_STRIPE_SIGNATURE = "t=1,v1=valid"


def make_token(
    user_id: str,
    *,
    role: str | None = None,
    email: str | None = None,
    name: str | None = None,
    expires_in: int = 3600,
) -> str:
    payload: dict[str, Any] = {
        "sub": user_id,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        "email": email or f"{user_id}@example.com",
        "name": name or user_id.replace("_", " ").title(),
    }
    if role is not None:
        payload["role"] = role
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm="HS256")


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def in_days(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


def event_payload(**overrides) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "PyCon Meetup",
        "description": "An evening of talks.",
        "start_date": in_days(7).isoformat(),
        "end_date": in_days(7.125).isoformat(),
        "location": "Berlin",
        "type": "conference",
        "general_ticket_price": "25.00",
        "vip_ticket_price": "80.00",
        "vip_perks": "Front row",
        "max_attendees": 50,
    }
    payload.update(overrides)
    return payload


def create_event(client: TestClient, token: str, **overrides):
    return client.post("/v1/events", json=event_payload(**overrides), headers=auth_headers(token))


def create_published_event(client: TestClient, token: str, **overrides) -> str:
    resp = create_event(client, token, **overrides)
    assert resp.status_code == 201, resp.text
    event_id = resp.json()["id"]
    publish = client.post(f"/v1/events/{event_id}/publish", headers=auth_headers(token))
    assert publish.status_code == 200, publish.text
    return event_id
