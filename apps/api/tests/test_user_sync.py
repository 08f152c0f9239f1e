from __future__ import annotations

from fastapi.testclient import TestClient

from gatherhub.models import User
from gatherhub.models.user import UserRole
from gatherhub.services import user_service
from gatherhub.worker import tasks
from tests.utils import auth_headers, make_token

ADMIN = make_token("user_root", role="admin")


def _identity_user(user_id: str, first_name: str = "Sam", role: str | None = None) -> dict:
    return {
        "id": user_id,
        "first_name": first_name,
        "last_name": "Sync",
        "primary_email_address_id": f"idn_{user_id}",
        "email_addresses": [{"id": f"idn_{user_id}", "email_address": f"{user_id}@example.com"}],
        "image_url": None,
        "public_metadata": {"role": role} if role else {},
    }


def test_sync_walks_every_page(db_session, identity_provider):
    identity_provider.users = [_identity_user(f"user_{n}") for n in range(5)]

    result = user_service.sync_all_identity_users(db_session, identity_provider, page_size=2)
    assert result == {"synced": 5, "failed": 0}
    assert identity_provider.pages == [(2, 0), (2, 2), (2, 4)]

    user = db_session.get(User, "user_3")
    assert user.email == "user_3@example.com"
    assert user.name == "Sam Sync"
    assert user.role == UserRole.USER


def test_sync_updates_existing_mirror_rows(client: TestClient, db_session, identity_provider):
    client.get("/v1/me", headers=auth_headers(make_token("user_kim", name="Old Name")))
    identity_provider.users = [_identity_user("user_kim", first_name="Kim", role="organizer")]

    assert user_service.sync_all_identity_users(db_session, identity_provider) == {"synced": 1, "failed": 0}
    assert identity_provider.pages == [(100, 0)]

    db_session.expire_all()
    user = db_session.get(User, "user_kim")
    assert user.name == "Kim Sync"
    assert user.role == UserRole.ORGANIZER
    assert user.became_organizer_at is not None


def test_sync_skips_records_it_cannot_apply(db_session, identity_provider):
    identity_provider.users = [
        _identity_user("user_good"),
        {"first_name": "No", "last_name": "Id"},
        "garbage",
        _identity_user("user_also_good"),
    ]

    result = user_service.sync_all_identity_users(db_session, identity_provider, page_size=10)
    assert result == {"synced": 2, "failed": 2}
    assert db_session.get(User, "user_good") is not None
    assert db_session.get(User, "user_also_good") is not None


def test_admin_can_trigger_sync(client: TestClient, identity_provider):
    identity_provider.users = [_identity_user("user_a"), _identity_user("user_b", role="organizer")]

    resp = client.post("/v1/admin/users/sync", headers=auth_headers(ADMIN))
    assert resp.status_code == 200
    assert resp.json() == {"synced": 2, "failed": 0}

    organizers = client.get("/v1/admin/users?role=organizer", headers=auth_headers(ADMIN)).json()
    assert [u["id"] for u in organizers] == ["user_b"]

    forbidden = client.post("/v1/admin/users/sync", headers=auth_headers(make_token("user_a")))
    assert forbidden.status_code == 403


def test_sync_task_uses_configured_provider(monkeypatch, identity_provider, db_session):
    identity_provider.users = [_identity_user("user_task")]
    monkeypatch.setattr(tasks, "get_identity_provider", lambda: identity_provider)

    assert tasks.sync_identity_users() == {"synced": 1, "failed": 0}
    assert db_session.get(User, "user_task") is not None
