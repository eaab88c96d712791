"""
Admin user API tests against an in-memory SQLite database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlmodel import Session

from tendercost.database import get_session
from tendercost.main import app
from tendercost.models.user import AdminUser, User

SECRET = "test-jwt-secret"


def make_token(sub: str, email: str | None = None, is_anonymous: bool = False) -> str:
    claims = {
        "sub": sub,
        "is_anonymous": is_anonymous,
        "exp": datetime.now(timezone.utc) + timedelta(hours=1),
    }
    if email is not None:
        claims["email"] = email
    return jwt.encode(claims, SECRET, algorithm="HS256")


def auth_header(sub: str, **kwargs) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, **kwargs)}"}


@pytest.fixture
def client(engine):
    def override_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def admin(db_session):
    user = User(id="admin-1", full_name="Administrator", email="admin@example.com",
                access_level="Admin", is_deletable=False)
    db_session.add(user)
    db_session.commit()
    return auth_header("admin-1", email="admin@example.com")


def add_user(db_session, user_id: str, **fields) -> None:
    db_session.add(User(id=user_id, full_name=fields.pop("full_name", user_id), **fields))
    db_session.commit()


def test_health(client):
    assert client.get("/").json() == {"status": "ok", "service": "tendercost-backend"}


def test_me_requires_token(client):
    assert client.get("/api/v1/users/me").status_code == 401


def test_me_rejects_bad_token(client):
    response = client.get("/api/v1/users/me", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_me_creates_anonymous_profile_once(client, db_session):
    headers = auth_header("anon-123", is_anonymous=True)

    first = client.get("/api/v1/users/me", headers=headers)
    second = client.get("/api/v1/users/me", headers=headers)

    assert first.status_code == 200
    body = first.json()
    assert body["id"] == "anon-123"
    assert body["full_name"] == "Anonymous User"
    assert body["email"] is None
    assert body["access_level"] == "Tender Lead"
    assert body["is_deletable"] is True
    assert body["is_anonymous"] is True
    assert body["created_at"] is not None
    assert second.json()["created_at"] == body["created_at"]


def test_me_records_email_after_upgrade(client):
    client.get("/api/v1/users/me", headers=auth_header("u-1", is_anonymous=True))

    body = client.get(
        "/api/v1/users/me", headers=auth_header("u-1", email="lead@example.com")
    ).json()

    assert body["email"] == "lead@example.com"
    assert body["is_anonymous"] is False
    assert body["full_name"] == "Anonymous User"


def test_non_admin_cannot_list(client):
    headers = auth_header("u-3", email="lead@example.com")
    assert client.get("/api/v1/users", headers=headers).status_code == 403


def test_admin_lists_users_with_flag(client, db_session, admin):
    add_user(db_session, "u-4")
    db_session.add(AdminUser(id="u-4", is_admin=True))
    db_session.commit()
    add_user(db_session, "u-5")

    response = client.get("/api/v1/users", headers=admin)

    assert response.status_code == 200
    flags = {u["id"]: u["is_admin"] for u in response.json()}
    assert flags == {"admin-1": False, "u-4": True, "u-5": False}


def test_admin_flag_grants_access(client, db_session):
    add_user(db_session, "flagged", access_level="Tender Lead")
    db_session.add(AdminUser(id="flagged", is_admin=True))
    db_session.commit()

    response = client.get("/api/v1/users", headers=auth_header("flagged"))
    assert response.status_code == 200


def test_toggle_admin_flag(client, db_session, admin):
    add_user(db_session, "u-6")

    granted = client.put("/api/v1/users/u-6/admin", json={"is_admin": True}, headers=admin)
    assert granted.json()["is_admin"] is True
    assert db_session.get(AdminUser, "u-6") is not None

    revoked = client.put("/api/v1/users/u-6/admin", json={"is_admin": False}, headers=admin)
    assert revoked.json()["is_admin"] is False
    db_session.expire_all()
    assert db_session.get(AdminUser, "u-6") is None


def test_change_access_level(client, db_session, admin):
    add_user(db_session, "u-7")

    response = client.patch(
        "/api/v1/users/u-7/access-level", json={"access_level": "Manager"}, headers=admin
    )

    assert response.status_code == 200
    assert response.json()["access_level"] == "Manager"


def test_change_access_level_rejects_unknown_level(client, db_session, admin):
    add_user(db_session, "u-8")
    response = client.patch(
        "/api/v1/users/u-8/access-level", json={"access_level": "Owner"}, headers=admin
    )
    assert response.status_code == 422


def test_protected_account_stays_admin(client, admin):
    response = client.patch(
        "/api/v1/users/admin-1/access-level", json={"access_level": "Manager"}, headers=admin
    )
    assert response.status_code == 403


def test_delete_user_removes_profile_and_flag(client, db_session, admin):
    add_user(db_session, "u-9")
    db_session.add(AdminUser(id="u-9", is_admin=True))
    db_session.commit()

    response = client.delete("/api/v1/users/u-9", headers=admin)

    assert response.status_code == 204
    db_session.expire_all()
    assert db_session.get(User, "u-9") is None
    assert db_session.get(AdminUser, "u-9") is None


def test_protected_account_cannot_be_deleted(client, admin):
    assert client.delete("/api/v1/users/admin-1", headers=admin).status_code == 403


def test_missing_user_is_404(client, admin):
    assert client.get("/api/v1/users/ghost", headers=admin).status_code == 404
