"""Tests for account approval and the audit listing."""
import pytest
from werkzeug.security import generate_password_hash

from app.tnr import create_app
from app.tnr.db import session_scope
from app.tnr.models import Base, User


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        s.add_all(
            [
                User(
                    id=1,
                    email="admin@example.com",
                    name="Admin",
                    password_hash=generate_password_hash("pw"),
                    is_admin=True,
                    status="APPROVED",
                ),
                User(id=2, email="new@example.com", name="Newbie", password_hash=generate_password_hash("pw"), status="PENDING"),
            ]
        )
    return app


def _login(app, email="admin@example.com"):
    client = app.test_client()
    r = client.post("/auth/login", json={"email": email, "password": "pw"})
    assert r.status_code == 200
    return client, {"X-CSRF-Token": r.json["csrfToken"]}


def test_list_pending_users(app):
    client, _ = _login(app)
    r = client.get("/admin/users?status=PENDING")
    assert r.status_code == 200
    assert [u["email"] for u in r.json] == ["new@example.com"]

    assert client.get("/admin/users?status=BOGUS").status_code == 400


def test_approve_then_user_can_work(app):
    client, headers = _login(app)
    r = client.post("/admin/users/2/approve", headers=headers)
    assert r.status_code == 200
    assert r.json["status"] == "APPROVED"

    newbie, _ = _login(app, "new@example.com")
    assert newbie.get("/cats").status_code == 200

    # Revoke: the open session is denied on its next request.
    r = client.post("/admin/users/2/reject", headers=headers)
    assert r.json["status"] == "REJECTED"
    assert newbie.get("/cats").status_code == 403


def test_admin_cannot_lock_themselves_out(app):
    client, headers = _login(app)
    r = client.post("/admin/users/1/reject", headers=headers)
    assert r.status_code == 400
    r = client.post("/admin/users/1/admin", json={"isAdmin": False}, headers=headers)
    assert r.status_code == 400
    assert r.json["field"] == "isAdmin"


def test_grant_admin_and_unknown_user(app):
    client, headers = _login(app)
    r = client.post("/admin/users/2/admin", json={"isAdmin": True}, headers=headers)
    assert r.status_code == 200
    assert r.json["isAdmin"] is True

    assert client.post("/admin/users/99/approve", headers=headers).status_code == 404


def test_admin_actions_are_audited(app):
    client, headers = _login(app)
    client.post("/admin/users/2/approve", headers=headers)

    r = client.get("/admin/audit?action=user.")
    assert r.status_code == 200
    events = r.json
    assert [e["action"] for e in events] == ["user.approve"]
    assert events[0]["actorEmail"] == "admin@example.com"
    assert events[0]["metadata"]["new_status"] == "APPROVED"

    assert client.get("/admin/audit?date_from=yesterday").status_code == 400
