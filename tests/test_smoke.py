import pytest
from werkzeug.security import generate_password_hash

from app.tnr import create_app
from app.tnr.db import session_scope
from app.tnr.models import Base, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        u = User(
            email="admin@example.com",
            name="Admin User",
            password_hash=generate_password_hash("pw"),
            is_admin=True,
            status="APPROVED",
        )
        s.add(u)

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200


def test_login_and_cats_access(client):
    # Anonymous is rejected
    r = client.get("/cats")
    assert r.status_code == 401
    assert r.json == {"error": "Unauthorized"}

    # Login
    r = client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert r.status_code == 200
    assert r.json["principal"]["isAdmin"] is True
    assert r.json["csrfToken"]

    r = client.get("/cats")
    assert r.status_code == 200
    assert r.json == []
    assert r.headers["X-Total-Count"] == "0"


def test_session_endpoint_reports_principal(client):
    r = client.get("/auth/session")
    assert r.status_code == 200
    assert r.json["principal"] is None
    assert r.json["csrfToken"]

    client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    r = client.get("/auth/session")
    assert r.json["principal"]["email"] == "admin@example.com"


def test_logout_clears_session(client):
    client.post("/auth/login", json={"email": "admin@example.com", "password": "pw"})
    assert client.get("/cats").status_code == 200

    r = client.post("/auth/logout")
    assert r.status_code == 200
    assert client.get("/cats").status_code == 401
