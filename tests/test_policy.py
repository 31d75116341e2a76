"""Access policy gate: pure decision table plus per-request enforcement."""
import pytest
from werkzeug.security import generate_password_hash

from app.tnr import create_app
from app.tnr.db import session_scope
from app.tnr.models import Base, User
from app.tnr.policy import AccessDecision, OperationClass, Principal, classify_path, evaluate_access


def _principal(status="APPROVED", is_admin=False):
    return Principal(id=1, email="p@example.com", name="P", is_admin=is_admin, status=status)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/auth/login", OperationClass.AUTH),
        ("/auth/register", OperationClass.AUTH),
        ("/health", OperationClass.PUBLIC),
        ("/healthz", OperationClass.PUBLIC),
        ("/admin/users", OperationClass.ADMIN),
        ("/cats", OperationClass.STANDARD),
        ("/cats/abc/status", OperationClass.STANDARD),
        ("/administrator", OperationClass.STANDARD),
        ("/authors", OperationClass.STANDARD),
    ],
)
def test_classify_path(path, expected):
    assert classify_path(path) is expected


def test_auth_paths_allowed_without_principal():
    assert evaluate_access(None, OperationClass.AUTH) is AccessDecision.ALLOW


def test_missing_principal_denied():
    assert evaluate_access(None, OperationClass.STANDARD) is AccessDecision.DENY_UNAUTHENTICATED
    assert evaluate_access(None, OperationClass.ADMIN) is AccessDecision.DENY_UNAUTHENTICATED


@pytest.mark.parametrize("status", ["PENDING", "REJECTED"])
@pytest.mark.parametrize("is_admin", [False, True])
@pytest.mark.parametrize("operation", [OperationClass.STANDARD, OperationClass.ADMIN])
def test_unapproved_denied_regardless_of_admin(status, is_admin, operation):
    decision = evaluate_access(_principal(status=status, is_admin=is_admin), operation)
    assert decision is AccessDecision.DENY_UNAPPROVED


def test_admin_operations_need_admin_flag():
    assert evaluate_access(_principal(), OperationClass.ADMIN) is AccessDecision.DENY_NOT_ADMIN
    assert evaluate_access(_principal(is_admin=True), OperationClass.ADMIN) is AccessDecision.ALLOW
    assert evaluate_access(_principal(), OperationClass.STANDARD) is AccessDecision.ALLOW


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
                User(id=1, email="staff@example.com", name="Staff", password_hash=generate_password_hash("pw"), status="APPROVED"),
                User(
                    id=2,
                    email="pending-admin@example.com",
                    name="Pending Admin",
                    password_hash=generate_password_hash("pw"),
                    is_admin=True,
                    status="PENDING",
                ),
            ]
        )
    return app


def _as_user(client, user_id):
    with client.session_transaction() as sess:
        sess["user_id"] = user_id
        sess["csrf_token"] = "tok"
    return {"X-CSRF-Token": "tok"}


def test_unapproved_session_denied_on_every_operation(app):
    client = app.test_client()
    headers = _as_user(client, 2)

    assert client.get("/cats").status_code == 403
    assert client.get("/cats/stats").status_code == 403
    assert client.get("/cats/whatever").status_code == 403
    r = client.post(
        "/cats",
        json={"gender": "MALE", "status": "NOT_TNRED", "latitude": 1, "longitude": 1},
        headers=headers,
    )
    assert r.status_code == 403
    assert client.get("/admin/users").status_code == 403
    # Generic body: the reason is only logged.
    assert r.json == {"error": "Forbidden"}


def test_non_admin_denied_admin_paths(app):
    client = app.test_client()
    _as_user(client, 1)
    assert client.get("/cats").status_code == 200
    assert client.get("/admin/users").status_code == 403


def test_approval_revocation_applies_on_next_request(app):
    client = app.test_client()
    r = client.post("/auth/login", json={"email": "staff@example.com", "password": "pw"})
    assert r.status_code == 200
    assert client.get("/cats").status_code == 200

    with session_scope(app) as s:
        s.get(User, 1).status = "REJECTED"

    assert client.get("/cats").status_code == 403


def test_policy_runs_before_validation(app):
    client = app.test_client()
    # Anonymous, malformed body, no CSRF token: still a plain 401.
    r = client.post("/cats", json={"gender": "CAT"})
    assert r.status_code == 401
