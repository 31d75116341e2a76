"""Ledger-level tests: chain integrity, append-only rows, concurrent status changes."""
import threading
from datetime import datetime

import pytest
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from app.tnr import create_app
from app.tnr.db import session_scope
from app.tnr.errors import ConcurrentUpdateError, StoreError
from app.tnr.models import Base, User
from app.tnr.modules.cats import history
from app.tnr.modules.cats.models import Cat, CatStatusHistory
from app.tnr.modules.cats.schemas import CatCreateRequest
from app.tnr.modules.cats.service import create_cat, update_cat_status
from app.tnr.policy import Principal

P1 = Principal(id=1, email="p1@example.com", name="Pat One", is_admin=False, status="APPROVED")
P2 = Principal(id=2, email="p2@example.com", name="Pat Two", is_admin=False, status="APPROVED")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        for p in (P1, P2):
            s.add(User(id=p.id, email=p.email, name=p.name, password_hash=generate_password_hash("pw"), status="APPROVED"))
    return app


def _register(app, status="NOT_TNRED") -> str:
    req = CatCreateRequest.from_payload({"gender": "UNKNOWN", "status": status, "latitude": 12.5, "longitude": 99.1})
    with session_scope(app) as s:
        return create_cat(s, req, P1).id


def _chain(app, cat_id):
    with session_scope(app) as s:
        cat = s.get(Cat, cat_id)
        entries = history.list_for_cat(s, cat_id)
        return cat.status, entries, history.verify_chain(entries, current_status=cat.status)


def test_registration_writes_initial_entry(app):
    cat_id = _register(app, status="RESCUED")
    status, entries, problems = _chain(app, cat_id)
    assert status == "RESCUED"
    assert problems == []
    assert len(entries) == 1
    assert entries[0].old_status is None
    assert entries[0].new_status == "RESCUED"
    assert entries[0].notes == "Initial cat registration"
    assert entries[0].updated_by_user_id == P1.id


def test_chain_holds_across_many_transitions(app):
    cat_id = _register(app)
    for i, new_status in enumerate(["TNRED", "MISSING", "TNRED", "RESCUED", "DECEASED"]):
        with session_scope(app) as s:
            update_cat_status(s, cat_id, new_status, f"step {i}", P2 if i % 2 else P1)

    status, entries, problems = _chain(app, cat_id)
    assert problems == []
    assert status == "DECEASED"
    assert len(entries) == 6
    # newest first
    assert [e.new_status for e in entries] == ["DECEASED", "RESCUED", "TNRED", "MISSING", "TNRED", "NOT_TNRED"]
    assert entries[0].old_status == "RESCUED"


def test_failed_status_change_leaves_no_trace(app):
    cat_id = _register(app)
    with pytest.raises(Exception):
        with session_scope(app) as s:
            update_cat_status(s, cat_id, "TNRED", None, P1)
            raise RuntimeError("request blew up before commit")

    status, entries, problems = _chain(app, cat_id)
    assert status == "NOT_TNRED"
    assert len(entries) == 1
    assert problems == []


def test_history_rows_are_append_only(app):
    cat_id = _register(app)
    with pytest.raises(RuntimeError):
        with session_scope(app) as s:
            entry = history.latest_entry(s, cat_id)
            entry.notes = "rewritten"
            s.flush()

    with pytest.raises(RuntimeError):
        with session_scope(app) as s:
            s.delete(history.latest_entry(s, cat_id))
            s.flush()

    _, entries, _ = _chain(app, cat_id)
    assert entries[0].notes == "Initial cat registration"


def test_stale_version_is_rejected(app):
    cat_id = _register(app)
    sm = app.extensions["sqlalchemy_sessionmaker"]
    stale = sm()
    try:
        cat = stale.get(Cat, cat_id)
        assert cat.status == "NOT_TNRED"

        with session_scope(app) as s:
            update_cat_status(s, cat_id, "TNRED", None, P1)

        # Writing through the stale snapshot must not fork the chain.
        cat.status = "MISSING"
        history.append_entry(stale, cat, "NOT_TNRED", "MISSING", None, P2)
        with pytest.raises(SQLAlchemyError):
            stale.flush()
        stale.rollback()
    finally:
        stale.close()

    status, entries, problems = _chain(app, cat_id)
    assert status == "TNRED"
    assert len(entries) == 2
    assert problems == []


def test_concurrent_status_changes_keep_cat_and_history_in_agreement(app):
    cat_id = _register(app)
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    lock = threading.Lock()

    def worker(new_status, principal):
        barrier.wait()
        try:
            with session_scope(app) as s:
                update_cat_status(s, cat_id, new_status, "race", principal)
            result = "ok"
        except ConcurrentUpdateError:
            result = "conflict"
        except (StoreError, SQLAlchemyError):
            result = "store_error"
        with lock:
            outcomes.append(result)

    threads = [
        threading.Thread(target=worker, args=("TNRED", P1)),
        threading.Thread(target=worker, args=("RESCUED", P2)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(outcomes) == 2
    successes = outcomes.count("ok")
    assert successes >= 1

    status, entries, problems = _chain(app, cat_id)
    assert problems == []
    assert entries[0].new_status == status
    assert len(entries) == 1 + successes


def test_verify_chain_reports_breaks():
    a = CatStatusHistory(id=1, cat_id="c", old_status=None, new_status="NOT_TNRED")
    b = CatStatusHistory(id=2, cat_id="c", old_status="TNRED", new_status="RESCUED")

    a.updated_at = datetime(2026, 1, 1)
    b.updated_at = datetime(2026, 1, 2)
    problems = history.verify_chain([b, a], current_status="MISSING")
    assert len(problems) == 2
    assert "does not match previous" in problems[0]
    assert "MISSING" in problems[1]
