from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request, session
from werkzeug.security import check_password_hash, generate_password_hash

from app.tnr.audit import record_event
from app.tnr.constants import USER_APPROVED, USER_PENDING
from app.tnr.db import commit_or_raise, db_session, session_scope
from app.tnr.errors import AuthenticationError, ValidationError
from app.tnr.models import User
from app.tnr.policy import Principal
from app.tnr.security import ensure_csrf_token
from app.tnr.utils import clean_text, utcnow

bp = Blueprint("auth", __name__)

_MIN_PASSWORD_LENGTH = 8


def _login_attempts() -> dict[str, list[datetime]]:
    return current_app.extensions.setdefault("login_attempts", defaultdict(list))


def _check_rate_limit(ip: str) -> bool:
    attempts = _login_attempts()
    cutoff = utcnow() - timedelta(seconds=current_app.config["LOGIN_RATE_WINDOW"])
    for key, stamps in list(attempts.items()):
        recent = [t for t in stamps if t > cutoff]
        if recent:
            attempts[key] = recent
        else:
            # idle client
            del attempts[key]
    return len(attempts.get(ip, ())) >= current_app.config["LOGIN_RATE_LIMIT"]


def _record_attempt(ip: str) -> None:
    _login_attempts()[ip].append(utcnow())


def principal_from_user(user: User) -> Principal:
    return Principal(id=user.id, email=user.email, name=user.name, is_admin=user.is_admin, status=user.status)


def resolve_principal() -> Principal | None:
    """
    Loads the principal for the signed session cookie from the database.

    Runs on every request so approval/admin changes apply immediately. Uses
    its own short session; the request's write session is opened later, by
    the handler.
    """
    user_id = session.get("user_id")
    if not user_id:
        return None
    try:
        with session_scope(current_app) as s:
            user = s.get(User, int(user_id))
            if not user:
                session.pop("user_id", None)
                return None
            return principal_from_user(user)
    except (TypeError, ValueError):
        session.pop("user_id", None)
        return None


def load_current_user() -> None:
    """
    Sets g.principal for the request.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    if request.path.startswith(("/static/", "/health", "/healthz")):
        g.principal = None
        return
    g.principal = resolve_principal()


def _payload() -> dict:
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("body", "Request body must be a JSON object.")
        return data
    return request.form.to_dict()


def _str_field(data: dict, field: str) -> str:
    raw = data.get(field)
    if raw is None:
        return ""
    if not isinstance(raw, str):
        raise ValidationError(field, "Must be a string.")
    return raw


@bp.post("/register")
def register():
    data = _payload()
    email = _str_field(data, "email").strip().lower()
    name = clean_text(_str_field(data, "name"))
    password = _str_field(data, "password")

    if not email or "@" not in email:
        raise ValidationError("email", "A valid email is required.")
    if not name:
        raise ValidationError("name", "Is required.")
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"Must be at least {_MIN_PASSWORD_LENGTH} characters.")

    s = db_session()
    if s.query(User).filter(User.email == email).one_or_none():
        raise ValidationError("email", "An account with this email already exists.")

    now = utcnow()
    user = User(
        email=email,
        name=name,
        password_hash=generate_password_hash(password),
        is_admin=False,
        status=USER_PENDING,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=None, action="auth.register", entity_type="User", entity_id=str(user.id), metadata={"email": email})
    commit_or_raise(s)
    current_app.logger.info("Registered user %s (pending approval)", user.id)
    return jsonify({"id": user.id, "email": user.email, "name": user.name, "status": user.status}), 201


@bp.post("/login")
def login_post():
    data = _payload()
    email = _str_field(data, "email").strip().lower()
    password = _str_field(data, "password")
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        return jsonify({"error": "Too many login attempts. Please wait and try again."}), 429

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == email).one_or_none()
        if not user or not check_password_hash(user.password_hash, password):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=email,
                reason="Invalid credentials",
                metadata={"email": email},
            )
            commit_or_raise(s)
            raise AuthenticationError()

        principal = principal_from_user(user)
        if user.status != USER_APPROVED:
            # Password was correct, so the account owner may learn why.
            record_event(s, actor=principal, action="auth.login_pending", entity_type="User", entity_id=str(user.id))
            commit_or_raise(s)
            return jsonify({"error": "Account pending approval"}), 403

        session.clear()
        session["user_id"] = user.id
        session.permanent = True
        _login_attempts()[ip].clear()
        record_event(s, actor=principal, action="auth.login", entity_type="User", entity_id=str(user.id))
        commit_or_raise(s)
        return jsonify({"principal": principal.to_dict(), "csrfToken": ensure_csrf_token()})
    except AuthenticationError:
        raise
    except Exception:
        current_app.logger.exception("Login POST crashed (email=%s request_id=%s)", email, getattr(g, "request_id", None))
        raise


@bp.route("/logout", methods=["GET", "POST"])
def logout():
    principal = getattr(g, "principal", None)
    if principal:
        s = db_session()
        record_event(s, actor=principal, action="auth.logout", entity_type="User", entity_id=str(principal.id))
        commit_or_raise(s)
    session.clear()
    return jsonify({"ok": True})


@bp.get("/session")
def session_info():
    principal = getattr(g, "principal", None)
    return jsonify(
        {
            "principal": principal.to_dict() if principal else None,
            "csrfToken": ensure_csrf_token(),
        }
    )
