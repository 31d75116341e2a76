import json
from datetime import date, datetime, time, timedelta

from flask import Blueprint, current_app, jsonify, request

from app.tnr.audit import record_event
from app.tnr.constants import USER_APPROVED, USER_REJECTED, VALID_USER_STATUSES
from app.tnr.db import commit_or_raise, db_session
from app.tnr.errors import NotFoundError, ValidationError
from app.tnr.models import AuditEvent, User
from app.tnr.policy import current_principal
from app.tnr.utils import isoformat, utcnow

bp = Blueprint("admin", __name__)

_AUDIT_LIMIT = 200


def _parse_date(field: str) -> date | None:
    raw = (request.args.get(field) or "").strip()
    if not raw:
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError:
        raise ValidationError(field, "Must be YYYY-MM-DD.") from None


def _serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "isAdmin": user.is_admin,
        "status": user.status,
        "createdAt": isoformat(user.created_at),
        "updatedAt": isoformat(user.updated_at),
    }


def _get_user(s, user_id: int) -> User:
    user = s.get(User, user_id)
    if not user:
        raise NotFoundError("User", str(user_id))
    return user


def _set_status(user_id: int, new_status: str, action: str):
    s = db_session()
    actor = current_principal()
    user = _get_user(s, user_id)
    if user.id == actor.id and new_status != USER_APPROVED:
        raise ValidationError("status", "You cannot revoke your own approval.")
    old_status = user.status
    user.status = new_status
    user.updated_at = utcnow()
    record_event(
        s,
        actor=actor,
        action=action,
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email, "old_status": old_status, "new_status": new_status},
    )
    commit_or_raise(s)
    current_app.logger.info("User %s status %s -> %s by admin %s", user.id, old_status, new_status, actor.id)
    return jsonify(_serialize_user(user))


# ---------- Accounts ----------
@bp.get("/users")
def users_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    q = s.query(User)
    if status_filter:
        if status_filter not in VALID_USER_STATUSES:
            raise ValidationError("status", f"Invalid value. Must be one of: {', '.join(VALID_USER_STATUSES)}")
        q = q.filter(User.status == status_filter)
    users = q.order_by(User.created_at.desc(), User.id.desc()).all()
    return jsonify([_serialize_user(u) for u in users])


@bp.post("/users/<int:user_id>/approve")
def users_approve(user_id: int):
    return _set_status(user_id, USER_APPROVED, "user.approve")


@bp.post("/users/<int:user_id>/reject")
def users_reject(user_id: int):
    """Rejects a pending account or revokes an approved one."""
    return _set_status(user_id, USER_REJECTED, "user.reject")


@bp.post("/users/<int:user_id>/admin")
def users_set_admin(user_id: int):
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not isinstance(data.get("isAdmin"), bool):
        raise ValidationError("isAdmin", "Must be true or false.")
    make_admin = data["isAdmin"]

    s = db_session()
    actor = current_principal()
    user = _get_user(s, user_id)
    if user.id == actor.id and not make_admin:
        raise ValidationError("isAdmin", "You cannot remove your own admin access.")
    user.is_admin = make_admin
    user.updated_at = utcnow()
    record_event(
        s,
        actor=actor,
        action="user.admin_grant" if make_admin else "user.admin_revoke",
        entity_type="User",
        entity_id=str(user.id),
        metadata={"email": user.email},
    )
    commit_or_raise(s)
    return jsonify(_serialize_user(user))


# ---------- Audit ----------
@bp.get("/audit")
def audit_list():
    """
    Last 200 audit events with simple filters:
    - action (contains)
    - actor_email (contains)
    - entity_type / entity_id (exact)
    - date range (YYYY-MM-DD, inclusive)
    """
    s = db_session()
    action = (request.args.get("action") or "").strip()
    actor_email = (request.args.get("actor_email") or "").strip()
    entity_type = (request.args.get("entity_type") or "").strip()
    entity_id = (request.args.get("entity_id") or "").strip()
    date_from = _parse_date("date_from")
    date_to = _parse_date("date_to")

    q = s.query(AuditEvent)
    if action:
        q = q.filter(AuditEvent.action.like(f"%{action}%"))
    if actor_email:
        q = q.filter(AuditEvent.actor_user_email.like(f"%{actor_email.lower()}%"))
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id:
        q = q.filter(AuditEvent.entity_id == entity_id)
    if date_from:
        q = q.filter(AuditEvent.created_at >= datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.filter(AuditEvent.created_at < datetime.combine(date_to + timedelta(days=1), time.min))

    events = q.order_by(AuditEvent.created_at.desc(), AuditEvent.id.desc()).limit(_AUDIT_LIMIT).all()
    return jsonify(
        [
            {
                "id": ev.id,
                "createdAt": isoformat(ev.created_at),
                "requestId": ev.request_id,
                "actorUserId": ev.actor_user_id,
                "actorEmail": ev.actor_user_email,
                "action": ev.action,
                "entityType": ev.entity_type,
                "entityId": ev.entity_id,
                "reason": ev.reason,
                "metadata": json.loads(ev.metadata_json) if ev.metadata_json else None,
            }
            for ev in events
        ]
    )
