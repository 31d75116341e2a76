from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from app.tnr.db import commit_or_raise, db_session
from app.tnr.errors import ValidationError
from app.tnr.modules.cats.schemas import (
    CatCreateRequest,
    StatusChangeRequest,
    parse_status_filter,
    serialize_cat,
    serialize_cat_detail,
)
from app.tnr.modules.cats.service import (
    cat_status_counts,
    create_cat,
    get_cat,
    list_cats,
    resolve_address,
    update_cat_status,
)
from app.tnr.policy import current_principal

bp = Blueprint("cats", __name__)


def _int_arg(name: str, default: int | None, *, minimum: int = 0, maximum: int | None = None) -> int | None:
    raw = (request.args.get(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(name, "Must be an integer.") from None
    if value < minimum:
        raise ValidationError(name, f"Must be >= {minimum}.")
    if maximum is not None and value > maximum:
        raise ValidationError(name, f"Must be <= {maximum}.")
    return value


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("body", "Request body must be JSON.")
    return data


# ---------- List ----------
@bp.get("/cats")
def cats_list():
    statuses = parse_status_filter(request.args.getlist("status"))
    limit = _int_arg(
        "limit",
        current_app.config["CATS_LIST_DEFAULT_LIMIT"],
        minimum=1,
        maximum=current_app.config["CATS_LIST_MAX_LIMIT"],
    )
    offset = _int_arg("offset", 0) or 0

    s = db_session()
    cats, total = list_cats(s, statuses=statuses or None, limit=limit, offset=offset)
    resp = jsonify([serialize_cat(c) for c in cats])
    resp.headers["X-Total-Count"] = str(total)
    return resp


@bp.get("/cats/stats")
def cats_stats():
    return jsonify(cat_status_counts(db_session()))


# ---------- Create ----------
@bp.post("/cats")
def cats_create():
    principal = current_principal()
    req = CatCreateRequest.from_payload(_json_body())

    # Geocoding runs before the write session is opened.
    address = resolve_address(req, current_app.extensions.get("geocoder"))

    s = db_session()
    cat = create_cat(s, req, principal, address=address)
    commit_or_raise(s)
    current_app.logger.info("Cat %s registered by user %s (status=%s)", cat.id, principal.id, cat.status)
    return jsonify(serialize_cat(cat)), 201


# ---------- Detail ----------
@bp.get("/cats/<cat_id>")
def cat_detail(cat_id: str):
    s = db_session()
    cat, entries = get_cat(s, cat_id)
    return jsonify(serialize_cat_detail(cat, entries))


# ---------- Status change ----------
@bp.post("/cats/<cat_id>/status")
def cat_status_change(cat_id: str):
    principal = current_principal()
    req = StatusChangeRequest.from_payload(_json_body())

    s = db_session()
    cat = update_cat_status(s, cat_id, req.status, req.notes, principal)
    commit_or_raise(s)
    current_app.logger.info("Cat %s status -> %s by user %s", cat.id, cat.status, principal.id)

    cat, entries = get_cat(s, cat_id)
    return jsonify(serialize_cat_detail(cat, entries))
