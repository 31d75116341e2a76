from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from app.tnr.audit import record_event
from app.tnr.constants import INITIAL_REGISTRATION_NOTE, VALID_CAT_STATUSES
from app.tnr.errors import ConcurrentUpdateError, NotFoundError, StoreError, ValidationError
from app.tnr.geocoding import safe_reverse_geocode
from app.tnr.modules.cats import history
from app.tnr.modules.cats.models import Cat
from app.tnr.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tnr.geocoding import GeocodingClient
    from app.tnr.modules.cats.models import CatStatusHistory
    from app.tnr.modules.cats.schemas import CatCreateRequest
    from app.tnr.policy import Principal

logger = logging.getLogger(__name__)


def list_cats(
    s: "Session",
    *,
    statuses: list[str] | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> tuple[list[Cat], int]:
    """Newest first. Returns (page, total matching)."""
    q = s.query(Cat)
    if statuses:
        q = q.filter(Cat.status.in_(statuses))
    total = q.count()
    q = q.order_by(Cat.created_at.desc(), Cat.id.desc())
    if offset:
        q = q.offset(offset)
    if limit is not None:
        q = q.limit(limit)
    return q.all(), total


def get_cat(s: "Session", cat_id: str) -> tuple[Cat, list["CatStatusHistory"]]:
    cat = s.get(Cat, cat_id)
    if not cat:
        raise NotFoundError("Cat", cat_id)
    entries = history.list_for_cat(s, cat.id)
    problems = history.verify_chain(entries, current_status=cat.status)
    if problems:
        logger.error("Status chain inconsistent for cat %s: %s", cat.id, "; ".join(problems))
    return cat, entries


def resolve_address(req: "CatCreateRequest", geocoder: "GeocodingClient | None") -> str | None:
    """
    Address to store for a new cat. Call before opening the write transaction:
    a slow or failing geocoder only ever yields None.
    """
    if req.address:
        return req.address
    return safe_reverse_geocode(geocoder, req.latitude, req.longitude)


def create_cat(s: "Session", req: "CatCreateRequest", principal: "Principal", *, address: str | None = None) -> Cat:
    """
    Register a cat and its initial history entry. Both rows are flushed in the
    caller's transaction; the caller commits once.
    """
    now = utcnow()
    cat = Cat(
        name=req.name,
        gender=req.gender,
        status=req.status,
        estimated_age=req.estimated_age,
        description=req.description,
        microchip_info=req.microchip_info,
        latitude=req.latitude,
        longitude=req.longitude,
        address=address if address is not None else req.address,
        image_url=req.image_url,
        date_added=now,
        created_at=now,
        updated_at=now,
        created_by_user_id=principal.id,
        updated_by_user_id=principal.id,
    )
    s.add(cat)
    s.flush()

    history.append_entry(s, cat, None, req.status, INITIAL_REGISTRATION_NOTE, principal)
    s.flush()
    s.expire(cat, ["created_by", "updated_by"])

    record_event(
        s,
        actor=principal,
        action="cat.create",
        entity_type="Cat",
        entity_id=cat.id,
        metadata={"status": cat.status, "gender": cat.gender, "name": cat.name},
    )
    return cat


def update_cat_status(
    s: "Session",
    cat_id: str,
    new_status: str,
    notes: str | None,
    principal: "Principal",
) -> Cat:
    """
    Change a cat's status and append the matching history entry.

    The cat row is read with ``SELECT ... FOR UPDATE`` and written with a
    version check, so a concurrent change either waits for this one or fails
    with ConcurrentUpdateError; the chain can't fork.
    """
    if new_status not in VALID_CAT_STATUSES:
        raise ValidationError("status", f"Invalid value. Must be one of: {', '.join(VALID_CAT_STATUSES)}")

    cat = s.query(Cat).filter(Cat.id == cat_id).with_for_update().populate_existing().one_or_none()
    if not cat:
        raise NotFoundError("Cat", cat_id)

    old_status = cat.status
    if old_status == new_status:
        raise ValidationError("status", f"Cat is already {new_status}.")

    cat.status = new_status
    cat.updated_at = utcnow()
    cat.updated_by_user_id = principal.id
    history.append_entry(s, cat, old_status, new_status, notes, principal)

    try:
        s.flush()
    except StaleDataError as e:
        s.rollback()
        raise ConcurrentUpdateError(f"Cat {cat_id} changed while updating status") from e
    except SQLAlchemyError as e:
        s.rollback()
        raise StoreError(f"Status change for cat {cat_id} failed: {e.__class__.__name__}") from e
    s.expire(cat, ["updated_by"])

    record_event(
        s,
        actor=principal,
        action="cat.status_change",
        entity_type="Cat",
        entity_id=cat.id,
        reason=notes[:512] if notes else None,
        metadata={"old_status": old_status, "new_status": new_status},
    )
    return cat


def cat_status_counts(s: "Session") -> dict:
    rows = s.query(Cat.status, func.count(Cat.id)).group_by(Cat.status).all()
    by_status = {status: 0 for status in VALID_CAT_STATUSES}
    for status, count in rows:
        by_status[status] = int(count)
    return {"total": sum(by_status.values()), "byStatus": by_status}
