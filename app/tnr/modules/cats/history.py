"""
Status history ledger.

Entries are append-only. For one cat, ordered oldest first, they form a chain:
the first entry has ``old_status`` NULL and every later entry's ``old_status``
equals its predecessor's ``new_status``. Writers must append in the same
transaction that changes ``Cat.status``.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from app.tnr.modules.cats.models import CatStatusHistory
from app.tnr.utils import utcnow

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.tnr.modules.cats.models import Cat
    from app.tnr.policy import Principal


def append_entry(
    s: "Session",
    cat: "Cat",
    old_status: str | None,
    new_status: str,
    notes: str | None,
    principal: "Principal",
) -> CatStatusHistory:
    entry = CatStatusHistory(
        cat_id=cat.id,
        old_status=old_status,
        new_status=new_status,
        notes=notes,
        updated_at=utcnow(),
        updated_by_user_id=principal.id,
    )
    s.add(entry)
    return entry


def list_for_cat(s: "Session", cat_id: str) -> list[CatStatusHistory]:
    """Newest first."""
    return (
        s.query(CatStatusHistory)
        .filter(CatStatusHistory.cat_id == cat_id)
        .order_by(CatStatusHistory.updated_at.desc(), CatStatusHistory.id.desc())
        .all()
    )


def latest_entry(s: "Session", cat_id: str) -> CatStatusHistory | None:
    return (
        s.query(CatStatusHistory)
        .filter(CatStatusHistory.cat_id == cat_id)
        .order_by(CatStatusHistory.updated_at.desc(), CatStatusHistory.id.desc())
        .first()
    )


def verify_chain(entries: Sequence[CatStatusHistory], current_status: str | None = None) -> list[str]:
    """
    Returns a list of chain violations (empty when intact). ``entries`` may be
    in any order; they are checked oldest first.
    """
    problems: list[str] = []
    ordered = sorted(entries, key=lambda e: (e.updated_at, e.id))
    if not ordered:
        if current_status is not None:
            problems.append("no history entries for a registered cat")
        return problems

    if ordered[0].old_status is not None:
        problems.append(f"entry {ordered[0].id}: first entry has old_status {ordered[0].old_status!r}, expected None")
    for prev, entry in zip(ordered, ordered[1:]):
        if entry.old_status != prev.new_status:
            problems.append(
                f"entry {entry.id}: old_status {entry.old_status!r} does not match previous new_status {prev.new_status!r}"
            )
    if current_status is not None and ordered[-1].new_status != current_status:
        problems.append(f"cat status {current_status!r} does not match latest entry new_status {ordered[-1].new_status!r}")
    return problems
