from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, DateTime, Float, ForeignKey, Index, Integer, String, Text, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.tnr.models import Base
from app.tnr.utils import utcnow

if TYPE_CHECKING:
    from app.tnr.models import User


def _new_cat_id() -> str:
    return uuid.uuid4().hex


_STATUS_SQL = "('NOT_TNRED', 'TNRED', 'RESCUED', 'DECEASED', 'MISSING')"


class Cat(Base):
    __tablename__ = "cats"
    __table_args__ = (
        CheckConstraint("gender IN ('MALE', 'FEMALE', 'UNKNOWN')", name="ck_cats_gender"),
        CheckConstraint(f"status IN {_STATUS_SQL}", name="ck_cats_status"),
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_cats_latitude"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="ck_cats_longitude"),
        Index("idx_cats_status", "status"),
        Index("idx_cats_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_cat_id)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    gender: Mapped[str] = mapped_column(String(16), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    estimated_age: Mapped[str | None] = mapped_column(String(64), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    microchip_info: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Location
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)  # best-effort reverse geocode

    image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Optimistic concurrency counter; bumped by the ORM on every UPDATE.
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    date_added: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    created_by: Mapped["User | None"] = relationship("User", foreign_keys=[created_by_user_id], lazy="selectin")
    updated_by: Mapped["User | None"] = relationship("User", foreign_keys=[updated_by_user_id], lazy="selectin")
    status_history: Mapped[list["CatStatusHistory"]] = relationship(
        "CatStatusHistory",
        back_populates="cat",
        order_by=lambda: [CatStatusHistory.updated_at.desc(), CatStatusHistory.id.desc()],
        passive_deletes=True,
        lazy="select",
    )


class CatStatusHistory(Base):
    """
    One immutable status transition. Rows are only ever inserted; see the
    before_update / before_delete guards below.
    """

    __tablename__ = "cat_status_history"
    __table_args__ = (
        CheckConstraint(f"new_status IN {_STATUS_SQL}", name="ck_cat_status_history_new_status"),
        CheckConstraint(f"old_status IS NULL OR old_status IN {_STATUS_SQL}", name="ck_cat_status_history_old_status"),
        Index("idx_cat_status_history_cat", "cat_id", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cat_id: Mapped[str] = mapped_column(ForeignKey("cats.id", ondelete="CASCADE"), nullable=False)

    old_status: Mapped[str | None] = mapped_column(String(16), nullable=True)  # NULL only for the registration entry
    new_status: Mapped[str] = mapped_column(String(16), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    cat: Mapped[Cat] = relationship("Cat", back_populates="status_history")
    updated_by: Mapped["User | None"] = relationship("User", lazy="selectin")


@event.listens_for(CatStatusHistory, "before_update")
def _history_is_append_only(mapper, connection, target):  # type: ignore[no-redef]
    raise RuntimeError(f"CatStatusHistory {target.id} is append-only and cannot be updated.")


@event.listens_for(CatStatusHistory, "before_delete")
def _history_is_undeletable(mapper, connection, target):  # type: ignore[no-redef]
    raise RuntimeError(f"CatStatusHistory {target.id} is append-only and cannot be deleted.")
