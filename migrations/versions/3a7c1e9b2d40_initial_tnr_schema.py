"""initial TNR registry schema

Revision ID: 3a7c1e9b2d40
Revises:
Create Date: 2026-10-19 09:12:41.208331

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3a7c1e9b2d40"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_STATUS_SQL = "('NOT_TNRED', 'TNRED', 'RESCUED', 'DECEASED', 'MISSING')"


def upgrade() -> None:
    """Create users, audit_events, cats and cat_status_history."""
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("is_admin", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("email"),
        sa.CheckConstraint("status IN ('PENDING', 'APPROVED', 'REJECTED')", name="ck_users_status"),
    )
    op.create_index("idx_users_status", "users", ["status"])

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("idx_audit_events_entity", "audit_events", ["entity_type", "entity_id"])

    op.create_table(
        "cats",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("gender", sa.String(16), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("estimated_age", sa.String(64), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("microchip_info", sa.String(255), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("image_url", sa.String(1024), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("date_added", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("gender IN ('MALE', 'FEMALE', 'UNKNOWN')", name="ck_cats_gender"),
        sa.CheckConstraint(f"status IN {_STATUS_SQL}", name="ck_cats_status"),
        sa.CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_cats_latitude"),
        sa.CheckConstraint("longitude >= -180 AND longitude <= 180", name="ck_cats_longitude"),
    )
    op.create_index("idx_cats_status", "cats", ["status"])
    op.create_index("idx_cats_created_at", "cats", ["created_at"])

    op.create_table(
        "cat_status_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("cat_id", sa.String(32), nullable=False),
        sa.Column("old_status", sa.String(16), nullable=True),
        sa.Column("new_status", sa.String(16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("updated_by_user_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["cat_id"], ["cats.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["updated_by_user_id"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint(f"new_status IN {_STATUS_SQL}", name="ck_cat_status_history_new_status"),
        sa.CheckConstraint(
            f"old_status IS NULL OR old_status IN {_STATUS_SQL}", name="ck_cat_status_history_old_status"
        ),
    )
    op.create_index("idx_cat_status_history_cat", "cat_status_history", ["cat_id", "updated_at"])


def downgrade() -> None:
    op.drop_index("idx_cat_status_history_cat", table_name="cat_status_history")
    op.drop_table("cat_status_history")
    op.drop_index("idx_cats_created_at", table_name="cats")
    op.drop_index("idx_cats_status", table_name="cats")
    op.drop_table("cats")
    op.drop_index("idx_audit_events_entity", table_name="audit_events")
    op.drop_table("audit_events")
    op.drop_index("idx_users_status", table_name="users")
    op.drop_table("users")
