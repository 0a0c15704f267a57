"""Idempotent points ledger and points notifications

Renames ``points_history.action`` to ``action_name``, adds ``related_id``
and ``idempotency_key`` with a partial unique index on
``(user_id, idempotency_key)``, and lets
``notifications.type`` accept ``points``.

Revision ID: 8f3d2b6a4e10
Revises: 5c1e0a7b9d21
Create Date: 2026-10-06 09:15:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8f3d2b6a4e10"
down_revision: str | Sequence[str] | None = "5c1e0a7b9d21"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_TYPES = (
    "comment", "reply", "mention", "like", "follow",
    "project_offer", "forum_reply", "forum_mention",
)


def _type_check(types: Sequence[str]) -> str:
    return "type IN ({})".format(", ".join(f"'{t}'" for t in types))


def upgrade() -> None:
    """Move the ledger to the current shape."""
    with op.batch_alter_table("points_history") as batch:
        batch.alter_column("action", new_column_name="action_name")
        batch.add_column(sa.Column("related_id", sa.String(100), nullable=True))
        batch.add_column(sa.Column("idempotency_key", sa.String(255), nullable=True))

    op.create_index(
        "ix_points_history_idempotent",
        "points_history",
        ["user_id", "idempotency_key"],
        unique=True,
        postgresql_where=sa.text("idempotency_key IS NOT NULL"),
        sqlite_where=sa.text("idempotency_key IS NOT NULL"),
    )
    op.create_index(
        "ix_points_history_user_action", "points_history", ["user_id", "action_name"],
    )

    with op.batch_alter_table("notifications") as batch:
        batch.drop_constraint("ck_notifications_type", type_="check")
        batch.create_check_constraint(
            "ck_notifications_type", _type_check((*_TYPES, "points")),
        )


def downgrade() -> None:
    """Return to the legacy ledger shape."""
    op.execute("DELETE FROM notifications WHERE type = 'points'")
    with op.batch_alter_table("notifications") as batch:
        batch.drop_constraint("ck_notifications_type", type_="check")
        batch.create_check_constraint("ck_notifications_type", _type_check(_TYPES))

    op.drop_index("ix_points_history_user_action", table_name="points_history")
    op.drop_index("ix_points_history_idempotent", table_name="points_history")
    with op.batch_alter_table("points_history") as batch:
        batch.drop_column("idempotency_key")
        batch.drop_column("related_id")
        batch.alter_column("action_name", new_column_name="action")
