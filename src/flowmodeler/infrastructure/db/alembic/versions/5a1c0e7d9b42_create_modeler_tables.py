"""Create modeler tables

Revision ID: 5a1c0e7d9b42
Revises:
Create Date: 2026-10-18

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

from flowmodeler.infrastructure.db.sa_types import UTCDateTime

# deal with alembic stuff
# pylint: disable=no-member

# revision identifiers, used by Alembic.
revision: str = "5a1c0e7d9b42"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = ("modeler",)
depends_on: str | Sequence[str] | None = None


def _model_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=400), nullable=False),
        sa.Column("model_key", sa.String(length=400), nullable=False),
        sa.Column("description", sa.String(length=4000), nullable=True),
        sa.Column("model_comment", sa.String(length=4000), nullable=True),
        sa.Column("created", UTCDateTime(), nullable=True),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("last_updated", UTCDateTime(), nullable=True),
        sa.Column("last_updated_by", sa.String(length=255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=True),
        sa.Column("model_editor_json", sa.Text(), nullable=True),
        sa.Column("thumbnail", sa.LargeBinary(), nullable=True),
        sa.Column("model_type", sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "ACT_DE_MODEL",
        *_model_columns(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ACT_DE_MODEL")),
    )
    op.create_index("idx_proc_mod_created", "ACT_DE_MODEL", ["created_by"])

    op.create_table(
        "ACT_DE_MODEL_HISTORY",
        *_model_columns(),
        sa.Column("model_id", sa.String(length=400), nullable=False),
        sa.Column("removal_date", UTCDateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ACT_DE_MODEL_HISTORY")),
    )
    op.create_index("idx_proc_mod_history_proc", "ACT_DE_MODEL_HISTORY", ["model_id"])

    op.create_table(
        "ACT_DE_MODEL_RELATION",
        sa.Column("id", sa.String(length=255), nullable=False),
        sa.Column("parent_model_id", sa.String(length=255), nullable=True),
        sa.Column("model_id", sa.String(length=255), nullable=True),
        sa.Column("relation_type", sa.String(length=255), nullable=True),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_ACT_DE_MODEL_RELATION")),
        sa.ForeignKeyConstraint(
            ["parent_model_id"],
            ["ACT_DE_MODEL.id"],
            name=op.f("fk_ACT_DE_MODEL_RELATION_parent_model_id_ACT_DE_MODEL"),
        ),
        sa.ForeignKeyConstraint(
            ["model_id"],
            ["ACT_DE_MODEL.id"],
            name=op.f("fk_ACT_DE_MODEL_RELATION_model_id_ACT_DE_MODEL"),
        ),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("ACT_DE_MODEL_RELATION")
    op.drop_index("idx_proc_mod_history_proc", table_name="ACT_DE_MODEL_HISTORY")
    op.drop_table("ACT_DE_MODEL_HISTORY")
    op.drop_index("idx_proc_mod_created", table_name="ACT_DE_MODEL")
    op.drop_table("ACT_DE_MODEL")
