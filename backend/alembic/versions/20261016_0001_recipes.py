"""recipes table

Revision ID: 20261016_0001
Revises:
Create Date: 2026-10-16 00:00:01
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "20261016_0001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "recipes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("prompt", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("base_adjustments_json", sa.JSON(), nullable=False),
        sa.Column("style_options_json", sa.JSON(), nullable=False),
        sa.Column("global_overrides_json", sa.JSON(), nullable=False),
        sa.Column("mask_overrides_json", sa.JSON(), nullable=False),
        sa.Column("preset_text", sa.Text(), nullable=True),
        sa.Column("preset_created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="draft"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recipes_status", "recipes", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_recipes_status", table_name="recipes")
    op.drop_table("recipes")
