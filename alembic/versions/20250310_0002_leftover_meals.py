"""Add leftover meals table.

Deployments that have not run this revision still serve planning requests;
leftover lookups degrade to an empty list until it is applied.

Revision ID: 9e3a64c0b2f8
Revises: 5b1f0c2d7a91
Create Date: 2025-03-10 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "9e3a64c0b2f8"
down_revision = "5b1f0c2d7a91"
branch_labels = None
depends_on = None


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB, "postgresql")
    op.create_table(
        "leftover_meals",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("meal_name", sa.String(length=255), nullable=False),
        sa.Column("meal_type", sa.String(length=16), nullable=False),
        sa.Column("ingredients", json_type, nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False, server_default="1"),
        sa.Column("added_to_calendar", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("best_by_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    )
    op.create_index("ix_leftover_meals_user_id", "leftover_meals", ["user_id"])
    op.create_index("ix_leftover_meals_user_date", "leftover_meals", ["user_id", "date"])


def downgrade() -> None:
    op.drop_index("ix_leftover_meals_user_date", table_name="leftover_meals")
    op.drop_index("ix_leftover_meals_user_id", table_name="leftover_meals")
    op.drop_table("leftover_meals")
