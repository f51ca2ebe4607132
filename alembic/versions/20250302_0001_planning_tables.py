"""Create meal planning tables.

Revision ID: 5b1f0c2d7a91
Revises:
Create Date: 2025-03-02 09:00:00
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5b1f0c2d7a91"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("NOW()"), nullable=False),
    ]


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB, "postgresql")
    op.create_table(
        "meal_plans",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("week_start_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("meals", json_type, nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "week_start_date", name="uq_meal_plans_user_week"),
    )
    op.create_index("ix_meal_plans_user_id", "meal_plans", ["user_id"])

    op.create_table(
        "pantry_items",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=False, server_default="1"),
        sa.Column("best_by_date", sa.Date(), nullable=True),
        sa.Column("thaw_date", sa.Date(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("used_by_meals", json_type, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_pantry_items_user_id", "pantry_items", ["user_id"])

    op.create_table(
        "shopping_list_items",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("list_id", sa.String(length=64), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("quantity", sa.Float(), nullable=True),
        sa.Column("crossed_off", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("meal_id", sa.String(length=128), nullable=True),
        sa.Column("source", sa.String(length=32), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_shopping_list_items_user_id", "shopping_list_items", ["user_id"])
    op.create_index("ix_shopping_list_items_meal_id", "shopping_list_items", ["meal_id"])

    op.create_table(
        "meal_profiles",
        sa.Column("user_id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("profile", json_type, nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "unplanned_events",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("meal_types", json_type, nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=False, server_default="other"),
        *_timestamps(),
    )
    op.create_index("ix_unplanned_events_user_id", "unplanned_events", ["user_id"])


def downgrade() -> None:
    op.drop_table("unplanned_events")
    op.drop_table("meal_profiles")
    op.drop_index("ix_shopping_list_items_meal_id", table_name="shopping_list_items")
    op.drop_index("ix_shopping_list_items_user_id", table_name="shopping_list_items")
    op.drop_table("shopping_list_items")
    op.drop_index("ix_pantry_items_user_id", table_name="pantry_items")
    op.drop_table("pantry_items")
    op.drop_index("ix_meal_plans_user_id", table_name="meal_plans")
    op.drop_table("meal_plans")
