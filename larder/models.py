"""Document-style tables backing the planning collaborators.

Plans keep their meals as one JSON document so a plan update is a single
row write, the same granularity the planning services reason about.
"""

from __future__ import annotations

import uuid
import datetime as dt
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, JSON, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

json_type = JSON().with_variant(JSONB, "postgresql")


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class TimestampMixin:
    """Common created/updated timestamp columns."""

    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class MealPlanRecord(Base, TimestampMixin):
    __tablename__ = "meal_plans"
    __table_args__ = (UniqueConstraint("user_id", "week_start_date", name="uq_meal_plans_user_week"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    week_start_date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    meals: Mapped[list] = mapped_column(json_type, nullable=False, default=list)
    confirmed_at: Mapped[Optional[dt.datetime]] = mapped_column(DateTime(timezone=True))

    def __repr__(self) -> str:
        return f"MealPlanRecord(id={self.id}, user_id={self.user_id}, week_start_date={self.week_start_date})"


class PantryItemRecord(Base, TimestampMixin):
    __tablename__ = "pantry_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    best_by_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    thaw_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    category: Mapped[Optional[str]] = mapped_column(String(64))
    used_by_meals: Mapped[list] = mapped_column(json_type, nullable=False, default=list)


class ShoppingListItemRecord(Base, TimestampMixin):
    __tablename__ = "shopping_list_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    list_id: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[Optional[float]] = mapped_column(Float)
    crossed_off: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    meal_id: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    source: Mapped[Optional[str]] = mapped_column(String(32))


class LeftoverMealRecord(Base, TimestampMixin):
    __tablename__ = "leftover_meals"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    meal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    meal_type: Mapped[str] = mapped_column(String(16), nullable=False)
    ingredients: Mapped[list] = mapped_column(json_type, nullable=False, default=list)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1)
    added_to_calendar: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    best_by_date: Mapped[Optional[dt.date]] = mapped_column(Date)


class MealProfileRecord(Base, TimestampMixin):
    __tablename__ = "meal_profiles"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    profile: Mapped[dict] = mapped_column(json_type, nullable=False, default=dict)


class UnplannedEventRecord(Base, TimestampMixin):
    __tablename__ = "unplanned_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    meal_types: Mapped[list] = mapped_column(json_type, nullable=False, default=list)
    reason: Mapped[str] = mapped_column(String(255), nullable=False, default="other")
