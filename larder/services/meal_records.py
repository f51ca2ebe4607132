"""Persistence-boundary helpers for planned meal records.

Meals are stored as loosely shaped JSON documents. Two shapes exist: the
current one with a ``dishes`` array and the older single-dish shape that
carries recipe fields directly on the meal. ``load_planned_meal`` picks the
variant once at read time and ``migrate_legacy_meal`` is the only mapping
from the old shape to the new one.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, List, Mapping

from ..schemas import AnyPlannedMeal, Dish, LegacyPlannedMeal, MealSlot, PlannedMeal

LEGACY_DISH_SUFFIX = "-dish-0"
UNNAMED_DISH = "Unnamed Dish"


def new_meal_id() -> str:
    return f"meal-{uuid.uuid4().hex}"


def new_dish_id() -> str:
    return f"dish-{uuid.uuid4().hex}"


def load_planned_meal(raw: Any) -> AnyPlannedMeal:
    if isinstance(raw, (PlannedMeal, LegacyPlannedMeal)):
        return raw
    if isinstance(raw, MealSlot):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        raise TypeError(f"Unsupported meal record type: {type(raw).__name__}")
    if raw.get("dishes") is not None:
        return PlannedMeal.model_validate(raw)
    return LegacyPlannedMeal.model_validate(raw)


def legacy_dish_id(meal_id: str) -> str:
    return f"{meal_id}{LEGACY_DISH_SUFFIX}"


def _has_legacy_data(meal: LegacyPlannedMeal) -> bool:
    return bool(
        meal.meal_name
        or meal.recipe_title
        or meal.recipe_ingredients
        or meal.suggested_ingredients
    )


def migrate_legacy_meal(meal: AnyPlannedMeal) -> PlannedMeal:
    """Return ``meal`` in the multi-dish shape. Already-migrated meals are returned as-is."""
    if isinstance(meal, PlannedMeal):
        return meal

    slot = meal.model_dump(include=set(MealSlot.model_fields))
    if not _has_legacy_data(meal):
        return PlannedMeal(**slot, dishes=[])

    dish = Dish(
        id=legacy_dish_id(meal.id),
        dish_name=meal.meal_name or meal.recipe_title or UNNAMED_DISH,
        recipe_title=meal.recipe_title,
        recipe_ingredients=list(meal.recipe_ingredients or meal.suggested_ingredients),
        recipe_source_url=meal.recipe_source_url,
        recipe_image_url=meal.recipe_image_url,
        reserved_quantities=dict(meal.reserved_quantities),
        claimed_item_ids=list(
            meal.claimed_item_ids if meal.claimed_item_ids is not None else meal.uses_best_by_soon_items
        ),
        claimed_shopping_list_item_ids=list(meal.claimed_shopping_list_item_ids),
        completed=meal.completed,
    )
    return PlannedMeal(**slot, dishes=[dish])


def meal_dishes(meal: AnyPlannedMeal) -> List[Dish]:
    return migrate_legacy_meal(meal).dishes


def meal_claimed_item_ids(meal: AnyPlannedMeal) -> set[str]:
    claimed: set[str] = set()
    for dish in meal_dishes(meal):
        claimed.update(dish.claimed_item_ids)
    if isinstance(meal, LegacyPlannedMeal):
        claimed.update(meal.uses_best_by_soon_items)
    return claimed


def find_meal_index(meals: Iterable[AnyPlannedMeal], meal_id: str) -> int:
    for index, meal in enumerate(meals):
        if meal.id == meal_id:
            return index
    return -1


def dump_meals(meals: Iterable[AnyPlannedMeal]) -> List[dict]:
    return [meal.to_document() for meal in meals]
