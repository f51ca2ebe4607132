from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..config import get_settings
from ..errors import NotFoundError
from ..schemas import (
    AnyPlannedMeal,
    Dish,
    DishInput,
    DishUpdate,
    LegacyPlannedMeal,
    MealPlan,
    MealType,
    PantryItem,
    PlannedMeal,
)
from .claims import ClaimCoordinator
from .ingredient_matcher import find_matches
from .ingredient_parser import normalize_item_name
from .meal_records import (
    find_meal_index,
    legacy_dish_id,
    migrate_legacy_meal,
    new_dish_id,
    new_meal_id,
)
from .plan_locks import PlanMutationQueue
from .reservations import ReservationLedger, calculate_reserved_quantities
from .schedules import resolve_meal_times, week_start_for
from .stores import InventoryProvider, MealProfileProvider, PlanStore, ShoppingListStore

logger = logging.getLogger(__name__)

RECIPE_SHOPPING_SOURCE = "recipe_import"


@dataclass
class MealLocation:
    plan: MealPlan
    index: int

    @property
    def meal(self) -> AnyPlannedMeal:
        return self.plan.meals[self.index]


def _find_dish(meal: PlannedMeal, dish_id: str) -> Dish:
    for dish in meal.dishes:
        if dish.id == dish_id:
            return dish
    raise NotFoundError("dish not found", details={"meal_id": meal.id, "dish_id": dish_id})


def _ids_held_by_others(meal: PlannedMeal, dish_id: str) -> Tuple[Set[str], Set[str]]:
    items: Set[str] = set()
    entries: Set[str] = set()
    for dish in meal.dishes:
        if dish.id == dish_id:
            continue
        items.update(dish.claimed_item_ids)
        entries.update(dish.claimed_shopping_list_item_ids)
    return items, entries


def item_reservations(dish: Dish, pantry: Sequence[PantryItem], *, capped: bool = True) -> Dict[str, float]:
    """Quantity ``dish`` holds on each claimed pantry item.

    Dishes saved before per-item reservations were kept only have totals by
    name; those are spread over the claimed items in claim order, each taking
    at most its current quantity unless ``capped`` is off.
    """
    if dish.reserved_by_item:
        return {item_id: dish.reserved_by_item.get(item_id, 0.0) for item_id in dish.claimed_item_ids}
    by_id = {item.id: item for item in pantry}
    remaining = dict(dish.reserved_quantities)
    split: Dict[str, float] = {}
    for item_id in dish.claimed_item_ids:
        item = by_id.get(item_id)
        if item is None:
            continue
        key = normalize_item_name(item.name)
        take = remaining.get(key, 0.0)
        if capped:
            take = min(max(0.0, float(item.quantity)), take)
        remaining[key] = remaining.get(key, 0.0) - take
        split[item_id] = take
    return split


def _scan_offsets(window_weeks: int) -> List[int]:
    offsets = [0]
    for step in range(1, window_weeks + 1):
        offsets.extend((-step, step))
    return offsets


class DishLifecycleManager:
    """Adds, edits and removes dishes inside planned meals and keeps their claims in step."""

    def __init__(
        self,
        *,
        plans: PlanStore,
        inventory: InventoryProvider,
        shopping_list: ShoppingListStore,
        profiles: MealProfileProvider,
        claims: ClaimCoordinator,
        locks: PlanMutationQueue,
    ) -> None:
        self.plans = plans
        self.inventory = inventory
        self.shopping_list = shopping_list
        self.profiles = profiles
        self.claims = claims
        self.locks = locks

    async def locate_meal(self, user_id: str, meal_id: str, *, around: Optional[dt.date] = None) -> MealLocation:
        """Find the plan holding ``meal_id`` by scanning weeks around ``around``.

        The scan is bounded by ``plan_lookup_window_weeks`` in each direction.
        """
        anchor = week_start_for(around or dt.date.today())
        for offset in _scan_offsets(get_settings().plan_lookup_window_weeks):
            plan = await self.plans.get_meal_plan(user_id, anchor + dt.timedelta(weeks=offset))
            if plan is None:
                continue
            index = find_meal_index(plan.meals, meal_id)
            if index >= 0:
                return MealLocation(plan=plan, index=index)
        raise NotFoundError("meal plan not found", details={"user_id": user_id, "meal_id": meal_id})

    async def _reload(self, plan_id: str, meal_id: str) -> MealLocation:
        plan = await self.plans.get_meal_plan_by_id(plan_id)
        if plan is None:
            raise NotFoundError("meal plan not found", details={"plan_id": plan_id, "meal_id": meal_id})
        index = find_meal_index(plan.meals, meal_id)
        if index < 0:
            raise NotFoundError("meal not found in meal plan", details={"plan_id": plan_id, "meal_id": meal_id})
        return MealLocation(plan=plan, index=index)

    async def _write_meal(self, location: MealLocation, meal: Optional[AnyPlannedMeal]) -> None:
        meals = list(location.plan.meals)
        if meal is None:
            del meals[location.index]
        else:
            meals[location.index] = meal
        await self.plans.update_meal_plan(location.plan.id, meals=meals)

    async def _build_dish(
        self,
        user_id: str,
        plan: MealPlan,
        meal_id: str,
        payload: DishInput,
        *,
        dish_id: Optional[str] = None,
        exclude_dish_id: Optional[str] = None,
    ) -> Dish:
        ingredients = list(payload.recipe_ingredients)
        pantry = await self.inventory.get_food_items(user_id)
        seed = calculate_reserved_quantities(plan.meals, pantry, exclude_dish_id=exclude_dish_id)
        ledger = ReservationLedger(pantry, seed)
        allocations = ledger.allocate_all(ingredients)

        claimed_items = await self.claims.claim_items_for_meal(user_id, meal_id, ingredients, pantry, seed)
        reserved_by_item: Dict[str, float] = {}
        for allocation in allocations:
            for item_id, quantity in allocation.item_allocations.items():
                if item_id in claimed_items:
                    reserved_by_item[item_id] = reserved_by_item.get(item_id, 0.0) + quantity
        shopping = await self.shopping_list.get_items(user_id)
        claimed_entries = await self.claims.claim_shopping_list_items_for_meal(
            user_id, meal_id, ingredients, shopping
        )

        if payload.add_missing_to_shopping_list:
            linked_ids = set(claimed_entries)
            linked = [entry for entry in shopping if entry.id in linked_ids]
            for allocation in allocations:
                if allocation.status == "available" or find_matches(allocation.parsed.item_name, linked):
                    continue
                entry = await self.shopping_list.add_item(
                    user_id,
                    allocation.ingredient,
                    quantity=allocation.remaining_quantity if allocation.needed_quantity is not None else None,
                    meal_id=meal_id,
                    source=RECIPE_SHOPPING_SOURCE,
                )
                claimed_entries.append(entry.id)

        return Dish(
            id=dish_id or new_dish_id(),
            dish_name=payload.dish_name,
            recipe_title=payload.recipe_title,
            recipe_ingredients=ingredients,
            recipe_source_url=payload.recipe_source_url,
            recipe_image_url=payload.recipe_image_url,
            reserved_quantities=ledger.allocated,
            reserved_by_item=reserved_by_item,
            claimed_item_ids=claimed_items,
            claimed_shopping_list_item_ids=claimed_entries,
        )

    async def add_dish_to_meal(self, user_id: str, meal_id: str, payload: DishInput) -> Dish:
        located = await self.locate_meal(user_id, meal_id)
        async with self.locks.hold(user_id, located.plan.week_start_date):
            location = await self._reload(located.plan.id, meal_id)
            meal = migrate_legacy_meal(location.meal)
            dish = await self._build_dish(user_id, location.plan, meal_id, payload)
            await self._write_meal(location, meal.model_copy(update={"dishes": [*meal.dishes, dish]}))
        logger.info("Added dish %s to meal=%s user=%s", dish.id, meal_id, user_id)
        return dish

    async def add_dish_to_slot(
        self, user_id: str, day: dt.date, meal_type: MealType, payload: DishInput
    ) -> Tuple[PlannedMeal, Dish]:
        """Add a dish to the meal at ``day``/``meal_type``, creating the plan or meal if needed."""
        week_start = week_start_for(day)
        async with self.locks.hold(user_id, week_start):
            plan = await self.plans.create_empty_meal_plan(user_id, week_start)
            index = next(
                (
                    i
                    for i, meal in enumerate(plan.meals)
                    if meal.date == day and meal.meal_type == meal_type and not meal.skipped
                ),
                -1,
            )
            if index >= 0:
                meal = migrate_legacy_meal(plan.meals[index])
            else:
                profile = await self.profiles.get_meal_profile(user_id)
                schedule = await self.profiles.get_effective_schedule(user_id, day)
                finish_by, start_at = resolve_meal_times(schedule, profile, meal_type)
                meal = PlannedMeal(
                    id=new_meal_id(),
                    date=day,
                    meal_type=meal_type,
                    finish_by=finish_by,
                    start_cooking_at=start_at,
                    confirmed=True,
                )
            dish = await self._build_dish(user_id, plan, meal.id, payload)
            meal = meal.model_copy(update={"dishes": [*meal.dishes, dish]})
            meals = list(plan.meals)
            if index >= 0:
                meals[index] = meal
            else:
                meals.append(meal)
            await self.plans.update_meal_plan(plan.id, meals=meals)
        logger.info("Added dish %s to %s on %s for user=%s", dish.id, meal_type, day, user_id)
        return meal, dish

    async def remove_dish_from_meal(self, user_id: str, meal_id: str, dish_id: str) -> None:
        located = await self.locate_meal(user_id, meal_id)
        async with self.locks.hold(user_id, located.plan.week_start_date):
            location = await self._reload(located.plan.id, meal_id)
            original = location.meal
            meal = migrate_legacy_meal(original)
            dish = _find_dish(meal, dish_id)

            # A legacy meal whose only dish goes away is deleted outright.
            if (
                isinstance(original, LegacyPlannedMeal)
                and len(meal.dishes) == 1
                and dish.id == legacy_dish_id(meal.id)
            ):
                await self._discard_meal(user_id, meal)
                await self._write_meal(location, None)
                logger.info("Removed legacy meal %s with its only dish for user=%s", meal_id, user_id)
                return

            held_items, held_entries = _ids_held_by_others(meal, dish_id)
            await self.claims.release_items_for_meal(
                user_id, meal_id, [item_id for item_id in dish.claimed_item_ids if item_id not in held_items]
            )
            await self.claims.release_shopping_list_items(
                user_id,
                meal_id,
                [entry_id for entry_id in dish.claimed_shopping_list_item_ids if entry_id not in held_entries],
            )
            remaining = [candidate for candidate in meal.dishes if candidate.id != dish_id]
            await self._write_meal(location, meal.model_copy(update={"dishes": remaining}))
        logger.info("Removed dish %s from meal=%s user=%s", dish_id, meal_id, user_id)

    async def update_dish_in_meal(self, user_id: str, meal_id: str, dish_id: str, changes: DishUpdate) -> Dish:
        located = await self.locate_meal(user_id, meal_id)
        async with self.locks.hold(user_id, located.plan.week_start_date):
            location = await self._reload(located.plan.id, meal_id)
            meal = migrate_legacy_meal(location.meal)
            dish = _find_dish(meal, dish_id)
            update = changes.model_dump(exclude_unset=True)

            if "recipe_ingredients" in update and update["recipe_ingredients"] is not None and not dish.completed:
                merged = DishInput(
                    dish_name=update.get("dish_name") or dish.dish_name,
                    recipe_title=update.get("recipe_title", dish.recipe_title),
                    recipe_ingredients=update["recipe_ingredients"],
                    recipe_source_url=update.get("recipe_source_url", dish.recipe_source_url),
                    recipe_image_url=update.get("recipe_image_url", dish.recipe_image_url),
                )
                updated = await self._build_dish(
                    user_id, location.plan, meal_id, merged, dish_id=dish.id, exclude_dish_id=dish.id
                )
                updated = updated.model_copy(update={"completed": dish.completed})
                held_items, held_entries = _ids_held_by_others(meal, dish_id)
                await self.claims.release_items_for_meal(
                    user_id,
                    meal_id,
                    [
                        item_id
                        for item_id in dish.claimed_item_ids
                        if item_id not in held_items and item_id not in updated.claimed_item_ids
                    ],
                )
                await self.claims.release_shopping_list_items(
                    user_id,
                    meal_id,
                    [
                        entry_id
                        for entry_id in dish.claimed_shopping_list_item_ids
                        if entry_id not in held_entries and entry_id not in updated.claimed_shopping_list_item_ids
                    ],
                )
            else:
                update.pop("recipe_ingredients", None)
                if update.get("dish_name") is None:
                    update.pop("dish_name", None)
                updated = dish.model_copy(update=update)

            dishes = [updated if candidate.id == dish_id else candidate for candidate in meal.dishes]
            await self._write_meal(location, meal.model_copy(update={"dishes": dishes}))
        logger.info("Updated dish %s in meal=%s user=%s", dish_id, meal_id, user_id)
        return updated

    async def _discard_meal(self, user_id: str, meal: PlannedMeal) -> None:
        item_ids = [item_id for dish in meal.dishes for item_id in dish.claimed_item_ids]
        await self.claims.release_items_for_meal(user_id, meal.id, item_ids)
        deleted = await self.shopping_list.delete_items_by_meal_id(user_id, meal.id)
        if deleted:
            logger.info("Deleted %s shopping list items linked to meal=%s", deleted, meal.id)

    async def delete_meal(self, user_id: str, meal_id: str) -> None:
        located = await self.locate_meal(user_id, meal_id)
        async with self.locks.hold(user_id, located.plan.week_start_date):
            location = await self._reload(located.plan.id, meal_id)
            await self._discard_meal(user_id, migrate_legacy_meal(location.meal))
            await self._write_meal(location, None)
        logger.info("Deleted meal %s for user=%s", meal_id, user_id)

    async def complete_dish(self, user_id: str, meal_id: str, dish_id: str) -> Dish:
        """Mark a dish prepared and consume its reserved pantry quantities."""
        located = await self.locate_meal(user_id, meal_id)
        async with self.locks.hold(user_id, located.plan.week_start_date):
            location = await self._reload(located.plan.id, meal_id)
            meal = migrate_legacy_meal(location.meal)
            dish = _find_dish(meal, dish_id)
            if dish.completed:
                return dish
            pantry = await self.inventory.get_food_items(user_id)
            consumed = await self.claims.mark_items_as_used_for_meal(
                user_id, meal_id, dish.claimed_item_ids, item_reservations(dish, pantry)
            )
            updated = dish.model_copy(update={"completed": True, "consumed_quantities": consumed})
            dishes = [updated if candidate.id == dish_id else candidate for candidate in meal.dishes]
            await self._write_meal(location, meal.model_copy(update={"dishes": dishes}))
        logger.info("Completed dish %s in meal=%s user=%s", dish_id, meal_id, user_id)
        return updated

    async def reopen_dish(self, user_id: str, meal_id: str, dish_id: str) -> Dish:
        """Reverse ``complete_dish``: restore quantities and keep the dish's claims linked."""
        located = await self.locate_meal(user_id, meal_id)
        async with self.locks.hold(user_id, located.plan.week_start_date):
            location = await self._reload(located.plan.id, meal_id)
            meal = migrate_legacy_meal(location.meal)
            dish = _find_dish(meal, dish_id)
            if not dish.completed:
                return dish
            consumed = dish.consumed_quantities
            if not consumed:
                # Completed before consumption was recorded per item.
                consumed = item_reservations(dish, await self.inventory.get_food_items(user_id), capped=False)
            await self.claims.unmark_items_as_used_for_meal(user_id, meal_id, dish.claimed_item_ids, consumed)
            pantry = await self.inventory.get_food_items(user_id)
            await self.claims.link_items_to_meal(user_id, meal_id, dish.claimed_item_ids, pantry)
            updated = dish.model_copy(update={"completed": False, "consumed_quantities": {}})
            dishes = [updated if candidate.id == dish_id else candidate for candidate in meal.dishes]
            await self._write_meal(location, meal.model_copy(update={"dishes": dishes}))
        logger.info("Reopened dish %s in meal=%s user=%s", dish_id, meal_id, user_id)
        return updated
