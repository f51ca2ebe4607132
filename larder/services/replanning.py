from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ..errors import DegradedDependencyError, NotFoundError
from ..schemas import (
    AnyPlannedMeal,
    Dish,
    EffectiveSchedule,
    LeftoverMeal,
    MealPlan,
    MealProfile,
    MealSuggestion,
    PantryItem,
    PlannedMeal,
    PlanningContext,
    UnplannedEvent,
    WasteRiskEntry,
)
from .claims import ClaimCoordinator
from .ingredient_parser import normalize_item_name
from .meal_records import new_dish_id, new_meal_id
from .plan_locks import PlanMutationQueue
from .reservations import calculate_reserved_quantities
from .schedules import resolve_meal_times, week_dates, week_start_for
from .stores import InventoryProvider, LeftoverMealProvider, MealProfileProvider, PlanStore
from .suggestions import SuggestionProvider
from .waste_risk import build_waste_risk_entries

logger = logging.getLogger(__name__)


@dataclass
class ReplanResult:
    plan: MealPlan
    skipped_meal_ids: List[str] = field(default_factory=list)
    added_meal_ids: List[str] = field(default_factory=list)
    dropped_suggestions: List[MealSuggestion] = field(default_factory=list)


def mark_skipped(meals: Sequence[AnyPlannedMeal], event: UnplannedEvent) -> tuple[List[AnyPlannedMeal], List[str]]:
    """Flag meals hit by ``event``. Nothing is removed."""
    flagged: List[AnyPlannedMeal] = []
    skipped_ids: List[str] = []
    for meal in meals:
        if meal.date == event.date and meal.meal_type in event.meal_types:
            meal = meal.model_copy(update={"skipped": True})
            skipped_ids.append(meal.id)
        flagged.append(meal)
    return flagged, skipped_ids


def available_inventory(
    meals: Sequence[AnyPlannedMeal], pantry: Sequence[PantryItem]
) -> List[PantryItem]:
    """Pantry with quantity still free after confirmed, non-skipped meals take their share."""
    reserved = calculate_reserved_quantities(meals, pantry, confirmed_only=True)
    free: List[PantryItem] = []
    for item in pantry:
        remaining = float(item.quantity) - reserved.get(normalize_item_name(item.name), 0.0)
        if remaining > 0:
            free.append(item.model_copy(update={"quantity": remaining}))
    return free


async def fetch_leftover_meals(
    leftovers: LeftoverMealProvider, user_id: str, start: dt.date, end: dt.date
) -> List[LeftoverMeal]:
    """Leftovers are optional context: a degraded lookup yields an empty list."""
    try:
        return await leftovers.get_leftover_meals(user_id, start, end)
    except DegradedDependencyError as exc:
        logger.info("Leftover meals unavailable for user=%s, planning without them: %s", user_id, exc.message)
        return []


async def load_week_schedules(
    profiles: MealProfileProvider, user_id: str, week_start: dt.date
) -> Dict[dt.date, EffectiveSchedule]:
    schedules: Dict[dt.date, EffectiveSchedule] = {}
    for day in week_dates(week_start):
        schedules[day] = await profiles.get_effective_schedule(user_id, day)
    return schedules


def build_planning_context(
    *,
    user_id: str,
    week_start: dt.date,
    profile: Optional[MealProfile],
    schedules: Dict[dt.date, EffectiveSchedule],
    inventory: Sequence[PantryItem],
    waste_risk: Sequence[WasteRiskEntry],
    leftovers: Sequence[LeftoverMeal],
    skipped_meals: Sequence[AnyPlannedMeal] = (),
    event: Optional[UnplannedEvent] = None,
) -> PlanningContext:
    preferences = {}
    if profile is not None:
        preferences = profile.model_dump(
            include={
                "disliked_foods",
                "food_preferences",
                "diet_approach",
                "diet_strict",
                "favorite_meals",
                "serving_size",
            }
        )
    return PlanningContext(
        user_id=user_id,
        week_start_date=week_start,
        waste_risk_items=list(waste_risk),
        leftover_meals=list(leftovers),
        schedule=list(schedules.values()),
        available_inventory=list(inventory),
        skipped_meals=list(skipped_meals),
        unplanned_event=event,
        **preferences,
    )


def materialize_suggestions(
    user_id: str,
    suggestions: Sequence[MealSuggestion],
    schedules: Dict[dt.date, EffectiveSchedule],
    profile: Optional[MealProfile],
    pantry: Sequence[PantryItem],
) -> Tuple[List[PlannedMeal], List[MealSuggestion]]:
    """Turn suggestions into one-dish planned meals with cooking times.

    Nothing is written: the meals name the pantry items they use and
    ``link_new_meals`` links them once the plan is stored. Suggestions dated
    outside ``schedules`` are returned as dropped.
    """
    owned = {item.id for item in pantry if item.user_id == user_id}
    meals: List[PlannedMeal] = []
    dropped: List[MealSuggestion] = []
    for suggestion in suggestions:
        schedule = schedules.get(suggestion.date)
        if schedule is None:
            logger.warning("Dropping suggestion %r dated %s outside the planned week", suggestion.meal_name, suggestion.date)
            dropped.append(suggestion)
            continue
        finish_by, start_at = resolve_meal_times(schedule, profile, suggestion.meal_type)
        meal_id = new_meal_id()
        dish = Dish(
            id=new_dish_id(),
            dish_name=suggestion.meal_name,
            recipe_ingredients=list(suggestion.suggested_ingredients),
            claimed_item_ids=[
                item_id for item_id in dict.fromkeys(suggestion.uses_best_by_soon_items) if item_id in owned
            ],
        )
        meals.append(
            PlannedMeal(
                id=meal_id,
                date=suggestion.date,
                meal_type=suggestion.meal_type,
                finish_by=finish_by,
                start_cooking_at=start_at,
                reasoning=suggestion.reasoning,
                dishes=[dish],
            )
        )
    return meals, dropped


async def link_new_meals(
    claims: ClaimCoordinator, user_id: str, meals: Sequence[PlannedMeal], pantry: Sequence[PantryItem]
) -> None:
    """Point pantry items at meals that are already stored in a plan."""
    for meal in meals:
        for dish in meal.dishes:
            await claims.link_items_to_meal(user_id, meal.id, dish.claimed_item_ids, pantry)


class ReplanningEngine:
    """Responds to an unplanned event by skipping the affected meals and planning around them."""

    def __init__(
        self,
        *,
        plans: PlanStore,
        inventory: InventoryProvider,
        leftovers: LeftoverMealProvider,
        profiles: MealProfileProvider,
        suggestions: SuggestionProvider,
        claims: ClaimCoordinator,
        locks: PlanMutationQueue,
    ) -> None:
        self.plans = plans
        self.inventory = inventory
        self.leftovers = leftovers
        self.profiles = profiles
        self.suggestions = suggestions
        self.claims = claims
        self.locks = locks

    async def replan_meals(
        self,
        user_id: str,
        plan_id: Optional[str],
        event: UnplannedEvent,
        *,
        today: Optional[dt.date] = None,
    ) -> ReplanResult:
        """Skip the meals ``event`` disrupts and append newly suggested ones.

        The plan is re-read under the plan lock and written back once.
        Provider failures propagate and leave the plan untouched.
        """
        week_start = week_start_for(event.date)
        async with self.locks.hold(user_id, week_start):
            plan = await self.plans.get_meal_plan(user_id, week_start)
            if plan is None:
                raise NotFoundError(
                    "meal plan not found",
                    details={"user_id": user_id, "plan_id": plan_id, "week_start": week_start.isoformat()},
                )
            if plan_id and plan.id != plan_id:
                logger.warning(
                    "Replan for user=%s referenced plan %s but week %s is plan %s",
                    user_id,
                    plan_id,
                    week_start,
                    plan.id,
                )

            meals, skipped_ids = mark_skipped(plan.meals, event)
            pantry = await self.inventory.get_food_items(user_id)
            waste_risk = build_waste_risk_entries(plan.model_copy(update={"meals": meals}), pantry, today=today)

            profile = await self.profiles.get_meal_profile(user_id)
            schedules = await load_week_schedules(self.profiles, user_id, week_start)
            leftovers = await fetch_leftover_meals(
                self.leftovers, user_id, week_start, week_start + dt.timedelta(days=6)
            )
            skipped = set(skipped_ids)
            context = build_planning_context(
                user_id=user_id,
                week_start=week_start,
                profile=profile,
                schedules=schedules,
                inventory=available_inventory(meals, pantry),
                waste_risk=waste_risk,
                leftovers=leftovers,
                skipped_meals=[meal for meal in meals if meal.id in skipped],
                event=event,
            )
            suggestions = await self.suggestions.suggest_meals(context)

            new_meals, dropped = materialize_suggestions(user_id, suggestions, schedules, profile, pantry)
            merged: List[AnyPlannedMeal] = [*meals, *new_meals]
            await self.plans.update_meal_plan(plan.id, meals=merged)
            await link_new_meals(self.claims, user_id, new_meals, pantry)

        logger.info(
            "Replanned week %s for user=%s: skipped=%s added=%s dropped=%s",
            week_start,
            user_id,
            len(skipped_ids),
            len(new_meals),
            len(dropped),
        )
        return ReplanResult(
            plan=plan.model_copy(update={"meals": merged}),
            skipped_meal_ids=skipped_ids,
            added_meal_ids=[meal.id for meal in new_meals],
            dropped_suggestions=dropped,
        )
