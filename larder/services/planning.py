from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, List, Optional, Sequence

from ..config import get_settings
from ..errors import NotFoundError
from ..schemas import MealPlan, MealSuggestion, WasteRiskEntry
from .claims import ClaimCoordinator
from .plan_locks import PlanMutationQueue
from .replanning import (
    available_inventory,
    build_planning_context,
    fetch_leftover_meals,
    link_new_meals,
    load_week_schedules,
    materialize_suggestions,
)
from .reservations import IngredientAllocation, calculate_reserved_quantities, check_ingredient_availability
from .schedules import week_start_for
from .stores import InventoryProvider, LeftoverMealProvider, MealProfileProvider, PlanStore, ShoppingListStore
from .suggestions import SuggestionProvider
from .waste_risk import build_waste_risk_entries

logger = logging.getLogger(__name__)


class MealPlanningService:
    """Weekly plan generation: suggest, accept into a plan, confirm day by day."""

    def __init__(
        self,
        *,
        plans: PlanStore,
        inventory: InventoryProvider,
        shopping_list: ShoppingListStore,
        leftovers: LeftoverMealProvider,
        profiles: MealProfileProvider,
        suggestions: SuggestionProvider,
        claims: ClaimCoordinator,
        locks: PlanMutationQueue,
    ) -> None:
        self.plans = plans
        self.inventory = inventory
        self.shopping_list = shopping_list
        self.leftovers = leftovers
        self.profiles = profiles
        self.suggestions = suggestions
        self.claims = claims
        self.locks = locks

    async def get_meal_plan(self, user_id: str, week_start: dt.date) -> Optional[MealPlan]:
        return await self.plans.get_meal_plan(user_id, week_start_for(week_start))

    async def generate_meal_suggestions(
        self, user_id: str, week_start: dt.date, *, today: Optional[dt.date] = None
    ) -> List[MealSuggestion]:
        """Ask the provider for a week of meals built around items expiring soon."""
        profile = await self.profiles.get_meal_profile(user_id)
        if profile is None:
            raise NotFoundError("meal profile not found", details={"user_id": user_id})
        week_start = week_start_for(week_start)
        plan = await self.plans.get_meal_plan(user_id, week_start)
        pantry = await self.inventory.get_food_items(user_id)
        expiring = [
            entry
            for entry in build_waste_risk_entries(
                plan, pantry, today=today, window_days=get_settings().best_by_soon_window_days
            )
            if entry.days_until >= 0
        ]
        context = build_planning_context(
            user_id=user_id,
            week_start=week_start,
            profile=profile,
            schedules=await load_week_schedules(self.profiles, user_id, week_start),
            inventory=available_inventory(plan.meals if plan else [], pantry),
            waste_risk=expiring,
            leftovers=await fetch_leftover_meals(
                self.leftovers, user_id, week_start, week_start + dt.timedelta(days=6)
            ),
        )
        return await self.suggestions.suggest_meals(context)

    async def create_meal_plan(
        self, user_id: str, week_start: dt.date, suggestions: Sequence[MealSuggestion]
    ) -> MealPlan:
        """Add accepted suggestions to the week's plan, creating the plan if there is none."""
        week_start = week_start_for(week_start)
        async with self.locks.hold(user_id, week_start):
            profile = await self.profiles.get_meal_profile(user_id)
            schedules = await load_week_schedules(self.profiles, user_id, week_start)
            pantry = await self.inventory.get_food_items(user_id)
            plan = await self.plans.create_empty_meal_plan(user_id, week_start)
            new_meals, dropped = materialize_suggestions(user_id, suggestions, schedules, profile, pantry)
            meals = [*plan.meals, *new_meals]
            await self.plans.update_meal_plan(plan.id, meals=meals)
            await link_new_meals(self.claims, user_id, new_meals, pantry)
        logger.info(
            "Added %s meals to plan %s for user=%s, dropped %s", len(new_meals), plan.id, user_id, len(dropped)
        )
        return plan.model_copy(update={"meals": meals})

    async def confirm_daily_meals(self, user_id: str, day: dt.date, meal_ids: Iterable[str]) -> MealPlan:
        week_start = week_start_for(day)
        wanted = set(meal_ids)
        async with self.locks.hold(user_id, week_start):
            plan = await self.plans.get_meal_plan(user_id, week_start)
            if plan is None:
                raise NotFoundError(
                    "meal plan not found", details={"user_id": user_id, "week_start": week_start.isoformat()}
                )
            meals = [
                meal.model_copy(update={"confirmed": True}) if meal.date == day and meal.id in wanted else meal
                for meal in plan.meals
            ]
            await self.plans.update_meal_plan(plan.id, meals=meals)
        return plan.model_copy(update={"meals": meals})

    async def get_waste_risk(
        self, user_id: str, week_start: dt.date, *, today: Optional[dt.date] = None
    ) -> List[WasteRiskEntry]:
        plan = await self.plans.get_meal_plan(user_id, week_start_for(week_start))
        pantry = await self.inventory.get_food_items(user_id)
        return build_waste_risk_entries(plan, pantry, today=today)

    async def check_availability(
        self,
        user_id: str,
        ingredients: Sequence[str],
        *,
        week_start: Optional[dt.date] = None,
        exclude_meal_id: Optional[str] = None,
    ) -> List[IngredientAllocation]:
        """Availability of a recipe before it is added, net of the week's reservations."""
        pantry = await self.inventory.get_food_items(user_id)
        shopping_list = await self.shopping_list.get_items(user_id)
        reserved = None
        if week_start is not None:
            plan = await self.plans.get_meal_plan(user_id, week_start_for(week_start))
            if plan is not None:
                reserved = calculate_reserved_quantities(plan.meals, pantry, exclude_meal_id=exclude_meal_id)
        return check_ingredient_availability(ingredients, pantry, shopping_list, reserved)
