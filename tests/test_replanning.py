from __future__ import annotations

import datetime as dt

from planner_helpers import TODAY, USER, WEEK, PlannerTestCase

from larder.errors import NotFoundError, ProviderError, StoreError
from larder.models import LeftoverMealRecord
from larder.schemas import Dish, MealSuggestion, PlannedMeal, UnplannedEvent

OTHER_DAY = TODAY + dt.timedelta(days=1) if TODAY < WEEK + dt.timedelta(days=6) else TODAY - dt.timedelta(days=1)


def _dinner(meal_id: str, day: dt.date, claimed=()) -> PlannedMeal:
    return PlannedMeal(
        id=meal_id,
        date=day,
        meal_type="dinner",
        confirmed=True,
        dishes=[Dish(id=f"{meal_id}-d", dish_name="Curry", recipe_ingredients=["1 cup rice"], claimed_item_ids=list(claimed))],
    )


def _suggestion(day: dt.date, name: str = "Spinach pasta", **extra) -> MealSuggestion:
    return MealSuggestion(meal_name=name, meal_type="lunch", date=day, suggested_ingredients=["1 cup spinach"], **extra)


class ReplanningEngineTest(PlannerTestCase):
    async def test_event_skips_meals_and_appends_suggestions(self):
        plan = await self.create_plan([_dinner("meal-1", TODAY), _dinner("meal-2", OTHER_DAY)])
        self.suggestions.suggestions = [_suggestion(OTHER_DAY)]

        event = UnplannedEvent(date=TODAY, meal_types=["dinner"], reason="eating out")
        result = await self.services.replanning.replan_meals(USER, plan.id, event)

        self.assertEqual(result.skipped_meal_ids, ["meal-1"])
        self.assertEqual(len(result.added_meal_ids), 1)
        stored = await self.reload_plan()
        self.assertEqual(len(stored.meals), 3)
        self.assertTrue(stored.meals[0].skipped)
        self.assertTrue(stored.meals[0].confirmed)
        self.assertFalse(stored.meals[1].skipped)
        added = stored.meals[2]
        self.assertEqual(added.id, result.added_meal_ids[0])
        self.assertEqual(added.dishes[0].dish_name, "Spinach pasta")

        context = self.suggestions.contexts[0]
        self.assertEqual([meal.id for meal in context.skipped_meals], ["meal-1"])
        self.assertEqual(context.unplanned_event.reason, "eating out")

    async def test_meal_count_never_drops_when_nothing_is_suggested(self):
        plan = await self.create_plan([_dinner("meal-1", TODAY)])
        result = await self.services.replanning.replan_meals(
            USER, plan.id, UnplannedEvent(date=TODAY, meal_types=["dinner", "lunch"])
        )
        self.assertEqual(len(result.plan.meals), 1)
        self.assertEqual(len((await self.reload_plan()).meals), 1)

    async def test_suggested_items_are_linked_to_new_meals(self):
        spinach = await self.add_item("spinach", 1, best_by=TODAY + dt.timedelta(days=1))
        plan = await self.create_plan([_dinner("meal-1", TODAY)])
        self.suggestions.suggestions = [_suggestion(TODAY, uses_best_by_soon_items=[spinach.id, "made-up"])]

        result = await self.services.replanning.replan_meals(
            USER, plan.id, UnplannedEvent(date=TODAY, meal_types=["dinner"])
        )

        new_id = result.added_meal_ids[0]
        self.assertEqual((await self.reload_item(spinach.id)).used_by_meals, [new_id])
        new_meal = (await self.reload_plan()).meals[-1]
        self.assertEqual(new_meal.dishes[0].claimed_item_ids, [spinach.id])
        context = self.suggestions.contexts[0]
        self.assertEqual([entry.item_id for entry in context.waste_risk_items], [spinach.id])

    async def test_suggestions_outside_the_week_are_reported_as_dropped(self):
        plan = await self.create_plan([_dinner("meal-1", TODAY)])
        stray = _suggestion(WEEK + dt.timedelta(days=9), name="Next week stew")
        self.suggestions.suggestions = [stray, _suggestion(TODAY)]
        result = await self.services.replanning.replan_meals(
            USER, plan.id, UnplannedEvent(date=TODAY, meal_types=["dinner"])
        )
        self.assertEqual(len(result.added_meal_ids), 1)
        self.assertEqual([suggestion.meal_name for suggestion in result.dropped_suggestions], ["Next week stew"])
        self.assertEqual(len((await self.reload_plan()).meals), 2)

    async def test_failed_plan_write_leaves_pantry_unlinked(self):
        spinach = await self.add_item("spinach", 1, best_by=TODAY + dt.timedelta(days=1))
        plan = await self.create_plan([_dinner("meal-1", TODAY)])
        self.suggestions.suggestions = [_suggestion(TODAY, uses_best_by_soon_items=[spinach.id])]

        async def failing_write(plan_id, **changes):
            raise StoreError("write failed")

        self.services.plans.update_meal_plan = failing_write
        with self.assertRaises(StoreError):
            await self.services.replanning.replan_meals(USER, plan.id, UnplannedEvent(date=TODAY, meal_types=["dinner"]))
        del self.services.plans.update_meal_plan

        self.assertEqual((await self.reload_item(spinach.id)).used_by_meals, [])
        self.assertEqual(len((await self.reload_plan()).meals), 1)

    async def test_missing_leftover_table_degrades_to_no_leftovers(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(LeftoverMealRecord.__table__.drop)
        plan = await self.create_plan([_dinner("meal-1", TODAY)])
        self.suggestions.suggestions = [_suggestion(TODAY)]

        for _ in range(2):
            result = await self.services.replanning.replan_meals(
                USER, plan.id, UnplannedEvent(date=TODAY, meal_types=["dinner"])
            )
            self.assertEqual(len(result.added_meal_ids), 1)
        self.assertEqual(self.suggestions.contexts[0].leftover_meals, [])
        self.assertTrue(self.services.leftovers._missing_index_reported)

    async def test_provider_failure_leaves_plan_untouched(self):
        plan = await self.create_plan([_dinner("meal-1", TODAY)])
        self.suggestions.error = ProviderError("planning model unavailable")

        with self.assertRaises(ProviderError):
            await self.services.replanning.replan_meals(USER, plan.id, UnplannedEvent(date=TODAY, meal_types=["dinner"]))

        stored = await self.reload_plan()
        self.assertFalse(stored.meals[0].skipped)
        self.assertEqual(len(stored.meals), 1)

    async def test_missing_plan_is_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.services.replanning.replan_meals(USER, None, UnplannedEvent(date=TODAY, meal_types=["lunch"]))

    async def test_confirmed_meals_reduce_available_inventory(self):
        await self.add_item("rice", 3)
        plan = await self.create_plan([_dinner("meal-1", TODAY)])
        await self.services.replanning.replan_meals(
            USER, plan.id, UnplannedEvent(date=TODAY, meal_types=["breakfast"])
        )
        inventory = self.suggestions.contexts[0].available_inventory
        self.assertEqual([(item.name, item.quantity) for item in inventory], [("rice", 2)])
