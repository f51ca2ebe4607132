from __future__ import annotations

import datetime as dt

from planner_helpers import TODAY, USER, WEEK, PlannerTestCase

from larder.errors import DegradedDependencyError, NotFoundError, ValidationError
from larder.models import LeftoverMealRecord
from larder.schemas import MealProfile


class SqlStoresTest(PlannerTestCase):
    async def test_create_empty_plan_is_get_or_create(self):
        first = await self.services.plans.create_empty_meal_plan(USER, WEEK)
        second = await self.services.plans.create_empty_meal_plan(USER, WEEK)
        self.assertEqual(first.id, second.id)
        self.assertEqual(first.meals, [])

    async def test_updating_unknown_plan_is_not_found(self):
        with self.assertRaises(NotFoundError):
            await self.services.plans.update_meal_plan("nope", meals=[])

    async def test_pantry_updates_reject_unknown_fields(self):
        item = await self.add_item("rice", 2)
        with self.assertRaises(ValidationError):
            await self.services.inventory.update_food_item(item.id, {"user_id": "user-2"})

    async def test_leftovers_within_range(self):
        async with self.Session() as session:
            session.add_all(
                [
                    LeftoverMealRecord(user_id=USER, date=TODAY, meal_name="Chilli", meal_type="dinner"),
                    LeftoverMealRecord(
                        user_id=USER, date=TODAY + dt.timedelta(days=30), meal_name="Soup", meal_type="lunch"
                    ),
                ]
            )
            await session.commit()
        leftovers = await self.services.leftovers.get_leftover_meals(USER, TODAY, TODAY + dt.timedelta(days=6))
        self.assertEqual([meal.meal_name for meal in leftovers], ["Chilli"])

    async def test_missing_leftover_table_is_degraded(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(LeftoverMealRecord.__table__.drop)
        with self.assertRaises(DegradedDependencyError):
            await self.services.leftovers.get_leftover_meals(USER, TODAY, TODAY)

    async def test_profile_round_trip_and_effective_schedule(self):
        self.assertIsNone(await self.services.profiles.get_meal_profile(USER))
        await self.services.profiles.save_meal_profile(MealProfile(user_id=USER, serving_size=4))
        profile = await self.services.profiles.get_meal_profile(USER)
        self.assertEqual(profile.serving_size, 4)
        schedule = await self.services.profiles.get_effective_schedule(USER, TODAY)
        self.assertEqual(schedule.meals, [])

    async def test_shopping_list_delete_by_meal(self):
        await self.services.shopping_list.add_item(USER, "milk", meal_id="meal-1")
        await self.services.shopping_list.add_item(USER, "bread", meal_id="meal-2")
        deleted = await self.services.shopping_list.delete_items_by_meal_id(USER, "meal-1")
        self.assertEqual(deleted, 1)
        self.assertEqual([entry.name for entry in await self.services.shopping_list.get_items(USER)], ["bread"])
