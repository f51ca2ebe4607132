from __future__ import annotations

import datetime as dt
import uuid
from typing import List, Optional, Sequence
from unittest import IsolatedAsyncioTestCase

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from larder.errors import ProviderError
from larder.models import Base
from larder.schemas import AnyPlannedMeal, MealPlan, MealSuggestion, PantryItem, PlanningContext
from larder.services.container import build_services
from larder.services.schedules import week_start_for

USER = "user-1"
TODAY = dt.date.today()
WEEK = week_start_for(TODAY)


class StubSuggestions:
    def __init__(self, suggestions: Sequence[MealSuggestion] = (), error: Optional[ProviderError] = None) -> None:
        self.suggestions = list(suggestions)
        self.error = error
        self.contexts: List[PlanningContext] = []

    async def suggest_meals(self, context: PlanningContext) -> List[MealSuggestion]:
        self.contexts.append(context)
        if self.error is not None:
            raise self.error
        return list(self.suggestions)


class PlannerTestCase(IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.Session = async_sessionmaker(self.engine, expire_on_commit=False)
        self.suggestions = StubSuggestions()
        self.services = build_services(self.Session, suggestions=self.suggestions)

    async def asyncTearDown(self):
        await self.engine.dispose()

    async def add_item(
        self,
        name: str,
        quantity: float = 1,
        *,
        user_id: str = USER,
        best_by: Optional[dt.date] = None,
        used_by_meals: Sequence[str] = (),
    ) -> PantryItem:
        item = PantryItem(
            id=f"item-{uuid.uuid4().hex[:8]}",
            user_id=user_id,
            name=name,
            quantity=quantity,
            best_by_date=best_by,
            used_by_meals=list(used_by_meals),
        )
        return await self.services.inventory.add_food_item(item)

    async def create_plan(self, meals: Sequence[AnyPlannedMeal], *, week_start: dt.date = WEEK) -> MealPlan:
        return await self.services.plans.create_meal_plan(USER, week_start, meals)

    async def reload_plan(self, week_start: dt.date = WEEK) -> MealPlan:
        plan = await self.services.plans.get_meal_plan(USER, week_start)
        assert plan is not None
        return plan

    async def reload_item(self, item_id: str) -> PantryItem:
        item = await self.services.inventory.get_food_item(item_id)
        assert item is not None
        return item
