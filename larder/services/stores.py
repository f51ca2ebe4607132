"""Collaborator interfaces consumed by the planning services, plus SQL-backed implementations.

Every SQL store opens a short-lived session per call, so reads always see the
latest committed state.
"""

from __future__ import annotations

import datetime as dt
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import DegradedDependencyError, NotFoundError, StoreError, ValidationError, to_service_error
from ..models import (
    LeftoverMealRecord,
    MealPlanRecord,
    MealProfileRecord,
    PantryItemRecord,
    ShoppingListItemRecord,
    UnplannedEventRecord,
)
from ..schemas import (
    AnyPlannedMeal,
    EffectiveSchedule,
    LeftoverMeal,
    MealPlan,
    MealProfile,
    PantryItem,
    ShoppingListEntry,
    UnplannedEvent,
)
from .meal_records import dump_meals
from .schedules import effective_schedule

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]

PANTRY_MUTABLE_FIELDS = {"name", "quantity", "best_by_date", "thaw_date", "category", "used_by_meals"}
SHOPPING_MUTABLE_FIELDS = {"name", "quantity", "crossed_off", "meal_id", "source", "list_id"}


class MealProfileProvider(Protocol):
    async def get_meal_profile(self, user_id: str) -> Optional[MealProfile]: ...

    async def get_effective_schedule(self, user_id: str, day: dt.date) -> EffectiveSchedule: ...


class InventoryProvider(Protocol):
    async def get_food_items(self, user_id: str) -> List[PantryItem]: ...

    async def get_food_item(self, item_id: str) -> Optional[PantryItem]: ...

    async def update_food_item(self, item_id: str, changes: Dict[str, Any]) -> None: ...


class LeftoverMealProvider(Protocol):
    async def get_leftover_meals(self, user_id: str, start: dt.date, end: dt.date) -> List[LeftoverMeal]: ...


class PlanStore(Protocol):
    async def get_meal_plan(self, user_id: str, week_start: dt.date) -> Optional[MealPlan]: ...

    async def get_meal_plan_by_id(self, plan_id: str) -> Optional[MealPlan]: ...

    async def update_meal_plan(
        self,
        plan_id: str,
        *,
        meals: Optional[Iterable[AnyPlannedMeal]] = None,
        status: Optional[str] = None,
        confirmed_at: Optional[dt.datetime] = None,
    ) -> None: ...

    async def create_meal_plan(
        self, user_id: str, week_start: dt.date, meals: Iterable[AnyPlannedMeal], status: str = "draft"
    ) -> MealPlan: ...

    async def create_empty_meal_plan(self, user_id: str, week_start: dt.date) -> MealPlan: ...


class ShoppingListStore(Protocol):
    async def get_items(self, user_id: str) -> List[ShoppingListEntry]: ...

    async def add_item(
        self,
        user_id: str,
        name: str,
        *,
        quantity: Optional[float] = None,
        meal_id: Optional[str] = None,
        source: Optional[str] = None,
        list_id: Optional[str] = None,
    ) -> ShoppingListEntry: ...

    async def update_item(self, item_id: str, changes: Dict[str, Any]) -> None: ...

    async def delete_items_by_meal_id(self, user_id: str, meal_id: str) -> int: ...


class UnplannedEventStore(Protocol):
    async def record_event(self, user_id: str, event: UnplannedEvent) -> UnplannedEvent: ...


def _check_fields(changes: Dict[str, Any], allowed: set[str]) -> None:
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(
            f"Unsupported fields: {', '.join(sorted(unknown))}", field=sorted(unknown)[0]
        )


def _plan_from_record(record: MealPlanRecord) -> MealPlan:
    return MealPlan(
        id=record.id,
        user_id=record.user_id,
        week_start_date=record.week_start_date,
        meals=list(record.meals or []),
        status=record.status,
        created_at=record.created_at,
        confirmed_at=record.confirmed_at,
    )


def _pantry_item_from_record(record: PantryItemRecord) -> PantryItem:
    return PantryItem(
        id=record.id,
        user_id=record.user_id,
        name=record.name,
        quantity=record.quantity,
        best_by_date=record.best_by_date,
        thaw_date=record.thaw_date,
        category=record.category,
        used_by_meals=list(record.used_by_meals or []),
    )


def _entry_from_record(record: ShoppingListItemRecord) -> ShoppingListEntry:
    return ShoppingListEntry(
        id=record.id,
        user_id=record.user_id,
        list_id=record.list_id,
        name=record.name,
        quantity=record.quantity,
        crossed_off=record.crossed_off,
        meal_id=record.meal_id,
        source=record.source,
    )


class SqlPlanStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_meal_plan(self, user_id: str, week_start: dt.date) -> Optional[MealPlan]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(MealPlanRecord).where(
                    MealPlanRecord.user_id == user_id,
                    MealPlanRecord.week_start_date == week_start,
                )
            )
            record = result.scalar_one_or_none()
            return _plan_from_record(record) if record else None

    async def get_meal_plan_by_id(self, plan_id: str) -> Optional[MealPlan]:
        async with self._session_factory() as session:
            record = await session.get(MealPlanRecord, plan_id)
            return _plan_from_record(record) if record else None

    async def update_meal_plan(
        self,
        plan_id: str,
        *,
        meals: Optional[Iterable[AnyPlannedMeal]] = None,
        status: Optional[str] = None,
        confirmed_at: Optional[dt.datetime] = None,
    ) -> None:
        async with self._session_factory() as session:
            record = await session.get(MealPlanRecord, plan_id)
            if record is None:
                raise NotFoundError("meal plan not found", details={"plan_id": plan_id})
            if meals is not None:
                record.meals = dump_meals(meals)
            if status is not None:
                record.status = status
            if confirmed_at is not None:
                record.confirmed_at = confirmed_at
            await session.commit()

    async def create_meal_plan(
        self, user_id: str, week_start: dt.date, meals: Iterable[AnyPlannedMeal], status: str = "draft"
    ) -> MealPlan:
        async with self._session_factory() as session:
            record = MealPlanRecord(
                user_id=user_id,
                week_start_date=week_start,
                status=status,
                meals=dump_meals(meals),
            )
            session.add(record)
            await session.commit()
            await session.refresh(record)
            logger.info("Created meal plan %s for user=%s week=%s", record.id, user_id, week_start)
            return _plan_from_record(record)

    async def create_empty_meal_plan(self, user_id: str, week_start: dt.date) -> MealPlan:
        existing = await self.get_meal_plan(user_id, week_start)
        if existing is not None:
            return existing
        return await self.create_meal_plan(user_id, week_start, [])


class SqlInventoryStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_food_items(self, user_id: str) -> List[PantryItem]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PantryItemRecord)
                .where(PantryItemRecord.user_id == user_id)
                .order_by(PantryItemRecord.created_at, PantryItemRecord.name, PantryItemRecord.id)
            )
            return [_pantry_item_from_record(record) for record in result.scalars()]

    async def get_food_item(self, item_id: str) -> Optional[PantryItem]:
        async with self._session_factory() as session:
            record = await session.get(PantryItemRecord, item_id)
            return _pantry_item_from_record(record) if record else None

    async def add_food_item(self, item: PantryItem) -> PantryItem:
        async with self._session_factory() as session:
            record = PantryItemRecord(**item.model_dump())
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return _pantry_item_from_record(record)

    async def update_food_item(self, item_id: str, changes: Dict[str, Any]) -> None:
        _check_fields(changes, PANTRY_MUTABLE_FIELDS)
        async with self._session_factory() as session:
            record = await session.get(PantryItemRecord, item_id)
            if record is None:
                raise NotFoundError("pantry item not found", details={"item_id": item_id})
            for key, value in changes.items():
                setattr(record, key, list(value) if key == "used_by_meals" else value)
            await session.commit()


class SqlShoppingListStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_items(self, user_id: str) -> List[ShoppingListEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ShoppingListItemRecord)
                .where(ShoppingListItemRecord.user_id == user_id)
                .order_by(ShoppingListItemRecord.created_at, ShoppingListItemRecord.name, ShoppingListItemRecord.id)
            )
            return [_entry_from_record(record) for record in result.scalars()]

    async def add_item(
        self,
        user_id: str,
        name: str,
        *,
        quantity: Optional[float] = None,
        meal_id: Optional[str] = None,
        source: Optional[str] = None,
        list_id: Optional[str] = None,
    ) -> ShoppingListEntry:
        async with self._session_factory() as session:
            record = ShoppingListItemRecord(
                user_id=user_id,
                name=name,
                quantity=quantity,
                meal_id=meal_id,
                source=source,
                list_id=list_id,
                crossed_off=False,
            )
            session.add(record)
            await session.commit()
            await session.refresh(record)
            return _entry_from_record(record)

    async def update_item(self, item_id: str, changes: Dict[str, Any]) -> None:
        _check_fields(changes, SHOPPING_MUTABLE_FIELDS)
        async with self._session_factory() as session:
            record = await session.get(ShoppingListItemRecord, item_id)
            if record is None:
                raise NotFoundError("shopping list item not found", details={"item_id": item_id})
            for key, value in changes.items():
                setattr(record, key, value)
            await session.commit()

    async def delete_items_by_meal_id(self, user_id: str, meal_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(ShoppingListItemRecord).where(
                    ShoppingListItemRecord.user_id == user_id,
                    ShoppingListItemRecord.meal_id == meal_id,
                )
            )
            await session.commit()
            return result.rowcount or 0


class SqlLeftoverMealStore:
    """Leftover lookups depend on a secondary index that may be missing on new deployments."""

    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory
        self._missing_index_reported = False

    async def get_leftover_meals(self, user_id: str, start: dt.date, end: dt.date) -> List[LeftoverMeal]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(LeftoverMealRecord)
                    .where(
                        LeftoverMealRecord.user_id == user_id,
                        LeftoverMealRecord.date >= start,
                        LeftoverMealRecord.date <= end,
                    )
                    .order_by(LeftoverMealRecord.date, LeftoverMealRecord.meal_name)
                )
                records = list(result.scalars())
        except SQLAlchemyError as exc:
            error = to_service_error(exc)
            if isinstance(error, StoreError) and error.is_index_error():
                if not self._missing_index_reported:
                    logger.warning("Leftover meal lookup unavailable: %s", error.details.get("original"))
                    self._missing_index_reported = True
                raise DegradedDependencyError(
                    "leftover meal lookup unavailable", details=error.details
                ) from exc
            raise error from exc
        return [
            LeftoverMeal(
                id=record.id,
                user_id=record.user_id,
                date=record.date,
                meal_name=record.meal_name,
                meal_type=record.meal_type,
                ingredients=list(record.ingredients or []),
                quantity=record.quantity,
                added_to_calendar=record.added_to_calendar,
                best_by_date=record.best_by_date,
            )
            for record in records
        ]


class SqlMealProfileStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def get_meal_profile(self, user_id: str) -> Optional[MealProfile]:
        async with self._session_factory() as session:
            record = await session.get(MealProfileRecord, user_id)
            if record is None:
                return None
            return MealProfile.model_validate({**(record.profile or {}), "userId": user_id})

    async def save_meal_profile(self, profile: MealProfile) -> None:
        async with self._session_factory() as session:
            record = await session.get(MealProfileRecord, profile.user_id)
            if record is None:
                record = MealProfileRecord(user_id=profile.user_id)
                session.add(record)
            record.profile = profile.to_document()
            await session.commit()

    async def get_effective_schedule(self, user_id: str, day: dt.date) -> EffectiveSchedule:
        return effective_schedule(await self.get_meal_profile(user_id), day)


class SqlUnplannedEventStore:
    def __init__(self, session_factory: SessionFactory) -> None:
        self._session_factory = session_factory

    async def record_event(self, user_id: str, event: UnplannedEvent) -> UnplannedEvent:
        async with self._session_factory() as session:
            record = UnplannedEventRecord(
                id=event.id or uuid.uuid4().hex,
                user_id=user_id,
                date=event.date,
                meal_types=list(event.meal_types),
                reason=event.reason,
            )
            session.add(record)
            await session.commit()
            await session.refresh(record)
            logger.info("Recorded unplanned event %s for user=%s date=%s", record.id, user_id, record.date)
            return event.model_copy(update={"id": record.id, "user_id": user_id})
