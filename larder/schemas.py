from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MealType = Literal["breakfast", "lunch", "dinner"]
MEAL_TYPES: tuple[str, ...] = ("breakfast", "lunch", "dinner")
PlanStatus = Literal["draft", "confirmed", "active"]
AvailabilityStatus = Literal["available", "partial", "missing"]


class CamelModel(BaseModel):
    """Stored documents and API payloads use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --- Inventory -----------------------------------------------------------------


class PantryItem(CamelModel):
    id: str
    user_id: str
    name: str
    quantity: float = 1
    best_by_date: Optional[dt.date] = None
    thaw_date: Optional[dt.date] = None
    category: Optional[str] = None
    used_by_meals: List[str] = Field(default_factory=list)

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, v):
        return 1 if v is None else v

    @property
    def expiry_date(self) -> Optional[dt.date]:
        # Frozen items only carry a thaw date; best-by wins on stale records holding both.
        return self.best_by_date or self.thaw_date


class ShoppingListEntry(CamelModel):
    id: str
    user_id: str
    list_id: Optional[str] = None
    name: str
    quantity: Optional[float] = None
    crossed_off: bool = False
    meal_id: Optional[str] = None
    source: Optional[str] = None


class LeftoverMeal(CamelModel):
    id: str
    user_id: str
    date: dt.date
    meal_name: str
    meal_type: MealType
    ingredients: List[str] = Field(default_factory=list)
    quantity: float = 1
    added_to_calendar: bool = False
    best_by_date: Optional[dt.date] = None


# --- Meal plans ----------------------------------------------------------------


class Dish(CamelModel):
    id: str
    dish_name: str
    recipe_title: Optional[str] = None
    recipe_ingredients: List[str] = Field(default_factory=list)
    recipe_source_url: Optional[str] = None
    recipe_image_url: Optional[str] = None
    reserved_quantities: Dict[str, float] = Field(default_factory=dict)
    # Per pantry item id; same-name items split one name's reservation.
    reserved_by_item: Dict[str, float] = Field(default_factory=dict)
    # What completing the dish actually took from each item, restored on reopen.
    consumed_quantities: Dict[str, float] = Field(default_factory=dict)
    claimed_item_ids: List[str] = Field(default_factory=list)
    claimed_shopping_list_item_ids: List[str] = Field(default_factory=list)
    completed: bool = False


class MealSlot(CamelModel):
    id: str
    date: dt.date
    meal_type: MealType
    finish_by: str = "18:00"
    start_cooking_at: Optional[str] = None
    confirmed: bool = False
    skipped: bool = False
    is_leftover: bool = False
    leftover_meal_id: Optional[str] = None
    reasoning: Optional[str] = None


class PlannedMeal(MealSlot):
    dishes: List[Dish] = Field(default_factory=list)


class LegacyPlannedMeal(MealSlot):
    """Single-dish meal record written before meals could hold several dishes."""

    meal_name: Optional[str] = None
    recipe_title: Optional[str] = None
    recipe_source_url: Optional[str] = None
    recipe_image_url: Optional[str] = None
    recipe_ingredients: Optional[List[str]] = None
    suggested_ingredients: List[str] = Field(default_factory=list)
    uses_best_by_soon_items: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "usesBestBySoonItems", "usesExpiringItems", "uses_best_by_soon_items"
        ),
        serialization_alias="usesBestBySoonItems",
    )
    reserved_quantities: Dict[str, float] = Field(default_factory=dict)
    claimed_item_ids: Optional[List[str]] = None
    claimed_shopping_list_item_ids: List[str] = Field(default_factory=list)
    completed: bool = False


AnyPlannedMeal = Union[PlannedMeal, LegacyPlannedMeal]


class MealPlan(CamelModel):
    id: str
    user_id: str
    week_start_date: dt.date
    meals: List[AnyPlannedMeal] = Field(default_factory=list)
    status: PlanStatus = "draft"
    created_at: Optional[dt.datetime] = None
    confirmed_at: Optional[dt.datetime] = None

    @field_validator("meals", mode="before")
    @classmethod
    def _load_meals(cls, v):
        from .services.meal_records import load_planned_meal

        if v is None:
            return []
        return [load_planned_meal(raw) for raw in v]


class UnplannedEvent(CamelModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    date: dt.date
    meal_types: List[MealType] = Field(min_length=1)
    reason: str = Field(default="other", max_length=255)


# --- Profiles & schedules --------------------------------------------------------


class MealDurationPreferences(CamelModel):
    breakfast: int = 20
    lunch: int = 30
    dinner: int = 40


class ScheduledMeal(CamelModel):
    type: MealType
    finish_by: Optional[str] = None


class DaySchedule(CamelModel):
    day_of_week: int = Field(ge=0, le=6)  # 0=Sunday
    meals: List[ScheduledMeal] = Field(default_factory=list)


class RecurringPattern(CamelModel):
    frequency: Literal["weekly", "monthly"]
    day_of_week: Optional[int] = Field(default=None, ge=0, le=6)
    day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    end_date: Optional[dt.date] = None


class ScheduleAmendment(CamelModel):
    date: dt.date
    meal_types: List[MealType] = Field(default_factory=list)
    finish_by: Optional[str] = None
    is_recurring: bool = False
    recurring_pattern: Optional[RecurringPattern] = None


class MealProfile(CamelModel):
    user_id: str
    disliked_foods: List[str] = Field(default_factory=list)
    food_preferences: List[str] = Field(default_factory=list)
    diet_approach: Optional[str] = None
    diet_strict: bool = False
    favorite_meals: List[str] = Field(default_factory=list)
    serving_size: int = 2
    meal_duration_preferences: MealDurationPreferences = Field(default_factory=MealDurationPreferences)
    usual_schedule: List[DaySchedule] = Field(default_factory=list)
    schedule_amendments: List[ScheduleAmendment] = Field(default_factory=list)


class EffectiveSchedule(CamelModel):
    date: dt.date
    meals: List[ScheduledMeal] = Field(default_factory=list)


# --- Suggestion provider contract ------------------------------------------------


class MealSuggestion(CamelModel):
    meal_name: str = Field(min_length=1)
    meal_type: MealType
    date: dt.date
    suggested_ingredients: List[str] = Field(default_factory=list)
    uses_best_by_soon_items: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "usesBestBySoonItems", "usesExpiringItems", "uses_best_by_soon_items"
        ),
        serialization_alias="usesBestBySoonItems",
    )
    reasoning: Optional[str] = None
    priority: Optional[Literal["high", "medium", "low"]] = None


class WasteRiskEntry(CamelModel):
    item_id: str
    name: str
    expiry_date: dt.date
    days_until: int
    planned_use_date: Optional[dt.date] = None


class PlanningContext(CamelModel):
    user_id: str
    week_start_date: dt.date
    waste_risk_items: List[WasteRiskEntry] = Field(default_factory=list)
    leftover_meals: List[LeftoverMeal] = Field(default_factory=list)
    disliked_foods: List[str] = Field(default_factory=list)
    food_preferences: List[str] = Field(default_factory=list)
    diet_approach: Optional[str] = None
    diet_strict: bool = False
    favorite_meals: List[str] = Field(default_factory=list)
    serving_size: int = 2
    schedule: List[EffectiveSchedule] = Field(default_factory=list)
    available_inventory: List[PantryItem] = Field(default_factory=list)
    skipped_meals: List[AnyPlannedMeal] = Field(default_factory=list)
    unplanned_event: Optional[UnplannedEvent] = None


# --- HTTP payloads ---------------------------------------------------------------


class DishInput(CamelModel):
    dish_name: str = Field(min_length=1, max_length=255)
    recipe_title: Optional[str] = None
    recipe_ingredients: List[str] = Field(default_factory=list)
    recipe_source_url: Optional[str] = None
    recipe_image_url: Optional[str] = None
    add_missing_to_shopping_list: bool = False


class DishUpdate(CamelModel):
    dish_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    recipe_title: Optional[str] = None
    recipe_ingredients: Optional[List[str]] = None
    recipe_source_url: Optional[str] = None
    recipe_image_url: Optional[str] = None


class SlotDishInput(DishInput):
    date: dt.date
    meal_type: MealType


class AvailabilityRequest(CamelModel):
    ingredients: List[str] = Field(min_length=1)
    week_start_date: Optional[dt.date] = None
    exclude_meal_id: Optional[str] = None


class IngredientAvailabilityResponse(CamelModel):
    ingredient: str
    status: AvailabilityStatus
    matched_item_ids: List[str] = Field(default_factory=list)
    available_quantity: float = 0
    needed_quantity: Optional[float] = None


class AvailabilityResponse(CamelModel):
    results: List[IngredientAvailabilityResponse]


class WasteRiskResponse(CamelModel):
    items: List[WasteRiskEntry]


class ReplanResponse(CamelModel):
    plan: MealPlan
    added_meal_ids: List[str] = Field(default_factory=list)
    skipped_meal_ids: List[str] = Field(default_factory=list)
    # Suggestions dated outside the plan's week; not added to any plan.
    dropped_suggestions: List[MealSuggestion] = Field(default_factory=list)


class MealPlanCreate(CamelModel):
    suggestions: List[MealSuggestion] = Field(default_factory=list)


class ConfirmMealsRequest(CamelModel):
    date: dt.date
    meal_ids: List[str] = Field(min_length=1)


class SlotDishResponse(CamelModel):
    meal: PlannedMeal
    dish: Dish
