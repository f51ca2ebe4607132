"""Greedy reservation of pantry quantity for recipe ingredients.

Allocation is order dependent: ingredients are served in the order they are
given and each one consumes matching pantry items in match-rank order. Callers
that compute reservations for a whole plan must walk meals, dishes and
ingredients in their stored order so results are reproducible.

Ingredients without a stated quantity need one unit, both here and on the
claim path. ``needed_quantity`` still reports ``None`` for them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..schemas import AnyPlannedMeal, AvailabilityStatus, PantryItem, ShoppingListEntry
from .ingredient_matcher import exclude_queued_items, find_matches
from .ingredient_parser import ParsedIngredient, normalize_item_name, parse_ingredient_quantity
from .meal_records import meal_dishes

DEFAULT_NEEDED_QUANTITY = 1.0

ReservationMap = Dict[str, float]


@dataclass
class IngredientAllocation:
    ingredient: str
    parsed: ParsedIngredient
    status: AvailabilityStatus
    needed_quantity: Optional[float]
    available_quantity: float
    allocated_quantity: float
    matched_item_ids: List[str] = field(default_factory=list)
    item_allocations: Dict[str, float] = field(default_factory=dict)

    @property
    def remaining_quantity(self) -> float:
        needed = self.needed_quantity if self.needed_quantity is not None else DEFAULT_NEEDED_QUANTITY
        return max(0.0, needed - self.allocated_quantity)

    @property
    def allocated_item_ids(self) -> List[str]:
        return [item_id for item_id, qty in self.item_allocations.items() if qty > 0]


def derive_status(allocated: float, needed: float) -> AvailabilityStatus:
    if allocated <= 0:
        return "missing"
    if allocated >= needed:
        return "available"
    return "partial"


class ReservationLedger:
    """Running reservation map for one pantry snapshot.

    ``seed`` holds quantities already reserved elsewhere (keyed by normalized
    pantry item name). Only quantities allocated through this ledger show up
    in ``allocated``.
    """

    def __init__(self, pantry: Sequence[PantryItem], seed: Optional[Mapping[str, float]] = None) -> None:
        self._pantry = list(pantry)
        self._reserved: ReservationMap = dict(seed or {})
        self.allocated: ReservationMap = {}

    @property
    def reserved(self) -> ReservationMap:
        return dict(self._reserved)

    def available_for(self, item: PantryItem) -> float:
        key = normalize_item_name(item.name)
        return max(0.0, float(item.quantity) - self._reserved.get(key, 0.0))

    def allocate(self, ingredient: str) -> IngredientAllocation:
        parsed = parse_ingredient_quantity(ingredient)
        needed = parsed.quantity if parsed.quantity is not None else DEFAULT_NEEDED_QUANTITY
        matches = find_matches(parsed.item_name, self._pantry)
        available_total = sum(self.available_for(item) for item in matches)

        remaining = needed
        item_allocations: Dict[str, float] = {}
        for item in matches:
            if remaining <= 0:
                break
            available = self.available_for(item)
            if available <= 0:
                continue
            take = min(remaining, available)
            key = normalize_item_name(item.name)
            self._reserved[key] = self._reserved.get(key, 0.0) + take
            self.allocated[key] = self.allocated.get(key, 0.0) + take
            item_allocations[item.id] = item_allocations.get(item.id, 0.0) + take
            remaining -= take

        allocated = needed - remaining
        return IngredientAllocation(
            ingredient=ingredient,
            parsed=parsed,
            status=derive_status(allocated, needed),
            needed_quantity=parsed.quantity,
            available_quantity=available_total,
            allocated_quantity=allocated,
            matched_item_ids=[item.id for item in matches],
            item_allocations=item_allocations,
        )

    def allocate_all(self, ingredients: Iterable[str]) -> List[IngredientAllocation]:
        return [self.allocate(ingredient) for ingredient in ingredients]


def calculate_reserved_quantities(
    meals: Iterable[AnyPlannedMeal],
    pantry: Sequence[PantryItem],
    *,
    exclude_meal_id: Optional[str] = None,
    exclude_dish_id: Optional[str] = None,
    confirmed_only: bool = False,
) -> ReservationMap:
    """Replay every non-skipped dish of a plan through one ledger, in stored order."""
    ledger = ReservationLedger(pantry)
    for meal in meals:
        if meal.skipped or meal.id == exclude_meal_id:
            continue
        if confirmed_only and not meal.confirmed:
            continue
        for dish in meal_dishes(meal):
            if dish.id == exclude_dish_id or dish.completed:
                continue
            ledger.allocate_all(dish.recipe_ingredients)
    return ledger.reserved


def check_ingredient_availability(
    ingredients: Sequence[str],
    pantry: Sequence[PantryItem],
    shopping_list: Iterable[ShoppingListEntry] = (),
    reserved: Optional[Mapping[str, float]] = None,
) -> List[IngredientAllocation]:
    """Read-only availability of a recipe's ingredients against what is on hand.

    Pantry items queued on the active shopping list are left out, and
    ``reserved`` (usually the rest of the plan's reservations) is honoured.
    Ingredients of the same recipe compete for the same items in order.
    """
    candidates = exclude_queued_items(pantry, shopping_list)
    ledger = ReservationLedger(candidates, reserved)
    return ledger.allocate_all(ingredients)
