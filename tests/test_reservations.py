from __future__ import annotations

import datetime as dt

import pytest

from larder.schemas import Dish, LegacyPlannedMeal, PantryItem, PlannedMeal, ShoppingListEntry
from larder.services.reservations import (
    ReservationLedger,
    calculate_reserved_quantities,
    check_ingredient_availability,
    derive_status,
)

DAY = dt.date(2025, 3, 4)


def _item(item_id: str, name: str, quantity: float) -> PantryItem:
    return PantryItem(id=item_id, user_id="user-1", name=name, quantity=quantity)


def _meal(meal_id: str, *ingredient_lists, skipped: bool = False, confirmed: bool = True) -> PlannedMeal:
    return PlannedMeal(
        id=meal_id,
        date=DAY,
        meal_type="dinner",
        skipped=skipped,
        confirmed=confirmed,
        dishes=[
            Dish(id=f"{meal_id}-d{index}", dish_name=f"Dish {index}", recipe_ingredients=list(ingredients))
            for index, ingredients in enumerate(ingredient_lists)
        ],
    )


def test_derive_status():
    assert derive_status(0, 2) == "missing"
    assert derive_status(1, 2) == "partial"
    assert derive_status(2, 2) == "available"


def test_full_allocation_from_single_item():
    pantry = [_item("flour-1", "flour", 3)]
    ledger = ReservationLedger(pantry)
    allocation = ledger.allocate("2 cups flour")
    assert allocation.status == "available"
    assert allocation.allocated_quantity == 2
    assert allocation.allocated_item_ids == ["flour-1"]
    assert ledger.allocated == {"flour": 2}


def test_partial_allocation_reports_shortfall():
    pantry = [_item("eggs-1", "eggs", 1)]
    allocation = ReservationLedger(pantry).allocate("3 eggs")
    assert allocation.status == "partial"
    assert allocation.allocated_quantity == 1
    assert allocation.remaining_quantity == 2
    assert allocation.needed_quantity == 3


def test_missing_ingredient():
    allocation = ReservationLedger([_item("1", "rice", 2)]).allocate("1 tsp saffron")
    assert allocation.status == "missing"
    assert allocation.matched_item_ids == []
    assert allocation.allocated_item_ids == []


def test_quantity_less_ingredient_needs_one_unit():
    ledger = ReservationLedger([_item("1", "garlic", 3)])
    allocation = ledger.allocate("garlic")
    assert allocation.needed_quantity is None
    assert allocation.allocated_quantity == 1
    assert allocation.status == "available"
    assert ledger.reserved == {"garlic": 1}


def test_seed_reduces_availability():
    ledger = ReservationLedger([_item("1", "flour", 3)], seed={"flour": 2})
    allocation = ledger.allocate("2 cups flour")
    assert allocation.status == "partial"
    assert allocation.allocated_quantity == 1
    assert ledger.allocated == {"flour": 1}
    assert ledger.reserved == {"flour": 3}


def test_only_best_tier_items_are_allocated():
    pantry = [_item("a", "chicken breast", 1), _item("b", "chicken breasts", 2)]
    allocation = ReservationLedger(pantry).allocate("2 chicken breast")
    assert allocation.matched_item_ids == ["a"]
    assert allocation.item_allocations == {"a": 1}
    assert allocation.status == "partial"


def test_reserved_never_exceeds_item_quantity():
    pantry = [_item("1", "eggs", 4), _item("2", "milk", 1)]
    ledger = ReservationLedger(pantry)
    ledger.allocate_all(["3 eggs", "3 eggs", "2 cups milk", "milk"])
    for item in pantry:
        assert ledger.reserved.get(item.name, 0) <= item.quantity


def test_calculate_reserved_skips_skipped_meals_and_completed_dishes():
    pantry = [_item("1", "rice", 5), _item("2", "beans", 5)]
    meals = [
        _meal("m1", ["2 cups rice"]),
        _meal("m2", ["3 cups rice"], skipped=True),
        PlannedMeal(
            id="m3",
            date=DAY,
            meal_type="lunch",
            dishes=[Dish(id="m3-d0", dish_name="Beans", recipe_ingredients=["2 cups beans"], completed=True)],
        ),
    ]
    assert calculate_reserved_quantities(meals, pantry) == {"rice": 2}


def test_calculate_reserved_exclusions():
    pantry = [_item("1", "rice", 5)]
    meals = [_meal("m1", ["1 cup rice"], ["2 cups rice"]), _meal("m2", ["1 cup rice"], confirmed=False)]
    assert calculate_reserved_quantities(meals, pantry) == {"rice": 4}
    assert calculate_reserved_quantities(meals, pantry, exclude_meal_id="m1") == {"rice": 1}
    assert calculate_reserved_quantities(meals, pantry, exclude_dish_id="m1-d1") == {"rice": 2}
    assert calculate_reserved_quantities(meals, pantry, confirmed_only=True) == {"rice": 3}


def test_calculate_reserved_reads_legacy_meals():
    pantry = [_item("1", "tortillas", 8)]
    legacy = LegacyPlannedMeal(id="old", date=DAY, meal_type="dinner", meal_name="Tacos", recipe_ingredients=["6 tortillas"])
    assert calculate_reserved_quantities([legacy], pantry) == {"tortillas": 6}


def test_reservations_depend_on_stored_order():
    pantry = [_item("1", "eggs", 3)]
    first = [_meal("a", ["3 eggs"]), _meal("b", ["2 eggs"])]
    reserved = calculate_reserved_quantities(first, pantry)
    assert reserved == {"eggs": 3}
    leftover = check_ingredient_availability(["2 eggs"], pantry, reserved=reserved)
    assert leftover[0].status == "missing"


def test_check_availability_ignores_items_queued_for_purchase():
    pantry = [_item("1", "milk", 2), _item("2", "flour", 1)]
    shopping = [ShoppingListEntry(id="s1", user_id="user-1", name="milk")]
    results = check_ingredient_availability(["1 cup milk", "1 cup flour"], pantry, shopping)
    assert [result.status for result in results] == ["missing", "available"]


def test_check_availability_ingredients_compete():
    pantry = [_item("1", "butter", 1)]
    results = check_ingredient_availability(["1 tbsp butter", "1 tbsp butter"], pantry)
    assert [result.status for result in results] == ["available", "missing"]
    assert results[1].available_quantity == pytest.approx(0)


def test_allocation_spills_across_equally_ranked_items():
    pantry = [_item("a", "whole milk", 1), _item("b", "skim milk", 2)]
    allocation = ReservationLedger(pantry).allocate("2 cups milk")
    assert allocation.status == "available"
    assert allocation.item_allocations == {"a": 1, "b": 1}
