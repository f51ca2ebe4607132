from __future__ import annotations

import datetime as dt
import json

import pytest

from larder.errors import ProviderError
from larder.schemas import PantryItem, PlanningContext, UnplannedEvent, WasteRiskEntry
from larder.services.suggestions import build_prompts, parse_suggestions

WEEK = dt.date(2025, 3, 2)


def _meal(**overrides) -> dict:
    meal = {
        "mealName": "Spinach Omelette",
        "mealType": "breakfast",
        "date": "2025-03-04",
        "suggestedIngredients": ["3 eggs", "1 cup spinach"],
        "usesBestBySoonItems": ["item-1"],
        "priority": "high",
    }
    meal.update(overrides)
    return meal


def test_parses_plain_json_object():
    suggestions = parse_suggestions(json.dumps({"meals": [_meal()]}))
    assert len(suggestions) == 1
    assert suggestions[0].meal_name == "Spinach Omelette"
    assert suggestions[0].date == dt.date(2025, 3, 4)
    assert suggestions[0].uses_best_by_soon_items == ["item-1"]


def test_parses_fenced_json_and_bare_lists():
    fenced = "Here you go:\n```json\n" + json.dumps([_meal(mealType="dinner")]) + "\n```"
    suggestions = parse_suggestions(fenced)
    assert [suggestion.meal_type for suggestion in suggestions] == ["dinner"]


def test_drops_malformed_entries():
    payload = {"meals": [_meal(), _meal(mealType="brunch"), {"mealName": ""}]}
    assert len(parse_suggestions(json.dumps(payload))) == 1


def test_accepts_uses_expiring_items_alias():
    meal = _meal()
    meal["usesExpiringItems"] = meal.pop("usesBestBySoonItems")
    assert parse_suggestions(json.dumps({"meals": [meal]}))[0].uses_best_by_soon_items == ["item-1"]


@pytest.mark.parametrize("raw", ["not json", json.dumps({"plan": []}), json.dumps("meals")])
def test_unusable_output_raises_provider_error(raw):
    with pytest.raises(ProviderError):
        parse_suggestions(raw)


def test_prompts_include_context_sections():
    context = PlanningContext(
        user_id="user-1",
        week_start_date=WEEK,
        disliked_foods=["olives"],
        waste_risk_items=[
            WasteRiskEntry(item_id="item-1", name="spinach", expiry_date=dt.date(2025, 3, 4), days_until=1)
        ],
        available_inventory=[PantryItem(id="item-1", user_id="user-1", name="spinach", quantity=2)],
    )
    system_prompt, user_prompt = build_prompts(context)
    assert "meal planner" in system_prompt
    assert "WEEK_START: 2025-03-02" in user_prompt
    assert "olives" in user_prompt
    assert "2025-03-04" in user_prompt
    assert "UNPLANNED_EVENT" not in user_prompt


def test_replan_prompt_mentions_event():
    context = PlanningContext(
        user_id="user-1",
        week_start_date=WEEK,
        unplanned_event=UnplannedEvent(date=dt.date(2025, 3, 4), meal_types=["dinner"], reason="eating out"),
    )
    _, user_prompt = build_prompts(context)
    assert "UNPLANNED_EVENT" in user_prompt
    assert "eating out" in user_prompt
    assert "1. This is a replan" in user_prompt
