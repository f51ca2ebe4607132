from __future__ import annotations

import datetime as dt
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from planner_helpers import TODAY, USER, WEEK, StubSuggestions

from larder.errors import ProviderError
from larder.main import app
from larder.models import Base, MealPlanRecord, PantryItemRecord, UnplannedEventRecord
from larder.routes.deps import get_services
from larder.schemas import Dish, MealSuggestion, PlannedMeal
from larder.services.container import build_services
from larder.services.meal_records import dump_meals

BASE = f"/v1/users/{USER}"


@pytest.fixture
def env(tmp_path):
    path = tmp_path / "larder.db"
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    async_engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    suggestions = StubSuggestions()
    services = build_services(async_sessionmaker(async_engine, expire_on_commit=False), suggestions=suggestions)
    app.dependency_overrides[get_services] = lambda: services
    try:
        with TestClient(app) as client:
            yield SimpleNamespace(client=client, engine=sync_engine, suggestions=suggestions)
    finally:
        app.dependency_overrides.clear()
        sync_engine.dispose()


def _seed(engine, *records) -> None:
    with Session(engine, expire_on_commit=False) as session:
        session.add_all(records)
        session.commit()


def _seed_plan(engine, meals) -> str:
    record = MealPlanRecord(id="plan-1", user_id=USER, week_start_date=WEEK, meals=dump_meals(meals))
    _seed(engine, record)
    return record.id


def _dinner(meal_id: str = "meal-1") -> PlannedMeal:
    return PlannedMeal(
        id=meal_id,
        date=TODAY,
        meal_type="dinner",
        confirmed=True,
        dishes=[Dish(id="dish-1", dish_name="Curry", recipe_ingredients=["1 cup rice"])],
    )


def test_health_sets_request_and_security_headers(env):
    response = env.client.get("/v1/health", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_missing_plan_maps_to_404(env):
    response = env.client.get(f"{BASE}/meal-plans/{WEEK.isoformat()}")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "not_found"


def test_get_plan_reads_legacy_meals(env):
    _seed(
        env.engine,
        MealPlanRecord(
            id="plan-1",
            user_id=USER,
            week_start_date=WEEK,
            meals=[{"id": "old", "date": TODAY.isoformat(), "mealType": "dinner", "mealName": "Tacos"}],
        ),
    )
    body = env.client.get(f"{BASE}/meal-plans/{TODAY.isoformat()}").json()
    assert body["weekStartDate"] == WEEK.isoformat()
    assert body["meals"][0]["mealName"] == "Tacos"


def test_slot_dish_flow(env):
    _seed(env.engine, PantryItemRecord(id="eggs-1", user_id=USER, name="eggs", quantity=6))

    created = env.client.post(
        f"{BASE}/slots/dishes",
        json={"date": TODAY.isoformat(), "mealType": "breakfast", "dishName": "Omelette", "recipeIngredients": ["2 eggs"]},
    )
    assert created.status_code == 201
    body = created.json()
    meal_id, dish_id = body["meal"]["id"], body["dish"]["id"]
    assert body["dish"]["reservedQuantities"] == {"eggs": 2}
    assert body["dish"]["claimedItemIds"] == ["eggs-1"]

    renamed = env.client.patch(f"{BASE}/meals/{meal_id}/dishes/{dish_id}", json={"dishName": "Cheese omelette"})
    assert renamed.json()["dishName"] == "Cheese omelette"

    completed = env.client.post(f"{BASE}/meals/{meal_id}/dishes/{dish_id}/complete")
    assert completed.json()["completed"] is True
    with Session(env.engine) as session:
        assert session.get(PantryItemRecord, "eggs-1").quantity == 4

    reopened = env.client.post(f"{BASE}/meals/{meal_id}/dishes/{dish_id}/reopen")
    assert reopened.json()["completed"] is False

    removed = env.client.delete(f"{BASE}/meals/{meal_id}/dishes/{dish_id}")
    assert removed.status_code == 204
    plan = env.client.get(f"{BASE}/meal-plans/{WEEK.isoformat()}").json()
    assert plan["meals"][0]["dishes"] == []

    assert env.client.delete(f"{BASE}/meals/{meal_id}").status_code == 204
    assert env.client.delete(f"{BASE}/meals/{meal_id}").status_code == 404


def test_add_dish_to_existing_meal(env):
    _seed_plan(env.engine, [_dinner()])
    response = env.client.post(f"{BASE}/meals/meal-1/dishes", json={"dishName": "Naan"})
    assert response.status_code == 201
    assert response.json()["dishName"] == "Naan"


def test_dish_payload_is_validated(env):
    response = env.client.post(f"{BASE}/meals/meal-1/dishes", json={"dishName": ""})
    assert response.status_code == 422


def test_availability(env):
    _seed(env.engine, PantryItemRecord(id="flour-1", user_id=USER, name="flour", quantity=3))
    response = env.client.post(
        f"{BASE}/availability", json={"ingredients": ["2 cups flour", "3 eggs", "salt"]}
    )
    assert response.status_code == 200
    results = response.json()["results"]
    assert [result["status"] for result in results] == ["available", "missing", "missing"]
    assert results[0]["matchedItemIds"] == ["flour-1"]
    assert results[0]["neededQuantity"] == 2
    assert results[2]["neededQuantity"] is None


def test_waste_risk(env):
    _seed(
        env.engine,
        PantryItemRecord(id="cream-1", user_id=USER, name="cream", quantity=1, best_by_date=TODAY + dt.timedelta(days=1)),
    )
    body = env.client.get(f"{BASE}/meal-plans/{WEEK.isoformat()}/waste-risk").json()
    assert [item["itemId"] for item in body["items"]] == ["cream-1"]
    assert body["items"][0]["daysUntil"] == 1


def test_replan_endpoint(env):
    plan_id = _seed_plan(env.engine, [_dinner()])
    env.suggestions.suggestions = [
        MealSuggestion(meal_name="Leftover curry wraps", meal_type="lunch", date=TODAY)
    ]
    response = env.client.post(
        f"{BASE}/meal-plans/{plan_id}/replan",
        json={"date": TODAY.isoformat(), "mealTypes": ["dinner"], "reason": "eating out"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["skippedMealIds"] == ["meal-1"]
    assert len(body["addedMealIds"]) == 1
    assert body["plan"]["meals"][0]["skipped"] is True


def test_unplanned_event_is_recorded_then_replanned(env):
    _seed_plan(env.engine, [_dinner()])
    response = env.client.post(f"{BASE}/unplanned-events", json={"date": TODAY.isoformat(), "mealTypes": ["dinner"]})
    assert response.status_code == 201
    assert response.json()["skippedMealIds"] == ["meal-1"]
    with Session(env.engine) as session:
        events = session.scalars(select(UnplannedEventRecord)).all()
    assert [(event.user_id, event.reason) for event in events] == [(USER, "other")]
    assert env.suggestions.contexts[0].unplanned_event.id == events[0].id


def test_unplanned_event_without_a_plan_is_not_recorded(env):
    response = env.client.post(f"{BASE}/unplanned-events", json={"date": TODAY.isoformat(), "mealTypes": ["dinner"]})
    assert response.status_code == 404
    with Session(env.engine) as session:
        assert session.scalars(select(UnplannedEventRecord)).all() == []


def test_unplanned_event_is_not_recorded_when_planning_fails(env):
    _seed_plan(env.engine, [_dinner()])
    env.suggestions.error = ProviderError("Planning model returned invalid JSON")
    response = env.client.post(f"{BASE}/unplanned-events", json={"date": TODAY.isoformat(), "mealTypes": ["dinner"]})
    assert response.status_code == 502
    with Session(env.engine) as session:
        assert session.scalars(select(UnplannedEventRecord)).all() == []


def test_unplanned_event_needs_meal_types(env):
    response = env.client.post(f"{BASE}/unplanned-events", json={"date": TODAY.isoformat(), "mealTypes": []})
    assert response.status_code == 422


def test_provider_failure_maps_to_502(env):
    plan_id = _seed_plan(env.engine, [_dinner()])
    env.suggestions.error = ProviderError("Planning model returned invalid JSON")
    response = env.client.post(
        f"{BASE}/meal-plans/{plan_id}/replan", json={"date": TODAY.isoformat(), "mealTypes": ["dinner"]}
    )
    assert response.status_code == 502
    assert response.json()["error"]["code"] == "provider_error"


def test_confirm_meals(env):
    _seed_plan(env.engine, [_dinner().model_copy(update={"confirmed": False})])
    response = env.client.post(
        f"{BASE}/meal-plans/confirm", json={"date": TODAY.isoformat(), "mealIds": ["meal-1"]}
    )
    assert response.status_code == 200
    assert response.json()["meals"][0]["confirmed"] is True
