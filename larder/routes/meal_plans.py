from __future__ import annotations

import datetime as dt
import uuid
from typing import List

from fastapi import APIRouter, Depends, status

from ..errors import NotFoundError
from ..schemas import (
    AvailabilityRequest,
    AvailabilityResponse,
    ConfirmMealsRequest,
    IngredientAvailabilityResponse,
    MealPlan,
    MealPlanCreate,
    MealSuggestion,
    ReplanResponse,
    UnplannedEvent,
    WasteRiskResponse,
)
from ..services.container import PlannerServices
from ..services.replanning import ReplanResult
from .deps import get_services

router = APIRouter(prefix="/users/{user_id}", tags=["meal-plans"])


def _replan_response(result: ReplanResult) -> ReplanResponse:
    return ReplanResponse(
        plan=result.plan,
        added_meal_ids=result.added_meal_ids,
        skipped_meal_ids=result.skipped_meal_ids,
        dropped_suggestions=result.dropped_suggestions,
    )


@router.post("/meal-plans/confirm", response_model=MealPlan)
async def confirm_meals(user_id: str, payload: ConfirmMealsRequest, services: PlannerServices = Depends(get_services)):
    return await services.planning.confirm_daily_meals(user_id, payload.date, payload.meal_ids)


@router.get("/meal-plans/{week_start}", response_model=MealPlan)
async def get_meal_plan(user_id: str, week_start: dt.date, services: PlannerServices = Depends(get_services)):
    plan = await services.planning.get_meal_plan(user_id, week_start)
    if plan is None:
        raise NotFoundError("meal plan not found", details={"user_id": user_id, "week_start": week_start.isoformat()})
    return plan


@router.post("/meal-plans/{week_start}", response_model=MealPlan, status_code=status.HTTP_201_CREATED)
async def create_meal_plan(
    user_id: str,
    week_start: dt.date,
    payload: MealPlanCreate,
    services: PlannerServices = Depends(get_services),
):
    return await services.planning.create_meal_plan(user_id, week_start, payload.suggestions)


@router.post("/meal-plans/{week_start}/suggestions", response_model=List[MealSuggestion])
async def generate_suggestions(user_id: str, week_start: dt.date, services: PlannerServices = Depends(get_services)):
    return await services.planning.generate_meal_suggestions(user_id, week_start)


@router.get("/meal-plans/{week_start}/waste-risk", response_model=WasteRiskResponse)
async def waste_risk(user_id: str, week_start: dt.date, services: PlannerServices = Depends(get_services)):
    items = await services.planning.get_waste_risk(user_id, week_start)
    return WasteRiskResponse(items=items)


@router.post("/meal-plans/{plan_id}/replan", response_model=ReplanResponse)
async def replan(
    user_id: str,
    plan_id: str,
    event: UnplannedEvent,
    services: PlannerServices = Depends(get_services),
):
    result = await services.replanning.replan_meals(user_id, plan_id, event)
    return _replan_response(result)


@router.post("/unplanned-events", response_model=ReplanResponse, status_code=status.HTTP_201_CREATED)
async def record_unplanned_event(
    user_id: str,
    event: UnplannedEvent,
    services: PlannerServices = Depends(get_services),
):
    # Recorded only once the replan has gone through.
    event = event.model_copy(update={"id": uuid.uuid4().hex, "user_id": user_id})
    result = await services.replanning.replan_meals(user_id, None, event)
    await services.events.record_event(user_id, event)
    return _replan_response(result)


@router.post("/availability", response_model=AvailabilityResponse)
async def check_availability(
    user_id: str,
    payload: AvailabilityRequest,
    services: PlannerServices = Depends(get_services),
):
    allocations = await services.planning.check_availability(
        user_id,
        payload.ingredients,
        week_start=payload.week_start_date,
        exclude_meal_id=payload.exclude_meal_id,
    )
    return AvailabilityResponse(
        results=[
            IngredientAvailabilityResponse(
                ingredient=allocation.ingredient,
                status=allocation.status,
                matched_item_ids=allocation.matched_item_ids,
                available_quantity=allocation.available_quantity,
                needed_quantity=allocation.needed_quantity,
            )
            for allocation in allocations
        ]
    )
