from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from ..schemas import Dish, DishInput, DishUpdate, SlotDishInput, SlotDishResponse
from ..services.container import PlannerServices
from .deps import get_services

router = APIRouter(prefix="/users/{user_id}", tags=["dishes"])


@router.post("/meals/{meal_id}/dishes", response_model=Dish, status_code=status.HTTP_201_CREATED)
async def add_dish(
    user_id: str,
    meal_id: str,
    payload: DishInput,
    services: PlannerServices = Depends(get_services),
):
    return await services.dishes.add_dish_to_meal(user_id, meal_id, payload)


@router.patch("/meals/{meal_id}/dishes/{dish_id}", response_model=Dish)
async def update_dish(
    user_id: str,
    meal_id: str,
    dish_id: str,
    payload: DishUpdate,
    services: PlannerServices = Depends(get_services),
):
    return await services.dishes.update_dish_in_meal(user_id, meal_id, dish_id, payload)


@router.delete("/meals/{meal_id}/dishes/{dish_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_dish(
    user_id: str,
    meal_id: str,
    dish_id: str,
    services: PlannerServices = Depends(get_services),
):
    await services.dishes.remove_dish_from_meal(user_id, meal_id, dish_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/meals/{meal_id}/dishes/{dish_id}/complete", response_model=Dish)
async def complete_dish(
    user_id: str,
    meal_id: str,
    dish_id: str,
    services: PlannerServices = Depends(get_services),
):
    return await services.dishes.complete_dish(user_id, meal_id, dish_id)


@router.post("/meals/{meal_id}/dishes/{dish_id}/reopen", response_model=Dish)
async def reopen_dish(
    user_id: str,
    meal_id: str,
    dish_id: str,
    services: PlannerServices = Depends(get_services),
):
    return await services.dishes.reopen_dish(user_id, meal_id, dish_id)


@router.delete("/meals/{meal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_meal(user_id: str, meal_id: str, services: PlannerServices = Depends(get_services)):
    await services.dishes.delete_meal(user_id, meal_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/slots/dishes", response_model=SlotDishResponse, status_code=status.HTTP_201_CREATED)
async def add_dish_to_slot(
    user_id: str,
    payload: SlotDishInput,
    services: PlannerServices = Depends(get_services),
):
    meal, dish = await services.dishes.add_dish_to_slot(user_id, payload.date, payload.meal_type, payload)
    return SlotDishResponse(meal=meal, dish=dish)
