from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .claims import ClaimCoordinator
from .dishes import DishLifecycleManager
from .plan_locks import PlanMutationQueue
from .planning import MealPlanningService
from .replanning import ReplanningEngine
from .stores import (
    SessionFactory,
    SqlInventoryStore,
    SqlLeftoverMealStore,
    SqlMealProfileStore,
    SqlPlanStore,
    SqlShoppingListStore,
    SqlUnplannedEventStore,
)
from .suggestions import OpenAISuggestionProvider, SuggestionProvider


@dataclass
class PlannerServices:
    plans: SqlPlanStore
    inventory: SqlInventoryStore
    shopping_list: SqlShoppingListStore
    leftovers: SqlLeftoverMealStore
    profiles: SqlMealProfileStore
    events: SqlUnplannedEventStore
    claims: ClaimCoordinator
    dishes: DishLifecycleManager
    replanning: ReplanningEngine
    planning: MealPlanningService


def build_services(
    session_factory: SessionFactory,
    *,
    suggestions: Optional[SuggestionProvider] = None,
    locks: Optional[PlanMutationQueue] = None,
) -> PlannerServices:
    """Wire the SQL stores into the planning services.

    One ``PlanMutationQueue`` must be shared by everything that writes plans.
    """
    locks = locks or PlanMutationQueue()
    suggestions = suggestions or OpenAISuggestionProvider()
    plans = SqlPlanStore(session_factory)
    inventory = SqlInventoryStore(session_factory)
    shopping_list = SqlShoppingListStore(session_factory)
    leftovers = SqlLeftoverMealStore(session_factory)
    profiles = SqlMealProfileStore(session_factory)
    claims = ClaimCoordinator(inventory=inventory, shopping_list=shopping_list)
    return PlannerServices(
        plans=plans,
        inventory=inventory,
        shopping_list=shopping_list,
        leftovers=leftovers,
        profiles=profiles,
        events=SqlUnplannedEventStore(session_factory),
        claims=claims,
        dishes=DishLifecycleManager(
            plans=plans,
            inventory=inventory,
            shopping_list=shopping_list,
            profiles=profiles,
            claims=claims,
            locks=locks,
        ),
        replanning=ReplanningEngine(
            plans=plans,
            inventory=inventory,
            leftovers=leftovers,
            profiles=profiles,
            suggestions=suggestions,
            claims=claims,
            locks=locks,
        ),
        planning=MealPlanningService(
            plans=plans,
            inventory=inventory,
            shopping_list=shopping_list,
            leftovers=leftovers,
            profiles=profiles,
            suggestions=suggestions,
            claims=claims,
            locks=locks,
        ),
    )
