from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from ..schemas import PantryItem, ShoppingListEntry
from .ingredient_matcher import find_matches
from .ingredient_parser import parse_ingredient_quantity
from .reservations import ReservationLedger
from .stores import InventoryProvider, ShoppingListStore

logger = logging.getLogger(__name__)


def _unique(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


class ClaimCoordinator:
    """Persists the links between meals and the pantry items or shopping-list entries they use.

    Pantry items point at meals through ``used_by_meals``; shopping-list entries
    through ``meal_id``. Ids belonging to another user are skipped, not raised:
    they are stale references, ownership is enforced by the stores.
    """

    def __init__(self, *, inventory: InventoryProvider, shopping_list: ShoppingListStore) -> None:
        self.inventory = inventory
        self.shopping_list = shopping_list

    async def claim_items_for_meal(
        self,
        user_id: str,
        meal_id: str,
        ingredients: Sequence[str],
        pantry: Sequence[PantryItem],
        seed: Optional[Mapping[str, float]] = None,
    ) -> List[str]:
        """Link every pantry item the ledger allocates to ``meal_id``.

        Returns all allocated item ids now linked to the meal, including ones
        that were linked before the call; items already linked are not written.
        ``pantry`` is updated in place so the same snapshot can be reused.
        """
        ledger = ReservationLedger(pantry, seed)
        allocated_ids = _unique(
            item_id for allocation in ledger.allocate_all(ingredients) for item_id in allocation.allocated_item_ids
        )
        by_id = {item.id: item for item in pantry}
        claimed: List[str] = []
        for item_id in allocated_ids:
            item = by_id[item_id]
            if item.user_id != user_id:
                logger.info("Skipping pantry item %s not owned by user=%s", item_id, user_id)
                continue
            if meal_id not in item.used_by_meals:
                await self.inventory.update_food_item(
                    item_id, {"used_by_meals": [*item.used_by_meals, meal_id]}
                )
                item.used_by_meals = [*item.used_by_meals, meal_id]
            claimed.append(item_id)
        if claimed:
            logger.info("Claimed %s pantry items for meal=%s user=%s", len(claimed), meal_id, user_id)
        return claimed

    async def claim_shopping_list_items_for_meal(
        self,
        user_id: str,
        meal_id: str,
        ingredients: Sequence[str],
        shopping_list: Sequence[ShoppingListEntry],
    ) -> List[str]:
        """Link active shopping-list entries matching the ingredients to ``meal_id``.

        Entries already linked to a different meal are not candidates.
        """
        candidates = [
            entry
            for entry in shopping_list
            if entry.user_id == user_id and not entry.crossed_off and entry.meal_id in (None, meal_id)
        ]
        matched: List[ShoppingListEntry] = []
        for ingredient in ingredients:
            parsed = parse_ingredient_quantity(ingredient)
            matched.extend(find_matches(parsed.item_name, candidates))

        claimed: List[str] = []
        for entry in {entry.id: entry for entry in matched}.values():
            if entry.meal_id != meal_id:
                await self.shopping_list.update_item(entry.id, {"meal_id": meal_id})
            claimed.append(entry.id)
        return claimed

    async def link_items_to_meal(
        self, user_id: str, meal_id: str, item_ids: Iterable[str], pantry: Sequence[PantryItem]
    ) -> List[str]:
        """Link named pantry items to a meal without allocating quantity."""
        by_id = {item.id: item for item in pantry if item.user_id == user_id}
        linked: List[str] = []
        for item_id in _unique(item_ids):
            item = by_id.get(item_id)
            if item is None:
                logger.info("Ignoring unknown pantry item %s for meal=%s user=%s", item_id, meal_id, user_id)
                continue
            if meal_id not in item.used_by_meals:
                await self.inventory.update_food_item(
                    item_id, {"used_by_meals": [*item.used_by_meals, meal_id]}
                )
                item.used_by_meals = [*item.used_by_meals, meal_id]
            linked.append(item_id)
        return linked

    async def _owned_item(self, user_id: str, item_id: str) -> Optional[PantryItem]:
        item = await self.inventory.get_food_item(item_id)
        if item is None or item.user_id != user_id:
            logger.info("Pantry item %s not found for user=%s; skipping", item_id, user_id)
            return None
        return item

    async def release_items_for_meal(self, user_id: str, meal_id: str, item_ids: Iterable[str]) -> List[str]:
        released: List[str] = []
        for item_id in _unique(item_ids):
            item = await self._owned_item(user_id, item_id)
            if item is None or meal_id not in item.used_by_meals:
                continue
            await self.inventory.update_food_item(
                item_id, {"used_by_meals": [mid for mid in item.used_by_meals if mid != meal_id]}
            )
            released.append(item_id)
        return released

    async def release_shopping_list_items(
        self, user_id: str, meal_id: str, entry_ids: Iterable[str]
    ) -> List[str]:
        wanted = set(entry_ids)
        if not wanted:
            return []
        released: List[str] = []
        for entry in await self.shopping_list.get_items(user_id):
            if entry.id in wanted and entry.meal_id == meal_id:
                await self.shopping_list.update_item(entry.id, {"meal_id": None})
                released.append(entry.id)
        return released

    async def mark_items_as_used_for_meal(
        self,
        user_id: str,
        meal_id: str,
        item_ids: Iterable[str],
        item_quantities: Mapping[str, float],
    ) -> Dict[str, float]:
        """Consume reserved quantity: link the meal and decrement, never below zero.

        ``item_quantities`` is keyed by pantry item id. Returns the decrement
        actually applied to each item, which is what
        ``unmark_items_as_used_for_meal`` must be given back.
        """
        consumed: Dict[str, float] = {}
        for item_id in _unique(item_ids):
            item = await self._owned_item(user_id, item_id)
            if item is None:
                continue
            on_hand = max(0.0, float(item.quantity))
            taken = min(on_hand, max(0.0, float(item_quantities.get(item_id, 0.0))))
            used_by = item.used_by_meals if meal_id in item.used_by_meals else [*item.used_by_meals, meal_id]
            await self.inventory.update_food_item(
                item_id,
                {"used_by_meals": used_by, "quantity": on_hand - taken},
            )
            consumed[item_id] = taken
        return consumed

    async def unmark_items_as_used_for_meal(
        self,
        user_id: str,
        meal_id: str,
        item_ids: Iterable[str],
        consumed: Mapping[str, float],
    ) -> Dict[str, float]:
        """Undo ``mark_items_as_used_for_meal``: unlink the meal and add back what it took."""
        restored: Dict[str, float] = {}
        for item_id in _unique(item_ids):
            item = await self._owned_item(user_id, item_id)
            if item is None:
                continue
            amount = float(consumed.get(item_id, 0.0))
            await self.inventory.update_food_item(
                item_id,
                {
                    "used_by_meals": [mid for mid in item.used_by_meals if mid != meal_id],
                    "quantity": float(item.quantity) + amount,
                },
            )
            restored[item_id] = amount
        return restored
