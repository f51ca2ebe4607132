from __future__ import annotations

import datetime as dt
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..config import get_settings
from ..schemas import MealPlan, PantryItem, WasteRiskEntry
from .meal_records import meal_claimed_item_ids

logger = logging.getLogger(__name__)


def days_until(target: dt.date, today: dt.date) -> int:
    return (target - today).days


def earliest_planned_use(plan: Optional[MealPlan]) -> Dict[str, dt.date]:
    """Map pantry item id to the date of the earliest non-skipped meal claiming it."""
    planned: Dict[str, dt.date] = {}
    if plan is None:
        return planned
    for meal in plan.meals:
        if meal.skipped:
            continue
        for item_id in meal_claimed_item_ids(meal):
            current = planned.get(item_id)
            if current is None or meal.date < current:
                planned[item_id] = meal.date
    return planned


def _assess(
    plan: Optional[MealPlan],
    pantry: Iterable[PantryItem],
    today: dt.date,
    window_days: int,
) -> List[WasteRiskEntry]:
    planned = earliest_planned_use(plan)
    entries: List[WasteRiskEntry] = []
    for item in pantry:
        expiry = item.expiry_date
        if expiry is None:
            continue
        remaining = days_until(expiry, today)
        use_date = planned.get(item.id)
        if use_date is None:
            at_risk = remaining <= window_days
        else:
            at_risk = expiry < use_date
        if at_risk:
            entries.append(
                WasteRiskEntry(
                    item_id=item.id,
                    name=item.name,
                    expiry_date=expiry,
                    days_until=remaining,
                    planned_use_date=use_date,
                )
            )
    return entries


def get_waste_risk_items(
    plan: Optional[MealPlan],
    pantry: Sequence[PantryItem],
    *,
    today: Optional[dt.date] = None,
    window_days: Optional[int] = None,
) -> List[PantryItem]:
    """Items that are unclaimed and expiring soon, or claimed but expiring before use.

    Only the presence of a claim counts; partial use of an item is not modelled.
    """
    today = today or dt.date.today()
    window = get_settings().waste_risk_window_days if window_days is None else window_days
    flagged = {entry.item_id for entry in _assess(plan, pantry, today, window)}
    return [item for item in pantry if item.id in flagged]


def build_waste_risk_entries(
    plan: Optional[MealPlan],
    pantry: Sequence[PantryItem],
    *,
    today: Optional[dt.date] = None,
    window_days: Optional[int] = None,
) -> List[WasteRiskEntry]:
    today = today or dt.date.today()
    window = get_settings().waste_risk_window_days if window_days is None else window_days
    entries = _assess(plan, pantry, today, window)
    entries.sort(key=lambda entry: (entry.days_until, entry.name.lower()))
    if entries:
        logger.debug("Waste risk assessment flagged %s of %s items", len(entries), len(pantry))
    return entries
