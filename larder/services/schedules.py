from __future__ import annotations

import datetime as dt
from typing import List, Optional

from ..config import get_settings
from ..schemas import EffectiveSchedule, MealProfile, ScheduleAmendment, ScheduledMeal

DEFAULT_FINISH_BY = "18:00"


def js_weekday(day: dt.date) -> int:
    """Weekday with 0=Sunday, the convention stored in profiles."""
    return (day.weekday() + 1) % 7


def week_start_for(day: dt.date, week_starts_on: Optional[int] = None) -> dt.date:
    start = get_settings().week_starts_on if week_starts_on is None else week_starts_on
    offset = (js_weekday(day) - start) % 7
    return day - dt.timedelta(days=offset)


def week_dates(week_start: dt.date) -> List[dt.date]:
    return [week_start + dt.timedelta(days=offset) for offset in range(7)]


def _amendment_applies(amendment: ScheduleAmendment, day: dt.date) -> bool:
    pattern = amendment.recurring_pattern
    if amendment.is_recurring and pattern is not None:
        if pattern.end_date is not None and day > pattern.end_date:
            return False
        if pattern.frequency == "weekly":
            return pattern.day_of_week == js_weekday(day)
        return pattern.day_of_month == day.day
    return amendment.date == day


def effective_schedule(profile: Optional[MealProfile], day: dt.date) -> EffectiveSchedule:
    """Usual schedule for the weekday with matching amendments applied in order."""
    if profile is None:
        return EffectiveSchedule(date=day, meals=[])

    usual_day = next((entry for entry in profile.usual_schedule if entry.day_of_week == js_weekday(day)), None)
    usual_meals = list(usual_day.meals) if usual_day else []
    meals = list(usual_meals)

    for amendment in profile.schedule_amendments:
        if not _amendment_applies(amendment, day):
            continue
        meals = [meal for meal in meals if meal.type not in amendment.meal_types]
        for meal_type in amendment.meal_types:
            usual = next((meal for meal in usual_meals if meal.type == meal_type), None)
            finish_by = amendment.finish_by or (usual.finish_by if usual else None) or DEFAULT_FINISH_BY
            meals.append(ScheduledMeal(type=meal_type, finish_by=finish_by))

    return EffectiveSchedule(date=day, meals=meals)


def _to_minutes(clock: str) -> int:
    hours, _, minutes = clock.partition(":")
    return int(hours) * 60 + int(minutes or 0)


def _to_clock(total_minutes: int) -> str:
    total_minutes %= 24 * 60
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


def meal_duration(profile: Optional[MealProfile], meal_type: str) -> int:
    if profile is not None:
        duration = getattr(profile.meal_duration_preferences, meal_type, None)
        if duration:
            return int(duration)
    return get_settings().default_meal_duration_minutes


def resolve_meal_times(
    schedule: Optional[EffectiveSchedule],
    profile: Optional[MealProfile],
    meal_type: str,
) -> tuple[str, str]:
    """Return ``(finish_by, start_cooking_at)`` for a meal slot."""
    finish_by = None
    if schedule is not None:
        scheduled = next((meal for meal in schedule.meals if meal.type == meal_type), None)
        finish_by = scheduled.finish_by if scheduled else None
    finish_by = finish_by or get_settings().default_finish_by
    try:
        start = _to_clock(_to_minutes(finish_by) - meal_duration(profile, meal_type))
    except ValueError:
        finish_by = get_settings().default_finish_by
        start = _to_clock(_to_minutes(finish_by) - meal_duration(profile, meal_type))
    return finish_by, start
