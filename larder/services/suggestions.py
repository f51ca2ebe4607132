from __future__ import annotations

import asyncio
import datetime as dt
import json
import logging
import re
from textwrap import dedent
from time import perf_counter
from typing import Any, Dict, List, Protocol

from pydantic import ValidationError as PydanticValidationError

from ..config import get_settings
from ..errors import ProviderError
from ..schemas import MealSuggestion, PlanningContext
from .openai_responses import call_openai_responses

logger = logging.getLogger(__name__)

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?(.*?)```", re.IGNORECASE | re.DOTALL)


class SuggestionProvider(Protocol):
    """Remote meal suggester. Slow, fallible and not deterministic between calls."""

    async def suggest_meals(self, context: PlanningContext) -> List[MealSuggestion]: ...


def format_json(payload: Any) -> str:
    """Pretty-print objects for prompt context without breaking date fields."""

    def _default(value: Any):
        if isinstance(value, (dt.date, dt.datetime)):
            return value.isoformat()
        return str(value)

    return json.dumps(payload, indent=2, default=_default)


def _context_sections(context: PlanningContext) -> Dict[str, Any]:
    return {
        "preferences": {
            "dislikedFoods": context.disliked_foods,
            "foodPreferences": context.food_preferences,
            "dietApproach": context.diet_approach,
            "dietStrict": context.diet_strict,
            "favoriteMeals": context.favorite_meals,
            "servingSize": context.serving_size,
        },
        "schedule": [
            {"date": day.date, "meals": [meal.to_document() for meal in day.meals]}
            for day in context.schedule
        ],
        "wasteRiskItems": [entry.to_document() for entry in context.waste_risk_items],
        "leftoverMeals": [
            {"mealName": meal.meal_name, "date": meal.date, "quantity": meal.quantity, "ingredients": meal.ingredients}
            for meal in context.leftover_meals
        ],
        "availableInventory": [
            {"id": item.id, "name": item.name, "quantity": item.quantity, "expires": item.expiry_date}
            for item in context.available_inventory
        ],
    }


def build_prompts(context: PlanningContext) -> tuple[str, str]:
    sections = _context_sections(context)
    system_prompt = (
        "You are a home meal planner. Plan meals for the scheduled slots using what the household already has, "
        "prioritising items at risk of spoiling and any leftovers. Never invent pantry item ids. "
        "Always respect the contract and return valid JSON."
    )
    requirement_lines = [
        "Only plan meals for dates and meal types listed in SCHEDULE.",
        "Use WASTE_RISK_ITEMS first, earliest expiry first, and list the pantry ids you rely on in usesBestBySoonItems.",
        "Never suggest foods listed in dislikedFoods. Honour dietApproach; when dietStrict is true treat it as a hard rule.",
        "suggestedIngredients are recipe lines with quantities, e.g. \"2 cups rice\".",
        "Respond in JSON: {\"meals\":[{\"mealName\":\"...\",\"mealType\":\"breakfast|lunch|dinner\",\"date\":\"YYYY-MM-DD\","
        "\"suggestedIngredients\":[\"...\"],\"usesBestBySoonItems\":[\"<pantry id>\"],\"reasoning\":\"...\",\"priority\":\"high|medium|low\"}]}",
    ]
    if context.unplanned_event is not None:
        requirement_lines.insert(
            0,
            "This is a replan after an unplanned event. Do not replace SKIPPED_MEALS on the event date; "
            "reuse the ingredients they would have used in the remaining slots.",
        )
    enumerated_requirements = "\n".join(
        f"{index}. {line}" for index, line in enumerate(requirement_lines, start=1)
    )
    replan_block = ""
    if context.unplanned_event is not None:
        replan_block = dedent(
            f"""
            UNPLANNED_EVENT:
            {format_json(context.unplanned_event.to_document())}

            SKIPPED_MEALS:
            {format_json([meal.to_document() for meal in context.skipped_meals])}
            """
        )
    user_prompt = dedent(
        f"""
        WEEK_START: {context.week_start_date.isoformat()}

        PREFERENCES:
        {format_json(sections["preferences"])}

        SCHEDULE:
        {format_json(sections["schedule"])}

        WASTE_RISK_ITEMS:
        {format_json(sections["wasteRiskItems"])}

        LEFTOVER_MEALS:
        {format_json(sections["leftoverMeals"])}

        AVAILABLE_INVENTORY:
        {format_json(sections["availableInventory"])}
        """
    ) + replan_block + f"\nRequirements:\n{enumerated_requirements}\n"
    return system_prompt, user_prompt


def _parse_llm_payload(raw_text: str) -> Dict[str, Any]:
    stripped = raw_text.strip()
    match = CODE_FENCE_PATTERN.search(stripped)
    if match:
        stripped = match.group(1).strip()
    try:
        parsed = json.loads(stripped)
    except json.JSONDecodeError as exc:
        logger.error("Unable to parse planning model output: %s", exc)
        raise ProviderError("Planning model returned invalid JSON") from exc
    if isinstance(parsed, list):
        parsed = {"meals": parsed}
    if not isinstance(parsed, dict) or not isinstance(parsed.get("meals"), list):
        raise ProviderError("Planning model returned an unexpected payload")
    return parsed


def parse_suggestions(raw_text: str) -> List[MealSuggestion]:
    payload = _parse_llm_payload(raw_text)
    suggestions: List[MealSuggestion] = []
    for index, entry in enumerate(payload["meals"]):
        try:
            suggestions.append(MealSuggestion.model_validate(entry))
        except PydanticValidationError as exc:
            logger.warning("Dropping malformed meal suggestion #%s: %s", index, exc.errors()[:1])
    return suggestions


class OpenAISuggestionProvider:
    async def suggest_meals(self, context: PlanningContext) -> List[MealSuggestion]:
        settings = get_settings()
        system_prompt, user_prompt = build_prompts(context)
        llm_start = perf_counter()
        llm_text = await asyncio.to_thread(
            call_openai_responses,
            model=settings.openai_planning_model,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            max_output_tokens=settings.openai_planning_max_output_tokens,
            top_p=settings.openai_planning_top_p,
            reasoning_effort=settings.openai_planning_reasoning_effort,
        )
        suggestions = parse_suggestions(llm_text)
        logger.info(
            "Planning model returned %s suggestions for user=%s in %.2fs",
            len(suggestions),
            context.user_id,
            perf_counter() - llm_start,
        )
        return suggestions
