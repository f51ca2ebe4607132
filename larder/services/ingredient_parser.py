from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

UNICODE_FRACTIONS = {
    "½": 1 / 2,
    "⅓": 1 / 3,
    "⅔": 2 / 3,
    "¼": 1 / 4,
    "¾": 3 / 4,
    "⅕": 1 / 5,
    "⅛": 1 / 8,
    "⅜": 3 / 8,
    "⅝": 5 / 8,
    "⅞": 7 / 8,
}

MEASUREMENT_WORDS = frozenset(
    {
        "cup", "cups", "tbsp", "tablespoon", "tablespoons",
        "tsp", "teaspoon", "teaspoons", "oz", "ounce", "ounces",
        "lb", "lbs", "pound", "pounds", "g", "gram", "grams",
        "kg", "kilogram", "kilograms", "ml", "milliliter", "milliliters",
        "l", "liter", "liters", "litre", "litres", "piece", "pieces",
        "clove", "cloves", "can", "cans", "package", "packages",
        "bottle", "bottles", "jar", "jars", "box", "boxes", "bag", "bags",
        "container", "containers", "pinch", "dash", "handful", "bunch",
        "slice", "slices",
    }
)

_FRACTION_CHARS = "".join(UNICODE_FRACTIONS)

_QUANTITY_PATTERN = re.compile(
    rf"""^\s*(?:
        (?P<mixed_whole>\d+)\s+(?P<mixed_num>\d+)\s*/\s*(?P<mixed_den>\d+)
      | (?P<num>\d+)\s*/\s*(?P<den>\d+)
      | (?P<glyph_whole>\d+)?\s*(?P<glyph>[{_FRACTION_CHARS}])
      | (?P<decimal>\d+(?:\.\d+)?|\.\d+)
    )(?![\d/])""",
    re.VERBOSE,
)
_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")
_OF_PREFIX = re.compile(r"^of\s+", re.IGNORECASE)


@dataclass(frozen=True)
class ParsedIngredient:
    quantity: Optional[float]
    item_name: str
    unit: Optional[str]
    original_text: str


def normalize_item_name(name: str) -> str:
    """Canonical key for matching and for reservation maps."""
    collapsed = _WHITESPACE.sub(" ", (name or "").lower().strip())
    return _PUNCTUATION.sub("", collapsed).strip()


def _quantity_from_match(match: re.Match) -> Optional[float]:
    groups = match.groupdict()
    if groups["mixed_whole"] is not None:
        denominator = int(groups["mixed_den"])
        if denominator == 0:
            return None
        return int(groups["mixed_whole"]) + int(groups["mixed_num"]) / denominator
    if groups["num"] is not None:
        denominator = int(groups["den"])
        if denominator == 0:
            return None
        return int(groups["num"]) / denominator
    if groups["glyph"] is not None:
        whole = int(groups["glyph_whole"]) if groups["glyph_whole"] else 0
        return whole + UNICODE_FRACTIONS[groups["glyph"]]
    return float(groups["decimal"])


def _strip_unit(text: str) -> tuple[Optional[str], str]:
    head, _, tail = text.partition(" ")
    candidate = head.rstrip(".").lower()
    if candidate in MEASUREMENT_WORDS and tail.strip():
        return candidate, _OF_PREFIX.sub("", tail.strip())
    return None, text


def parse_ingredient_quantity(text: str) -> ParsedIngredient:
    """Split a free-text ingredient line into quantity, unit and item name.

    "2 cups rice" -> quantity 2.0, unit "cups", item "rice". Lines without a
    leading quantity keep quantity ``None``; a leading unit word is still
    dropped ("pinch of salt" -> "salt"). No unit conversion happens here and
    malformed input never raises.
    """
    original = (text or "").strip()
    remaining = original
    quantity: Optional[float] = None

    match = _QUANTITY_PATTERN.match(original)
    if match:
        quantity = _quantity_from_match(match)
        if quantity is not None:
            remaining = original[match.end():].strip()

    unit, remaining = _strip_unit(remaining)
    item_name = _WHITESPACE.sub(" ", remaining.lower()).strip()
    return ParsedIngredient(
        quantity=quantity,
        item_name=item_name,
        unit=unit,
        original_text=original,
    )
