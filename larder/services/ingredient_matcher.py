from __future__ import annotations

from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence, TypeVar

from ..schemas import PantryItem, ShoppingListEntry
from .ingredient_parser import normalize_item_name

MIN_TOKEN_LENGTH = 3


class Named(Protocol):
    id: str
    name: str


T = TypeVar("T", bound=Named)


class MatchTier(str, Enum):
    EXACT = "exact"
    SUBSTRING = "substring"
    WORD_OVERLAP = "word_overlap"


def _tokens(name: str) -> set[str]:
    return {token for token in name.split() if len(token) >= MIN_TOKEN_LENGTH}


def _tokens_overlap(token: str, others: Iterable[str]) -> bool:
    # Containment either way lets "tomato" meet "tomatoes".
    return any(token in other or other in token for other in others)


def words_overlap(left: str, right: str) -> bool:
    left_tokens = _tokens(left)
    right_tokens = _tokens(right)
    smaller, larger = sorted((left_tokens, right_tokens), key=len)
    if not smaller:
        return False
    hits = sum(1 for token in smaller if _tokens_overlap(token, larger))
    return hits >= min(2, len(smaller))


def match_tier(query: str, candidate: str) -> Optional[MatchTier]:
    """Classify how two already-normalized names match, if at all."""
    if not query or not candidate:
        return None
    if query == candidate:
        return MatchTier.EXACT
    if query in candidate or candidate in query:
        return MatchTier.SUBSTRING
    if words_overlap(query, candidate):
        return MatchTier.WORD_OVERLAP
    return None


def find_matches(name: str, candidates: Sequence[T]) -> List[T]:
    """Return candidates from the best non-empty tier, in input order.

    An empty list means the ingredient is missing; it is a normal outcome.
    """
    query = normalize_item_name(name)
    if not query:
        return []
    tiers: dict[MatchTier, List[T]] = {tier: [] for tier in MatchTier}
    for candidate in candidates:
        tier = match_tier(query, normalize_item_name(candidate.name))
        if tier is not None:
            tiers[tier].append(candidate)
    for tier in MatchTier:
        if tiers[tier]:
            return tiers[tier]
    return []


def names_match(left: str, right: str) -> bool:
    return match_tier(normalize_item_name(left), normalize_item_name(right)) is not None


def exclude_queued_items(
    pantry: Sequence[PantryItem], shopping_list: Iterable[ShoppingListEntry]
) -> List[PantryItem]:
    """Drop pantry items that also match an active shopping-list entry.

    Something already queued for purchase is not counted as on hand.
    """
    queued = [normalize_item_name(entry.name) for entry in shopping_list if not entry.crossed_off]
    queued = [name for name in queued if name]
    if not queued:
        return list(pantry)
    kept: List[PantryItem] = []
    for item in pantry:
        pantry_name = normalize_item_name(item.name)
        if any(match_tier(pantry_name, name) is not None for name in queued):
            continue
        kept.append(item)
    return kept
