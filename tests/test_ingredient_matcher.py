from __future__ import annotations

from larder.schemas import PantryItem, ShoppingListEntry
from larder.services.ingredient_matcher import (
    MatchTier,
    exclude_queued_items,
    find_matches,
    match_tier,
    names_match,
    words_overlap,
)


def _item(item_id: str, name: str, quantity: float = 1) -> PantryItem:
    return PantryItem(id=item_id, user_id="user-1", name=name, quantity=quantity)


def test_match_tiers():
    assert match_tier("milk", "milk") is MatchTier.EXACT
    assert match_tier("milk", "whole milk") is MatchTier.SUBSTRING
    assert match_tier("whole milk", "milk") is MatchTier.SUBSTRING
    assert match_tier("red bell pepper", "bell peppers red") is MatchTier.WORD_OVERLAP
    assert match_tier("milk", "bread") is None
    assert match_tier("", "milk") is None


def test_words_overlap_needs_two_hits_when_possible():
    assert words_overlap("chicken thigh fillets", "chicken breast fillets")
    assert not words_overlap("chicken stock", "chicken breast")
    # Single-token names only need one hit.
    assert words_overlap("tomatoes", "cherry tomato")
    # Short tokens never count.
    assert not words_overlap("a b c", "a b c d")


def test_exact_tier_wins_over_substring():
    pantry = [_item("1", "Whole Milk"), _item("2", "milk"), _item("3", "Milk Chocolate")]
    assert [item.id for item in find_matches("Milk", pantry)] == ["2"]


def test_substring_matches_keep_input_order():
    pantry = [_item("1", "cheddar cheese"), _item("2", "bread"), _item("3", "cream cheese")]
    assert [item.id for item in find_matches("cheese", pantry)] == ["1", "3"]


def test_no_match_is_empty():
    pantry = [_item("1", "bread")]
    assert find_matches("saffron", pantry) == []
    assert find_matches("   ", pantry) == []


def test_names_match_normalizes():
    assert names_match("Eggs!", "eggs")
    assert not names_match("eggs", "flour")


def test_exclude_queued_items_skips_crossed_off_entries():
    pantry = [_item("1", "milk"), _item("2", "eggs"), _item("3", "butter")]
    shopping = [
        ShoppingListEntry(id="s1", user_id="user-1", name="Milk"),
        ShoppingListEntry(id="s2", user_id="user-1", name="butter", crossed_off=True),
    ]
    kept = exclude_queued_items(pantry, shopping)
    assert [item.id for item in kept] == ["2", "3"]
