"""Tests for ingredient normalization."""
from __future__ import annotations

import pytest

from glowcare.services.ingredients import canonical_ingredient, canonical_set, normalize_ingredient


@pytest.mark.parametrize(
    "label",
    [
        "Niacinamide 10%",
        "niacinamide 10 %",
        "Niacinamide 5-10%",
        "NIACINAMIDE (vitamin B3)",
        "Niacinamide, zinc PCA",
    ],
)
def test_normalize_strips_strengths_and_notes(label: str) -> None:
    assert normalize_ingredient(label) == "niacinamide"


def test_normalize_collapses_punctuation() -> None:
    assert normalize_ingredient("Hyaluronic  Acid") == "hyaluronic_acid"
    assert normalize_ingredient("L-Ascorbic Acid 15%") == "l_ascorbic_acid"
    assert normalize_ingredient("") == ""
    assert normalize_ingredient(None) == ""


def test_canonical_aliases_share_one_key() -> None:
    assert canonical_ingredient("Vitamin C 15%") == "vitamin_c"
    assert canonical_ingredient("Ascorbic acid") == "vitamin_c"
    assert canonical_ingredient("BHA 2%") == "salicylic_acid"
    assert canonical_ingredient("Salicylic Acid 0.5-2%") == "salicylic_acid"
    assert canonical_ingredient("Sodium Hyaluronate") == "hyaluronic_acid"
    assert canonical_ingredient("VitaminC") == "vitamin_c"


def test_unknown_ingredient_keeps_normalized_form() -> None:
    assert canonical_ingredient("Mugwort Extract") == "mugwort_extract"


def test_canonical_set_drops_blank_entries() -> None:
    assert canonical_set(["BHA", "salicylic acid 2%", "", "Ceramide"]) == {"salicylic_acid", "ceramides"}
    assert canonical_set(None) == set()
