"""Ingredient name normalization used when matching actives across products and rules."""
from __future__ import annotations

import re
from typing import Iterable, Set

_RANGE_PERCENT = re.compile(r"\d+(?:[.,]\d+)?\s*[-–—]\s*\d+(?:[.,]\d+)?\s*%\+?")
_SINGLE_PERCENT = re.compile(r"\d+(?:[.,]\d+)?\s*%\+?")
_NON_WORD = re.compile(r"[^a-z0-9]+")

CANONICAL_ALIASES = {
    "vitamin_c": "vitamin_c",
    "vitaminc": "vitamin_c",
    "vit_c": "vitamin_c",
    "ascorbic_acid": "vitamin_c",
    "l_ascorbic_acid": "vitamin_c",
    "niacinamide": "niacinamide",
    "vitamin_b3": "niacinamide",
    "bha": "salicylic_acid",
    "salicylic_acid": "salicylic_acid",
    "glycolic_acid": "glycolic_acid",
    "lactic_acid": "lactic_acid",
    "aha": "aha",
    "pha": "pha",
    "azelaic_acid": "azelaic_acid",
    "benzoyl_peroxide": "benzoyl_peroxide",
    "bpo": "benzoyl_peroxide",
    "retinol": "retinol",
    "retinal": "retinol",
    "retinaldehyde": "retinol",
    "adapalene": "adapalene",
    "tretinoin": "tretinoin",
    "hyaluronic_acid": "hyaluronic_acid",
    "sodium_hyaluronate": "hyaluronic_acid",
    "ha": "hyaluronic_acid",
    "ceramides": "ceramides",
    "ceramide": "ceramides",
    "peptides": "peptides",
    "peptide": "peptides",
    "tranexamic_acid": "tranexamic_acid",
    "panthenol": "panthenol",
    "centella_asiatica": "centella",
    "cica": "centella",
    "zinc_oxide": "zinc_oxide",
}


def normalize_ingredient(name: str | None) -> str:
    """
    Reduce an ingredient label to a comparable key.

    Percentages and ranges ("5%", "5-10%", "2 %"), parenthetical notes and
    anything after a comma are dropped; case, whitespace and punctuation
    collapse into underscores. ``"Niacinamide 10% (B3)"`` -> ``"niacinamide"``.
    """
    if not name:
        return ""
    value = _RANGE_PERCENT.sub(" ", name)
    value = _SINGLE_PERCENT.sub(" ", value)
    value = value.replace("%", " ")
    value = value.split("(")[0].split(",")[0]
    value = _NON_WORD.sub("_", value.lower())
    return value.strip("_")


def canonical_ingredient(name: str | None) -> str:
    """Normalize and map known aliases onto a single key."""
    key = normalize_ingredient(name)
    if not key:
        return ""
    if key in CANONICAL_ALIASES:
        return CANONICAL_ALIASES[key]
    compact = key.replace("_", "")
    for alias, canonical in CANONICAL_ALIASES.items():
        if alias.replace("_", "") == compact:
            return canonical
    return key


def canonical_set(names: Iterable[str] | None) -> Set[str]:
    if isinstance(names, str):
        names = [names]
    labels = (name for name in names or [] if isinstance(name, str))
    return {key for key in (canonical_ingredient(name) for name in labels) if key}

