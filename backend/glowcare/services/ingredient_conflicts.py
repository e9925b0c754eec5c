"""Active ingredients that should not share a routine, keyed on canonical ingredient names."""
from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional, Tuple

RETINOIDS = frozenset({"retinol", "adapalene", "tretinoin"})
EXFOLIATING_ACIDS = frozenset({"aha", "glycolic_acid", "lactic_acid", "salicylic_acid"})
VITAMIN_C = frozenset({"vitamin_c"})
BENZOYL_PEROXIDE = frozenset({"benzoyl_peroxide"})


@dataclass(frozen=True)
class IngredientConflict:
    """``morning`` actives go to the morning routine, ``evening`` actives to the evening one."""

    morning: FrozenSet[str]
    evening: FrozenSet[str]
    severity: str
    reason: str


CONFLICTS: Tuple[IngredientConflict, ...] = (
    IngredientConflict(EXFOLIATING_ACIDS, RETINOIDS, "high", "acids and retinoids together damage the barrier"),
    IngredientConflict(
        BENZOYL_PEROXIDE,
        frozenset({"retinol", "tretinoin"}),
        "high",
        "benzoyl peroxide deactivates retinoids",
    ),
    IngredientConflict(VITAMIN_C, RETINOIDS, "medium", "vitamin C with retinoids irritates sensitive skin"),
    IngredientConflict(VITAMIN_C, EXFOLIATING_ACIDS, "medium", "vitamin C with acids irritates sensitive skin"),
)


def find_conflict(first: Iterable[str], second: Iterable[str]) -> Optional[Tuple[IngredientConflict, bool]]:
    """
    First table entry the two ingredient sets trip, or None.

    The flag is True when ``first`` holds the morning side of the conflict.
    """
    first_set, second_set = set(first), set(second)
    for conflict in CONFLICTS:
        if first_set & conflict.morning and second_set & conflict.evening:
            return conflict, True
        if first_set & conflict.evening and second_set & conflict.morning:
            return conflict, False
    return None
