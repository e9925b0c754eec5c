"""Tiered product selection for routine steps."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Set

from sqlalchemy.orm import Session, joinedload

from glowcare.db.models.product import Brand, Product
from glowcare.services.ingredients import canonical_set

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 3
UNIVERSAL_MARKERS = ("spf", "sunscreen", "sun_protection")
BASELINE_STEPS = ("cleanser", "toner", "serum", "moisturizer", "spf")
GUARANTEED_BASELINE_STEPS = ("cleanser", "moisturizer", "spf")
STEP_ALIASES = {"treatment": "serum", "essence": "serum"}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class StepSpecError(ValueError):
    """Raised when a rule's step definition cannot be used."""


@dataclass(frozen=True)
class CatalogProduct:
    """Immutable snapshot of a published product, detached from the session."""

    id: int
    name: str
    brand: str
    category: str
    step: str
    skin_types: FrozenSet[str]
    concerns: FrozenSet[str]
    ingredients: FrozenSet[str]
    is_fragrance_free: bool
    is_non_comedogenic: bool
    is_hero: bool
    priority: int
    created_at: datetime
    line: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    @classmethod
    def from_model(cls, product: Product) -> "CatalogProduct":
        return cls(
            id=product.id,
            name=product.name,
            brand=product.brand.name if product.brand else "",
            category=(product.category or "").lower(),
            step=(product.step or "").lower(),
            skin_types=frozenset(_lower_all(product.skin_types)),
            concerns=frozenset(_lower_all(product.concerns)),
            ingredients=frozenset(canonical_set(product.active_ingredients)),
            is_fragrance_free=bool(product.is_fragrance_free),
            is_non_comedogenic=bool(product.is_non_comedogenic),
            is_hero=bool(product.is_hero),
            priority=product.priority or 0,
            created_at=_aware(product.created_at),
            line=product.line,
            description=product.description,
            image_url=product.image_url,
        )

    def in_category(self, categories: Iterable[str]) -> bool:
        for category in categories:
            if self.category == category or self.step == category:
                return True
            if self.step.startswith(f"{category}_") or self.category.startswith(f"{category}_"):
                return True
        return False

    def suits_skin(self, skin_types: Set[str]) -> bool:
        # Products without declared skin types are formulated for every skin type.
        return not self.skin_types or bool(self.skin_types & skin_types)


@dataclass
class StepSpec:
    name: str
    categories: List[str]
    concerns: List[str] = field(default_factory=list)
    skin_types: List[str] = field(default_factory=list)
    ingredients: List[str] = field(default_factory=list)
    fragrance_free: bool = False
    non_comedogenic: bool = False
    max_items: int = DEFAULT_MAX_ITEMS
    universal: bool = False

    @classmethod
    def from_json(cls, name: str, raw: Any) -> "StepSpec":
        """Build a spec from a rule's ``steps_json`` entry."""
        if not isinstance(raw, Mapping):
            raise StepSpecError(f"step {name!r} must be an object")
        categories = _string_list(name, "category", raw.get("category") or raw.get("categories")) or [name.lower()]
        max_items = raw.get("max_items", DEFAULT_MAX_ITEMS)
        if isinstance(max_items, bool) or not isinstance(max_items, int) or max_items < 1:
            raise StepSpecError(f"step {name!r} has invalid max_items {max_items!r}")
        universal = bool(raw.get("universal")) or _is_universal(name, categories)
        return cls(
            name=name,
            categories=categories,
            concerns=_string_list(name, "concerns", raw.get("concerns")),
            skin_types=_string_list(name, "skin_types", raw.get("skin_types")),
            ingredients=_string_list(
                name, "active_ingredients", raw.get("active_ingredients") or raw.get("ingredients"), lower=False
            ),
            fragrance_free=raw.get("is_fragrance_free") is True,
            non_comedogenic=raw.get("is_non_comedogenic") is True,
            max_items=max_items,
            universal=universal,
        )


def load_catalog(db: Session) -> List[CatalogProduct]:
    """All published products of active brands."""
    rows = (
        db.query(Product)
        .join(Brand, Product.brand_id == Brand.id)
        .options(joinedload(Product.brand))
        .filter(Product.published.is_(True), Brand.is_active.is_(True))
        .all()
    )
    return [CatalogProduct.from_model(row) for row in rows]


def resolve(spec: StepSpec, profile: Any, catalog: Sequence[CatalogProduct]) -> List[CatalogProduct]:
    """
    Pick at most ``spec.max_items`` products for one step.

    Tiers are engaged in order, each only while the previous ones under-fill:
      1. strict: category, skin type, concerns, required flags, actives;
      2. relaxed: concerns and actives dropped (category, skin type and flags kept);
      3. category only.
    Universal steps (sun protection) never filter on skin type. Within a tier
    products are ordered hero first, then priority, then most recently added.
    When the spec declares no skin types the profile's own skin type is used.
    """
    in_category = [product for product in catalog if product.in_category(spec.categories)]
    skin_types = _effective_skin_types(spec, profile)
    wanted_concerns = set(spec.concerns)
    wanted_ingredients = canonical_set(spec.ingredients)

    def skin_ok(product: CatalogProduct) -> bool:
        return spec.universal or not skin_types or product.suits_skin(skin_types)

    def flags_ok(product: CatalogProduct) -> bool:
        if spec.fragrance_free and not product.is_fragrance_free:
            return False
        if spec.non_comedogenic and not product.is_non_comedogenic:
            return False
        return True

    def strict(product: CatalogProduct) -> bool:
        if not (skin_ok(product) and flags_ok(product)):
            return False
        if wanted_concerns and not (product.concerns & wanted_concerns):
            return False
        if wanted_ingredients and not (product.ingredients & wanted_ingredients):
            return False
        return True

    def relaxed(product: CatalogProduct) -> bool:
        return skin_ok(product) and flags_ok(product)

    selected: List[CatalogProduct] = []
    seen: Set[int] = set()
    for tier_name, predicate in (("strict", strict), ("relaxed", relaxed), ("category", lambda _p: True)):
        if len(selected) >= spec.max_items:
            break
        for product in order_products(p for p in in_category if p.id not in seen and predicate(p)):
            selected.append(product)
            seen.add(product.id)
            if len(selected) >= spec.max_items:
                break
        if tier_name != "strict" and selected:
            logger.debug("Step %s filled to %d item(s) via %s tier", spec.name, len(selected), tier_name)

    if not selected:
        logger.warning("No products available for step %s (categories=%s)", spec.name, spec.categories)
    return selected[: spec.max_items]


def resolve_baseline(
    profile: Any,
    catalog: Sequence[CatalogProduct],
    *,
    steps: Sequence[str] = BASELINE_STEPS,
    per_step: int = 1,
) -> Dict[str, List[CatalogProduct]]:
    """
    Minimal routine used when no rule matches or a stored resolution lacks a step.

    Selection is by skin type only (sun protection exempt). Cleanser, moisturizer
    and sun protection fall back to category-only picks so they are always
    present when the catalog carries them.
    """
    skin_type = (getattr(profile, "skin_type", None) or "").lower()
    result: Dict[str, List[CatalogProduct]] = {}
    for step in steps:
        in_category = [product for product in catalog if product.in_category([step])]
        universal = _is_universal(step, [step])
        candidates = in_category
        if skin_type and not universal:
            candidates = [product for product in in_category if product.suits_skin({skin_type})]
        if not candidates and step in GUARANTEED_BASELINE_STEPS:
            candidates = in_category
        picked = order_products(candidates)[:per_step]
        if picked:
            result[step] = picked
        else:
            logger.warning("Baseline step %s has no products in the catalog", step)
    return result


def order_products(products: Iterable[CatalogProduct]) -> List[CatalogProduct]:
    return sorted(
        products,
        key=lambda product: (product.is_hero, product.priority, product.created_at, product.id),
        reverse=True,
    )


def display_step(step_name: str) -> str:
    """Name a step is reported under (treatment/essence are shown as serum)."""
    lowered = step_name.lower()
    return STEP_ALIASES.get(lowered, lowered)


def base_step(step_name: str) -> str:
    """``cleanser_gentle`` -> ``cleanser``; unknown names pass through."""
    lowered = display_step(step_name)
    for step in BASELINE_STEPS:
        if lowered == step or lowered.startswith(f"{step}_"):
            return step
    return lowered


def _effective_skin_types(spec: StepSpec, profile: Any) -> Set[str]:
    if spec.skin_types:
        return set(spec.skin_types)
    skin_type = getattr(profile, "skin_type", None)
    return {skin_type.lower()} if isinstance(skin_type, str) and skin_type else set()


def _is_universal(name: str, categories: Iterable[str]) -> bool:
    names = [name.lower(), *categories]
    return any(marker in value for value in names for marker in UNIVERSAL_MARKERS)


def _string_list(step: str, field_name: str, values: Any, *, lower: bool = True) -> List[str]:
    """A rule field given as one string or a list of strings; anything else is a StepSpecError."""
    if values is None or values == "":
        return []
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise StepSpecError(f"step {step!r}: {field_name} must be a string or a list of strings")
    result: List[str] = []
    for value in values:
        if not isinstance(value, str):
            raise StepSpecError(f"step {step!r}: {field_name} entries must be strings, got {value!r}")
        value = value.strip()
        if value:
            result.append(value.lower() if lower else value)
    return result


def _lower_all(values: Any) -> List[str]:
    # Catalog columns: a single string is one value, non-string entries are ignored.
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple, set, frozenset)):
        return []
    return [value.strip().lower() for value in values if isinstance(value, str) and value.strip()]


def _aware(value: Optional[datetime]) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
