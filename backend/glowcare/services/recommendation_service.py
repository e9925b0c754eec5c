"""Recommendation resolution: rule match, step resolution, persistence and caching."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from glowcare.api.schemas.recommendations import ProductCard, ResolvedRecommendation
from glowcare.core.config import settings
from glowcare.db.models.product import Brand, Product
from glowcare.db.models.recommendation_session import RecommendationSession
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.observability.metrics import log_metric
from glowcare.observability.tracing import trace, traced
from glowcare.services.cache import get_cache, recommendations_key
from glowcare.services.cache.base import KeyValueCache
from glowcare.services.profile_service import get_profile_by_version, resolve_profile
from glowcare.services.rule_matcher import match_for_profile
from glowcare.services.step_resolver import (
    BASELINE_STEPS,
    CatalogProduct,
    StepSpec,
    StepSpecError,
    base_step,
    display_step,
    load_catalog,
    resolve,
    resolve_baseline,
)
from glowcare.services.tiered import TieredResult, tiered_lookup

logger = logging.getLogger(__name__)

TOP_UP_ITEMS = 3


@dataclass
class RecommendationView:
    profile: SkinProfile
    resolution: Optional[ResolvedRecommendation]
    steps: Dict[str, List[ProductCard]]
    source: str

    @property
    def rule_name(self) -> Optional[str]:
        if self.resolution is None or self.resolution.fallback:
            return None
        return self.resolution.rule_name


def get_resolution(
    db: Session,
    user_id: UUID,
    profile_version: int,
    *,
    cache: KeyValueCache | None = None,
) -> TieredResult[ResolvedRecommendation]:
    """
    Return the resolution for ``(user_id, profile_version)``.

    Served from the fast cache, then the stored session row, and only then
    computed from the rules and persisted. A version the user never wrote
    yields a missing result.
    """
    cache = cache or get_cache()
    with trace(
        "recommendations.resolution",
        metadata={"profile_version": profile_version},
        user_id=str(user_id),
    ):
        return tiered_lookup(
            db,
            cache,
            kind="recommendations",
            key=recommendations_key(user_id, profile_version),
            model=ResolvedRecommendation,
            ttl_seconds=settings.recommendations_cache_ttl_s,
            load=lambda: load_stored_resolution(db, user_id, profile_version),
            compute=lambda: _compute_for_version(db, user_id, profile_version),
            persist=lambda value: persist_resolution(db, value),
        )


def resolve_recommendations(
    db: Session,
    user_id: UUID,
    explicit_profile_id: UUID | str | None = None,
    *,
    cache: KeyValueCache | None = None,
) -> Optional[RecommendationView]:
    """
    Current recommendations grouped by step, or None when the user has no profile.

    Baseline steps missing from the stored resolution are topped up from the
    catalog for display; the stored resolution itself is left untouched.
    """
    resolution_result = resolve_profile(db, user_id, explicit_profile_id, retry=False)
    profile = resolution_result.profile
    if profile is None:
        return None

    result = get_resolution(db, user_id, profile.version, cache=cache)
    resolution = result.value
    step_ids: Dict[str, List[int]] = dict(resolution.steps) if resolution else {}
    cards = _load_cards(db, [pid for ids in step_ids.values() for pid in ids])

    steps: Dict[str, List[ProductCard]] = {}
    for step_name, ids in step_ids.items():
        listed = [cards[pid] for pid in ids if pid in cards]
        if listed:
            steps.setdefault(display_step(step_name), []).extend(listed)

    present = {base_step(name) for name in steps}
    missing = [step for step in BASELINE_STEPS if step not in present]
    if missing:
        logger.warning("Resolution for user=%s v%s lacks steps %s; topping up", user_id, profile.version, missing)
        catalog = load_catalog(db)
        for step_name, products in resolve_baseline(profile, catalog, steps=missing, per_step=TOP_UP_ITEMS).items():
            steps[step_name] = [_card(product) for product in products]

    log_metric(
        "recommendations.steps",
        len(steps),
        metadata={"user_id": str(user_id), "fallback": bool(resolution and resolution.fallback)},
    )
    return RecommendationView(profile=profile, resolution=resolution, steps=steps, source=result.source)


@traced("recommendations.compute")
def compute_resolution(
    db: Session,
    profile: SkinProfile,
    catalog: Sequence[CatalogProduct] | None = None,
) -> Optional[ResolvedRecommendation]:
    """Run rule matching and step resolution for one profile (no persistence)."""
    catalog = load_catalog(db) if catalog is None else catalog
    rule = match_for_profile(db, profile)
    steps: Dict[str, List[int]] = {}

    if rule is not None:
        for step_name, raw_spec in rule.steps.items():
            try:
                spec = StepSpec.from_json(step_name, raw_spec)
                picked = resolve(spec, profile, catalog)
            except (StepSpecError, TypeError, ValueError) as exc:
                logger.warning("Rule %s: skipping step %s: %s", rule.id, step_name, exc)
                log_metric("recommendations.step_skipped", 1, metadata={"rule_id": rule.id, "step": step_name})
                continue
            _extend_unique(steps, step_name.lower(), [product.id for product in picked])
        rule_id, rule_name, fallback = rule.id, rule.name, False
    else:
        logger.warning(
            "No rule matched profile %s (user=%s v%s); using baseline routine",
            profile.id,
            profile.user_id,
            profile.version,
        )
        log_metric("recommendations.fallback", 1, metadata={"user_id": str(profile.user_id)})
        for step_name, products in resolve_baseline(profile, catalog).items():
            _extend_unique(steps, step_name, [product.id for product in products])
        rule_id, rule_name, fallback = None, None, True

    products: List[int] = []
    for ids in steps.values():
        for pid in ids:
            if pid not in products:
                products.append(pid)
    if not products:
        logger.warning("Resolution for profile %s selected no products; not storing", profile.id)
        return None

    return ResolvedRecommendation(
        user_id=profile.user_id,
        profile_id=profile.id,
        profile_version=profile.version,
        rule_id=rule_id,
        rule_name=rule_name,
        fallback=fallback,
        steps={name: ids for name, ids in steps.items() if ids},
        products=products,
    )


def load_stored_resolution(db: Session, user_id: UUID, profile_version: int) -> Optional[ResolvedRecommendation]:
    """Stored session row for the key, or None when absent or malformed."""
    row = _session_row(db, user_id, profile_version)
    if row is None:
        return None
    steps = row.steps
    if not steps and isinstance(row.products, list) and row.products:
        # Older rows only carry the flat product list; regroup by product step.
        steps = _group_by_step(db, row.products)
    try:
        return ResolvedRecommendation(
            user_id=row.user_id,
            profile_id=row.profile_id,
            profile_version=row.profile_version,
            rule_id=row.rule_id,
            rule_name=row.rule_name,
            fallback=bool(row.fallback),
            steps=steps or {},
            products=row.products if isinstance(row.products, list) else [],
        )
    except ValidationError as exc:
        logger.warning("Stored resolution %s is malformed, recomputing: %s", row.id, exc.errors()[:1])
        return None


def persist_resolution(db: Session, value: ResolvedRecommendation) -> ResolvedRecommendation:
    """
    Store a computed resolution.

    A malformed row for the same key is repaired in place. When a concurrent
    request already stored a well-formed row, that row wins and is returned.
    """
    existing = _session_row(db, value.user_id, value.profile_version)
    if existing is not None:
        stored = load_stored_resolution(db, value.user_id, value.profile_version)
        if stored is not None:
            return stored
        _apply(existing, value)
        db.commit()
        return value

    row = RecommendationSession(user_id=value.user_id, profile_version=value.profile_version)
    _apply(row, value)
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Resolution for user=%s v%s stored concurrently; adopting it", value.user_id, value.profile_version)
        stored = load_stored_resolution(db, value.user_id, value.profile_version)
        return stored or value
    logger.info(
        "Stored resolution user=%s v%s rule=%s products=%d",
        value.user_id,
        value.profile_version,
        value.rule_id,
        len(value.products),
    )
    return value


def _compute_for_version(db: Session, user_id: UUID, profile_version: int) -> Optional[ResolvedRecommendation]:
    profile = get_profile_by_version(db, user_id, profile_version)
    if profile is None:
        logger.info("No profile v%s for user=%s; nothing to resolve", profile_version, user_id)
        return None
    return compute_resolution(db, profile)


def _session_row(db: Session, user_id: UUID, profile_version: int) -> Optional[RecommendationSession]:
    return (
        db.query(RecommendationSession)
        .filter(
            RecommendationSession.user_id == user_id,
            RecommendationSession.profile_version == profile_version,
        )
        .one_or_none()
    )


def _apply(row: RecommendationSession, value: ResolvedRecommendation) -> None:
    row.profile_id = value.profile_id
    row.rule_id = value.rule_id
    row.rule_name = value.rule_name
    row.fallback = value.fallback
    row.steps = {name: list(ids) for name, ids in value.steps.items()}
    row.products = list(value.products)


def _group_by_step(db: Session, product_ids: List[int]) -> Dict[str, List[int]]:
    ids = [pid for pid in product_ids if isinstance(pid, int) and not isinstance(pid, bool)]
    if not ids:
        return {}
    rows = {row.id: row for row in db.query(Product).filter(Product.id.in_(ids)).all()}
    grouped: Dict[str, List[int]] = {}
    for pid in ids:
        product = rows.get(pid)
        if product is None:
            continue
        _extend_unique(grouped, base_step(product.step or product.category), [pid])
    return grouped


def _load_cards(db: Session, product_ids: List[int]) -> Dict[int, ProductCard]:
    if not product_ids:
        return {}
    rows = (
        db.query(Product)
        .join(Brand, Product.brand_id == Brand.id)
        .options(joinedload(Product.brand))
        .filter(Product.id.in_(set(product_ids)), Product.published.is_(True), Brand.is_active.is_(True))
        .all()
    )
    return {row.id: _card(CatalogProduct.from_model(row)) for row in rows}


def _card(product: CatalogProduct) -> ProductCard:
    return ProductCard(
        id=product.id,
        name=product.name,
        brand=product.brand,
        line=product.line,
        category=product.category,
        step=product.step or None,
        description=product.description,
        image_url=product.image_url,
    )


def _extend_unique(target: Dict[str, List[int]], step_name: str, ids: List[int]) -> None:
    bucket = target.setdefault(step_name, [])
    for pid in ids:
        if pid not in bucket:
            bucket.append(pid)
