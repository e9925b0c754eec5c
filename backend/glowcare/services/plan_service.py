"""Care plan derivation, storage and the plan read path."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from glowcare.api.schemas.plan import PlanDay, PlanDocument, PlanStep
from glowcare.api.schemas.recommendations import ResolvedRecommendation
from glowcare.core.config import settings
from glowcare.db.models.care_plan import CarePlan
from glowcare.db.models.product import Product
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.observability.metrics import log_metric
from glowcare.observability.tracing import trace, traced
from glowcare.services.cache import get_cache, plan_key
from glowcare.services.cache.base import KeyValueCache
from glowcare.services.ingredient_conflicts import find_conflict
from glowcare.services.ingredients import canonical_set
from glowcare.services.profile_service import resolve_profile
from glowcare.services.recommendation_service import get_resolution
from glowcare.services.tiered import SOURCE_MISSING, SOURCE_STORE, tiered_lookup

logger = logging.getLogger(__name__)

STATE_NO_PROFILE = "no_profile"
STATE_NOT_FOUND = "not_found"
STATE_READY = "ready"
STATE_READY_WITHOUT_PROFILE = "ready_without_profile"

ADAPTATION_LAST_DAY = 7
ACTIVE_LAST_DAY = 21
WEEKLY_FOCUS_OFFSET = 3
PHASES = ("adaptation", "active", "support")
SEVERITY_RANK = {"high": 0, "medium": 1, "low": 2}

MORNING_ONLY = ("spf", "sunscreen")
EVENING_ONLY = ("treatment", "retinoid", "retinol")
WEEKLY_ONLY = ("mask", "exfoliant", "peel")
ROUTINE_ORDER = (
    "cleanser",
    "toner",
    "essence",
    "serum",
    "treatment",
    "eye_cream",
    "moisturizer",
    "spf",
)


@dataclass
class PlanResult:
    state: str
    plan: Optional[PlanDocument] = None
    expired: Optional[bool] = None
    days_since_creation: Optional[int] = None
    profile_version: Optional[int] = None
    source: Optional[str] = None


@traced("plan.build")
def build_plan(
    resolution: ResolvedRecommendation,
    profile: SkinProfile,
    *,
    horizon_days: int | None = None,
    created_at: datetime | None = None,
    actives: Mapping[int, Iterable[str]] | None = None,
) -> PlanDocument:
    """
    Derive a day-indexed schedule from a resolution.

    Days 1-7 are adaptation, 8-21 active and the rest support. Daily steps go
    into the morning and evening routines (sun protection mornings only);
    treatments join the evening routine once the active phase starts; masks
    and exfoliants only appear on the weekly focus days (3, 10, 17, 24, ...).
    The first product of a step is scheduled, the rest are alternatives.

    ``actives`` maps product ids to canonical active ingredients. Steps whose
    scheduled products conflict (acids and retinoids, vitamin C and acids, ...)
    are split between the morning and evening routines; when a split is not
    possible the later step leaves the shared routine.
    """
    horizon = horizon_days or settings.plan_horizon_days
    ordered = _ordered_steps(resolution.steps)
    slots = {name: _plan_step(name, ids) for name, ids in ordered}
    step_actives = {name: frozenset((actives or {}).get(ids[0], ())) for name, ids in ordered}
    layouts = {phase: _routines(list(slots), phase, step_actives) for phase in PHASES}

    days: List[PlanDay] = []
    for day_index in range(1, horizon + 1):
        phase = phase_for_day(day_index)
        focus_day = is_weekly_focus_day(day_index)
        routines = layouts[phase]
        morning = [step for name, step in slots.items() if "morning" in routines[name]]
        evening = [step for name, step in slots.items() if "evening" in routines[name]]
        weekly = [step for name, step in slots.items() if focus_day and _slot(name) == "weekly"]
        days.append(
            PlanDay(
                day_index=day_index,
                phase=phase,
                is_weekly_focus_day=focus_day,
                morning=morning,
                evening=evening,
                weekly=weekly,
            )
        )

    return PlanDocument(
        user_id=resolution.user_id,
        profile_id=resolution.profile_id,
        profile_version=resolution.profile_version,
        horizon_days=horizon,
        main_goals=list(profile.main_goals or []),
        days=days,
        created_at=created_at or datetime.now(timezone.utc),
    )


def phase_for_day(day_index: int) -> str:
    if day_index <= ADAPTATION_LAST_DAY:
        return "adaptation"
    if day_index <= ACTIVE_LAST_DAY:
        return "active"
    return "support"


def is_weekly_focus_day(day_index: int) -> bool:
    return day_index % 7 == WEEKLY_FOCUS_OFFSET


def generate_plan(
    db: Session,
    user_id: UUID,
    explicit_profile_id: UUID | str | None = None,
    *,
    cache: KeyValueCache | None = None,
    sleep: Callable[[float], None] | None = None,
) -> PlanResult:
    """
    Make sure a plan exists for the user's current profile version.

    An existing plan for the version is returned as is; otherwise the
    resolution is obtained (computed on first use), the plan is built, stored
    and cached. A user without a profile gets ``no_profile``; a profile whose
    resolution selected nothing gets ``not_found``.
    """
    cache = cache or get_cache()
    with trace("plan.generate", user_id=str(user_id)):
        profile = _resolve(db, user_id, explicit_profile_id, sleep)
        if profile is None:
            return PlanResult(state=STATE_NO_PROFILE)

        resolution = get_resolution(db, user_id, profile.version, cache=cache).value
        if resolution is None:
            logger.warning("No resolution for user=%s v%s; cannot build a plan", user_id, profile.version)
            return PlanResult(state=STATE_NOT_FOUND, profile_version=profile.version)

        result = tiered_lookup(
            db,
            cache,
            kind="plan",
            key=plan_key(user_id, profile.version),
            model=PlanDocument,
            ttl_seconds=settings.plan_cache_ttl_s,
            load=lambda: load_stored_plan(db, user_id, profile.version),
            compute=lambda: build_plan(resolution, profile, actives=scheduled_actives(db, resolution)),
            persist=lambda plan: persist_plan(db, plan),
        )

    log_metric("plan.generate.source", 1, metadata={"user_id": str(user_id), "source": result.source})
    return _ready(result.value, result.source)


def get_plan(
    db: Session,
    user_id: UUID,
    explicit_profile_id: UUID | str | None = None,
    *,
    cache: KeyValueCache | None = None,
    now: datetime | None = None,
    sleep: Callable[[float], None] | None = None,
) -> PlanResult:
    """
    Current plan for the user, never raising for expected empty states.

    ``no_profile``: no profile even after one delayed retry and no earlier plan.
    ``not_found``: the current version has no plan yet; generation must run.
    ``ready``: the plan of the current version, flagged ``expired`` once it is
    ``plan_horizon_days`` old.
    ``ready_without_profile``: no profile is visible but a plan stored under
    an older version exists; it is served rather than sending the user back
    to the questionnaire.
    """
    cache = cache or get_cache()
    with trace("plan.get", user_id=str(user_id)):
        profile = _resolve(db, user_id, explicit_profile_id, sleep)
        if profile is None:
            fallback = latest_stored_plan(db, user_id)
            if fallback is None:
                return PlanResult(state=STATE_NO_PROFILE)
            logger.warning("Serving plan v%s for user=%s without a visible profile", fallback.profile_version, user_id)
            return _ready(fallback, SOURCE_STORE, now=now, state=STATE_READY_WITHOUT_PROFILE)

        result = tiered_lookup(
            db,
            cache,
            kind="plan",
            key=plan_key(user_id, profile.version),
            model=PlanDocument,
            ttl_seconds=settings.plan_cache_ttl_s,
            load=lambda: load_stored_plan(db, user_id, profile.version),
        )

    if result.value is None:
        return PlanResult(state=STATE_NOT_FOUND, profile_version=profile.version, source=SOURCE_MISSING)
    return _ready(result.value, result.source, now=now)


def load_stored_plan(db: Session, user_id: UUID, profile_version: int) -> Optional[PlanDocument]:
    row = _plan_row(db, user_id, profile_version)
    return _document(row) if row is not None else None


def latest_stored_plan(db: Session, user_id: UUID) -> Optional[PlanDocument]:
    """Most recent well-formed plan under any profile version."""
    rows = (
        db.query(CarePlan)
        .filter(CarePlan.user_id == user_id)
        .order_by(CarePlan.created_at.desc(), CarePlan.profile_version.desc())
        .all()
    )
    for row in rows:
        document = _document(row)
        if document is not None:
            return document
    return None


def persist_plan(db: Session, plan: PlanDocument) -> PlanDocument:
    """
    Store a built plan once per profile version.

    A malformed row for the same version is overwritten. When another request
    stored a plan first, that plan is returned instead of ours.
    """
    existing = _plan_row(db, plan.user_id, plan.profile_version)
    if existing is not None:
        stored = _document(existing)
        if stored is not None:
            return stored
        existing.profile_id = plan.profile_id
        existing.plan_data = plan.model_dump(mode="json")
        existing.created_at = plan.created_at
        db.commit()
        return plan

    row = CarePlan(
        user_id=plan.user_id,
        profile_id=plan.profile_id,
        profile_version=plan.profile_version,
        plan_data=plan.model_dump(mode="json"),
        created_at=plan.created_at,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.info("Plan for user=%s v%s stored concurrently; adopting it", plan.user_id, plan.profile_version)
        return load_stored_plan(db, plan.user_id, plan.profile_version) or plan
    logger.info("Stored plan user=%s v%s days=%d", plan.user_id, plan.profile_version, len(plan.days))
    return plan


def scheduled_actives(db: Session, resolution: ResolvedRecommendation) -> Dict[int, Set[str]]:
    """Canonical active ingredients of every product the resolution selected."""
    if not resolution.products:
        return {}
    rows = db.query(Product.id, Product.active_ingredients).filter(Product.id.in_(resolution.products)).all()
    return {product_id: canonical_set(ingredients) for product_id, ingredients in rows}


def days_since(created_at: datetime, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return max((now - created_at).days, 0)


def _ready(
    plan: Optional[PlanDocument],
    source: str,
    *,
    now: datetime | None = None,
    state: str = STATE_READY,
) -> PlanResult:
    if plan is None:
        return PlanResult(state=STATE_NOT_FOUND, source=source)
    age = days_since(plan.created_at, now)
    return PlanResult(
        state=state,
        plan=plan,
        expired=age >= settings.plan_horizon_days,
        days_since_creation=age,
        profile_version=plan.profile_version,
        source=source,
    )


def _resolve(
    db: Session,
    user_id: UUID,
    explicit_profile_id: UUID | str | None,
    sleep: Callable[[float], None] | None,
) -> Optional[SkinProfile]:
    if sleep is None:
        return resolve_profile(db, user_id, explicit_profile_id).profile
    return resolve_profile(db, user_id, explicit_profile_id, sleep=sleep).profile


def _plan_row(db: Session, user_id: UUID, profile_version: int) -> Optional[CarePlan]:
    return (
        db.query(CarePlan)
        .filter(CarePlan.user_id == user_id, CarePlan.profile_version == profile_version)
        .one_or_none()
    )


def _document(row: CarePlan) -> Optional[PlanDocument]:
    try:
        return PlanDocument.model_validate(row.plan_data or {})
    except ValidationError as exc:
        logger.warning("Stored plan %s is malformed, ignoring: %s", row.id, exc.errors()[:1])
        return None


def _plan_step(name: str, ids: List[int]) -> PlanStep:
    return PlanStep(step=name, product_id=ids[0] if ids else None, alternatives=list(ids[1:]))


def _ordered_steps(steps: Dict[str, List[int]]) -> List[tuple[str, List[int]]]:
    def rank(name: str) -> tuple[int, str]:
        for index, known in enumerate(ROUTINE_ORDER):
            if name == known or name.startswith(f"{known}_"):
                return index, name
        return len(ROUTINE_ORDER), name

    return [(name, ids) for name, ids in sorted(steps.items(), key=lambda item: rank(item[0])) if ids]


def _slot(step_name: str) -> str:
    """``morning``, ``evening`` (treatments), ``weekly`` or ``both``."""
    if any(marker in step_name for marker in WEEKLY_ONLY):
        return "weekly"
    if any(marker in step_name for marker in MORNING_ONLY):
        return "morning"
    if any(marker in step_name for marker in EVENING_ONLY):
        return "evening"
    return "both"


def _routines(names: List[str], phase: str, step_actives: Mapping[str, FrozenSet[str]]) -> Dict[str, Set[str]]:
    """Routines (``morning``/``evening``) each daily step runs in during ``phase``."""
    allowed: Dict[str, Set[str]] = {}
    for name in names:
        slot = _slot(name)
        if slot == "weekly":
            allowed[name] = set()
        elif slot == "morning":
            allowed[name] = {"morning"}
        elif slot == "evening":
            allowed[name] = {"evening"} if phase != "adaptation" else set()
        else:
            allowed[name] = {"morning", "evening"}

    pairs = []
    for index, first in enumerate(names):
        for second in names[index + 1 :]:
            found = find_conflict(step_actives.get(first, ()), step_actives.get(second, ()))
            if found is not None:
                pairs.append((SEVERITY_RANK.get(found[0].severity, len(SEVERITY_RANK)), first, second, found[1]))
    for _rank, first, second, first_in_morning in sorted(pairs, key=lambda item: item[0]):
        _separate(allowed, first, second, first_in_morning)
    return allowed


def _separate(allowed: Dict[str, Set[str]], first: str, second: str, first_in_morning: bool) -> None:
    if not allowed[first] & allowed[second]:
        return
    morning_step, evening_step = (first, second) if first_in_morning else (second, first)
    keep_morning = allowed[morning_step] - {"evening"}
    keep_evening = allowed[evening_step] - {"morning"}
    if keep_morning and keep_evening:
        allowed[morning_step], allowed[evening_step] = keep_morning, keep_evening
        return
    yielding, holding = _yielding_step(first, second)
    allowed[yielding] = allowed[yielding] - allowed[holding]
    logger.info("Plan steps %s and %s conflict; %s leaves %s", first, second, yielding, sorted(allowed[holding]))


def _yielding_step(first: str, second: str) -> Tuple[str, str]:
    # Steps pinned to one routine keep it; otherwise the later step gives way.
    if _slot(second) in ("morning", "evening") and _slot(first) == "both":
        return first, second
    return second, first
