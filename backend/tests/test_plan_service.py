"""Tests for plan derivation and the plan read path."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from glowcare.api.schemas.recommendations import ResolvedRecommendation
from glowcare.db.models.care_plan import CarePlan
from glowcare.db.models.product import Brand, Product
from glowcare.db.models.recommendation_rule import RecommendationRule
from glowcare.db.models.recommendation_session import RecommendationSession
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.db.models.user import User
from glowcare.services.cache import plan_key
from glowcare.services.cache.memory import InMemoryKeyValueCache
from glowcare.services.plan_service import (
    STATE_NO_PROFILE,
    STATE_NOT_FOUND,
    STATE_READY,
    STATE_READY_WITHOUT_PROFILE,
    build_plan,
    generate_plan,
    get_plan,
    is_weekly_focus_day,
    persist_plan,
    phase_for_day,
    scheduled_actives,
)
from glowcare.services.profile_service import create_profile_version
from glowcare.services.tiered import SOURCE_CACHE, SOURCE_COMPUTED, SOURCE_STORE


def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover - sqlite setup
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    for model in (User, SkinProfile, Brand, Product, RecommendationRule, RecommendationSession, CarePlan):
        model.__table__.create(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def cache():
    return InMemoryKeyValueCache()


def _seed_catalog(db):
    brand = Brand(name="Lumen", is_active=True)
    db.add(brand)
    db.flush()
    for category in ("cleanser", "toner", "serum", "moisturizer", "spf", "mask"):
        db.add(Product(brand_id=brand.id, name=f"Lumen {category}", category=category, step=category))
    db.add(
        RecommendationRule(
            name="Everyone",
            priority=1,
            conditions_json={},
            steps_json={
                "cleanser": {},
                "serum": {},
                "treatment": {"category": "serum"},
                "moisturizer": {},
                "spf": {},
                "mask": {},
            },
        )
    )
    db.commit()


def _profile(db, user_id, cache, **answers):
    answers.setdefault("skin_type", "normal")
    return create_profile_version(db, user_id, answers, cache=cache).profile


def _resolution(user_id, profile_id, steps):
    products = []
    for ids in steps.values():
        products.extend(pid for pid in ids if pid not in products)
    return ResolvedRecommendation(
        user_id=user_id,
        profile_id=profile_id,
        profile_version=1,
        steps=steps,
        products=products,
    )


class _Profile:
    main_goals = ["acne"]


def test_build_plan_lays_out_phases_and_routines() -> None:
    resolution = _resolution(
        uuid4(),
        uuid4(),
        {"cleanser": [1, 2], "treatment": [3], "moisturizer": [4], "spf": [5], "mask": [6]},
    )

    plan = build_plan(resolution, _Profile(), horizon_days=28)

    assert [day.day_index for day in plan.days] == list(range(1, 29))
    assert plan.main_goals == ["acne"]
    first, active = plan.days[0], plan.days[7]
    assert first.phase == "adaptation"
    assert [step.step for step in first.morning] == ["cleanser", "moisturizer", "spf"]
    assert [step.step for step in first.evening] == ["cleanser", "moisturizer"]
    assert active.phase == "active"
    assert [step.step for step in active.evening] == ["cleanser", "treatment", "moisturizer"]
    assert first.morning[0].product_id == 1
    assert first.morning[0].alternatives == [2]
    assert plan.days[21].phase == "support"


def test_weekly_steps_only_on_focus_days() -> None:
    resolution = _resolution(uuid4(), uuid4(), {"cleanser": [1], "mask": [6]})

    plan = build_plan(resolution, _Profile(), horizon_days=28)

    focus_days = [day.day_index for day in plan.days if day.weekly]
    assert focus_days == [3, 10, 17, 24]
    assert all(day.is_weekly_focus_day == (day.day_index in focus_days) for day in plan.days)


def _names(steps):
    return [step.step for step in steps]


def test_conflicting_actives_split_between_routines() -> None:
    resolution = _resolution(uuid4(), uuid4(), {"cleanser": [1], "toner": [2], "treatment": [4], "spf": [5]})
    actives = {2: {"glycolic_acid"}, 4: {"retinol"}}

    plan = build_plan(resolution, _Profile(), horizon_days=28, actives=actives)

    adaptation, active = plan.days[0], plan.days[7]
    assert _names(adaptation.morning) == ["cleanser", "toner", "spf"]
    assert _names(adaptation.evening) == ["cleanser", "toner"]
    assert _names(active.morning) == ["cleanser", "toner", "spf"]
    assert _names(active.evening) == ["cleanser", "treatment"]


def test_vitamin_c_goes_to_morning_and_acids_to_evening() -> None:
    resolution = _resolution(uuid4(), uuid4(), {"toner": [2], "serum": [3], "moisturizer": [6]})
    actives = {2: {"salicylic_acid"}, 3: {"vitamin_c", "hyaluronic_acid"}}

    day = build_plan(resolution, _Profile(), horizon_days=7, actives=actives).days[0]

    assert _names(day.morning) == ["serum", "moisturizer"]
    assert _names(day.evening) == ["toner", "moisturizer"]


def test_unsplittable_conflict_keeps_pinned_step() -> None:
    resolution = _resolution(uuid4(), uuid4(), {"toner": [2], "serum": [3], "treatment": [4]})
    actives = {2: {"aha"}, 3: {"vitamin_c"}, 4: {"tretinoin"}}

    day = build_plan(resolution, _Profile(), horizon_days=14, actives=actives).days[7]

    assert _names(day.morning) == ["toner"]
    assert _names(day.evening) == ["treatment"]


def test_scheduled_actives_reads_canonical_ingredients(db) -> None:
    brand = Brand(name="Lumen", is_active=True)
    db.add(brand)
    db.flush()
    peel = Product(brand_id=brand.id, name="Peel Toner", category="toner", active_ingredients=["Glycolic Acid 7%"])
    night = Product(brand_id=brand.id, name="Night Serum", category="serum", active_ingredients=["Retinal 0.1%"])
    db.add_all([peel, night])
    db.commit()
    resolution = _resolution(uuid4(), uuid4(), {"toner": [peel.id], "treatment": [night.id]})

    actives = scheduled_actives(db, resolution)

    assert actives == {peel.id: {"glycolic_acid"}, night.id: {"retinol"}}
    evening = build_plan(resolution, _Profile(), horizon_days=8, actives=actives).days[7].evening
    assert _names(evening) == ["treatment"]


def test_phase_and_focus_helpers() -> None:
    assert [phase_for_day(day) for day in (1, 7, 8, 21, 22, 28)] == [
        "adaptation",
        "adaptation",
        "active",
        "active",
        "support",
        "support",
    ]
    assert is_weekly_focus_day(3) and is_weekly_focus_day(24)
    assert not is_weekly_focus_day(7)


def test_get_plan_without_profile_returns_no_profile(db, cache) -> None:
    result = get_plan(db, uuid4(), cache=cache, sleep=_no_sleep)

    assert result.state == STATE_NO_PROFILE
    assert result.plan is None


def test_get_plan_before_generation_is_not_found(db, cache) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    profile = _profile(db, user_id, cache)

    result = get_plan(db, user_id, cache=cache, sleep=_no_sleep)

    assert result.state == STATE_NOT_FOUND
    assert result.profile_version == profile.version


def test_generate_then_get_is_ready(db, cache) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    _profile(db, user_id, cache)

    generated = generate_plan(db, user_id, cache=cache, sleep=_no_sleep)
    read = get_plan(db, user_id, cache=cache, sleep=_no_sleep)

    assert generated.state == STATE_READY
    assert generated.source == SOURCE_COMPUTED
    assert read.state == STATE_READY
    assert read.source == SOURCE_CACHE
    assert read.expired is False
    assert read.days_since_creation == 0
    assert read.plan == generated.plan
    assert db.query(CarePlan).filter(CarePlan.user_id == user_id).count() == 1


def test_generate_is_idempotent_per_version(db, cache) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    _profile(db, user_id, cache)

    first = generate_plan(db, user_id, cache=cache, sleep=_no_sleep)
    cache.delete(plan_key(user_id, 1))
    second = generate_plan(db, user_id, cache=cache, sleep=_no_sleep)

    assert second.source == SOURCE_STORE
    assert second.plan == first.plan


def test_generate_without_profile(db, cache) -> None:
    assert generate_plan(db, uuid4(), cache=cache, sleep=_no_sleep).state == STATE_NO_PROFILE


def test_generate_with_empty_catalog_is_not_found(db, cache) -> None:
    user_id = uuid4()
    _profile(db, user_id, cache)

    result = generate_plan(db, user_id, cache=cache, sleep=_no_sleep)

    assert result.state == STATE_NOT_FOUND
    assert result.plan is None


@pytest.mark.parametrize("age_days, expired", [(0, False), (27, False), (28, True), (40, True)])
def test_expiry_flag_at_horizon(db, cache, age_days, expired) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    _profile(db, user_id, cache)
    generated = generate_plan(db, user_id, cache=cache, sleep=_no_sleep)
    now = generated.plan.created_at + timedelta(days=age_days, hours=1)

    result = get_plan(db, user_id, cache=cache, now=now, sleep=_no_sleep)

    assert result.state == STATE_READY
    assert result.expired is expired
    assert result.days_since_creation == age_days


def test_new_profile_version_hides_old_plan(db, cache) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    _profile(db, user_id, cache)
    generate_plan(db, user_id, cache=cache, sleep=_no_sleep)

    _profile(db, user_id, cache, skin_type="dry")
    result = get_plan(db, user_id, cache=cache, sleep=_no_sleep)

    assert result.state == STATE_NOT_FOUND
    assert result.profile_version == 2


def test_explicit_profile_of_other_user_is_ignored(db, cache) -> None:
    _seed_catalog(db)
    owner, caller = uuid4(), uuid4()
    foreign = _profile(db, owner, cache)
    generate_plan(db, owner, cache=cache, sleep=_no_sleep)

    result = get_plan(db, caller, foreign.id, cache=cache, sleep=_no_sleep)

    assert result.state == STATE_NO_PROFILE


def test_plan_served_without_visible_profile(db, cache, monkeypatch) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    _profile(db, user_id, cache)
    generated = generate_plan(db, user_id, cache=cache, sleep=_no_sleep)

    from glowcare.services import plan_service
    from glowcare.services.profile_service import ProfileResolution

    monkeypatch.setattr(plan_service, "resolve_profile", lambda *args, **kwargs: ProfileResolution(None, None))
    result = get_plan(db, user_id, cache=cache, sleep=_no_sleep)

    assert result.state == STATE_READY_WITHOUT_PROFILE
    assert result.plan == generated.plan


def test_malformed_stored_plan_is_a_miss(db, cache) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    profile = _profile(db, user_id, cache)
    db.add(CarePlan(user_id=user_id, profile_id=profile.id, profile_version=1, plan_data={"days": "soon"}))
    db.commit()

    assert get_plan(db, user_id, cache=cache, sleep=_no_sleep).state == STATE_NOT_FOUND

    repaired = generate_plan(db, user_id, cache=cache, sleep=_no_sleep)
    assert repaired.state == STATE_READY
    assert db.query(CarePlan).filter(CarePlan.user_id == user_id).count() == 1


def test_persist_adopts_existing_plan(db, cache) -> None:
    _seed_catalog(db)
    user_id = uuid4()
    profile = _profile(db, user_id, cache)
    resolution = _resolution(user_id, profile.id, {"cleanser": [1]})
    first = build_plan(resolution, profile, created_at=datetime(2026, 3, 1, tzinfo=timezone.utc))
    second = build_plan(resolution, profile, created_at=datetime(2026, 3, 2, tzinfo=timezone.utc))

    persist_plan(db, first)
    stored = persist_plan(db, second)

    assert stored == first
