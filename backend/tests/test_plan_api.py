from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from glowcare.core.config import settings
from glowcare.db.deps import get_db
from glowcare.db.models.care_plan import CarePlan
from glowcare.db.models.product import Brand, Product
from glowcare.db.models.recommendation_rule import RecommendationRule
from glowcare.db.models.recommendation_session import RecommendationSession
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.db.models.user import User
from glowcare.main import app
from glowcare.services.cache import get_cache, plan_key, recommendations_key, reset_cache


@pytest.fixture()
def client(monkeypatch):
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_fk(conn, record):  # pragma: no cover
        cursor = conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    for model in (User, SkinProfile, Brand, Product, RecommendationRule, RecommendationSession, CarePlan):
        model.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    monkeypatch.setattr(settings, "profile_retry_delay_s", 0)
    reset_cache()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()
    reset_cache()


def _seed(session_factory):
    session = session_factory()
    try:
        brand = Brand(name="Lumen", is_active=True)
        session.add(brand)
        session.flush()
        for category in ("cleanser", "serum", "moisturizer", "spf", "mask"):
            session.add(Product(brand_id=brand.id, name=f"Lumen {category}", category=category, step=category))
        rule = RecommendationRule(
            name="Oily routine",
            priority=10,
            conditions_json={"skinType": ["oily"], "acneLevel": {"gte": 2}},
            steps_json={"cleanser": {}, "serum": {}, "moisturizer": {}, "spf": {}, "mask": {}},
        )
        session.add(rule)
        session.commit()
        return rule.id
    finally:
        session.close()


def _submit(test_client, user_id, answers=None):
    response = test_client.post(
        "/profiles",
        json={"user_id": str(user_id), "answers": answers or {"skin_type": "oily", "acne_level": 3}},
    )
    assert response.status_code == 201
    return response.json()


def test_plan_without_profile_reports_no_profile(client) -> None:
    test_client, _ = client

    response = test_client.get("/plan", params={"user_id": str(uuid4())})

    assert response.status_code == 200
    assert response.json()["state"] == "no_profile"
    assert response.json()["plan"] is None


def test_plan_not_found_until_generated(client) -> None:
    test_client, session_factory = client
    _seed(session_factory)
    user_id = uuid4()
    _submit(test_client, user_id)

    before = test_client.get("/plan", params={"user_id": str(user_id)}).json()
    generated = test_client.post("/plan/generate", json={"user_id": str(user_id)}).json()
    after = test_client.get("/plan", params={"user_id": str(user_id)}).json()

    assert before["state"] == "not_found"
    assert before["profile_version"] == 1
    assert generated["state"] == "ready"
    assert after["state"] == "ready"
    assert after["expired"] is False
    assert after["days_since_creation"] == 0
    assert len(after["plan"]["days"]) == settings.plan_horizon_days
    assert after["plan"]["days"][2]["weekly"][0]["step"] == "mask"


def test_generate_with_explicit_profile_id(client) -> None:
    test_client, session_factory = client
    _seed(session_factory)
    user_id = uuid4()
    submitted = _submit(test_client, user_id)

    response = test_client.post(
        "/plan/generate",
        json={"user_id": str(user_id), "profile_id": submitted["profile_id"]},
    )

    assert response.json()["state"] == "ready"
    assert response.json()["plan"]["profile_id"] == submitted["profile_id"]


def test_generate_without_profile(client) -> None:
    test_client, _ = client

    response = test_client.post("/plan/generate", json={"user_id": str(uuid4())})

    assert response.status_code == 200
    assert response.json()["state"] == "no_profile"


def test_cache_invalidate_single_version(client) -> None:
    test_client, session_factory = client
    _seed(session_factory)
    user_id = uuid4()
    _submit(test_client, user_id)
    test_client.post("/plan/generate", json={"user_id": str(user_id)})
    assert get_cache().get(plan_key(user_id, 1)) is not None

    response = test_client.post("/cache/invalidate", json={"user_id": str(user_id), "profile_version": 1})

    assert response.status_code == 200
    assert response.json()["versions_invalidated"] == 1
    assert get_cache().get(plan_key(user_id, 1)) is None
    assert get_cache().get(recommendations_key(user_id, 1)) is None
    # The stored plan survives and repopulates the cache.
    assert test_client.get("/plan", params={"user_id": str(user_id)}).json()["source"] == "store"


def test_cache_invalidate_every_version(client) -> None:
    test_client, session_factory = client
    _seed(session_factory)
    user_id = uuid4()
    _submit(test_client, user_id)
    _submit(test_client, user_id)

    response = test_client.post("/cache/invalidate", json={"user_id": str(user_id)})

    assert response.json()["versions_invalidated"] == 2
    assert response.json()["profile_version"] is None


def test_rule_test_explains_match(client) -> None:
    test_client, session_factory = client
    rule_id = _seed(session_factory)
    user_id = uuid4()
    _submit(test_client, user_id, {"skin_type": "oily", "acne_level": 1})

    response = test_client.get(f"/rules/{rule_id}/test", params={"user_id": str(user_id)})

    assert response.status_code == 200
    body = response.json()
    assert body["matched"] is False
    assert body["selected_rule_id"] is None
    failed = [item["field"] for item in body["conditions"] if not item["passed"]]
    assert failed == ["acneLevel"]


def test_rule_test_unknown_rule_is_404(client) -> None:
    test_client, _ = client

    response = test_client.get("/rules/999/test", params={"user_id": str(uuid4())})

    assert response.status_code == 404
