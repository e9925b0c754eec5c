from __future__ import annotations

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from glowcare.db.deps import get_db
from glowcare.db.models.skin_profile import SkinProfile
from glowcare.db.models.user import User
from glowcare.main import app
from glowcare.services.cache import reset_cache


@pytest.fixture()
def client():
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
    User.__table__.create(bind=engine)
    SkinProfile.__table__.create(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    reset_cache()
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()
    reset_cache()


def _submit(test_client, user_id, answers, method="post"):
    return getattr(test_client, method)("/profiles", json={"user_id": str(user_id), "answers": answers})


def test_submit_creates_first_version(client) -> None:
    test_client, _ = client
    user_id = uuid4()

    response = _submit(test_client, user_id, {"skin_type": "Combination", "acne_level": 3, "main_goals": ["acne", " "]})

    assert response.status_code == 201
    body = response.json()
    assert body["version"] == 1
    assert body["previous_version"] is None
    assert body["user_id"] == str(user_id)
    assert body["request_id"]


def test_patch_bumps_version_and_keeps_unsent_answers(client) -> None:
    test_client, _ = client
    user_id = uuid4()
    _submit(test_client, user_id, {"skin_type": "oily", "acne_level": 4, "main_goals": ["acne"]})

    response = _submit(test_client, user_id, {"acne_level": 1}, method="patch")
    current = test_client.get("/profiles/current", params={"user_id": str(user_id)})

    assert response.status_code == 200
    assert response.json()["version"] == 2
    assert response.json()["previous_version"] == 1
    body = current.json()
    assert body["version"] == 2
    assert body["skin_type"] == "oily"
    assert body["acne_level"] == 1
    assert body["main_goals"] == ["acne"]
    assert body["resolved_via"] == "latest"


def test_submit_validates_answers(client) -> None:
    test_client, _ = client

    response = _submit(test_client, uuid4(), {"skin_type": "scaly", "acne_level": 9})

    assert response.status_code == 422


def test_current_profile_with_explicit_id(client) -> None:
    test_client, _ = client
    user_id = uuid4()
    first = _submit(test_client, user_id, {"skin_type": "oily"}).json()
    _submit(test_client, user_id, {"skin_type": "dry"})

    response = test_client.get(
        "/profiles/current",
        params={"user_id": str(user_id), "profile_id": first["profile_id"]},
    )

    assert response.status_code == 200
    assert response.json()["version"] == 1
    assert response.json()["resolved_via"] == "explicit"


def test_current_profile_missing_is_404(client) -> None:
    test_client, _ = client

    response = test_client.get("/profiles/current", params={"user_id": str(uuid4())})

    assert response.status_code == 404
    assert "questionnaire" in response.json()["detail"]
