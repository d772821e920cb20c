"""Shared fixtures: an in-memory database and an API client wired to it."""

from __future__ import annotations

import random
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from api_server import app, get_random  # noqa: E402
from database import Base, build_engine, get_db  # noqa: E402
import models  # noqa: E402,F401

TEST_SEED = 1234


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client(engine):
    """TestClient whose requests share the in-memory database and one seeded RNG."""

    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    rng = random.Random(TEST_SEED)
    app.dependency_overrides[get_random] = lambda: rng
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def user(db):
    user = models.UserModel(name="Test Driver", email="driver@example.com", api_key="test-key")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture()
def auth(user):
    return {"X-API-Key": user.api_key}


@pytest.fixture()
def vehicle_payload():
    return {
        "model": "Honda Civic",
        "engine_cc": 1500,
        "fuel_type": "Petrol",
        "odometer": 45000,
        "last_service": "2024-10-15",
    }
