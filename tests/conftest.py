"""Shared fixtures and utilities for tests."""

import os

# Settings are read at import time, so the environment must be ready first
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-min-32-chars-long-for-security")
os.environ.setdefault("JWT_ALGORITHM", "HS256")
os.environ.setdefault("JWT_AUDIENCE", "authenticated")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("JSON_LOGS", "false")
os.environ.setdefault("RANKING_LIMIT", "10")
os.environ.setdefault("STATISTICS_SUBMITTED_ONLY", "false")

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

from api.dependencies import get_store
from api.main import app
from api.services.memory_store import InMemoryEvaluationStore
from database.seed import seed_memory_store

SCALE = {1: "Very poor", 2: "Poor", 3: "Fair", 4: "Good", 5: "Excellent"}

# Seeded catalog: dimension id -> question ids
QUESTIONS_BY_DIMENSION = {
    1: [1, 2, 3],  # governance
    2: [4, 5, 6],  # social
    3: [7, 8, 9],  # environmental
}


def seed_catalog(store: InMemoryEvaluationStore) -> InMemoryEvaluationStore:
    """Three universities, the three dimensions and three questions each."""
    store.add_organization("Universidad Nacional", city="Bogotá", region="Cundinamarca", organization_id=1)
    store.add_organization("Universidad de Antioquia", city="Medellín", region="Antioquia", organization_id=2)
    store.add_organization("Universidad del Valle", city="Cali", region="Valle del Cauca", organization_id=3)
    seed_memory_store(store)
    for dimension_id, question_ids in QUESTIONS_BY_DIMENSION.items():
        for order_index, question_id in enumerate(question_ids, start=1):
            store.add_question(
                dimension_id,
                f"Question {order_index} of dimension {dimension_id}",
                order_index=order_index,
                scale_labels=SCALE,
                question_id=question_id,
            )
    return store


def build_answers(dimension_id: int, *scores: int) -> list[dict]:
    """Responses for the first ``len(scores)`` questions of a dimension."""
    question_ids = QUESTIONS_BY_DIMENSION[dimension_id]
    return [
        {"question_id": question_id, "score": score}
        for question_id, score in zip(question_ids, scores)
    ]


@pytest.fixture
def store():
    """Seeded in-memory evaluation store."""
    return seed_catalog(InMemoryEvaluationStore())


@pytest.fixture
def make_token():
    """Factory for bearer tokens signed like the identity provider does."""

    def _make_token(sub="rater-1", expires_in=timedelta(hours=1), **claims):
        payload = {
            "sub": sub,
            "aud": os.environ["JWT_AUDIENCE"],
            "exp": datetime.now(timezone.utc) + expires_in,
            **claims,
        }
        return jwt.encode(payload, os.environ["JWT_SECRET_KEY"], algorithm="HS256")

    return _make_token


@pytest.fixture
def auth_headers(make_token):
    """Authorization headers for a rater id."""

    def _auth_headers(rater_id="rater-1"):
        return {"Authorization": f"Bearer {make_token(rater_id)}"}

    return _auth_headers


@pytest.fixture
def client(store):
    """Test client whose endpoints use the seeded in-memory store."""
    app.dependency_overrides[get_store] = lambda: store
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def answers():
    """``answers(dimension_id, *scores)`` builds a response list."""
    return build_answers


@pytest.fixture
def seeded():
    """``seeded(store_class)`` returns a seeded instance of an in-memory store class."""

    def _seeded(store_class=InMemoryEvaluationStore):
        return seed_catalog(store_class())

    return _seeded
