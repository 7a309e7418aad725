"""
Test fixtures for workout-parse-api.

Provides in-memory repositories and scripted model clients so every test
runs offline and deterministically.
"""

import sys
from pathlib import Path
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

# Make src/ importable so tests can do `import workout_parse_api...`
for p in {ROOT, SRC}:
    p_str = str(p)
    if p_str not in sys.path:
        sys.path.insert(0, p_str)

from workout_parse_api.ai import AIClients
from workout_parse_api.api.parse_routes import get_ai_clients, get_database_provider
from workout_parse_api.auth import get_current_user, get_optional_user
from workout_parse_api.main import app

from fakes import (
    OTHER_USER_ID,
    TEST_USER_ID,
    FakeDatabase,
    FakeExerciseRepository,
    FakeOpenAI,
    FakeWorkoutRepository,
)


# ---------------------------------------------------------------------------
# Auth Mock
# ---------------------------------------------------------------------------


async def mock_get_current_user() -> str:
    """Mock auth dependency that returns a test user."""
    return TEST_USER_ID


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def mock_env_vars(monkeypatch):
    """Keep tests away from real credentials and proxies."""
    from workout_parse_api.config import settings

    monkeypatch.setattr(settings, "HELICONE_ENABLED", False)
    monkeypatch.setattr(settings, "AGENT_SUMMARY_PARSING", True)
    monkeypatch.setattr(settings, "AGENT_PARALLEL_TOOL_CALLS", False)
    monkeypatch.setattr(settings, "PARSER_FALLBACK_MODEL", "claude-3-5-haiku-latest")
    monkeypatch.setattr(settings, "API_KEYS", ["sk_test_abc123"])
    monkeypatch.setattr(settings, "SUPABASE_JWT_SECRET", "test-jwt-secret-with-at-least-32-bytes")
    yield


@pytest.fixture
def exercise_rows() -> List[Dict[str, Any]]:
    return [
        {
            "id": "11111111-1111-4111-8111-111111111111",
            "name": "Bench Press",
            "aliases": ["barbell bench press", "flat bench"],
            "muscle_group": "Chest",
            "type": "compound",
            "equipment": "barbell",
            "created_by": None,
        },
        {
            "id": "22222222-2222-4222-8222-222222222222",
            "name": "Squat",
            "aliases": ["back squat", "squats"],
            "muscle_group": "Quads",
            "type": "compound",
            "equipment": "barbell",
            "created_by": None,
        },
        {
            "id": "33333333-3333-4333-8333-333333333333",
            "name": "Cable Crossover",
            "aliases": [],
            "muscle_group": "Chest",
            "type": "isolation",
            "equipment": "cable",
            "created_by": OTHER_USER_ID,
        },
    ]


@pytest.fixture
def exercise_repo(exercise_rows) -> FakeExerciseRepository:
    return FakeExerciseRepository(exercise_rows)


@pytest.fixture
def workout_repo() -> FakeWorkoutRepository:
    return FakeWorkoutRepository()


@pytest.fixture
def fake_db(exercise_repo, workout_repo) -> FakeDatabase:
    return FakeDatabase(exercise_repo, workout_repo)


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def ai_clients(fake_openai) -> AIClients:
    return AIClients(openai_client=fake_openai, anthropic_client=None)


@pytest.fixture
def client(ai_clients, fake_db) -> TestClient:
    """Per-test FastAPI TestClient with auth, model and database overrides."""

    async def provide_db():
        return fake_db

    app.dependency_overrides[get_current_user] = mock_get_current_user
    app.dependency_overrides[get_optional_user] = mock_get_current_user
    app.dependency_overrides[get_ai_clients] = lambda: ai_clients
    app.dependency_overrides[get_database_provider] = lambda: provide_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def unauthenticated_client(ai_clients, fake_db) -> TestClient:
    """TestClient with real auth dependencies but fake model and database."""

    async def provide_db():
        return fake_db

    app.dependency_overrides[get_ai_clients] = lambda: ai_clients
    app.dependency_overrides[get_database_provider] = lambda: provide_db
    yield TestClient(app)
    app.dependency_overrides.clear()
