"""Integration tests for API endpoints."""

import pytest
from httpx import AsyncClient, ASGITransport
import tempfile
from pathlib import Path

from src.api.dependencies import get_shared_llm_registry
from src.core.exceptions import LLMTimeoutError
from src.persistence.database import init_database
from src.persistence.repositories import ProfileRepository


@pytest.fixture
def test_db_path():
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def app_with_test_db(test_db_path, mock_llm):
    """Create app with test database and a mocked language model."""
    from src.core import config

    # Override database path
    original_path = config.settings.database_path
    config.settings.database_path = test_db_path

    # Import app after overriding settings
    from src.main import app

    app.dependency_overrides[get_shared_llm_registry] = lambda: mock_llm

    yield app

    app.dependency_overrides.clear()
    config.settings.database_path = original_path


@pytest.fixture
async def client(app_with_test_db, test_db_path, profile_factory):
    """HTTP client against an initialized database with one stored profile."""
    await init_database(test_db_path)
    await ProfileRepository(str(test_db_path)).create(profile_factory())

    transport = ASGITransport(app=app_with_test_db)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_root_endpoint(app_with_test_db):
    """Root endpoint returns basic info."""
    transport = ASGITransport(app=app_with_test_db)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/")

    assert response.status_code == 200
    data = response.json()
    assert data["name"] == "Therapy Session Orchestrator"
    assert data["status"] == "running"
    assert "X-Request-ID" in response.headers


@pytest.mark.asyncio
async def test_health_endpoint(client):
    """Health endpoint returns system status."""
    response = await client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "database" in data["components"]
    assert data["components"]["database"]["session_count"] == 0


@pytest.mark.asyncio
async def test_readiness_endpoint(client):
    """Readiness probe checks database."""
    response = await client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "ready"


class TestSessionEndpoints:
    """Full lifecycle over HTTP."""

    @pytest.mark.asyncio
    async def test_start_turn_end(self, client):
        response = await client.post("/sessions", json={"profile_id": "profile-1"})
        assert response.status_code == 201
        started = response.json()
        assert started["session_number"] == 1
        assert started["phase"] == "initialize"
        assert started["opening_message"] == "Therapist reply 1"
        session_id = started["session_id"]

        response = await client.post(
            f"/sessions/{session_id}/messages", json={"text": "Hi, I'm nervous."}
        )
        assert response.status_code == 200
        turn = response.json()
        assert turn["reply"] == "Therapist reply 2"
        assert turn["previous_phase"] == "initialize"
        assert turn["phase"] == "mood_check"
        assert turn["advanced"] is True
        assert turn["degraded"] is False

        response = await client.get(f"/sessions/{session_id}")
        assert response.status_code == 200
        status = response.json()
        assert status["phase"] == "mood_check"
        assert status["user_turn_count"] == 1
        assert status["is_completed"] is False

        response = await client.put(
            f"/sessions/{session_id}/end",
            json={
                "emotional_state_end": {"anxiety": 5, "depression": 4, "optimism": 6},
                "effectiveness_rating": 7,
            },
        )
        assert response.status_code == 200
        ended = response.json()
        assert ended["phase"] == "end"
        assert ended["is_completed"] is True
        assert ended["metrics"]["effectiveness_rating"] == 7
        assert ended["end_time"] is not None

    @pytest.mark.asyncio
    async def test_end_without_body(self, client):
        started = (
            await client.post("/sessions", json={"profile_id": "profile-1"})
        ).json()

        response = await client.put(f"/sessions/{started['session_id']}/end")

        assert response.status_code == 200
        assert response.json()["is_completed"] is True

    @pytest.mark.asyncio
    async def test_degraded_turn_is_not_an_http_error(self, client, mock_llm):
        started = (
            await client.post("/sessions", json={"profile_id": "profile-1"})
        ).json()
        mock_llm.complete.side_effect = LLMTimeoutError("slow", provider="openai")

        response = await client.post(
            f"/sessions/{started['session_id']}/messages", json={"text": "Hello?"}
        )

        assert response.status_code == 200
        assert response.json()["degraded"] is True
        assert response.json()["phase"] == "initialize"


class TestErrorMapping:
    """Domain errors map to HTTP status codes."""

    @pytest.mark.asyncio
    async def test_unknown_profile_is_404(self, client):
        response = await client.post("/sessions", json={"profile_id": "nobody"})

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "ProfileNotFoundError"

    @pytest.mark.asyncio
    async def test_unknown_session_is_404(self, client):
        response = await client.post("/sessions/ghost/messages", json={"text": "hi"})

        assert response.status_code == 404
        assert response.json()["error"]["type"] == "SessionNotFoundError"

        response = await client.get("/sessions/ghost")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_method_is_400(self, client):
        response = await client.post(
            "/sessions", json={"profile_id": "profile-1", "therapy_method": "hypnosis"}
        )

        assert response.status_code == 400
        assert "hypnosis" in response.json()["error"]["message"]

    @pytest.mark.asyncio
    async def test_empty_message_is_400(self, client):
        started = (
            await client.post("/sessions", json={"profile_id": "profile-1"})
        ).json()

        response = await client.post(
            f"/sessions/{started['session_id']}/messages", json={"text": "  "}
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_rating_out_of_range_is_400(self, client):
        started = (
            await client.post("/sessions", json={"profile_id": "profile-1"})
        ).json()

        response = await client.put(
            f"/sessions/{started['session_id']}/end",
            json={"effectiveness_rating": 0},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_completed_session_is_409(self, client):
        started = (
            await client.post("/sessions", json={"profile_id": "profile-1"})
        ).json()
        session_id = started["session_id"]
        await client.put(f"/sessions/{session_id}/end")

        response = await client.post(
            f"/sessions/{session_id}/messages", json={"text": "one more"}
        )
        assert response.status_code == 409
        assert response.json()["error"]["type"] == "SessionCompletedError"

        response = await client.put(f"/sessions/{session_id}/end")
        assert response.status_code == 409
