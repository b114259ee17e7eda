"""
Shared test fixtures.

Repositories run against a real temporary SQLite database; the language
model is an LLMProviderRegistry whose ``complete`` is an AsyncMock.
"""

import pytest
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock, patch

from src.domain.models.profile import (
    Challenge,
    EmotionalState,
    Goal,
    GoalStatus,
    Profile,
    TherapyProgress,
)
from src.domain.models.therapy_method import TherapyMethod
from src.llm.client import (
    LLMProviderRegistry,
    LLMResponse,
    OpenAICompatibleAdapter,
    ProviderSpec,
)
from src.persistence.database import init_database
from src.persistence.repositories import (
    MessageRepository,
    ProfileRepository,
    SessionRepository,
)


@pytest.fixture
async def test_db():
    """Create and initialize test database."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        await init_database(db_path)

        from src.core import config

        original_path = config.settings.database_path
        config.settings.database_path = db_path

        with patch("src.persistence.database.settings", config.settings):
            yield db_path

        config.settings.database_path = original_path


@pytest.fixture
async def session_repo(test_db):
    return SessionRepository(str(test_db))


@pytest.fixture
async def profile_repo(test_db):
    return ProfileRepository(str(test_db))


@pytest.fixture
async def message_repo(test_db):
    return MessageRepository(str(test_db))


def make_profile(profile_id: str = "profile-1", **overrides) -> Profile:
    """Profile with goals, challenges and progress filled in."""
    data = dict(
        id=profile_id,
        name="Anna",
        therapy_method=TherapyMethod.COGNITIVE_BEHAVIORAL,
        goals=[
            Goal(description="Sleep better", priority="high"),
            Goal(description="Old goal", status=GoalStatus.COMPLETED),
        ],
        challenges=[Challenge(description="Racing thoughts at night", severity="high")],
        emotional_state=EmotionalState(anxiety=7, depression=4, optimism=5),
        therapy_progress=TherapyProgress(overall_status="beginning"),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return Profile(**data)


@pytest.fixture
def profile_factory():
    """Build (unsaved) profiles: ``profile_factory("id", name=...)``."""
    return make_profile


@pytest.fixture
async def profile(profile_repo):
    """Stored profile."""
    return await profile_repo.create(make_profile())


class ScriptedReplies:
    """Side effect for an AsyncMock ``complete``: numbered therapist replies."""

    def __init__(self):
        self.count = 0

    async def __call__(self, provider_id, model_id, messages, options=None):
        self.count += 1
        return LLMResponse(
            content=f"Therapist reply {self.count}",
            model=model_id or "test-model",
            usage={"input_tokens": 10, "output_tokens": 5},
        )


@pytest.fixture
def mock_llm():
    """Registry with one configured provider and a mocked ``complete``."""
    registry = LLMProviderRegistry(timeout=5.0, max_retries=0, retry_base_delay=0.0)
    registry.register(
        ProviderSpec(
            name="openai",
            adapter=OpenAICompatibleAdapter(),
            base_url="https://llm.test/v1",
            default_model="test-model",
            api_key="test-key",
        )
    )
    registry.complete = AsyncMock(side_effect=ScriptedReplies().__call__)
    return registry
