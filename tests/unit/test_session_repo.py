"""Tests for session repository."""

import aiosqlite
import pytest
from datetime import datetime, timedelta, timezone

from src.core.exceptions import SessionCompletedError, SessionNotFoundError
from src.domain.models.message import ConversationMessage, MessageRole
from src.domain.models.phase import TherapyPhase
from src.domain.models.profile import EmotionalState
from src.domain.models.session import (
    ContinuityStatus,
    SessionMetrics,
    SessionSummary,
    TherapySession,
)
from src.domain.models.therapy_method import TherapyMethod

T0 = datetime(2026, 4, 1, 18, 0, tzinfo=timezone.utc)


def create_test_session(session_id="session-1", profile_id="profile-1", start=T0):
    """Helper to create test sessions."""
    return TherapySession(
        id=session_id,
        profile_id=profile_id,
        therapy_method=TherapyMethod.COGNITIVE_BEHAVIORAL,
        session_number=1,
        continuity_status=ContinuityStatus.NEW,
        start_time=start,
        llm_provider="openai",
        llm_model="test-model",
        metrics=SessionMetrics(emotional_state_start=EmotionalState(anxiety=7)),
    )


def msg(role, content, minutes=0):
    return ConversationMessage(
        role=role, content=content, timestamp=T0 + timedelta(minutes=minutes)
    )


class TestCreateAndGet:
    """Tests for session creation and lookup."""

    @pytest.mark.asyncio
    async def test_create_round_trips_fields(self, session_repo, profile):
        created = await session_repo.create(create_test_session())

        assert created.id == "session-1"
        assert created.current_phase == TherapyPhase.INITIALIZE
        assert created.phase_turn_count == 0
        assert created.start_time == T0
        assert created.metrics.emotional_state_start.anxiety == 7
        assert created.summary is None
        assert not created.is_completed

        assert await session_repo.get("session-1") == created

    @pytest.mark.asyncio
    async def test_create_with_opening_messages(
        self, session_repo, message_repo, profile
    ):
        await session_repo.create(
            create_test_session(),
            [msg(MessageRole.SYSTEM, "prompt"), msg(MessageRole.ASSISTANT, "Hello", 1)],
        )

        transcript = await message_repo.list_for_session("session-1")

        assert [m.role for m in transcript] == [MessageRole.SYSTEM, MessageRole.ASSISTANT]
        assert [m.seq for m in transcript] == [1, 2]

    @pytest.mark.asyncio
    async def test_create_requires_profile(self, session_repo, test_db):
        with pytest.raises(aiosqlite.IntegrityError):
            await session_repo.create(create_test_session(profile_id="ghost"))

        assert await session_repo.get("session-1") is None

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, session_repo):
        assert await session_repo.get("nope") is None

    @pytest.mark.asyncio
    async def test_list_by_profile_newest_first(self, session_repo, profile):
        await session_repo.create(create_test_session("a", start=T0 - timedelta(days=2)))
        await session_repo.create(create_test_session("b", start=T0))
        await session_repo.create(create_test_session("c", start=T0 - timedelta(days=9)))

        sessions = await session_repo.list_by_profile("profile-1")

        assert [s.id for s in sessions] == ["b", "a", "c"]
        assert await session_repo.list_by_profile("other") == []


class TestPhaseUpdates:
    """Tests for phase metadata writes."""

    @pytest.mark.asyncio
    async def test_update_phase(self, session_repo, profile):
        await session_repo.create(create_test_session())

        await session_repo.update_phase("session-1", TherapyPhase.MAIN_THERAPY, 2)

        session = await session_repo.get("session-1")
        assert session.current_phase == TherapyPhase.MAIN_THERAPY
        assert session.phase_turn_count == 2

    @pytest.mark.asyncio
    async def test_update_phase_missing_session(self, session_repo):
        with pytest.raises(SessionNotFoundError):
            await session_repo.update_phase("nope", TherapyPhase.MOOD_CHECK)


class TestCommitTurn:
    """Tests for the single-transaction turn commit."""

    @pytest.mark.asyncio
    async def test_commit_appends_and_updates_phase(
        self, session_repo, message_repo, profile
    ):
        await session_repo.create(create_test_session())

        stored = await session_repo.commit_turn(
            "session-1",
            [msg(MessageRole.USER, "hi", 1), msg(MessageRole.ASSISTANT, "hello", 2)],
            TherapyPhase.MOOD_CHECK,
            0,
        )

        assert [m.seq for m in stored] == [1, 2]
        assert all(m.id for m in stored)
        session = await session_repo.get("session-1")
        assert session.current_phase == TherapyPhase.MOOD_CHECK
        assert await message_repo.count_for_session("session-1") == 2

    @pytest.mark.asyncio
    async def test_failed_commit_leaves_nothing(
        self, session_repo, message_repo, profile
    ):
        await session_repo.create(
            create_test_session(), [msg(MessageRole.ASSISTANT, "Hello")]
        )
        existing = (await message_repo.list_for_session("session-1"))[0]
        duplicate = msg(MessageRole.ASSISTANT, "dup").model_copy(
            update={"id": existing.id}
        )

        with pytest.raises(aiosqlite.IntegrityError):
            await session_repo.commit_turn(
                "session-1",
                [msg(MessageRole.USER, "hi"), duplicate],
                TherapyPhase.MOOD_CHECK,
                0,
            )

        assert await message_repo.count_for_session("session-1") == 1
        session = await session_repo.get("session-1")
        assert session.current_phase == TherapyPhase.INITIALIZE

    @pytest.mark.asyncio
    async def test_commit_on_deleted_session(self, session_repo, profile):
        await session_repo.create(create_test_session())
        assert await session_repo.delete("session-1")

        with pytest.raises(SessionNotFoundError):
            await session_repo.commit_turn(
                "session-1", [msg(MessageRole.USER, "hi")], TherapyPhase.MOOD_CHECK, 0
            )

    @pytest.mark.asyncio
    async def test_commit_on_completed_session(
        self, session_repo, message_repo, profile
    ):
        await session_repo.create(create_test_session())
        await session_repo.end_session(
            "session-1", SessionSummary(), SessionMetrics(), T0 + timedelta(hours=1)
        )

        with pytest.raises(SessionCompletedError):
            await session_repo.commit_turn(
                "session-1", [msg(MessageRole.USER, "hi")], TherapyPhase.MOOD_CHECK, 0
            )

        assert await message_repo.count_for_session("session-1") == 0


class TestEndSession:
    """Tests for session completion."""

    @pytest.mark.asyncio
    async def test_end_session_stores_summary_and_metrics(
        self, session_repo, message_repo, profile
    ):
        await session_repo.create(create_test_session())
        await session_repo.update_phase("session-1", TherapyPhase.MAIN_THERAPY, 3)
        end = T0 + timedelta(minutes=50)

        ended = await session_repo.end_session(
            "session-1",
            SessionSummary(main_topics=["sleep"], homework="Diary"),
            SessionMetrics(
                emotional_state_start=EmotionalState(anxiety=7),
                emotional_state_end=EmotionalState(anxiety=4),
                effectiveness_rating=8,
            ),
            end,
            [msg(MessageRole.ASSISTANT, "Take care.")],
        )

        assert ended.is_completed
        assert ended.current_phase == TherapyPhase.END
        assert ended.phase_turn_count == 0
        assert ended.end_time == end
        assert ended.summary.main_topics == ["sleep"]
        assert ended.metrics.emotional_state_end.anxiety == 4
        assert ended.metrics.effectiveness_rating == 8
        assert await message_repo.count_for_session("session-1") == 1

    @pytest.mark.asyncio
    async def test_end_twice_rejected(self, session_repo, profile):
        await session_repo.create(create_test_session())
        await session_repo.end_session("session-1", SessionSummary(), SessionMetrics(), T0)

        with pytest.raises(SessionCompletedError):
            await session_repo.end_session(
                "session-1", SessionSummary(), SessionMetrics(), T0
            )

    @pytest.mark.asyncio
    async def test_end_missing_session(self, session_repo):
        with pytest.raises(SessionNotFoundError):
            await session_repo.end_session("nope", SessionSummary(), SessionMetrics(), T0)


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_cascades_transcript(self, session_repo, message_repo, profile):
        await session_repo.create(create_test_session(), [msg(MessageRole.ASSISTANT, "Hi")])

        assert await session_repo.delete("session-1")
        assert not await session_repo.delete("session-1")
        assert await message_repo.count_for_session("session-1") == 0
