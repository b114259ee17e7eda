"""
Context assembly for therapy session turns.

Builds a bounded, relevance-biased prompt payload for a single turn from:
- the client profile (active goals, challenges, progress metadata)
- the profile's prior sessions (highlights of the last completed one)
- the current session's transcript (compressed to a bounded window)
- the TherapyPhase driving the turn

History compression keeps the opening framing and the most recent exchange
verbatim and samples the middle with a fixed stride. The sampling is a
deterministic placeholder, not a learned relevance ranking.

All functions here are pure: inputs are never mutated, and the only
non-derived value is the assembly timestamp.
"""

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence

import structlog

from src.core.config import ContextConfig, session_config
from src.core.exceptions import ProfileNotFoundError
from src.domain.models.context import (
    ClientProfileSnapshot,
    PreviousSessionSummary,
    SessionContext,
    SessionInfo,
    TherapyProgressSnapshot,
)
from src.domain.models.message import ConversationMessage, MessageRole
from src.domain.models.phase import TherapyPhase
from src.domain.models.profile import Profile
from src.domain.models.session import TherapySession
from src.llm.prompts.therapy import get_therapy_system_prompt

log = structlog.get_logger(__name__)


def extract_important_messages(
    messages: Sequence[ConversationMessage],
    max_to_extract: int = 5,
    stride: int = 2,
) -> List[ConversationMessage]:
    """Take every ``stride``-th message in order, at most ``max_to_extract``."""
    return list(messages[::stride][:max_to_extract])


def compress_history(
    messages: Sequence[ConversationMessage],
    config: Optional[ContextConfig] = None,
) -> List[ConversationMessage]:
    """
    Bound a transcript to the context window.

    Transcripts at or below the threshold are returned unchanged. Longer
    ones keep the first ``keep_head`` and last ``keep_tail`` messages and
    a stride sample of the middle, preserving original order.

    Args:
        messages: Full transcript in append order
        config: Compression parameters (defaults from session_config.yaml)

    Returns:
        New list; the input is not modified
    """
    config = config or session_config.context
    history = list(messages)

    if len(history) <= config.threshold:
        return history

    head = history[: config.keep_head]
    tail = history[len(history) - config.keep_tail :] if config.keep_tail else []
    middle = history[config.keep_head : len(history) - config.keep_tail]

    sampled = extract_important_messages(
        middle, max_to_extract=config.max_middle, stride=config.middle_stride
    )

    return head + sampled + tail


def find_previous_session_summary(
    prior_sessions: Sequence[TherapySession],
    exclude_session_id: Optional[str] = None,
) -> Optional[PreviousSessionSummary]:
    """Highlights of the most recently started completed session, if any."""
    completed = [
        s
        for s in prior_sessions
        if s.is_completed and s.id != exclude_session_id
    ]
    if not completed:
        return None

    last = max(completed, key=lambda s: s.start_time)
    summary = last.summary
    return PreviousSessionSummary(
        session_number=last.session_number,
        main_topics=list(summary.main_topics) if summary else [],
        key_insights=summary.key_insights if summary else "",
        homework=summary.homework if summary else "",
    )


class ContextAssembler:
    """Builds the per-turn SessionContext and the provider message list."""

    def __init__(
        self,
        config: Optional[ContextConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config or session_config.context
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def build_context(
        self,
        profile: Optional[Profile],
        session: TherapySession,
        prior_sessions: Sequence[TherapySession],
        transcript: Sequence[ConversationMessage],
        phase: TherapyPhase,
    ) -> SessionContext:
        """
        Assemble the context for one turn.

        Args:
            profile: Client profile
            session: Current session record (supplies session metadata)
            prior_sessions: Earlier sessions of the same profile
            transcript: Current session transcript, including any message
                appended for this turn
            phase: Phase driving this turn

        Returns:
            SessionContext with a compressed conversation window

        Raises:
            ProfileNotFoundError: If profile is missing
        """
        if profile is None:
            raise ProfileNotFoundError(f"Profile {session.profile_id} not found")

        window = compress_history(transcript, self.config)

        context = SessionContext(
            session_info=SessionInfo(
                session_id=session.id,
                therapy_method=session.therapy_method,
                session_number=session.session_number,
                continuity_status=session.continuity_status,
                phase=phase,
                started_at=session.start_time,
                assembled_at=self.clock(),
            ),
            client_profile=ClientProfileSnapshot(
                client_id=profile.id,
                name=profile.name,
                goals=profile.active_goals,
                challenges=profile.open_challenges,
            ),
            therapy_progress=TherapyProgressSnapshot(
                overall_status=profile.therapy_progress.overall_status,
                key_insights=list(profile.therapy_progress.key_insights),
                homework_completion=profile.therapy_progress.homework_completion,
            ),
            previous_session_summary=find_previous_session_summary(
                prior_sessions, exclude_session_id=session.id
            ),
            conversation_window=window,
        )

        log.debug(
            "context_assembled",
            session_id=session.id,
            phase=phase.value,
            transcript_length=len(transcript),
            window_length=len(window),
            has_previous_summary=context.previous_session_summary is not None,
        )

        return context

    def build_messages(
        self,
        context: SessionContext,
        phase: Optional[TherapyPhase] = None,
        extra_instructions: Optional[List[str]] = None,
    ) -> List[Dict[str, str]]:
        """
        Render the context as role/content pairs for the model.

        A freshly synthesized system message comes first. System entries
        stored in the transcript belong to earlier turns and are superseded
        by it, so they are not repeated.

        Args:
            context: Assembled context
            phase: Phase for the instruction suffix (defaults to the context's)
            extra_instructions: Extra sentences for the system message

        Returns:
            Ordered list of {"role", "content"} dicts
        """
        phase = phase if phase is not None else context.session_info.phase
        system_prompt = get_therapy_system_prompt(context, phase, extra_instructions)

        messages = [{"role": MessageRole.SYSTEM.value, "content": system_prompt}]
        messages.extend(
            m.as_prompt()
            for m in context.conversation_window
            if m.role != MessageRole.SYSTEM
        )
        return messages
