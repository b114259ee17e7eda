"""
Stage 1: Load session context.

Loads the session, its profile, the profile's other sessions and the stored
transcript, then rebuilds the flow state machine from the stored phase.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from src.core.exceptions import (
    ProfileNotFoundError,
    SessionCompletedError,
    SessionNotFoundError,
)
from src.domain.models.message import ConversationMessage, MessageRole
from src.domain.models.pipeline_contracts import ContextLoadingOutput
from src.persistence.repositories import (
    MessageRepository,
    ProfileRepository,
    SessionRepository,
)
from src.services.flow_state_machine import FlowStateMachine, SessionMeta

log = structlog.get_logger(__name__)

if TYPE_CHECKING:
    from ..context import PipelineContext


class ContextLoadingStage(TurnStage):
    """Load durable records and restore the flow state for this turn."""

    def __init__(
        self,
        session_repo: SessionRepository,
        profile_repo: ProfileRepository,
        message_repo: MessageRepository,
    ):
        self.session_repo = session_repo
        self.profile_repo = profile_repo
        self.message_repo = message_repo

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        """
        Load session context into the context object.

        Raises:
            SessionNotFoundError: Session does not exist
            SessionCompletedError: Session already ended
            ProfileNotFoundError: Session's profile does not exist
        """
        session = await self.session_repo.get(context.session_id)
        if not session:
            raise SessionNotFoundError(f"Session {context.session_id} not found")
        if session.is_completed:
            raise SessionCompletedError(
                f"Session {context.session_id} is already completed"
            )

        profile = await self.profile_repo.get(session.profile_id)
        if not profile:
            raise ProfileNotFoundError(f"Profile {session.profile_id} not found")

        prior_sessions = [
            s
            for s in await self.session_repo.list_by_profile(profile.id)
            if s.id != session.id
        ]
        transcript = await self.message_repo.list_for_session(session.id)

        context.flow = FlowStateMachine.restore(
            SessionMeta.from_session(session), session.current_phase
        )

        context.context_loading_output = ContextLoadingOutput(
            session=session,
            profile=profile,
            prior_sessions=prior_sessions,
            transcript=transcript,
            user_message=ConversationMessage(
                role=MessageRole.USER,
                content=context.user_input,
                timestamp=context.received_at,
            ),
        )

        log.info(
            "context_loaded",
            session_id=session.id,
            phase=session.current_phase.value,
            phase_turn_count=session.phase_turn_count,
            transcript_length=len(transcript),
        )

        return context
