"""
Stage 5: Commit the turn.

Persists the user message, the assistant reply and the resulting phase in
one transaction. Degraded turns persist nothing so the user can retry.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from src.domain.models.message import ConversationMessage, MessageRole
from src.domain.models.pipeline_contracts import TurnCommitOutput
from src.persistence.repositories import SessionRepository

log = structlog.get_logger(__name__)

if TYPE_CHECKING:
    from ..context import PipelineContext


class TurnCommitStage(TurnStage):
    """Write the turn's effects as one committable step."""

    def __init__(self, session_repo: SessionRepository):
        self.session_repo = session_repo

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        loaded = context.context_loading_output
        advancement = context.phase_advancement_output
        if loaded is None or advancement is None:
            raise RuntimeError(
                "Pipeline contract violation: TurnCommitStage (Stage 5) requires "
                "ContextLoadingStage and PhaseAdvancementStage to complete first."
            )

        if context.degraded:
            log.info(
                "turn_not_committed",
                session_id=context.session_id,
                reason="degraded_reply",
            )
            context.turn_commit_output = TurnCommitOutput(
                committed=False,
                transcript_length=len(loaded.transcript),
            )
            return context

        assistant_message = ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=advancement.reply,
            timestamp=context.reply_time(),
        )
        stored = await self.session_repo.commit_turn(
            context.session_id,
            [loaded.user_message, assistant_message],
            phase=advancement.phase,
            phase_turn_count=advancement.phase_turn_count,
        )

        context.turn_commit_output = TurnCommitOutput(
            committed=True,
            stored_messages=stored,
            transcript_length=len(loaded.transcript) + len(stored),
        )
        return context
