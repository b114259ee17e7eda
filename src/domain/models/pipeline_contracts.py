"""Pipeline stage contracts.

Pydantic models for the outputs of each turn-processing stage. Each stage
writes exactly one contract onto the pipeline context; later stages read
earlier contracts rather than loose fields.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.domain.models.context import SessionContext
from src.domain.models.message import ConversationMessage
from src.domain.models.phase import TherapyPhase
from src.domain.models.profile import Profile
from src.domain.models.session import TherapySession


class ContextLoadingOutput(BaseModel):
    """Contract: ContextLoadingStage output (Stage 1).

    Durable records the turn is built from, plus the in-memory user message
    that has not been persisted yet.
    """

    session: TherapySession
    profile: Profile
    prior_sessions: List[TherapySession] = Field(
        default_factory=list, description="Other sessions of the same profile"
    )
    transcript: List[ConversationMessage] = Field(
        default_factory=list, description="Stored transcript before this turn"
    )
    user_message: ConversationMessage = Field(
        description="This turn's user message (not yet persisted)"
    )


class ContextAssemblyOutput(BaseModel):
    """Contract: ContextAssemblyStage output (Stage 2)."""

    session_context: SessionContext
    messages: List[Dict[str, str]] = Field(
        description="Provider messages, synthesized system prompt first"
    )


class ResponseGenerationOutput(BaseModel):
    """Contract: ResponseGenerationStage output (Stage 3).

    ``degraded`` is set when the provider failed and ``raw_reply`` holds the
    configured fallback text instead of a model reply.
    """

    raw_reply: str
    provider: str
    model: Optional[str] = None
    degraded: bool = False
    latency_ms: float = Field(default=0.0, ge=0.0)


class PhaseAdvancementOutput(BaseModel):
    """Contract: PhaseAdvancementStage output (Stage 4)."""

    reply: str = Field(description="Reply as shown and persisted")
    previous_phase: TherapyPhase
    phase: TherapyPhase
    advanced: bool = False
    phase_turn_count: int = Field(
        ge=0, description="User turns spent in ``phase`` after this turn"
    )


class TurnCommitOutput(BaseModel):
    """Contract: TurnCommitStage output (Stage 5)."""

    committed: bool
    stored_messages: List[ConversationMessage] = Field(default_factory=list)
    transcript_length: int = Field(ge=0)
