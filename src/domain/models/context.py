"""Per-turn session context.

SessionContext is an ephemeral projection rebuilt on every turn from the
durable profile, the profile's prior sessions and the current transcript.
It is never persisted and never treated as a source of truth.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.models.message import ConversationMessage
from src.domain.models.phase import TherapyPhase
from src.domain.models.session import ContinuityStatus
from src.domain.models.therapy_method import TherapyMethod


class SessionInfo(BaseModel):
    session_id: str
    therapy_method: TherapyMethod
    session_number: int
    continuity_status: ContinuityStatus
    phase: TherapyPhase
    started_at: datetime
    # Wall-clock time of assembly; the only field that differs between
    # two builds from identical inputs.
    assembled_at: datetime


class ClientProfileSnapshot(BaseModel):
    client_id: str
    name: str
    goals: List[str] = Field(default_factory=list)
    challenges: List[str] = Field(default_factory=list)


class TherapyProgressSnapshot(BaseModel):
    overall_status: str
    key_insights: List[str] = Field(default_factory=list)
    homework_completion: float = 0.0


class PreviousSessionSummary(BaseModel):
    """Highlights of the most recent completed session."""

    session_number: int
    main_topics: List[str] = Field(default_factory=list)
    key_insights: str = ""
    homework: str = ""


class SessionContext(BaseModel):
    """Bounded prompt payload inputs for one turn."""

    session_info: SessionInfo
    client_profile: ClientProfileSnapshot
    therapy_progress: TherapyProgressSnapshot
    previous_session_summary: Optional[PreviousSessionSummary] = None
    conversation_window: List[ConversationMessage] = Field(default_factory=list)
