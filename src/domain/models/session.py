"""Session domain models for therapy session lifecycle management.

Core Models:
    - TherapySession: durable session record (metadata, stored phase,
      summary, metrics, completion)
    - SessionSummary: structured end-of-session summary
    - SessionMetrics: emotional state before/after and effectiveness rating

Session Lifecycle:
    1. Created on start with empty transcript, phase ``initialize``
    2. Each committed turn updates ``current_phase`` and ``phase_turn_count``
    3. Ended with summary + metrics: ``is_completed`` set, ``end_time`` stamped,
       phase ``end``
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.models.phase import TherapyPhase
from src.domain.models.profile import EmotionalState
from src.domain.models.therapy_method import TherapyMethod


class ContinuityStatus(str, Enum):
    """How a new session relates in time to the profile's previous one."""

    NEW = "new"
    CONTINUED = "continued"
    RESUMED_AFTER_BREAK = "resumed_after_break"


class SessionSummary(BaseModel):
    """Structured summary extracted from the closing summary turn."""

    main_topics: List[str] = Field(default_factory=list)
    key_insights: str = ""
    progress: str = ""
    homework: str = ""


class SessionMetrics(BaseModel):
    """End-of-session metrics."""

    emotional_state_start: Optional[EmotionalState] = None
    emotional_state_end: Optional[EmotionalState] = None
    effectiveness_rating: Optional[int] = Field(default=None, ge=1, le=10)


class TherapySession(BaseModel):
    """Durable session record.

    The flow state machine itself is never persisted; ``current_phase`` and
    ``phase_turn_count`` are the stored phase metadata it is rebuilt from.
    """

    id: str
    profile_id: str
    therapy_method: TherapyMethod
    session_number: int = Field(ge=1)
    continuity_status: ContinuityStatus = ContinuityStatus.NEW
    start_time: datetime
    end_time: Optional[datetime] = None
    current_phase: TherapyPhase = TherapyPhase.INITIALIZE
    phase_turn_count: int = Field(default=0, ge=0)
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    summary: Optional[SessionSummary] = None
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    is_completed: bool = False
