"""
API request/response schemas.

Pydantic models for API validation and serialization.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime

from src.domain.models.phase import TherapyPhase
from src.domain.models.profile import EmotionalState
from src.domain.models.session import ContinuityStatus, SessionMetrics


# ============ SESSION SCHEMAS ============


class SessionCreate(BaseModel):
    """Request to start a new therapy session."""

    profile_id: str = Field(..., min_length=1)
    therapy_method: Optional[str] = Field(
        default=None,
        description="Therapy method id; the profile's method if omitted",
    )


class StartSessionResponse(BaseModel):
    """Response for a started session."""

    session_id: str
    session_number: int
    continuity_status: ContinuityStatus
    phase: TherapyPhase
    opening_message: str
    degraded: bool = False


# ============ TURN SCHEMAS ============


class TurnRequest(BaseModel):
    """Request to process a turn.

    Length limits are enforced by the service against settings.
    """

    text: str = Field(..., description="Client's message")


class TurnResponse(BaseModel):
    """Response for a processed turn."""

    session_id: str
    reply: str
    phase: TherapyPhase
    previous_phase: TherapyPhase
    advanced: bool
    degraded: bool
    phase_turn_count: int
    latency_ms: int = 0


# ============ END SCHEMAS ============


class EndSessionRequest(BaseModel):
    """Optional end-of-session metrics."""

    emotional_state_end: Optional[EmotionalState] = None
    effectiveness_rating: Optional[int] = Field(
        default=None, description="Client's rating of the session, 1-10"
    )


class SessionSummarySchema(BaseModel):
    main_topics: List[str] = Field(default_factory=list)
    key_insights: str = ""
    progress: str = ""
    homework: str = ""


class EndSessionResponse(BaseModel):
    """Response for an ended session."""

    session_id: str
    summary: SessionSummarySchema
    closing_message: str
    metrics: SessionMetrics
    phase: TherapyPhase
    is_completed: bool
    end_time: datetime
    degraded: bool = False


# ============ STATUS SCHEMAS ============


class SessionStatusResponse(BaseModel):
    """Session progress."""

    session_id: str
    profile_id: str
    session_number: int
    continuity_status: ContinuityStatus
    phase: TherapyPhase
    phase_turn_count: int
    user_turn_count: int
    transcript_length: int
    is_completed: bool
    start_time: datetime
    end_time: Optional[datetime] = None
