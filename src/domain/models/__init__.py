"""Domain models package."""

from .phase import TherapyPhase, PHASE_TRANSITIONS, INITIAL_PHASE, TERMINAL_PHASE
from .therapy_method import TherapyMethod
from .profile import Profile, Goal, GoalStatus, Challenge, EmotionalState, TherapyProgress
from .message import ConversationMessage, MessageRole
from .session import (
    TherapySession,
    SessionSummary,
    SessionMetrics,
    ContinuityStatus,
)
from .context import SessionContext, SessionInfo, PreviousSessionSummary

__all__ = [
    "TherapyPhase",
    "PHASE_TRANSITIONS",
    "INITIAL_PHASE",
    "TERMINAL_PHASE",
    "TherapyMethod",
    "Profile",
    "Goal",
    "GoalStatus",
    "Challenge",
    "EmotionalState",
    "TherapyProgress",
    "ConversationMessage",
    "MessageRole",
    "TherapySession",
    "SessionSummary",
    "SessionMetrics",
    "ContinuityStatus",
    "SessionContext",
    "SessionInfo",
    "PreviousSessionSummary",
]
