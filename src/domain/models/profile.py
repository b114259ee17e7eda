"""Client profile domain models.

The profile store is read-only from the orchestrator's point of view; these
models describe the fields the context assembler projects into prompts.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from src.domain.models.therapy_method import TherapyMethod


class GoalStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class Goal(BaseModel):
    """A therapeutic goal set for the client."""

    description: str
    priority: str = Field(default="medium")  # low / medium / high
    status: GoalStatus = GoalStatus.ACTIVE
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    completed_at: Optional[datetime] = None


class Challenge(BaseModel):
    """A difficulty the client is working through."""

    description: str
    severity: str = Field(default="medium")  # low / medium / high


class EmotionalState(BaseModel):
    """Self-reported emotional state on 0-10 scales."""

    anxiety: int = Field(default=5, ge=0, le=10)
    depression: int = Field(default=5, ge=0, le=10)
    optimism: int = Field(default=5, ge=0, le=10)


class TherapyProgress(BaseModel):
    """Overall progress across sessions."""

    overall_status: str = Field(
        default="not_started",
        description="not_started, beginning, progressing, improving, maintaining, completed",
    )
    key_insights: List[str] = Field(default_factory=list)
    homework_completion: float = Field(default=0.0, ge=0.0, le=1.0)


class ProfileSettings(BaseModel):
    """Per-profile language-model preferences."""

    preferred_llm_provider: Optional[str] = None
    preferred_model: Optional[str] = None


class Profile(BaseModel):
    """Therapeutic profile for one client."""

    id: str
    name: str
    therapy_method: TherapyMethod = TherapyMethod.COGNITIVE_BEHAVIORAL
    goals: List[Goal] = Field(default_factory=list)
    challenges: List[Challenge] = Field(default_factory=list)
    emotional_state: EmotionalState = Field(default_factory=EmotionalState)
    therapy_progress: TherapyProgress = Field(default_factory=TherapyProgress)
    settings: ProfileSettings = Field(default_factory=ProfileSettings)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def active_goals(self) -> List[str]:
        return [g.description for g in self.goals if g.status == GoalStatus.ACTIVE]

    @property
    def open_challenges(self) -> List[str]:
        return [c.description for c in self.challenges]
