"""
Result object for turn processing pipeline.

Returned by the pipeline after all stages complete.
"""

from dataclasses import dataclass

from src.domain.models.phase import TherapyPhase


@dataclass
class TurnResult:
    """Result of processing a single turn."""

    session_id: str
    reply: str
    phase: TherapyPhase
    previous_phase: TherapyPhase
    advanced: bool
    # True when the provider failed and ``reply`` is the fallback text;
    # nothing was persisted and the user may retry the same message.
    degraded: bool
    phase_turn_count: int
    transcript_length: int
    latency_ms: int = 0
