"""
Turn processing pipeline context for contract-based state accumulation.

Carries state through all pipeline stages, accumulating one contract output
per stage. Convenience properties read from the contracts and raise
RuntimeError when accessed before the producing stage has run, which keeps
stage ordering mistakes loud.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, TYPE_CHECKING

from src.domain.models.phase import TherapyPhase
from src.domain.models.pipeline_contracts import (
    ContextAssemblyOutput,
    ContextLoadingOutput,
    PhaseAdvancementOutput,
    ResponseGenerationOutput,
    TurnCommitOutput,
)
from src.domain.models.session import TherapySession

if TYPE_CHECKING:
    from src.services.flow_state_machine import FlowStateMachine


@dataclass
class PipelineContext:
    """Pipeline context for one ProcessTurn call.

    Stage outputs (contracts):
    - Stage 1: ContextLoadingOutput - session, profile, prior sessions, transcript
    - Stage 2: ContextAssemblyOutput - SessionContext and provider messages
    - Stage 3: ResponseGenerationOutput - model reply or fallback
    - Stage 4: PhaseAdvancementOutput - cleaned reply and resulting phase
    - Stage 5: TurnCommitOutput - persisted messages
    """

    # =========================================================================
    # Input parameters
    # =========================================================================
    session_id: str
    user_input: str
    received_at: datetime
    # Same clock that produced received_at; stamps the stored reply
    clock: Optional[Callable[[], datetime]] = None

    # Rebuilt from the stored phase by ContextLoadingStage; never shared
    flow: Optional["FlowStateMachine"] = None

    # =========================================================================
    # Stage Outputs (Contracts)
    # =========================================================================
    context_loading_output: Optional[ContextLoadingOutput] = None
    context_assembly_output: Optional[ContextAssemblyOutput] = None
    response_generation_output: Optional[ResponseGenerationOutput] = None
    phase_advancement_output: Optional[PhaseAdvancementOutput] = None
    turn_commit_output: Optional[TurnCommitOutput] = None

    stage_timings: Dict[str, float] = field(default_factory=dict)

    # =========================================================================
    # Convenience Properties
    # =========================================================================

    def reply_time(self) -> datetime:
        """Timestamp for the assistant reply, never earlier than received_at."""
        now = self.clock() if self.clock else datetime.now(timezone.utc)
        return max(now, self.received_at)

    @property
    def session(self) -> TherapySession:
        if self.context_loading_output:
            return self.context_loading_output.session
        raise RuntimeError(
            "Pipeline contract violation: session accessed before "
            f"ContextLoadingStage (Stage 1) completed. Session: {self.session_id}"
        )

    @property
    def phase(self) -> TherapyPhase:
        """Phase driving this turn (the stored phase at turn start)."""
        return self.session.current_phase

    @property
    def degraded(self) -> bool:
        if self.response_generation_output:
            return self.response_generation_output.degraded
        raise RuntimeError(
            "Pipeline contract violation: degraded accessed before "
            f"ResponseGenerationStage (Stage 3) completed. Session: {self.session_id}"
        )
