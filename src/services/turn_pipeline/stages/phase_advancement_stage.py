"""
Stage 4: Decide phase advancement.

Asks the advancement policy whether the turn completes the current phase.
Advancing follows the forward edge of the transition table; otherwise a
self-looping phase loops and the per-phase user turn count grows. Degraded
turns never advance and do not count.
"""

from typing import TYPE_CHECKING

import structlog

from ..base import TurnStage
from src.domain.models.pipeline_contracts import PhaseAdvancementOutput
from src.services.advancement_policy import AdvancementPolicy, TurnEvaluation

log = structlog.get_logger(__name__)

if TYPE_CHECKING:
    from ..context import PipelineContext


class PhaseAdvancementStage(TurnStage):
    """Apply the advancement policy to the restored flow state."""

    def __init__(self, policy: AdvancementPolicy):
        self.policy = policy

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        generated = context.response_generation_output
        if generated is None or context.flow is None:
            raise RuntimeError(
                "Pipeline contract violation: PhaseAdvancementStage (Stage 4) requires "
                "ContextLoadingStage and ResponseGenerationStage to complete first."
            )

        session = context.session
        flow = context.flow
        previous_phase = flow.current_phase

        if generated.degraded:
            context.phase_advancement_output = PhaseAdvancementOutput(
                reply=generated.raw_reply,
                previous_phase=previous_phase,
                phase=previous_phase,
                advanced=False,
                phase_turn_count=session.phase_turn_count,
            )
            return context

        phase_user_turns = session.phase_turn_count + 1
        should_advance = await self.policy.should_advance(
            TurnEvaluation(
                phase=previous_phase,
                phase_user_turns=phase_user_turns,
                user_message=context.user_input,
                reply=generated.raw_reply,
            )
        )

        forward = flow.next_phase()
        advanced = False
        if should_advance and forward is not None:
            flow.transition(forward)
            advanced = True
            phase_user_turns = 0
        elif previous_phase in flow.transitions.get(previous_phase, ()):
            flow.transition(previous_phase)

        context.phase_advancement_output = PhaseAdvancementOutput(
            reply=self.policy.prepare_reply(generated.raw_reply),
            previous_phase=previous_phase,
            phase=flow.current_phase,
            advanced=advanced,
            phase_turn_count=phase_user_turns,
        )

        if advanced:
            log.info(
                "phase_advanced",
                session_id=session.id,
                from_phase=previous_phase.value,
                to_phase=flow.current_phase.value,
                policy=self.policy.name,
            )

        return context
