"""
Stage 2: Assemble the prompt context.

Builds the SessionContext from the loaded records with the pending user
message appended, then renders the provider message list.
"""

from typing import TYPE_CHECKING

from ..base import TurnStage
from src.domain.models.pipeline_contracts import ContextAssemblyOutput
from src.services.advancement_policy import AdvancementPolicy
from src.services.context_assembler import ContextAssembler

if TYPE_CHECKING:
    from ..context import PipelineContext


class ContextAssemblyStage(TurnStage):
    """Build the bounded context window and the messages sent to the model."""

    def __init__(self, assembler: ContextAssembler, policy: AdvancementPolicy):
        self.assembler = assembler
        self.policy = policy

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        loaded = context.context_loading_output
        if loaded is None:
            raise RuntimeError(
                "Pipeline contract violation: ContextAssemblyStage (Stage 2) requires "
                "ContextLoadingStage (Stage 1) to complete first."
            )

        session_context = self.assembler.build_context(
            profile=loaded.profile,
            session=loaded.session,
            prior_sessions=loaded.prior_sessions,
            transcript=[*loaded.transcript, loaded.user_message],
            phase=context.phase,
        )

        hint = self.policy.prompt_hint(context.phase)
        messages = self.assembler.build_messages(
            session_context, extra_instructions=[hint] if hint else None
        )

        context.context_assembly_output = ContextAssemblyOutput(
            session_context=session_context,
            messages=messages,
        )
        return context
