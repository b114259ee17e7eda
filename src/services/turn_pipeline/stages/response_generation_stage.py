"""
Stage 3: Generate the therapist reply.

Calls the session's provider. A ProviderError (including timeouts) never
fails the turn: it is logged and the configured fallback reply is used,
marking the turn as degraded.
"""

from typing import TYPE_CHECKING, Optional

import structlog

from ..base import TurnStage
from src.core.config import SamplingConfig, settings
from src.core.exceptions import ProviderError
from src.domain.models.pipeline_contracts import ResponseGenerationOutput
from src.llm.client import CompletionOptions, LLMProviderRegistry

log = structlog.get_logger(__name__)

if TYPE_CHECKING:
    from ..context import PipelineContext


class ResponseGenerationStage(TurnStage):
    """Call the language model, degrading to the fallback reply on failure."""

    def __init__(
        self,
        llm: LLMProviderRegistry,
        sampling: SamplingConfig,
        fallback_reply: str,
        default_provider: Optional[str] = None,
    ):
        self.llm = llm
        self.sampling = sampling
        self.fallback_reply = fallback_reply
        self.default_provider = default_provider or settings.llm_default_provider

    async def process(self, context: "PipelineContext") -> "PipelineContext":
        assembled = context.context_assembly_output
        if assembled is None:
            raise RuntimeError(
                "Pipeline contract violation: ResponseGenerationStage (Stage 3) requires "
                "ContextAssemblyStage (Stage 2) to complete first."
            )

        session = context.session
        provider = session.llm_provider or self.default_provider

        try:
            response = await self.llm.complete(
                provider,
                session.llm_model,
                assembled.messages,
                CompletionOptions(
                    temperature=self.sampling.temperature,
                    max_tokens=self.sampling.max_tokens,
                ),
            )
        except ProviderError as e:
            log.warning(
                "llm_call_failed",
                session_id=session.id,
                provider=provider,
                model=session.llm_model,
                phase=context.phase.value,
                error_type=type(e).__name__,
                error=e.message,
            )
            context.response_generation_output = ResponseGenerationOutput(
                raw_reply=self.fallback_reply,
                provider=provider,
                model=session.llm_model,
                degraded=True,
            )
            return context

        context.response_generation_output = ResponseGenerationOutput(
            raw_reply=response.content,
            provider=provider,
            model=response.model,
            latency_ms=response.latency_ms,
        )
        return context
