"""
Phase advancement policies.

After each committed user turn the orchestrator asks the configured policy
whether the session should leave its current phase. Three strategies are
available, selected by ``advancement.strategy`` in session_config.yaml:

- fixed_turn_count: advance once the user has spent N turns in the phase
- model_signaled: the model appends a marker token when the phase goal is met
- external_classifier: an async callable decides (default: a yes/no LLM call)

Policies only decide *whether* to advance. The target is always the forward
successor of the current phase, which the flow state machine resolves.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import structlog

from src.core.config import AdvancementConfig, session_config
from src.core.exceptions import ConfigurationError, ProviderError
from src.domain.models.phase import TherapyPhase
from src.llm.client import CompletionOptions, LLMProviderRegistry
from src.llm.prompts.therapy import (
    get_advance_marker_instruction,
    get_phase_classifier_prompt,
)

log = structlog.get_logger(__name__)

DEFAULT_ACKNOWLEDGEMENT = AdvancementConfig.model_fields[
    "advance_acknowledgement"
].default


@dataclass(frozen=True)
class TurnEvaluation:
    """Inputs to an advancement decision for one completed turn."""

    phase: TherapyPhase
    phase_user_turns: int  # user turns spent in ``phase``, including this one
    user_message: str
    reply: str


class AdvancementPolicy(ABC):
    """Decides whether a completed turn moves the session forward."""

    name: str = "base"

    @abstractmethod
    async def should_advance(self, evaluation: TurnEvaluation) -> bool:
        pass

    def prepare_reply(self, reply: str) -> str:
        """Clean a raw model reply before it is shown or persisted."""
        return reply

    def prompt_hint(self, phase: TherapyPhase) -> Optional[str]:
        """Extra system-prompt instruction for ``phase``, if the policy needs one."""
        return None


class FixedTurnCountPolicy(AdvancementPolicy):
    """Advance after a fixed number of user turns in a phase."""

    name = "fixed_turn_count"

    def __init__(self, default: int = 1, per_phase: Optional[Dict[str, int]] = None):
        if default < 1:
            raise ConfigurationError("turns per phase must be at least 1")
        self.default = default
        self.per_phase = dict(per_phase or {})

    def threshold_for(self, phase: TherapyPhase) -> int:
        return self.per_phase.get(phase.value, self.default)

    async def should_advance(self, evaluation: TurnEvaluation) -> bool:
        return evaluation.phase_user_turns >= self.threshold_for(evaluation.phase)


class ModelSignaledPolicy(AdvancementPolicy):
    """Advance when the model's reply carries the advance marker."""

    name = "model_signaled"

    def __init__(self, marker: str, acknowledgement: str = DEFAULT_ACKNOWLEDGEMENT):
        if not marker:
            raise ConfigurationError("advance_marker must not be empty")
        if not acknowledgement.strip():
            raise ConfigurationError("advance_acknowledgement must not be empty")
        self.marker = marker
        self.acknowledgement = acknowledgement

    async def should_advance(self, evaluation: TurnEvaluation) -> bool:
        # Evaluated on the raw reply, before prepare_reply strips the marker
        return self.marker in evaluation.reply

    def prepare_reply(self, reply: str) -> str:
        # A bare marker still advances; the client sees the acknowledgement
        return reply.replace(self.marker, "").strip() or self.acknowledgement

    def prompt_hint(self, phase: TherapyPhase) -> Optional[str]:
        return get_advance_marker_instruction(self.marker)


PhaseClassifier = Callable[[TurnEvaluation], Awaitable[bool]]


class ExternalClassifierPolicy(AdvancementPolicy):
    """Delegate the decision to an async classifier.

    A classifier failure of any kind is logged and treated as "stay".
    """

    name = "external_classifier"

    def __init__(self, classifier: PhaseClassifier):
        self.classifier = classifier

    async def should_advance(self, evaluation: TurnEvaluation) -> bool:
        try:
            return bool(await self.classifier(evaluation))
        except Exception as e:
            log.warning(
                "phase_classifier_failed",
                phase=evaluation.phase.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            return False


class LLMPhaseClassifier:
    """Asks the language model whether the phase goal has been met."""

    def __init__(
        self,
        llm: LLMProviderRegistry,
        provider_id: str,
        model_id: Optional[str] = None,
    ):
        self.llm = llm
        self.provider_id = provider_id
        self.model_id = model_id

    async def __call__(self, evaluation: TurnEvaluation) -> bool:
        prompt = get_phase_classifier_prompt(
            evaluation.phase, evaluation.user_message, evaluation.reply
        )
        try:
            response = await self.llm.complete(
                self.provider_id,
                self.model_id,
                [{"role": "user", "content": prompt}],
                CompletionOptions(temperature=0.0, max_tokens=5),
            )
        except ProviderError as e:
            log.warning(
                "phase_classifier_provider_error",
                provider=self.provider_id,
                error_type=type(e).__name__,
            )
            return False

        answer = response.content.strip().upper()
        return answer.startswith("YES")


def build_advancement_policy(
    config: Optional[AdvancementConfig] = None,
    llm: Optional[LLMProviderRegistry] = None,
    provider_id: Optional[str] = None,
) -> AdvancementPolicy:
    """
    Create the policy named by ``config.strategy``.

    Args:
        config: Advancement config (defaults from session_config.yaml)
        llm: Provider registry, required for external_classifier
        provider_id: Provider the default classifier calls

    Raises:
        ConfigurationError: If the strategy cannot be built
    """
    config = config or session_config.advancement

    if config.strategy == "fixed_turn_count":
        policy: AdvancementPolicy = FixedTurnCountPolicy(
            default=config.default_turns_per_phase,
            per_phase=config.turns_per_phase,
        )
    elif config.strategy == "model_signaled":
        policy = ModelSignaledPolicy(
            config.advance_marker, config.advance_acknowledgement
        )
    elif config.strategy == "external_classifier":
        if llm is None or provider_id is None:
            raise ConfigurationError(
                "external_classifier strategy requires an LLM registry and provider"
            )
        policy = ExternalClassifierPolicy(LLMPhaseClassifier(llm, provider_id))
    else:
        raise ConfigurationError(f"Unknown advancement strategy: {config.strategy}")

    log.info("advancement_policy_built", strategy=policy.name)
    return policy
