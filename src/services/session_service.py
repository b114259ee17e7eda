"""
Session orchestration service.

The only component allowed to mutate durable session records. Sequences the
flow state machine, the context assembler, the language-model registry and
the repositories for the three lifecycle operations:

- start_session: create the session record and its opening exchange
- process_turn: one user message through the TurnPipeline
- end_session: summary turn, structured summary, metrics, completion

Flow state is never held between calls: every operation rebuilds it from the
session's stored phase. Operations on one session run under that session's
lock; different sessions proceed independently.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Sequence, Tuple, Union
from uuid import uuid4

import structlog

from src.core.config import SessionFlowConfig, session_config, settings
from src.core.exceptions import (
    ProfileNotFoundError,
    ProviderError,
    SessionCompletedError,
    SessionNotFoundError,
    ValidationError,
)
from src.core.logging import bind_context, unbind_context
from src.domain.models.context import SessionContext
from src.domain.models.message import ConversationMessage, MessageRole
from src.domain.models.phase import TherapyPhase
from src.domain.models.profile import EmotionalState, Profile
from src.domain.models.session import (
    ContinuityStatus,
    SessionMetrics,
    SessionSummary,
    TherapySession,
)
from src.domain.models.therapy_method import TherapyMethod
from src.llm.client import CompletionOptions, LLMProviderRegistry
from src.llm.prompts.therapy import SUMMARY_FORMAT_INSTRUCTIONS
from src.persistence.repositories import (
    MessageRepository,
    ProfileRepository,
    SessionRepository,
)
from src.services.advancement_policy import (
    AdvancementPolicy,
    build_advancement_policy,
)
from src.services.context_assembler import ContextAssembler
from src.services.flow_state_machine import FlowStateMachine, SessionMeta
from src.services.session_locks import SessionLockRegistry
from src.services.summary_extraction import extract_summary
from src.services.turn_pipeline import PipelineContext, TurnPipeline, TurnResult
from src.services.turn_pipeline.stages import (
    ContextAssemblyStage,
    ContextLoadingStage,
    PhaseAdvancementStage,
    ResponseGenerationStage,
    TurnCommitStage,
)

log = structlog.get_logger(__name__)

CONTINUED_WITHIN = timedelta(days=1)
BREAK_AFTER = timedelta(days=7)


# =============================================================================
# Results
# =============================================================================


@dataclass
class SessionHandle:
    """Returned by start_session."""

    session_id: str
    session_number: int
    continuity_status: ContinuityStatus
    phase: TherapyPhase
    opening_message: str
    context: SessionContext
    degraded: bool = False


@dataclass
class EndSessionResult:
    """Returned by end_session."""

    session_id: str
    summary: SessionSummary
    closing_message: str
    metrics: SessionMetrics
    phase: TherapyPhase
    is_completed: bool
    end_time: datetime
    degraded: bool = False


@dataclass
class SessionStatus:
    """Read-only view of a session's progress."""

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
    end_time: Optional[datetime]


# =============================================================================
# Session bookkeeping
# =============================================================================


def compute_session_number(prior_sessions: Sequence[TherapySession]) -> int:
    """A profile with k earlier sessions gets session number k + 1."""
    return len(prior_sessions) + 1


def classify_continuity(
    previous_start: Optional[datetime], now: datetime
) -> ContinuityStatus:
    """
    Relate a new session to the previous one by elapsed time.

    Under one day is ``continued``, over seven days is
    ``resumed_after_break``, anything else (including no previous session)
    is ``new``.
    """
    if previous_start is None:
        return ContinuityStatus.NEW

    elapsed = now - previous_start
    if elapsed < CONTINUED_WITHIN:
        return ContinuityStatus.CONTINUED
    if elapsed > BREAK_AFTER:
        return ContinuityStatus.RESUMED_AFTER_BREAK
    return ContinuityStatus.NEW


def parse_therapy_method(value: Union[str, TherapyMethod]) -> TherapyMethod:
    """Resolve a therapy method id, rejecting unknown ones."""
    try:
        return TherapyMethod(value)
    except ValueError:
        supported = ", ".join(m.value for m in TherapyMethod)
        raise ValidationError(
            f"Unknown therapy method '{value}'. Supported: {supported}"
        ) from None


# =============================================================================
# Service
# =============================================================================


class SessionService:
    """Drives therapy sessions through start, turns and end."""

    def __init__(
        self,
        session_repo: SessionRepository,
        profile_repo: ProfileRepository,
        message_repo: MessageRepository,
        llm: LLMProviderRegistry,
        policy: Optional[AdvancementPolicy] = None,
        config: Optional[SessionFlowConfig] = None,
        assembler: Optional[ContextAssembler] = None,
        locks: Optional[SessionLockRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
        default_provider: Optional[str] = None,
    ):
        """
        Initialize session service with pipeline.

        Args:
            session_repo: Session repository
            profile_repo: Profile repository (read-only use)
            message_repo: Transcript repository
            llm: Language-model provider registry
            policy: Phase advancement policy (built from config if None)
            config: Session flow config (session_config.yaml if None)
            assembler: Context assembler (built from config if None)
            locks: Per-session lock registry (shared across services if given)
            clock: Returns the current UTC time
            default_provider: Provider when a profile has no usable preference
        """
        self.session_repo = session_repo
        self.profile_repo = profile_repo
        self.message_repo = message_repo
        self.llm = llm
        self.config = config or session_config
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.default_provider = default_provider or settings.llm_default_provider
        self.assembler = assembler or ContextAssembler(
            self.config.context, clock=self.clock
        )
        self.policy = policy or build_advancement_policy(
            self.config.advancement, llm=llm, provider_id=self.default_provider
        )
        self.locks = locks or SessionLockRegistry()

        self.pipeline = self._build_pipeline()

        log.info(
            "session_service_initialized",
            policy=self.policy.name,
            default_provider=self.default_provider,
            pipeline_stages=len(self.pipeline.stages),
        )

    def _build_pipeline(self) -> TurnPipeline:
        return TurnPipeline(
            stages=[
                ContextLoadingStage(
                    session_repo=self.session_repo,
                    profile_repo=self.profile_repo,
                    message_repo=self.message_repo,
                ),
                ContextAssemblyStage(assembler=self.assembler, policy=self.policy),
                ResponseGenerationStage(
                    llm=self.llm,
                    sampling=self.config.llm.turn,
                    fallback_reply=self.config.fallback_reply,
                    default_provider=self.default_provider,
                ),
                PhaseAdvancementStage(policy=self.policy),
                TurnCommitStage(session_repo=self.session_repo),
            ]
        )

    # -------------------------------------------------------------------------
    # StartSession
    # -------------------------------------------------------------------------

    async def start_session(
        self,
        profile_id: str,
        therapy_method: Optional[Union[str, TherapyMethod]] = None,
    ) -> SessionHandle:
        """
        Create a session for a profile and generate the opening message.

        Args:
            profile_id: Client profile
            therapy_method: Method id; the profile's method if omitted

        Returns:
            SessionHandle with id, phase, opening message and the context used

        Raises:
            ProfileNotFoundError: Profile does not exist
            ValidationError: Unknown therapy method
        """
        method = parse_therapy_method(therapy_method) if therapy_method else None

        # Serialize starts per profile so session numbers stay unique
        async with self.locks.hold(f"profile:{profile_id}"):
            profile = await self.profile_repo.get(profile_id)
            if not profile:
                raise ProfileNotFoundError(f"Profile {profile_id} not found")

            now = self.clock()
            prior_sessions = await self.session_repo.list_by_profile(profile_id)
            previous_start = max(
                (s.start_time for s in prior_sessions), default=None
            )
            provider, model = self._resolve_provider(profile)

            session = TherapySession(
                id=str(uuid4()),
                profile_id=profile.id,
                therapy_method=method or profile.therapy_method,
                session_number=compute_session_number(prior_sessions),
                continuity_status=classify_continuity(previous_start, now),
                start_time=now,
                current_phase=TherapyPhase.INITIALIZE,
                llm_provider=provider,
                llm_model=model,
                metrics=SessionMetrics(emotional_state_start=profile.emotional_state),
            )

            bind_context(session_id=session.id)
            try:
                flow = FlowStateMachine()
                flow.init(SessionMeta.from_session(session))

                context = self.assembler.build_context(
                    profile, session, prior_sessions, [], flow.current_phase
                )
                hint = self.policy.prompt_hint(flow.current_phase)
                messages = self.assembler.build_messages(
                    context, extra_instructions=[hint] if hint else None
                )

                reply, degraded = await self._complete(
                    session, messages, self.config.llm.turn.temperature,
                    self.config.llm.turn.max_tokens,
                )
                if not degraded:
                    reply = self.policy.prepare_reply(reply)

                await self.session_repo.create(
                    session,
                    messages=[
                        ConversationMessage(
                            role=MessageRole.SYSTEM,
                            content=messages[0]["content"],
                            timestamp=now,
                        ),
                        ConversationMessage(
                            role=MessageRole.ASSISTANT, content=reply, timestamp=now
                        ),
                    ],
                )

                log.info(
                    "session_started",
                    profile_id=profile.id,
                    session_number=session.session_number,
                    continuity_status=session.continuity_status.value,
                    therapy_method=session.therapy_method.value,
                    provider=provider,
                    degraded=degraded,
                )
            finally:
                unbind_context("session_id")

        return SessionHandle(
            session_id=session.id,
            session_number=session.session_number,
            continuity_status=session.continuity_status,
            phase=flow.current_phase,
            opening_message=reply,
            context=context,
            degraded=degraded,
        )

    # -------------------------------------------------------------------------
    # ProcessTurn
    # -------------------------------------------------------------------------

    async def process_turn(self, session_id: str, user_message: str) -> TurnResult:
        """
        Process one user message.

        Args:
            session_id: Session ID
            user_message: The client's message

        Returns:
            TurnResult with the reply and the resulting phase

        Raises:
            ValidationError: Empty or over-long message
            SessionNotFoundError: Session does not exist
            SessionCompletedError: Session already ended
            ProfileNotFoundError: Session's profile does not exist
        """
        text = self._validate_message(user_message)

        async with self.locks.hold(session_id):
            bind_context(session_id=session_id)
            try:
                log.info("processing_turn", input_length=len(text))

                result = await self.pipeline.execute(
                    PipelineContext(
                        session_id=session_id,
                        user_input=text,
                        received_at=self.clock(),
                        clock=self.clock,
                    )
                )

                log.info(
                    "turn_processed",
                    phase=result.phase.value,
                    advanced=result.advanced,
                    degraded=result.degraded,
                    phase_turn_count=result.phase_turn_count,
                    latency_ms=result.latency_ms,
                )
                return result
            finally:
                unbind_context("session_id")

    # -------------------------------------------------------------------------
    # EndSession
    # -------------------------------------------------------------------------

    async def end_session(
        self,
        session_id: str,
        emotional_state_end: Optional[EmotionalState] = None,
        effectiveness_rating: Optional[int] = None,
    ) -> EndSessionResult:
        """
        Close a session with a summary turn.

        Args:
            session_id: Session ID
            emotional_state_end: Client's state after the session (defaults to
                the state recorded at start)
            effectiveness_rating: Session rating 1-10

        Returns:
            EndSessionResult with the extracted summary and final phase

        Raises:
            ValidationError: Rating outside 1-10
            SessionNotFoundError: Session does not exist
            SessionCompletedError: Session already ended
            ProfileNotFoundError: Session's profile does not exist
        """
        if effectiveness_rating is not None and not 1 <= effectiveness_rating <= 10:
            raise ValidationError("effectiveness_rating must be between 1 and 10")

        async with self.locks.hold(session_id):
            bind_context(session_id=session_id)
            try:
                return await self._end_session_locked(
                    session_id, emotional_state_end, effectiveness_rating
                )
            finally:
                unbind_context("session_id")

    async def _end_session_locked(
        self,
        session_id: str,
        emotional_state_end: Optional[EmotionalState],
        effectiveness_rating: Optional[int],
    ) -> EndSessionResult:
        session, profile = await self._load_open_session(session_id)

        flow = FlowStateMachine.restore(
            SessionMeta.from_session(session), session.current_phase
        )
        flow.force_state(TherapyPhase.SUMMARIZE)

        prior_sessions = [
            s
            for s in await self.session_repo.list_by_profile(profile.id)
            if s.id != session.id
        ]
        transcript = await self.message_repo.list_for_session(session.id)

        context = self.assembler.build_context(
            profile, session, prior_sessions, transcript, flow.current_phase
        )
        messages = self.assembler.build_messages(
            context, extra_instructions=[SUMMARY_FORMAT_INSTRUCTIONS]
        )

        reply, degraded = await self._complete(
            session,
            messages,
            self.config.llm.summary.temperature,
            self.config.llm.summary.max_tokens,
        )

        if degraded:
            summary = SessionSummary()
            closing_message = reply
        else:
            extracted = extract_summary(reply)
            summary = extracted.summary
            closing_message = extracted.display_text
            if not extracted.tagged:
                log.warning("summary_tags_missing", reply_length=len(reply))

        start_state = session.metrics.emotional_state_start
        metrics = SessionMetrics(
            emotional_state_start=start_state,
            emotional_state_end=emotional_state_end or start_state,
            effectiveness_rating=effectiveness_rating,
        )
        end_time = self.clock()

        ended = await self.session_repo.end_session(
            session.id,
            summary=summary,
            metrics=metrics,
            end_time=end_time,
            messages=[
                ConversationMessage(
                    role=MessageRole.ASSISTANT,
                    content=closing_message,
                    timestamp=end_time,
                )
            ],
        )
        flow.force_state(TherapyPhase.END)

        log.info(
            "session_ended",
            from_phase=session.current_phase.value,
            topic_count=len(summary.main_topics),
            effectiveness_rating=effectiveness_rating,
            degraded=degraded,
        )

        return EndSessionResult(
            session_id=ended.id,
            summary=summary,
            closing_message=closing_message,
            metrics=metrics,
            phase=flow.current_phase,
            is_completed=ended.is_completed,
            end_time=ended.end_time or end_time,
            degraded=degraded,
        )

    # -------------------------------------------------------------------------
    # GetSessionStatus
    # -------------------------------------------------------------------------

    async def get_status(self, session_id: str) -> SessionStatus:
        """Current phase, turn counts and completion of a session."""
        session = await self.session_repo.get(session_id)
        if not session:
            raise SessionNotFoundError(f"Session {session_id} not found")

        transcript = await self.message_repo.list_for_session(session_id)
        return SessionStatus(
            session_id=session.id,
            profile_id=session.profile_id,
            session_number=session.session_number,
            continuity_status=session.continuity_status,
            phase=session.current_phase,
            phase_turn_count=session.phase_turn_count,
            user_turn_count=sum(1 for m in transcript if m.role == MessageRole.USER),
            transcript_length=len(transcript),
            is_completed=session.is_completed,
            start_time=session.start_time,
            end_time=session.end_time,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _load_open_session(
        self, session_id: str
    ) -> Tuple[TherapySession, Profile]:
        session = await self.session_repo.get(session_id)
        if not session:
            raise SessionNotFoundError(f"Session {session_id} not found")
        if session.is_completed:
            raise SessionCompletedError(f"Session {session_id} is already completed")

        profile = await self.profile_repo.get(session.profile_id)
        if not profile:
            raise ProfileNotFoundError(f"Profile {session.profile_id} not found")
        return session, profile

    def _resolve_provider(self, profile: Profile) -> Tuple[str, Optional[str]]:
        """Profile's preferred provider if registered, else the default."""
        preferred = profile.settings.preferred_llm_provider
        if preferred and self.llm.has(preferred):
            return preferred.lower(), profile.settings.preferred_model
        if preferred:
            log.warning(
                "preferred_provider_unavailable",
                profile_id=profile.id,
                preferred=preferred,
                fallback=self.default_provider,
            )
        return self.default_provider, None

    async def _complete(
        self,
        session: TherapySession,
        messages: List[dict],
        temperature: float,
        max_tokens: int,
    ) -> Tuple[str, bool]:
        """Call the session's provider; (fallback reply, True) on ProviderError."""
        provider = session.llm_provider or self.default_provider
        try:
            response = await self.llm.complete(
                provider,
                session.llm_model,
                messages,
                CompletionOptions(temperature=temperature, max_tokens=max_tokens),
            )
        except ProviderError as e:
            log.warning(
                "llm_call_failed",
                provider=provider,
                model=session.llm_model,
                error_type=type(e).__name__,
                error=e.message,
            )
            return self.config.fallback_reply, True
        return response.content, False

    def _validate_message(self, user_message: str) -> str:
        if user_message is None or not user_message.strip():
            raise ValidationError("Message must not be empty")
        if len(user_message) > settings.max_message_length:
            raise ValidationError(
                f"Message exceeds {settings.max_message_length} characters"
            )
        return user_message.strip()
