"""
Flow state machine for a single therapy session.

Holds the current TherapyPhase and moves it strictly along the transition
table. It knows nothing about content, persistence or the language model.

One machine instance belongs to one in-flight session. The orchestrator
rebuilds it from the stored phase metadata on every call (see
``FlowStateMachine.restore``), so no instance is ever shared between
sessions or outlives the operation that created it.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

import structlog

from src.core.exceptions import InvalidTransitionError
from src.domain.models.phase import (
    INITIAL_PHASE,
    PHASE_TRANSITIONS,
    TERMINAL_PHASE,
    TherapyPhase,
)
from src.domain.models.session import ContinuityStatus, TherapySession
from src.domain.models.therapy_method import TherapyMethod

log = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SessionMeta:
    """Session metadata recorded on the flow state at init."""

    session_id: str
    profile_id: str
    therapy_method: TherapyMethod
    session_number: int
    continuity_status: ContinuityStatus
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_session(cls, session: TherapySession) -> "SessionMeta":
        return cls(
            session_id=session.id,
            profile_id=session.profile_id,
            therapy_method=session.therapy_method,
            session_number=session.session_number,
            continuity_status=session.continuity_status,
            started_at=session.start_time,
        )


@dataclass
class SessionFlowState:
    """Live, session-scoped state of the flow.

    ``phase_scratch`` holds transient per-phase working data and is cleared
    on every successful transition.
    """

    session_id: str
    profile_id: str
    therapy_method: TherapyMethod
    session_number: int
    continuity_status: ContinuityStatus
    started_at: datetime
    current_phase: TherapyPhase = INITIAL_PHASE
    phase_scratch: Dict[str, Any] = field(default_factory=dict)


class FlowStateMachine:
    """Moves a session through the fixed therapy flow."""

    def __init__(
        self,
        transitions: Optional[Mapping[TherapyPhase, Tuple[TherapyPhase, ...]]] = None,
    ):
        self.transitions = transitions if transitions is not None else PHASE_TRANSITIONS
        self._state: Optional[SessionFlowState] = None

    @classmethod
    def restore(cls, meta: SessionMeta, phase: TherapyPhase) -> "FlowStateMachine":
        """Rebuild a machine for an existing session at its stored phase."""
        machine = cls()
        machine.init(meta)
        machine._state.current_phase = phase  # type: ignore[union-attr]
        return machine

    @property
    def state(self) -> SessionFlowState:
        if self._state is None:
            raise RuntimeError("State machine not initialized")
        return self._state

    @property
    def current_phase(self) -> TherapyPhase:
        return self.state.current_phase

    def init(self, meta: SessionMeta) -> SessionFlowState:
        """Start the flow at the initial phase with empty scratch data."""
        self._state = SessionFlowState(
            session_id=meta.session_id,
            profile_id=meta.profile_id,
            therapy_method=meta.therapy_method,
            session_number=meta.session_number,
            continuity_status=meta.continuity_status,
            started_at=meta.started_at,
        )
        return self._state

    def transition(
        self, target: Optional[TherapyPhase] = None
    ) -> Tuple[TherapyPhase, SessionFlowState]:
        """
        Move to ``target``, or to the first listed successor if omitted.

        At the terminal phase this is a no-op, with or without a target.

        Args:
            target: Phase to move to; must be a listed successor

        Returns:
            (new phase, state)

        Raises:
            InvalidTransitionError: If target is not reachable in one step.
                State is left unchanged.
        """
        state = self.state
        allowed = self.transitions.get(state.current_phase, ())

        if not allowed:
            return state.current_phase, state

        if target is not None and target not in allowed:
            raise InvalidTransitionError(state.current_phase.value, target.value)

        new_phase = target if target is not None else allowed[0]
        previous = state.current_phase

        state.current_phase = new_phase
        state.phase_scratch = {}

        log.debug(
            "phase_transition",
            session_id=state.session_id,
            from_phase=previous.value,
            to_phase=new_phase.value,
        )

        return new_phase, state

    def force_state(self, target: TherapyPhase) -> Tuple[TherapyPhase, SessionFlowState]:
        """
        Set the phase to ``target`` regardless of the transition table.

        Reserved for closing a session, which must reach summarize and then
        end from whatever phase the conversation was in. Clears scratch
        like any other phase change.
        """
        state = self.state
        previous = state.current_phase
        state.current_phase = target
        state.phase_scratch = {}

        if target != previous and target not in self.transitions.get(previous, ()):
            log.info(
                "phase_forced",
                session_id=state.session_id,
                from_phase=previous.value,
                to_phase=target.value,
            )

        return state.current_phase, state

    def next_phase(self) -> Optional[TherapyPhase]:
        """The forward successor of the current phase, skipping self-loops."""
        return self._forward(self.state.current_phase)

    def update_scratch(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Merge ``data`` into the phase scratch (last write wins per key)."""
        self.state.phase_scratch.update(data)
        return self.state.phase_scratch

    def is_terminal(self) -> bool:
        return self.state.current_phase == TERMINAL_PHASE

    def _forward(self, phase: TherapyPhase) -> Optional[TherapyPhase]:
        for successor in self.transitions.get(phase, ()):
            if successor != phase:
                return successor
        return None
