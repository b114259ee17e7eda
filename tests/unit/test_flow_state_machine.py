"""Tests for the flow state machine."""

import pytest
from datetime import datetime, timezone

from src.core.exceptions import InvalidTransitionError
from src.domain.models.phase import PHASE_TRANSITIONS, TherapyPhase
from src.domain.models.session import ContinuityStatus
from src.domain.models.therapy_method import TherapyMethod
from src.services.flow_state_machine import FlowStateMachine, SessionMeta


@pytest.fixture
def meta():
    return SessionMeta(
        session_id="s-1",
        profile_id="p-1",
        therapy_method=TherapyMethod.HUMANISTIC,
        session_number=3,
        continuity_status=ContinuityStatus.CONTINUED,
        started_at=datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc),
    )


def machine_at(meta, phase):
    return FlowStateMachine.restore(meta, phase)


class TestInit:
    def test_init_starts_at_initialize(self, meta):
        machine = FlowStateMachine()
        state = machine.init(meta)

        assert state.current_phase == TherapyPhase.INITIALIZE
        assert state.phase_scratch == {}
        assert state.session_id == "s-1"
        assert state.session_number == 3
        assert state.continuity_status == ContinuityStatus.CONTINUED

    def test_state_before_init_raises(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            FlowStateMachine().state

    def test_restore_uses_stored_phase(self, meta):
        machine = machine_at(meta, TherapyPhase.MAIN_THERAPY)
        assert machine.current_phase == TherapyPhase.MAIN_THERAPY
        assert machine.state.profile_id == "p-1"


class TestTransitionLegality:
    """transition(t) from p succeeds iff t is a listed successor of p."""

    @pytest.mark.parametrize("source", list(TherapyPhase))
    @pytest.mark.parametrize("target", list(TherapyPhase))
    def test_every_phase_pair(self, meta, source, target):
        machine = machine_at(meta, source)
        allowed = PHASE_TRANSITIONS[source]

        if not allowed:
            phase, _ = machine.transition(target)
            assert phase == source
        elif target in allowed:
            phase, state = machine.transition(target)
            assert phase == target
            assert state.current_phase == target
        else:
            with pytest.raises(InvalidTransitionError) as exc_info:
                machine.transition(target)
            assert machine.current_phase == source
            assert exc_info.value.from_phase == source.value
            assert exc_info.value.to_phase == target.value

    def test_invalid_transition_keeps_scratch(self, meta):
        machine = machine_at(meta, TherapyPhase.MOOD_CHECK)
        machine.update_scratch({"mood": 4})

        with pytest.raises(InvalidTransitionError):
            machine.transition(TherapyPhase.END)

        assert machine.state.phase_scratch == {"mood": 4}

    def test_default_takes_first_successor(self, meta):
        machine = FlowStateMachine()
        machine.init(meta)

        visited = [machine.current_phase]
        for _ in range(3):
            phase, _ = machine.transition()
            visited.append(phase)

        assert visited == [
            TherapyPhase.INITIALIZE,
            TherapyPhase.MOOD_CHECK,
            TherapyPhase.SET_AGENDA,
            TherapyPhase.MAIN_THERAPY,
        ]

    def test_main_therapy_default_is_self_loop(self, meta):
        machine = machine_at(meta, TherapyPhase.MAIN_THERAPY)
        phase, _ = machine.transition()
        assert phase == TherapyPhase.MAIN_THERAPY

    def test_main_therapy_may_move_to_summarize(self, meta):
        machine = machine_at(meta, TherapyPhase.MAIN_THERAPY)
        phase, _ = machine.transition(TherapyPhase.SUMMARIZE)
        assert phase == TherapyPhase.SUMMARIZE


class TestTerminalAbsorption:
    def test_end_is_terminal(self, meta):
        assert machine_at(meta, TherapyPhase.END).is_terminal()
        assert not machine_at(meta, TherapyPhase.FEEDBACK).is_terminal()

    @pytest.mark.parametrize("target", [None, *TherapyPhase])
    def test_transition_at_end_is_noop(self, meta, target):
        machine = machine_at(meta, TherapyPhase.END)
        machine.update_scratch({"kept": True})

        phase, state = machine.transition(target)

        assert phase == TherapyPhase.END
        assert state.phase_scratch == {"kept": True}


class TestScratch:
    def test_update_scratch_last_write_wins(self, meta):
        machine = machine_at(meta, TherapyPhase.SET_AGENDA)
        machine.update_scratch({"a": 1, "b": 2})
        scratch = machine.update_scratch({"b": 3})
        assert scratch == {"a": 1, "b": 3}

    def test_transition_clears_scratch(self, meta):
        machine = machine_at(meta, TherapyPhase.SET_AGENDA)
        machine.update_scratch({"topics": ["sleep"]})

        _, state = machine.transition()

        assert state.phase_scratch == {}

    def test_self_loop_clears_scratch(self, meta):
        machine = machine_at(meta, TherapyPhase.MAIN_THERAPY)
        machine.update_scratch({"x": 1})
        _, state = machine.transition(TherapyPhase.MAIN_THERAPY)
        assert state.phase_scratch == {}


class TestForceAndForward:
    @pytest.mark.parametrize("source", list(TherapyPhase))
    def test_force_state_reaches_summarize_from_anywhere(self, meta, source):
        machine = machine_at(meta, source)
        machine.update_scratch({"x": 1})

        phase, state = machine.force_state(TherapyPhase.SUMMARIZE)

        assert phase == TherapyPhase.SUMMARIZE
        assert state.phase_scratch == {}

    def test_next_phase_skips_self_loop(self, meta):
        assert machine_at(meta, TherapyPhase.MAIN_THERAPY).next_phase() == (
            TherapyPhase.SUMMARIZE
        )
        assert machine_at(meta, TherapyPhase.INITIALIZE).next_phase() == (
            TherapyPhase.MOOD_CHECK
        )
        assert machine_at(meta, TherapyPhase.END).next_phase() is None

    def test_machines_are_independent(self, meta):
        a = machine_at(meta, TherapyPhase.INITIALIZE)
        b = machine_at(meta, TherapyPhase.INITIALIZE)

        a.transition()

        assert a.current_phase == TherapyPhase.MOOD_CHECK
        assert b.current_phase == TherapyPhase.INITIALIZE
