"""
Execution State Machine Tests
-----------------------------
Tests for the per-execution lifecycle.
"""

import pytest
from pathlib import Path
import sys

sys.path.insert(0, str(Path(__file__).parent.parent))

from core.models import ExecutionState
from core.state_machine import TERMINAL_STATES, ExecutionStateMachine


class TestTransitions:

    def test_initial_state(self):
        machine = ExecutionStateMachine("file-read")

        assert machine.state == ExecutionState.PENDING
        assert machine.history == []
        assert not machine.is_terminal

    def test_happy_path(self):
        machine = ExecutionStateMachine("file-read")
        for state in (
            ExecutionState.VALIDATING,
            ExecutionState.AUTHORIZED,
            ExecutionState.EXECUTING,
            ExecutionState.SUCCEEDED,
        ):
            machine.transition(state)

        assert machine.is_terminal
        assert [t.to_state for t in machine.history][-1] == ExecutionState.SUCCEEDED
        assert len(machine.history) == 4

    def test_rejection(self):
        machine = ExecutionStateMachine("file-read")
        machine.transition(ExecutionState.VALIDATING)
        transition = machine.transition(ExecutionState.REJECTED, "PATH_NOT_ALLOWED")

        assert transition.reason == "PATH_NOT_ALLOWED"
        assert machine.is_terminal

    def test_cannot_skip_validation(self):
        """Nothing executes without passing through validation."""
        machine = ExecutionStateMachine("file-read")

        assert not machine.can_transition(ExecutionState.EXECUTING)
        with pytest.raises(ValueError, match="Invalid transition"):
            machine.transition(ExecutionState.EXECUTING)

    def test_terminal_states_are_final(self):
        for terminal in TERMINAL_STATES:
            machine = ExecutionStateMachine("x")
            machine._state = terminal

            for state in ExecutionState:
                assert not machine.can_transition(state)

    def test_terminal_set(self):
        assert TERMINAL_STATES == {
            ExecutionState.REJECTED,
            ExecutionState.SUCCEEDED,
            ExecutionState.FAILED,
            ExecutionState.TIMED_OUT,
        }
