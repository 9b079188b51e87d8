"""
Execution State Machine
-----------------------
Tracks the lifecycle of a single execution with validated transitions.

    Pending -> Validating -> {Rejected | Authorized} -> Executing
            -> {Succeeded | Failed | TimedOut}

Every transition is logged. Terminal states accept no further transitions.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set
import logging

from core.models import ExecutionState


@dataclass
class StateTransition:
    """Record of a state transition."""
    from_state: ExecutionState
    to_state: ExecutionState
    timestamp: datetime
    reason: str
    metadata: Dict = field(default_factory=dict)

    def __repr__(self) -> str:
        return (
            f"StateTransition({self.from_state.name} → {self.to_state.name}, "
            f"reason='{self.reason}')"
        )


VALID_TRANSITIONS: Dict[ExecutionState, Set[ExecutionState]] = {
    ExecutionState.PENDING: {ExecutionState.VALIDATING},
    ExecutionState.VALIDATING: {ExecutionState.REJECTED, ExecutionState.AUTHORIZED},
    ExecutionState.AUTHORIZED: {ExecutionState.EXECUTING},
    ExecutionState.EXECUTING: {
        ExecutionState.SUCCEEDED,
        ExecutionState.FAILED,
        ExecutionState.TIMED_OUT,
    },
    ExecutionState.REJECTED: set(),
    ExecutionState.SUCCEEDED: set(),
    ExecutionState.FAILED: set(),
    ExecutionState.TIMED_OUT: set(),
}

TERMINAL_STATES: Set[ExecutionState] = {
    state for state, targets in VALID_TRANSITIONS.items() if not targets
}


class ExecutionStateMachine:
    """
    State machine for one execution.

    Owned by a single execute() call; never shared.
    """

    def __init__(self, tool_id: str):
        self.tool_id = tool_id
        self._state = ExecutionState.PENDING
        self._history: List[StateTransition] = []
        self._logger = logging.getLogger("sandbox.core.state")

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def history(self) -> List[StateTransition]:
        return self._history.copy()

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_transition(self, to_state: ExecutionState) -> bool:
        return to_state in VALID_TRANSITIONS.get(self._state, set())

    def transition(
        self,
        to_state: ExecutionState,
        reason: str = "",
        metadata: Optional[Dict] = None
    ) -> StateTransition:
        """
        Move to a new state.

        Raises:
            ValueError: If the transition is not valid
        """
        if not self.can_transition(to_state):
            valid_names = [s.name for s in VALID_TRANSITIONS.get(self._state, set())]
            raise ValueError(
                f"Invalid transition: {self._state.name} → {to_state.name}. "
                f"Valid targets: {valid_names}"
            )

        transition = StateTransition(
            from_state=self._state,
            to_state=to_state,
            timestamp=datetime.now(),
            reason=reason,
            metadata=metadata or {}
        )
        self._state = to_state
        self._history.append(transition)

        self._logger.debug(
            f"{self.tool_id}: {transition.from_state.name} → {to_state.name}"
            + (f" ({reason})" if reason else "")
        )
        return transition
