"""Lifecycle of one generation run (one document, one embedding type)."""

from enum import Enum
from typing import Dict, FrozenSet, List

import structlog

from ..errors import InvalidStateTransitionError

logger = structlog.get_logger("pipeline.state")


class RunState(str, Enum):
    NOT_STARTED = "not_started"
    BUDGET_CHECKED = "budget_checked"
    DIRECT_GENERATING = "direct_generating"
    PARTS_GENERATING = "parts_generating"
    AGGREGATING = "aggregating"
    PERSISTED = "persisted"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STATES: FrozenSet[RunState] = frozenset({
    RunState.PERSISTED,
    RunState.SKIPPED,
    RunState.FAILED,
})

TRANSITIONS: Dict[RunState, FrozenSet[RunState]] = {
    # disabled, unchanged fingerprint or missing content end a run early
    RunState.NOT_STARTED: frozenset({RunState.BUDGET_CHECKED, RunState.SKIPPED, RunState.FAILED}),
    RunState.BUDGET_CHECKED: frozenset({
        RunState.DIRECT_GENERATING,
        RunState.PARTS_GENERATING,
        RunState.SKIPPED,
        RunState.FAILED,
    }),
    RunState.DIRECT_GENERATING: TERMINAL_STATES,
    RunState.PARTS_GENERATING: frozenset({RunState.AGGREGATING, RunState.SKIPPED, RunState.FAILED}),
    RunState.AGGREGATING: TERMINAL_STATES,
    RunState.PERSISTED: frozenset(),
    RunState.SKIPPED: frozenset(),
    RunState.FAILED: frozenset(),
}


class RunStateMachine:
    """Tracks a run's state and rejects transitions the lifecycle does not allow."""

    def __init__(self, document_id: str, embedding_type: str):
        self.document_id = document_id
        self.embedding_type = embedding_type
        self.state = RunState.NOT_STARTED
        self.history: List[RunState] = [RunState.NOT_STARTED]

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: RunState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(
                f"Cannot move from {self.state.value} to {new_state.value}"
            )
        logger.debug(
            "Run state changed",
            document_id=self.document_id,
            type=self.embedding_type,
            from_state=self.state.value,
            to_state=new_state.value,
        )
        self.state = new_state
        self.history.append(new_state)
