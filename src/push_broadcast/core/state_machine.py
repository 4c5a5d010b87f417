"""Per-request state machine for broadcasts."""

from __future__ import annotations

from typing import Final

from push_broadcast.core.errors import StateTransitionError
from push_broadcast.types.models import BroadcastState

__all__ = ["TERMINAL_STATES", "TRANSITIONS", "BroadcastStateMachine"]

TRANSITIONS: Final[dict[BroadcastState, frozenset[BroadcastState]]] = {
    BroadcastState.RECEIVED: frozenset({BroadcastState.AUTHORIZED, BroadcastState.UNAUTHORIZED}),
    # Argument validation and registry lookups can fail before the audience is known
    BroadcastState.AUTHORIZED: frozenset({BroadcastState.AUDIENCE_RESOLVED, BroadcastState.FAILED}),
    BroadcastState.AUDIENCE_RESOLVED: frozenset({BroadcastState.DISPATCHED, BroadcastState.FAILED}),
    BroadcastState.DISPATCHED: frozenset({BroadcastState.AGGREGATED, BroadcastState.FAILED}),
    BroadcastState.AGGREGATED: frozenset({BroadcastState.COMPLETE, BroadcastState.FAILED}),
    BroadcastState.COMPLETE: frozenset(),
    BroadcastState.UNAUTHORIZED: frozenset(),
    BroadcastState.FAILED: frozenset(),
}

TERMINAL_STATES: Final[frozenset[BroadcastState]] = frozenset(
    state for state, targets in TRANSITIONS.items() if not targets
)


class BroadcastStateMachine:
    """Tracks the lifecycle of one broadcast and rejects illegal moves."""

    def __init__(self) -> None:
        self._state: BroadcastState = BroadcastState.RECEIVED
        self._history: list[BroadcastState] = [BroadcastState.RECEIVED]

    @property
    def state(self) -> BroadcastState:
        return self._state

    @property
    def history(self) -> tuple[BroadcastState, ...]:
        return tuple(self._history)

    @property
    def is_terminal(self) -> bool:
        return self._state in TERMINAL_STATES

    def can_transition(self, target: BroadcastState) -> bool:
        return target in TRANSITIONS[self._state]

    def transition(self, target: BroadcastState) -> None:
        """Move to ``target``.

        Raises:
            StateTransitionError: If ``target`` is not reachable from the
                current state
        """
        if not self.can_transition(target):
            msg = f"Invalid broadcast transition {self._state.name} -> {target.name}"
            raise StateTransitionError(msg)
        self._state = target
        self._history.append(target)

    def fail(self) -> None:
        """Move to FAILED unless the request already ended."""
        if not self.is_terminal:
            self.transition(BroadcastState.FAILED)
