"""Session lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    NOT_STARTED ──> INITIALIZING ──┬──> READY ──> DISPOSED
         │                         │
         │                         └──> FAILED ──> DISPOSED
         │
         └──> FAILED  (transport could not be constructed)

    NOT_STARTED / INITIALIZING ──> DISPOSED  (disposed before ready)

A crash after READY is not a transition: the crash policy replaces
the whole session object instead.
"""
from __future__ import annotations

from .models import SessionState

VALID_TRANSITIONS: dict[SessionState, set[SessionState]] = {
    SessionState.NOT_STARTED: {
        SessionState.INITIALIZING,
        SessionState.FAILED,
        SessionState.DISPOSED,
    },
    SessionState.INITIALIZING: {
        SessionState.READY,
        SessionState.FAILED,
        SessionState.DISPOSED,
    },
    SessionState.READY: {
        SessionState.DISPOSED,
    },
    SessionState.FAILED: {
        SessionState.DISPOSED,
    },
    SessionState.DISPOSED: set(),
}


def validate_transition(current: SessionState, target: SessionState) -> None:
    """Validate a state transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
        raise ValueError(
            f"Invalid state transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )
