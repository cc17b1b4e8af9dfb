"""Schedule state machine — closed set of states and the allowed transitions."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ScheduleState(str, Enum):
    """Possible states of a :class:`~undone.scheduling.Schedule`."""

    IDLE = "IDLE"
    CALLING = "CALLING"
    FLUSHING = "FLUSHING"
    REDOING = "REDOING"
    UNDOING = "UNDOING"
    SEEKING = "SEEKING"
    ERRORED = "ERRORED"


_BUSY_EXITS = frozenset(
    {ScheduleState.FLUSHING, ScheduleState.IDLE, ScheduleState.ERRORED}
)

TRANSITIONS: dict[ScheduleState, frozenset[ScheduleState]] = {
    ScheduleState.IDLE: frozenset(
        {
            ScheduleState.CALLING,
            ScheduleState.REDOING,
            ScheduleState.UNDOING,
            ScheduleState.SEEKING,
            ScheduleState.ERRORED,
        }
    ),
    ScheduleState.CALLING: _BUSY_EXITS,
    ScheduleState.REDOING: _BUSY_EXITS,
    ScheduleState.UNDOING: _BUSY_EXITS,
    ScheduleState.SEEKING: _BUSY_EXITS,
    ScheduleState.FLUSHING: frozenset({ScheduleState.IDLE, ScheduleState.ERRORED}),
    # Only clear() leaves the error state.
    ScheduleState.ERRORED: frozenset({ScheduleState.IDLE}),
}


def can_transition(current: ScheduleState, requested: ScheduleState) -> bool:
    """Return *True* if *current* may move to *requested*.

    Staying in the same state is always allowed and is not a transition.
    """
    return current == requested or requested in TRANSITIONS[current]


class ScheduleSnapshot(BaseModel):
    """Immutable view of a schedule at one instant, suitable for UI binding."""

    model_config = ConfigDict(frozen=True)

    name: str
    state: ScheduleState
    cursor: int
    history_size: int
    pending_size: int
    can_undo: bool
    can_redo: bool
    can_clear: bool
    error: str | None = None
    taken_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def busy(self) -> bool:
        return self.state != ScheduleState.IDLE
