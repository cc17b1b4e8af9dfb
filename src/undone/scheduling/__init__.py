"""Scheduling — the Schedule coordinator, its state machine and state feed."""

from __future__ import annotations

from .defaults import get_default_schedule, redo, set_default_schedule, undo
from .feed import StateFeed, StateSubscription
from .schedule import Schedule
from .state import TRANSITIONS, ScheduleSnapshot, ScheduleState, can_transition

__all__ = [
    "Schedule",
    "ScheduleSnapshot",
    "ScheduleState",
    "StateFeed",
    "StateSubscription",
    "TRANSITIONS",
    "can_transition",
    "get_default_schedule",
    "redo",
    "set_default_schedule",
    "undo",
]
