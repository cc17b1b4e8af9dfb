"""Default schedule handle — lazily constructed, scoped to the current context."""

from __future__ import annotations

from contextvars import ContextVar
from typing import TYPE_CHECKING

from .schedule import Schedule

if TYPE_CHECKING:
    import asyncio

_default_schedule_var: ContextVar[Schedule | None] = ContextVar(
    "undone_default_schedule", default=None
)


def get_default_schedule() -> Schedule:
    """Get the default schedule for the current context.

    Creates a ``Schedule`` on first access within each context. Install one
    explicitly with :func:`set_default_schedule` at application start-up to
    share it with every task spawned afterwards.
    """
    schedule = _default_schedule_var.get()
    if schedule is None:
        schedule = Schedule(name="default")
        _default_schedule_var.set(schedule)
    return schedule


def set_default_schedule(schedule: Schedule | None) -> None:
    """Set (or with *None*, reset) the default schedule in the current context."""
    _default_schedule_var.set(schedule)


def undo() -> asyncio.Future[bool]:
    """Undo the next action to be undone on the default schedule, if any."""
    return get_default_schedule().undo()


def redo() -> asyncio.Future[bool]:
    """Redo the next action to be redone on the default schedule, if any."""
    return get_default_schedule().redo()
