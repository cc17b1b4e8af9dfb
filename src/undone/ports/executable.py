"""IExecutable / ISchedulable — the capability shared by actions and transactions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    import asyncio


@runtime_checkable
class IExecutable(Protocol):
    """
    Port for anything that can be done and undone.

    A leaf :class:`~undone.actions.Action` and a
    :class:`~undone.actions.Transaction` both implement it, so a transaction
    can hold either as a child.
    """

    @property
    def name(self) -> str:
        """Human readable label used in logs and instrumentation."""
        ...

    async def execute(self) -> Any:
        """Do the work and return its result."""
        ...

    async def unexecute(self) -> None:
        """Reverse the work done by the last successful :meth:`execute`."""
        ...


@runtime_checkable
class ISchedulable(IExecutable, Protocol):
    """Port for executables a :class:`~undone.scheduling.Schedule` accepts.

    Adds the deferred-result contract used while the schedule is busy.
    """

    def defer(self) -> asyncio.Future[Any]:
        """Return a future for the result of the next :meth:`execute`.

        Must raise :class:`~undone.primitives.MisuseError` if one is already
        outstanding.
        """
        ...

    def discard_deferred(self) -> None:
        """Cancel and forget the outstanding deferred future, if any."""
        ...
