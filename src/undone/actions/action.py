"""Action — a do/undo pair of functions over an immutable argument."""

from __future__ import annotations

import logging
from inspect import isawaitable
from typing import TYPE_CHECKING, Any, Generic, TypeVar, cast

from ..primitives.deferred import DeferredSlot
from ..primitives.exceptions import ConstructionError, OperationError
from ..scheduling.defaults import get_default_schedule
from .context import get_current_transaction

if TYPE_CHECKING:
    import asyncio
    from collections.abc import Awaitable, Callable

    from ..scheduling.schedule import Schedule

A = TypeVar("A")
R = TypeVar("R")

logger = logging.getLogger("undone.action")


async def invoke(function: Callable[..., Any], *args: Any) -> Any:
    """Call a sync or async *function* and return its (awaited) result."""
    result = function(*args)
    if isawaitable(result):
        result = await result
    return result


class Action(Generic[A, R]):
    """
    A unit of undoable work.

    ``do(argument)`` produces a result; ``undo(argument, result)`` reverses
    it. Either function may be synchronous or return an awaitable. Failures
    of either are raised as :class:`~undone.primitives.OperationError`.

    Calling the action schedules it on a :class:`~undone.scheduling.Schedule`
    (or captures it into the transaction being built) and returns a future
    for its result.

    Usage::

        stack: list[int] = []
        push = Action(1, stack.append, lambda n, _: stack.pop(), name="push")
        await push()                   # default schedule
        await push.call(my_schedule)   # explicit schedule
    """

    def __init__(
        self,
        argument: A,
        do: Callable[[A], R | Awaitable[R]] | None,
        undo: Callable[[A, R], Any] | None,
        *,
        name: str | None = None,
    ) -> None:
        if do is None or not callable(do):
            raise ConstructionError("Do function must be callable")
        if undo is None or not callable(undo):
            raise ConstructionError("Undo function must be callable")
        self._argument = argument
        self._do = do
        self._undo = undo
        self._result: R | None = None
        self._deferred: DeferredSlot[R] = DeferredSlot()
        self.name = name or getattr(do, "__qualname__", type(self).__name__)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, argument={self._argument!r})"

    @property
    def argument(self) -> A:
        return self._argument

    @property
    def result(self) -> R | None:
        """The result of the most recent successful do."""
        return self._result

    @property
    def deferred(self) -> bool:
        """Whether a deferred future is outstanding for the next result."""
        return self._deferred.outstanding

    # ── Submission ───────────────────────────────────────────────

    def call(self, schedule: Schedule | None = None) -> asyncio.Future[R]:
        """Submit this action and return a future for its result.

        Inside a transaction build scope the action is added to that
        transaction instead; otherwise it goes to *schedule*, or to the
        default schedule when none is given.
        """
        transaction = get_current_transaction()
        if transaction is not None:
            future = self.defer()
            transaction.add(self)
            logger.debug("Captured %s into %s", self.name, transaction.name)
            return future
        target = schedule if schedule is not None else get_default_schedule()
        return cast("asyncio.Future[R]", target.call(self))

    __call__ = call

    def defer(self) -> asyncio.Future[R]:
        """Hand out the future for the next result while the action waits its turn."""
        return self._deferred.open()

    def discard_deferred(self) -> None:
        self._deferred.discard()

    # ── Execution ────────────────────────────────────────────────

    async def execute(self) -> R:
        """Run ``do(argument)``, resolving the deferred future if one is out."""
        return await self._deferred.settle(self._run_do)

    async def unexecute(self) -> None:
        """Run ``undo(argument, result)``."""
        try:
            await invoke(self._undo, self._argument, self._result)
        except Exception as exc:
            raise OperationError(f"Undo of {self.name} failed: {exc}", exc) from exc

    async def _run_do(self) -> R:
        try:
            result = cast("R", await invoke(self._do, self._argument))
        except Exception as exc:
            raise OperationError(f"Do of {self.name} failed: {exc}", exc) from exc
        self._result = result
        return result
