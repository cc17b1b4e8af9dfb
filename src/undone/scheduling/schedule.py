"""Schedule — runs actions one at a time and keeps their undo history."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from ..instrumentation import get_hook_registry
from ..primitives.exceptions import InvalidTransitionError, MisuseError
from .feed import StateFeed
from .state import ScheduleSnapshot, ScheduleState, can_transition

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from ..instrumentation import HookRegistry
    from ..ports.executable import ISchedulable

logger = logging.getLogger("undone.schedule")

T = TypeVar("T")


def _on_task_done(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Schedule task failed: %s", exc, exc_info=exc)


class Schedule:
    """
    Coordinates the execution of actions and the history used to undo them.

    Exactly one do/undo runs at a time. Actions submitted while the schedule
    is :attr:`busy` wait in a FIFO queue and are flushed, in arrival order,
    once the operation in progress completes.

    Every operation is a plain method that validates synchronously and
    returns an :class:`asyncio.Future`. A result is delivered to its own
    caller, and the caller's continuation runs up to its next suspension,
    before any queued action starts. The schedule is still :attr:`busy`
    while that continuation runs; use :meth:`settled` to wait for it to
    become idle again.

    A failing do/undo latches the schedule into ``ERRORED``; every further
    operation then fails with :class:`~undone.primitives.MisuseError` until
    :meth:`clear` is called.

    Usage::

        schedule = Schedule(name="editor")
        await schedule.call(Action(1, stack.append, lambda n, _: stack.pop()))
        await schedule.settled()
        assert await schedule.undo()
    """

    def __init__(
        self,
        *,
        name: str | None = None,
        hooks: HookRegistry | None = None,
    ) -> None:
        self.name = name or f"schedule-{id(self):x}"
        self._hooks = hooks
        self._history: list[ISchedulable] = []
        self._pending: list[ISchedulable] = []
        self._flushing: list[ISchedulable] = []
        self._cursor = -1
        self._state = ScheduleState.IDLE
        self._error: BaseException | None = None
        self._states = StateFeed()
        # Bumped by clear(); work started under an older generation is stale.
        self._generation = 0
        self._seeker: asyncio.Task[Any] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()

    def __repr__(self) -> str:
        return (
            f"Schedule(name={self.name!r}, state={self._state.value}, "
            f"cursor={self._cursor}, history={len(self._history)}, "
            f"pending={len(self._pending)})"
        )

    # ── Queries ──────────────────────────────────────────────────

    @property
    def state(self) -> ScheduleState:
        return self._state

    @property
    def states(self) -> StateFeed:
        """Observable feed of this schedule's state transitions."""
        return self._states

    @property
    def busy(self) -> bool:
        """Whether an operation is in progress or an error is latched."""
        return self._state != ScheduleState.IDLE

    @property
    def has_error(self) -> bool:
        return self._state == ScheduleState.ERRORED

    @property
    def error(self) -> BaseException | None:
        """The latched error, if :attr:`has_error`."""
        return self._error

    @property
    def can_clear(self) -> bool:
        return not self.busy or self.has_error

    @property
    def can_undo(self) -> bool:
        return not self.busy and self._cursor >= 0

    @property
    def can_redo(self) -> bool:
        return not self.busy and self._cursor < len(self._history) - 1

    @property
    def cursor(self) -> int:
        """Index in :attr:`history` of the most recently done action, or -1."""
        return self._cursor

    @property
    def history(self) -> tuple[ISchedulable, ...]:
        return tuple(self._history)

    @property
    def pending(self) -> tuple[ISchedulable, ...]:
        return tuple(self._pending)

    def snapshot(self) -> ScheduleSnapshot:
        """Return an immutable view of the current state."""
        return ScheduleSnapshot(
            name=self.name,
            state=self._state,
            cursor=self._cursor,
            history_size=len(self._history),
            pending_size=len(self._pending),
            can_undo=self.can_undo,
            can_redo=self.can_redo,
            can_clear=self.can_clear,
            error=repr(self._error) if self._error is not None else None,
        )

    async def settled(self) -> ScheduleState:
        """Wait until the schedule is ``IDLE`` or ``ERRORED`` and return which."""
        if self._state in (ScheduleState.IDLE, ScheduleState.ERRORED):
            return self._state
        return await self._states.wait_for(ScheduleState.IDLE, ScheduleState.ERRORED)

    # ── Operations ───────────────────────────────────────────────

    def call(self, action: ISchedulable) -> asyncio.Future[Any]:
        """Schedule *action* to be done.

        The action runs immediately if the schedule is idle, otherwise it is
        queued behind any other pending actions. Submitting an action that
        this schedule already knows, or submitting anything while the
        schedule has an error, latches a :class:`MisuseError`.
        """
        if self.has_error:
            action.discard_deferred()
            return self._reject(
                self._latch_misuse(
                    f"Cannot call {action.name} while {self.name} has an error"
                )
            )
        # A known action's futures belong to its earlier submission.
        if self._knows(action):
            return self._reject(
                self._latch_misuse(
                    f"Cannot call {action.name} more than once on {self.name}"
                )
            )
        if self.busy:
            try:
                future = action.defer()
            except MisuseError as exc:
                self._fail(exc)
                return self._reject(exc)
            self._pending.append(action)
            logger.debug(
                "Schedule %s busy (%s), queued %s behind %d pending",
                self.name,
                self._state.value,
                action.name,
                len(self._pending) - 1,
            )
            return future
        self._set_state(ScheduleState.CALLING)
        return self._start(lambda: self._commit(action), flush=True)

    def undo(self) -> asyncio.Future[bool]:
        """Undo the action at the cursor, if any.

        Completes *True* if an action was undone or *False* if there is
        nothing to undo or the schedule is busy.
        """
        if self.has_error:
            return self._reject(self._blocked("undo"))
        if self._cursor < 0 or not self._accepts_step():
            return self._resolved(False)
        owner = self._state == ScheduleState.IDLE
        if owner:
            self._set_state(ScheduleState.UNDOING)
        return self._start(self._undo_step, flush=owner)

    def redo(self) -> asyncio.Future[bool]:
        """Redo the action after the cursor, if any.

        Completes *True* if an action was redone or *False* if there is
        nothing to redo or the schedule is busy.
        """
        if self.has_error:
            return self._reject(self._blocked("redo"))
        if self._cursor >= len(self._history) - 1 or not self._accepts_step():
            return self._resolved(False)
        owner = self._state == ScheduleState.IDLE
        if owner:
            self._set_state(ScheduleState.REDOING)
        return self._start(self._redo_step, flush=owner)

    def to(self, target: ISchedulable) -> asyncio.Future[bool]:
        """Undo or redo, one step at a time, until *target* is the last done action.

        Completes *False* if *target* is not in the history, if the schedule
        is busy, or if any step completes *False*.
        """
        if self.has_error:
            return self._reject(self._blocked("seek"))
        if self._index(target) < 0 or not self._accepts_step():
            return self._resolved(False)
        owner = self._state == ScheduleState.IDLE
        if owner:
            self._set_state(ScheduleState.SEEKING)
        return self._start(lambda: self._seek(target), flush=owner)

    def clear(self) -> bool:
        """Reset to an empty, idle schedule if :attr:`can_clear`.

        Pending actions never run; their deferred futures are cancelled.
        Returns whether the schedule was cleared.
        """
        if not self.can_clear:
            return False
        for action in (*self._flushing, *self._pending):
            action.discard_deferred()
        self._history.clear()
        self._pending.clear()
        self._flushing = []
        self._cursor = -1
        self._error = None
        self._seeker = None
        self._generation += 1
        self._set_state(ScheduleState.IDLE)
        logger.debug("Schedule %s cleared", self.name)
        return True

    # ── Steps ────────────────────────────────────────────────────

    async def _commit(self, action: ISchedulable) -> Any:
        generation = self._generation
        try:
            result = await self._instrumented("do", action, action.execute)
        except Exception as exc:
            logger.warning(
                "Schedule %s: do of %s failed", self.name, action.name, exc_info=True
            )
            if generation == self._generation:
                self._fail(exc)
            raise
        if generation != self._generation:
            return result
        # Doing something new forecloses the redo branch.
        del self._history[self._cursor + 1 :]
        self._history.append(action)
        self._cursor += 1
        return result

    async def _undo_step(self) -> bool:
        generation = self._generation
        action = self._history[self._cursor]
        try:
            await self._instrumented("undo", action, action.unexecute)
        except Exception as exc:
            logger.warning(
                "Schedule %s: undo of %s failed", self.name, action.name, exc_info=True
            )
            if generation == self._generation:
                self._fail(exc)
            raise
        if generation == self._generation:
            self._cursor -= 1
        return True

    async def _redo_step(self) -> bool:
        generation = self._generation
        action = self._history[self._cursor + 1]
        try:
            await self._instrumented("redo", action, action.execute)
        except Exception as exc:
            logger.warning(
                "Schedule %s: redo of %s failed", self.name, action.name, exc_info=True
            )
            if generation == self._generation:
                self._fail(exc)
            raise
        if generation == self._generation:
            self._cursor += 1
        return True

    async def _seek(self, target: ISchedulable) -> bool:
        self._seeker = asyncio.current_task()
        try:
            while True:
                index = self._index(target)
                if index < 0:
                    return False
                if index == self._cursor:
                    return True
                step = self.undo() if index < self._cursor else self.redo()
                if not await step:
                    return False
        finally:
            self._seeker = None

    async def _flush(self, generation: int) -> None:
        while self._pending and self._owns(generation):
            self._set_state(ScheduleState.FLUSHING)
            # Actions queued during this pass wait for the next one.
            self._flushing, self._pending = self._pending, []
            logger.debug(
                "Schedule %s flushing %d pending", self.name, len(self._flushing)
            )
            while self._flushing and self._owns(generation):
                try:
                    await self._commit(self._flushing[0])
                except Exception:
                    break
                if generation != self._generation:
                    return
                self._flushing.pop(0)
                await asyncio.sleep(0)
            if generation != self._generation:
                return
            for action in self._flushing:
                action.discard_deferred()
            self._flushing = []
        if self._owns(generation):
            self._set_state(ScheduleState.IDLE)

    # ── Internals ────────────────────────────────────────────────

    def _start(
        self, operation: Callable[[], Awaitable[T]], *, flush: bool
    ) -> asyncio.Future[T]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[T] = loop.create_future()
        generation = self._generation

        async def _run() -> None:
            try:
                result = await operation()
            except Exception as exc:
                if not future.done():
                    future.set_exception(exc)
                return
            except BaseException:
                future.cancel()
                raise
            if not future.done():
                future.set_result(result)
            if flush:
                # The caller's continuation sees this result before any
                # pending action starts.
                await asyncio.sleep(0)
                await self._flush(generation)

        task = loop.create_task(_run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(_on_task_done)
        return future

    async def _instrumented(
        self,
        operation: str,
        action: ISchedulable,
        run: Callable[[], Awaitable[T]],
    ) -> T:
        attributes: dict[str, Any] = {
            "schedule.name": self.name,
            "schedule.cursor": self._cursor,
            "action": action,
            "action.name": action.name,
        }
        return await self._hook_registry().wrap(
            f"undone.schedule.{operation}", attributes, run
        )

    def _hook_registry(self) -> HookRegistry:
        if self._hooks is not None:
            return self._hooks
        return get_hook_registry()

    def _set_state(self, state: ScheduleState) -> None:
        previous = self._state
        if state == previous:
            return
        if not can_transition(previous, state):
            raise InvalidTransitionError(previous, state)
        self._state = state
        logger.debug("Schedule %s: %s -> %s", self.name, previous.value, state.value)
        self._states.publish(state)
        self._hook_registry().announce(
            f"undone.state.{state.value.lower()}",
            {
                "schedule.name": self.name,
                "state.previous": previous,
                "state.next": state,
            },
        )

    def _fail(self, error: BaseException) -> None:
        self._error = error
        self._set_state(ScheduleState.ERRORED)

    def _latch_misuse(self, message: str) -> MisuseError:
        error = MisuseError(message)
        error.__cause__ = self._error
        self._fail(error)
        return error

    def _blocked(self, operation: str) -> MisuseError:
        error = MisuseError(f"Cannot {operation} while {self.name} has an error")
        error.__cause__ = self._error
        return error

    def _accepts_step(self) -> bool:
        if self._state == ScheduleState.IDLE:
            return True
        # Only the task walking the history may step while seeking.
        return (
            self._state == ScheduleState.SEEKING
            and self._seeker is not None
            and asyncio.current_task() is self._seeker
        )

    def _owns(self, generation: int) -> bool:
        return generation == self._generation and not self.has_error

    def _index(self, action: ISchedulable) -> int:
        for index, candidate in enumerate(self._history):
            if candidate is action:
                return index
        return -1

    def _knows(self, action: ISchedulable) -> bool:
        return any(
            candidate is action
            for candidate in (*self._history, *self._pending, *self._flushing)
        )

    @staticmethod
    def _resolved(value: T) -> asyncio.Future[T]:
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        future.set_result(value)
        return future

    @staticmethod
    def _reject(error: BaseException) -> asyncio.Future[Any]:
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        future.set_exception(error)
        return future
