"""DeferredSlot — single-slot deferred completion for queued executables."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Generic, TypeVar

from .exceptions import MisuseError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger("undone.deferred")

R = TypeVar("R")


def _mark_retrieved(future: asyncio.Future[object]) -> None:
    # Failures are also reported through the schedule's error slot.
    if not future.cancelled():
        future.exception()


class DeferredSlot(Generic[R]):
    """Holds at most one outstanding future for an executable's next result.

    The slot is either *empty* or *outstanding*. :meth:`open` moves it from
    empty to outstanding and hands out the future; :meth:`settle` runs the
    executable's operation and delivers its outcome to that future before
    emptying the slot again.

    Usage::

        slot = DeferredSlot()
        future = slot.open()           # handed to the caller while queued
        ...
        await slot.settle(do_work)     # later, when it is the caller's turn
        assert await future == ...
    """

    __slots__ = ("_future",)

    def __init__(self) -> None:
        self._future: asyncio.Future[R] | None = None

    @property
    def outstanding(self) -> bool:
        """Return *True* while a future has been handed out and not resolved."""
        return self._future is not None

    def open(self) -> asyncio.Future[R]:
        """Hand out a new future for the next result.

        Raises:
            MisuseError: If a future is already outstanding.
        """
        if self._future is not None:
            raise MisuseError("A deferred result is already outstanding")
        future: asyncio.Future[R] = asyncio.get_running_loop().create_future()
        future.add_done_callback(_mark_retrieved)
        self._future = future
        return future

    def discard(self) -> None:
        """Cancel the outstanding future, if any, and empty the slot."""
        future, self._future = self._future, None
        if future is not None and not future.done():
            future.cancel()

    async def settle(self, operation: Callable[[], Awaitable[R]]) -> R:
        """Run *operation* and deliver its outcome to the outstanding future.

        On failure the very same exception object reaches both listeners: the
        outstanding future, and whoever awaits this coroutine.
        """
        try:
            result = await operation()
        except Exception as exc:
            future, self._future = self._future, None
            if future is not None and not future.done():
                future.set_exception(exc)
            raise
        except BaseException:
            self.discard()
            raise
        future, self._future = self._future, None
        if future is not None and not future.done():
            future.set_result(result)
        return result
