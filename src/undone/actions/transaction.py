"""Transaction — atomic group of executables with rollback on failure."""

from __future__ import annotations

import asyncio
import logging
from inspect import isawaitable, iscoroutine
from typing import TYPE_CHECKING, Any

from ..ports.executable import ISchedulable
from ..primitives.deferred import DeferredSlot
from ..primitives.exceptions import (
    MisuseError,
    OperationError,
    TransactionError,
    UndoneError,
)
from ..scheduling.defaults import get_default_schedule
from .context import building, get_current_transaction

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from contextlib import AbstractContextManager

    from ..ports.executable import IExecutable
    from ..scheduling.schedule import Schedule

logger = logging.getLogger("undone.transaction")


class Transaction:
    """
    An ordered group of executables done and undone as one unit.

    Children are done strictly in order. If child *k* fails, children
    ``0..k-1`` are undone in reverse order and a
    :class:`~undone.primitives.TransactionError` is raised carrying the
    child's error; children after *k* never run. Undo reverses every child.

    A transaction is built in one synchronous phase (with :meth:`add`, or by
    calling actions inside :meth:`building`) and sealed once submitted.

    Usage::

        with Transaction(name="move").building() as txn:
            remove_item()
            insert_item()
        await txn.call(schedule)
    """

    def __init__(
        self,
        children: Iterable[IExecutable] | None = None,
        *,
        name: str | None = None,
    ) -> None:
        self.name = name or "transaction"
        self._children: list[IExecutable] = []
        self._sealed = False
        self._deferred: DeferredSlot[list[Any]] = DeferredSlot()
        for child in children or ():
            self.add(child)

    def __repr__(self) -> str:
        return (
            f"Transaction(name={self.name!r}, children={len(self._children)}, "
            f"sealed={self._sealed})"
        )

    @property
    def children(self) -> tuple[IExecutable, ...]:
        return tuple(self._children)

    @property
    def sealed(self) -> bool:
        return self._sealed

    # ── Building ─────────────────────────────────────────────────

    def add(self, child: IExecutable) -> None:
        """Append *child*; only allowed before the transaction is sealed."""
        if self._sealed:
            raise MisuseError(f"Cannot add {child.name} to sealed {self.name}")
        if child is self:
            raise MisuseError(f"Cannot add {self.name} to itself")
        self._children.append(child)

    def building(self) -> AbstractContextManager[Transaction]:
        """Scope in which every ``call()`` is captured into this transaction."""
        return building(self)

    def seal(self) -> None:
        self._sealed = True

    def abandon(self) -> None:
        """Forget the deferred futures handed out to captured children."""
        for child in self._children:
            if isinstance(child, ISchedulable):
                child.discard_deferred()

    # ── Submission ───────────────────────────────────────────────

    def call(self, schedule: Schedule | None = None) -> asyncio.Future[list[Any]]:
        """Seal and submit this transaction; the future resolves to child results.

        Inside another transaction's build scope it becomes a child of that
        transaction instead.
        """
        self.seal()
        outer = get_current_transaction()
        if outer is not None:
            future = self.defer()
            outer.add(self)
            return future
        target = schedule if schedule is not None else get_default_schedule()
        return target.call(self)

    __call__ = call

    def defer(self) -> asyncio.Future[list[Any]]:
        return self._deferred.open()

    def discard_deferred(self) -> None:
        """Cancel the outstanding future and those of every captured child."""
        self._deferred.discard()
        self.abandon()

    # ── Execution ────────────────────────────────────────────────

    async def execute(self) -> list[Any]:
        """Do every child in order, rolling back on the first failure."""
        self.seal()
        return await self._deferred.settle(self._do_children)

    async def unexecute(self) -> None:
        """Undo every child in reverse order."""
        for child in reversed(self._children):
            try:
                await child.unexecute()
            except UndoneError:
                raise
            except Exception as exc:
                raise OperationError(
                    f"Undo of {self.name} failed at {child.name}: {exc}", exc
                ) from exc

    async def _do_children(self) -> list[Any]:
        results: list[Any] = []
        for index, child in enumerate(self._children):
            try:
                results.append(await child.execute())
            except Exception as exc:
                error = await self._rollback(index, exc)
                raise error from exc
        return results

    async def _rollback(self, failed_index: int, cause: Exception) -> TransactionError:
        error = TransactionError(cause, failed_index=failed_index)
        for child in self._children[failed_index + 1 :]:
            if isinstance(child, ISchedulable):
                child.discard_deferred()
        for child in reversed(self._children[:failed_index]):
            try:
                await child.unexecute()
            except Exception as exc:
                logger.warning(
                    "Transaction %s: rollback of %s failed",
                    self.name,
                    child.name,
                    exc_info=True,
                )
                error.rollback_error = exc
                break
        logger.debug(
            "Transaction %s rolled back after failure at child %d",
            self.name,
            failed_index,
        )
        return error


def transact(
    build: Callable[[], object],
    *,
    schedule: Schedule | None = None,
    name: str | None = None,
) -> asyncio.Future[list[Any]]:
    """Build a transaction by running *build* and submit it.

    Every action called inside *build* is captured into the transaction.
    If *build* raises, nothing runs and the returned future fails with that
    error. *build* must be synchronous.

    Usage::

        await transact(lambda: (push(1)(), push(2)()), schedule=schedule)
    """
    transaction = Transaction(name=name)
    try:
        with transaction.building():
            outcome = build()
            if isawaitable(outcome):
                if iscoroutine(outcome):
                    outcome.close()
                raise MisuseError("Transaction builders must be synchronous")
    except Exception as exc:
        future: asyncio.Future[list[Any]] = asyncio.get_running_loop().create_future()
        future.set_exception(exc)
        return future
    return transaction.call(schedule)
