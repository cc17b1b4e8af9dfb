"""Transaction build scope — ContextVar tracking the transaction being built."""

from __future__ import annotations

import contextlib
from contextvars import ContextVar
from typing import TYPE_CHECKING

from ..primitives.exceptions import MisuseError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .transaction import Transaction

#: ContextVar tracking the transaction under construction — ``None`` means
#: calls are dispatched to a schedule instead of being captured.
_current_transaction: ContextVar[Transaction | None] = ContextVar(
    "undone_current_transaction", default=None
)


def get_current_transaction() -> Transaction | None:
    """Return the transaction being built (or *None* outside a build scope)."""
    return _current_transaction.get()


@contextlib.contextmanager
def building(transaction: Transaction) -> Iterator[Transaction]:
    """Capture every ``call()`` made in this scope into *transaction*.

    The scope is reset on every exit path. If the body raises, each action
    captured so far has its deferred future cancelled before the error
    propagates.

    Raises:
        MisuseError: If another transaction is already being built in this
            context, or *transaction* is already sealed.
    """
    if _current_transaction.get() is not None:
        raise MisuseError("Another transaction is already being built")
    if transaction.sealed:
        raise MisuseError(f"{transaction.name} is sealed and cannot be built")
    token = _current_transaction.set(transaction)
    try:
        yield transaction
    except BaseException:
        transaction.abandon()
        raise
    finally:
        _current_transaction.reset(token)
