"""Exceptions raised by the undone toolkit."""

from __future__ import annotations

from enum import Enum


class UndoneError(Exception):
    """Root exception for the entire undone toolkit."""


class ConstructionError(UndoneError):
    """Raised when an Action is built without both a do and an undo function."""


class MisuseError(UndoneError):
    """Raised when the API is used in a way its contract forbids.

    Usage: a schedule latches this as its error when an action is submitted
    twice or when any operation is attempted while the schedule has an error.
    """


class OperationError(UndoneError):
    """Raised when a do or undo function fails.

    The original exception is kept on :attr:`cause` and chained as
    ``__cause__``.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.cause = cause
        super().__init__(message)


class TransactionError(OperationError):
    """Raised when a transaction fails to do one of its children.

    ``cause`` is the error of the failing child. ``rollback_error`` is set
    only when undoing the already-done children failed as well.
    """

    def __init__(
        self,
        cause: BaseException,
        *,
        failed_index: int,
        rollback_error: BaseException | None = None,
    ) -> None:
        self.failed_index = failed_index
        self.rollback_error = rollback_error
        super().__init__(
            f"Transaction failed at child {failed_index}: {cause}", cause=cause
        )


class InvalidTransitionError(UndoneError):
    """Raised when a schedule attempts a transition its state table forbids."""

    def __init__(self, current: Enum, requested: Enum) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot transition schedule from {current.value} to {requested.value}"
        )
