"""Primitives — exceptions and the deferred completion slot."""

from __future__ import annotations

from .deferred import DeferredSlot
from .exceptions import (
    ConstructionError,
    InvalidTransitionError,
    MisuseError,
    OperationError,
    TransactionError,
    UndoneError,
)

__all__ = [
    "ConstructionError",
    "DeferredSlot",
    "InvalidTransitionError",
    "MisuseError",
    "OperationError",
    "TransactionError",
    "UndoneError",
]
