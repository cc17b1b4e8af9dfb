"""Actions — undoable units of work and transactions grouping them."""

from __future__ import annotations

from .action import Action
from .context import building, get_current_transaction
from .transaction import Transaction, transact

__all__ = [
    "Action",
    "Transaction",
    "building",
    "get_current_transaction",
    "transact",
]
