"""undone — undo/redo history for asynchronous, potentially-failing operations.

Zero infrastructure dependencies. pydantic for immutable snapshots.
"""

from __future__ import annotations

# ── Actions ──────────────────────────────────────────────────────
from .actions import (
    Action,
    Transaction,
    building,
    get_current_transaction,
    transact,
)

# ── Instrumentation ─────────────────────────────────────────────
from .instrumentation import (
    HookBinding,
    HookRegistry,
    InstrumentationHook,
    get_hook_registry,
    set_hook_registry,
)

# ── Ports ────────────────────────────────────────────────────────
from .ports import IExecutable, ISchedulable

# ── Primitives ──────────────────────────────────────────────────
from .primitives import (
    ConstructionError,
    DeferredSlot,
    InvalidTransitionError,
    MisuseError,
    OperationError,
    TransactionError,
    UndoneError,
)

# ── Scheduling ──────────────────────────────────────────────────
from .scheduling import (
    Schedule,
    ScheduleSnapshot,
    ScheduleState,
    StateFeed,
    StateSubscription,
    get_default_schedule,
    redo,
    set_default_schedule,
    undo,
)

__all__: list[str] = [
    # Actions
    "Action",
    "Transaction",
    "building",
    "get_current_transaction",
    "transact",
    # Scheduling
    "Schedule",
    "ScheduleSnapshot",
    "ScheduleState",
    "StateFeed",
    "StateSubscription",
    "get_default_schedule",
    "set_default_schedule",
    "undo",
    "redo",
    # Ports
    "IExecutable",
    "ISchedulable",
    # Instrumentation
    "InstrumentationHook",
    "HookBinding",
    "HookRegistry",
    "get_hook_registry",
    "set_hook_registry",
    # Primitives
    "UndoneError",
    "ConstructionError",
    "MisuseError",
    "OperationError",
    "TransactionError",
    "InvalidTransitionError",
    "DeferredSlot",
]
