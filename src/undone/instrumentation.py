"""Instrumentation hooks — middleware around schedule steps and state changes.

A schedule runs every do, undo and redo through its :class:`HookRegistry`
under the operation names ``undone.schedule.do``, ``undone.schedule.undo``
and ``undone.schedule.redo``. Each state change is announced, without
waiting, as ``undone.state.<state>`` (for example ``undone.state.errored``)
with the previous and next state in the attributes.
"""

from __future__ import annotations

import asyncio
import fnmatch
import functools
import logging
import re
from contextvars import ContextVar
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger("undone.instrumentation")


@runtime_checkable
class InstrumentationHook(Protocol):
    """A tracing or metrics middleware.

    Receives the operation name, the attributes of the step and the
    continuation; it must await ``next_handler()`` for the step to run.
    """

    async def __call__(
        self,
        operation: str,
        attributes: dict[str, Any],
        next_handler: Callable[[], Awaitable[Any]],
    ) -> Any: ...


def _compile_patterns(patterns: Iterable[str]) -> re.Pattern[str] | None:
    translated = [fnmatch.translate(pattern) for pattern in patterns]
    if not translated:
        return None
    return re.compile("|".join(translated))


@dataclass(frozen=True, eq=False)
class HookBinding:
    """A hook together with the steps it applies to.

    ``operations`` are glob patterns over operation names (empty matches
    all). ``action_types`` restricts step operations to executables that are
    instances of one of the types; state announcements carry no action and
    are never filtered by type.
    """

    hook: InstrumentationHook
    priority: int = 0
    operations: tuple[str, ...] = ()
    action_types: tuple[type[Any], ...] = ()
    _pattern: re.Pattern[str] | None = field(
        init=False, repr=False, compare=False, default=None
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_pattern", _compile_patterns(self.operations))

    def applies_to(self, operation: str, attributes: dict[str, Any]) -> bool:
        if self._pattern is not None and not self._pattern.fullmatch(operation):
            return False
        action = attributes.get("action")
        if not self.action_types or action is None:
            return True
        return isinstance(action, self.action_types)


class HookRegistry:
    """Ordered set of hook bindings; lower priority wraps outermost.

    Usage::

        registry = HookRegistry()
        registry.register(timing_hook, operations=["undone.schedule.*"])
        schedule = Schedule(hooks=registry)
    """

    def __init__(self) -> None:
        self._bindings: list[HookBinding] = []
        self._announcements: set[asyncio.Task[Any]] = set()

    @property
    def empty(self) -> bool:
        return not self._bindings

    def register(
        self,
        hook: InstrumentationHook,
        *,
        priority: int = 0,
        operations: Iterable[str] = (),
        action_types: Iterable[type[Any]] = (),
    ) -> HookBinding:
        binding = HookBinding(
            hook,
            priority=priority,
            operations=tuple(operations),
            action_types=tuple(action_types),
        )
        self._bindings.append(binding)
        self._bindings.sort(key=lambda b: b.priority)
        return binding

    def unregister(self, binding: HookBinding) -> None:
        if binding in self._bindings:
            self._bindings.remove(binding)

    def clear(self) -> None:
        self._bindings.clear()

    async def wrap(
        self,
        operation: str,
        attributes: dict[str, Any],
        handler: Callable[[], Awaitable[Any]],
    ) -> Any:
        """Run *handler* inside every hook bound to *operation*."""
        chain: Callable[[], Awaitable[Any]] = handler
        for binding in reversed(self._bindings):
            if binding.applies_to(operation, attributes):
                chain = functools.partial(binding.hook, operation, attributes, chain)
        return await chain()

    def announce(self, operation: str, attributes: dict[str, Any]) -> None:
        """Pass *operation* through the hooks in the background.

        Returns at once. Does nothing without bindings or a running loop.
        Hook failures are logged.
        """
        if self.empty:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.wrap(operation, attributes, _announced))
        self._announcements.add(task)
        task.add_done_callback(self._announcement_done)

    def _announcement_done(self, task: asyncio.Task[Any]) -> None:
        self._announcements.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.warning("Hook failed on announcement: %s", exc, exc_info=exc)


async def _announced() -> None:
    return None


_hook_registry_var: ContextVar[HookRegistry | None] = ContextVar(
    "undone_hook_registry", default=None
)


def get_hook_registry() -> HookRegistry:
    """Return the registry used by schedules built without ``hooks=``.

    Created on first access within each context.
    """
    registry = _hook_registry_var.get()
    if registry is None:
        registry = HookRegistry()
        _hook_registry_var.set(registry)
    return registry


def set_hook_registry(registry: HookRegistry) -> None:
    _hook_registry_var.set(registry)
