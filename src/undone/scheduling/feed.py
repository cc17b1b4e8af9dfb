"""StateFeed — ordered, multicast record of a schedule's state transitions."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable

    from .state import ScheduleState

logger = logging.getLogger("undone.schedule")


class StateSubscription:
    """Async iterator over the transitions published after it was created.

    Each subscription has its own unbounded queue, so a slow consumer never
    holds back the schedule or other subscribers.

    Usage::

        with schedule.states.subscribe() as transitions:
            async for state in transitions:
                if state is ScheduleState.IDLE:
                    break
    """

    def __init__(self, feed: StateFeed) -> None:
        self._feed = feed
        self._queue: asyncio.Queue[ScheduleState | None] = asyncio.Queue()
        self._closed = False

    def _push(self, state: ScheduleState) -> None:
        self._queue.put_nowait(state)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Stop receiving transitions."""
        if not self._closed:
            self._closed = True
            self._feed._unsubscribe(self)
            self._queue.put_nowait(None)

    def __aiter__(self) -> StateSubscription:
        return self

    async def __anext__(self) -> ScheduleState:
        state = await self._queue.get()
        if state is None:
            raise StopAsyncIteration
        return state

    def __enter__(self) -> StateSubscription:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class StateFeed:
    """Append-only feed of state values, one entry per actual transition.

    Delivery is multicast and in publication order: synchronous listeners
    are invoked in registration order, then every open subscription gets
    the value queued.
    """

    def __init__(self) -> None:
        self._transitions: list[ScheduleState] = []
        self._listeners: list[Callable[[ScheduleState], Any]] = []
        self._subscriptions: list[StateSubscription] = []

    def publish(self, state: ScheduleState) -> None:
        """Record *state* and deliver it to every listener and subscription."""
        self._transitions.append(state)
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as exc:
                logger.error("Error in state listener: %s", exc, exc_info=True)
        for subscription in list(self._subscriptions):
            subscription._push(state)

    def listen(self, callback: Callable[[ScheduleState], Any]) -> Callable[[], None]:
        """Register a synchronous *callback*; returns a function that removes it."""
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def subscribe(self) -> StateSubscription:
        """Open a subscription receiving every transition from now on."""
        subscription = StateSubscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def _unsubscribe(self, subscription: StateSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def wait_for(self, *states: ScheduleState) -> ScheduleState:
        """Wait for the next transition into any of *states*."""
        future: asyncio.Future[ScheduleState] = (
            asyncio.get_running_loop().create_future()
        )

        def _on_state(state: ScheduleState) -> None:
            if state in states and not future.done():
                future.set_result(state)

        remove = self.listen(_on_state)
        try:
            return await future
        finally:
            remove()

    def transitions(self) -> list[ScheduleState]:
        """Return every state published so far (shallow copy)."""
        return list(self._transitions)

    def __len__(self) -> int:
        return len(self._transitions)
