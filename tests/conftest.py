"""Shared fixtures for undone tests."""

from __future__ import annotations

from typing import Any

import pytest

from undone import Action, Schedule


class Journal:
    """Builds stack-pushing actions and records every do/undo they run."""

    def __init__(self) -> None:
        self.stack: list[int] = []
        self.calls: list[tuple[str, int]] = []

    def push(self, value: int, *, name: str | None = None) -> Action[int, int]:
        def do(n: int) -> int:
            self.calls.append(("do", n))
            self.stack.append(n)
            return len(self.stack)

        def undo(n: int, _size: int) -> None:
            self.calls.append(("undo", n))
            self.stack.pop()

        return Action(value, do, undo, name=name or f"push({value})")

    def failing(self, value: int, *, on: str = "do") -> Action[int, int]:
        """An action whose do (or undo, with ``on="undo"``) raises."""

        def do(n: int) -> int:
            self.calls.append(("do", n))
            if on == "do":
                raise RuntimeError(f"do {n} failed")
            self.stack.append(n)
            return len(self.stack)

        def undo(n: int, _size: Any) -> None:
            self.calls.append(("undo", n))
            if on == "undo":
                raise RuntimeError(f"undo {n} failed")
            self.stack.pop()

        return Action(value, do, undo, name=f"failing({value})")

    def count(self, kind: str) -> int:
        return sum(1 for call, _ in self.calls if call == kind)


@pytest.fixture
def journal() -> Journal:
    return Journal()


@pytest.fixture
def schedule() -> Schedule:
    return Schedule(name="test")
