"""Tests for Transaction — atomic execution, rollback and build scopes."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import pytest

from undone import (
    MisuseError,
    OperationError,
    Schedule,
    ScheduleState,
    Transaction,
    TransactionError,
    get_current_transaction,
    transact,
)

if TYPE_CHECKING:
    from conftest import Journal


# ============================================================================
# Tests: atomicity
# ============================================================================


class TestAtomicity:
    @pytest.mark.asyncio
    async def test_children_run_in_order_and_results_are_collected(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        futures: list[asyncio.Future[Any]] = []

        def build() -> None:
            futures.append(journal.push(10)())
            futures.append(journal.push(20)())

        result = await transact(build, schedule=schedule)
        await schedule.settled()

        assert result == [1, 2]
        assert [await f for f in futures] == [1, 2]
        assert journal.stack == [10, 20]
        assert len(schedule.history) == 1

    @pytest.mark.asyncio
    async def test_failing_child_rolls_back_earlier_children(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        futures: dict[str, asyncio.Future[Any]] = {}

        def build() -> None:
            futures["a"] = journal.push(1)()
            futures["b"] = journal.failing(2)()
            futures["c"] = journal.push(3)()

        with pytest.raises(TransactionError) as exc_info:
            await transact(build, schedule=schedule)

        error = exc_info.value
        assert error.failed_index == 1
        assert error.rollback_error is None
        assert journal.calls == [("do", 1), ("do", 2), ("undo", 1)]
        assert journal.stack == []

        assert await futures["a"] == 1
        with pytest.raises(OperationError) as child_error:
            await futures["b"]
        assert error.cause is child_error.value
        assert futures["c"].cancelled()

        assert schedule.has_error
        assert schedule.error is error
        assert schedule.history == ()

    @pytest.mark.asyncio
    async def test_failing_first_child_undoes_nothing(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        transaction = Transaction([journal.failing(1), journal.push(2)])

        with pytest.raises(TransactionError) as exc_info:
            await transaction.call(schedule)

        assert exc_info.value.failed_index == 0
        assert journal.count("undo") == 0
        assert journal.count("do") == 1

    @pytest.mark.asyncio
    async def test_rollback_failure_is_reported(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        transaction = Transaction(
            [journal.push(1), journal.failing(2, on="undo"), journal.failing(3)],
            name="broken",
        )

        with pytest.raises(TransactionError) as exc_info:
            await transaction.call(schedule)

        error = exc_info.value
        assert error.failed_index == 2
        assert isinstance(error.rollback_error, OperationError)
        # Rollback stops at the first child that cannot be undone.
        assert journal.calls == [("do", 1), ("do", 2), ("do", 3), ("undo", 2)]


# ============================================================================
# Tests: undo / redo through a schedule
# ============================================================================


class TestHistory:
    @pytest.mark.asyncio
    async def test_transaction_is_one_history_entry(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        def build() -> None:
            journal.push(1)()
            journal.push(2)()
            journal.push(3)()

        await transact(build, schedule=schedule, name="three")
        await schedule.settled()
        journal.calls.clear()

        assert await schedule.undo() is True
        await schedule.settled()
        assert journal.calls == [("undo", 3), ("undo", 2), ("undo", 1)]
        assert journal.stack == []

        journal.calls.clear()
        assert await schedule.redo() is True
        await schedule.settled()
        assert journal.calls == [("do", 1), ("do", 2), ("do", 3)]
        assert journal.stack == [1, 2, 3]
        assert schedule.history[0].name == "three"

    @pytest.mark.asyncio
    async def test_failing_undo_of_child_latches_schedule(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        transaction = Transaction([journal.failing(1, on="undo"), journal.push(2)])
        await transaction.call(schedule)
        await schedule.settled()

        with pytest.raises(OperationError) as exc_info:
            await schedule.undo()

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert schedule.error is exc_info.value
        assert schedule.state == ScheduleState.ERRORED
        assert journal.stack == [1]

    @pytest.mark.asyncio
    async def test_queued_transaction_waits_its_turn(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        first = schedule.call(journal.push(1))
        queued = transact(
            lambda: (journal.push(2)(), journal.push(3)()), schedule=schedule
        )

        assert len(schedule.pending) == 1
        assert await first == 1
        assert await queued == [2, 3]
        await schedule.settled()
        assert journal.stack == [1, 2, 3]


# ============================================================================
# Tests: build scope
# ============================================================================


class TestBuilding:
    @pytest.mark.asyncio
    async def test_calls_inside_build_are_captured_not_run(
        self, journal: Journal
    ) -> None:
        with Transaction(name="move").building() as transaction:
            assert get_current_transaction() is transaction
            future = journal.push(1)()

        assert get_current_transaction() is None
        assert len(transaction.children) == 1
        assert journal.calls == []
        assert not future.done()
        transaction.abandon()
        assert future.cancelled()

    @pytest.mark.asyncio
    async def test_build_then_call_runs_captured_children(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        with Transaction().building() as transaction:
            journal.push(1)()
            journal.push(2)()

        assert await transaction.call(schedule) == [1, 2]
        assert transaction.sealed

    @pytest.mark.asyncio
    async def test_raising_builder_cancels_captured_and_runs_nothing(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        captured: list[asyncio.Future[Any]] = []

        def build() -> None:
            captured.append(journal.push(1)())
            raise ValueError("changed my mind")

        with pytest.raises(ValueError):
            await transact(build, schedule=schedule)

        assert captured[0].cancelled()
        assert get_current_transaction() is None
        assert journal.calls == []
        assert schedule.history == ()
        assert schedule.state == ScheduleState.IDLE

    @pytest.mark.asyncio
    async def test_async_builder_is_misuse(self, schedule: Schedule) -> None:
        async def build() -> None:
            return None

        with pytest.raises(MisuseError):
            await transact(build, schedule=schedule)

        assert get_current_transaction() is None

    @pytest.mark.asyncio
    async def test_nested_transact_is_misuse(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        inner: list[asyncio.Future[Any]] = []

        def build() -> None:
            journal.push(1)()
            inner.append(transact(lambda: None, schedule=schedule))

        assert await transact(build, schedule=schedule) == [1]
        with pytest.raises(MisuseError):
            await inner[0]

    @pytest.mark.asyncio
    async def test_called_transaction_nests_as_child(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        inner = Transaction([journal.push(2)], name="inner")
        inner_future: list[asyncio.Future[Any]] = []

        def build() -> None:
            journal.push(1)()
            inner_future.append(inner.call())

        assert await transact(build, schedule=schedule) == [1, [2]]
        assert await inner_future[0] == [2]
        assert schedule.history[0].name == "transaction"

    def test_add_after_seal_is_misuse(self, journal: Journal) -> None:
        transaction = Transaction()
        transaction.seal()

        with pytest.raises(MisuseError):
            transaction.add(journal.push(1))

    def test_add_to_itself_is_misuse(self) -> None:
        transaction = Transaction()

        with pytest.raises(MisuseError):
            transaction.add(transaction)

    def test_building_sealed_transaction_is_misuse(self) -> None:
        transaction = Transaction()
        transaction.seal()

        with pytest.raises(MisuseError), transaction.building():
            pass

    def test_building_while_building_is_misuse(self) -> None:
        with Transaction().building():
            with pytest.raises(MisuseError), Transaction().building():
                pass
        assert get_current_transaction() is None


# ============================================================================
# Tests: futures of captured children
# ============================================================================


class TestCapturedFutures:
    """Futures handed out inside a build never stay pending forever."""

    @pytest.mark.asyncio
    async def test_rejected_transaction_cancels_children(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        with pytest.raises(OperationError):
            await schedule.call(journal.failing(0))
        children: list[asyncio.Future[Any]] = []

        rejected = transact(
            lambda: children.append(journal.push(1)()), schedule=schedule
        )

        with pytest.raises(MisuseError):
            await rejected
        assert children[0].cancelled()
        assert schedule.clear() is True
        assert journal.calls == [("do", 0)]

    @pytest.mark.asyncio
    async def test_clear_cancels_children_of_queued_transaction(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        children: list[asyncio.Future[Any]] = []
        first = schedule.call(journal.failing(0))
        queued = transact(
            lambda: children.append(journal.push(1)()), schedule=schedule
        )
        assert len(schedule.pending) == 1

        with pytest.raises(OperationError):
            await first
        assert schedule.clear() is True

        assert queued.cancelled()
        assert children[0].cancelled()
        assert ("do", 1) not in journal.calls

    @pytest.mark.asyncio
    async def test_flush_failure_cancels_children_of_later_transaction(
        self, schedule: Schedule, journal: Journal
    ) -> None:
        inner: list[asyncio.Future[Any]] = []
        outer: list[asyncio.Future[Any]] = []
        nested = Transaction(name="nested")
        with nested.building():
            inner.append(journal.push(3)())

        def build() -> None:
            outer.append(journal.push(2)())
            outer.append(nested.call())

        schedule.call(journal.push(0))
        failing = schedule.call(journal.failing(1))

        queued = transact(build, schedule=schedule)

        with pytest.raises(OperationError):
            await failing
        assert await schedule.settled() == ScheduleState.ERRORED

        assert queued.cancelled()
        assert all(future.cancelled() for future in outer)
        assert inner[0].cancelled()
