"""Aggregator 测试 -- 筛选校验、降级、超时、取消、排序与统计"""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest
from medconsole.core.aggregator import (
    Aggregator,
    compute_stats,
    resolve_type_filter,
    validate_window,
)
from medconsole.core.config import EngineSettings
from medconsole.core.exceptions import InvalidFilterError, SourceUnavailableError
from medconsole.core.models import (
    ALL_TYPES,
    AssigneeRef,
    FeedFilters,
    ManualTaskRecord,
    PaymentRecord,
    SourceItem,
    TaskPriority,
    TaskStatus,
    TaskType,
)

NOW = datetime(2024, 1, 15, 9, 0, tzinfo=UTC)
START = datetime(2024, 1, 1, tzinfo=UTC)
END = datetime(2024, 1, 31, tzinfo=UTC)
ALICE = AssigneeRef(id="u-alice", first_name="Alice", last_name="Martin")


class FakeReader:
    """按预设返回记录的 Reader"""

    def __init__(
        self,
        name: str,
        task_types: set[TaskType],
        items: list[SourceItem] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.task_types = frozenset(task_types)
        self._items = items or []
        self._error = error
        self._delay = delay
        self.calls: list[frozenset[TaskType]] = []
        self.cancelled = False

    async def fetch(self, window_start, window_end, task_types):
        self.calls.append(task_types)
        try:
            if self._delay:
                await asyncio.sleep(self._delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self._error is not None:
            raise self._error
        return list(self._items)


def _manual(record_id: str, **overrides) -> SourceItem:
    fields = {
        "id": record_id,
        "title": record_id,
        "start_date": datetime(2024, 1, 2, tzinfo=UTC),
        "created_at": datetime(2024, 1, 1, tzinfo=UTC),
    }
    fields.update(overrides)
    return SourceItem(TaskType.TASK, ManualTaskRecord(**fields))


def _payment(record_id: str, due_day: int) -> SourceItem:
    return SourceItem(
        TaskType.PAYMENT_DUE,
        PaymentRecord(
            id=record_id,
            amount=100.0,
            due_date=datetime(2024, 1, due_day, tzinfo=UTC),
            created_at=datetime(2023, 12, 1, tzinfo=UTC),
        ),
    )


class TestFilters:
    def test_all_and_groups(self):
        assert resolve_type_filter("all") == ALL_TYPES
        assert resolve_type_filter(None) == ALL_TYPES
        assert resolve_type_filter("payments") == {
            TaskType.PAYMENT_DUE,
            TaskType.PAYMENT_PERIOD_END,
        }
        assert resolve_type_filter("CNAM_RENEWAL") == {TaskType.CNAM_RENEWAL}

    def test_unknown_filter_rejected(self):
        with pytest.raises(InvalidFilterError):
            resolve_type_filter("everything")

    def test_window_validation(self):
        with pytest.raises(InvalidFilterError):
            validate_window(END, START, 400)
        with pytest.raises(InvalidFilterError):
            validate_window(START, START + timedelta(days=401), 400)

    def test_naive_window_treated_as_utc(self):
        start, end = validate_window(datetime(2024, 1, 1), datetime(2024, 1, 2), 400)
        assert start.tzinfo is UTC
        assert end == datetime(2024, 1, 2, tzinfo=UTC)

    async def test_invalid_filter_never_calls_readers(self):
        reader = FakeReader("manual_tasks", {TaskType.TASK}, [_manual("a")])
        aggregator = Aggregator([reader], EngineSettings())
        with pytest.raises(InvalidFilterError):
            await aggregator.aggregate(START, END, FeedFilters(type_filter="bogus"), NOW)
        with pytest.raises(InvalidFilterError):
            await aggregator.aggregate(START, END, FeedFilters(assigned_user_id="  "), NOW)
        assert reader.calls == []


class TestAggregate:
    async def test_only_relevant_readers_called(self):
        tasks = FakeReader("manual_tasks", {TaskType.TASK}, [_manual("a")])
        payments = FakeReader(
            "payments", {TaskType.PAYMENT_DUE, TaskType.PAYMENT_PERIOD_END}, [_payment("p", 10)]
        )
        aggregator = Aggregator([tasks, payments], EngineSettings())
        result = await aggregator.aggregate(
            START, END, FeedFilters(type_filter="PAYMENT_DUE"), NOW
        )
        assert tasks.calls == []
        assert payments.calls == [frozenset({TaskType.PAYMENT_DUE})]
        assert [t.id for t in result.tasks] == ["payment-p"]

    async def test_idempotent_for_same_clock(self):
        reader = FakeReader(
            "mixed",
            {TaskType.TASK, TaskType.PAYMENT_DUE},
            [_manual("a"), _payment("p", 10), _payment("q", 20)],
        )
        aggregator = Aggregator([reader], EngineSettings())
        first = await aggregator.aggregate(START, END, FeedFilters(), NOW)
        second = await aggregator.aggregate(START, END, FeedFilters(), NOW)
        assert first.model_dump() == second.model_dump()

    async def test_duplicate_ids_collapse(self):
        reader_a = FakeReader("a", {TaskType.TASK}, [_manual("same")])
        reader_b = FakeReader("b", {TaskType.TASK}, [_manual("same")])
        aggregator = Aggregator([reader_a, reader_b], EngineSettings())
        result = await aggregator.aggregate(START, END, FeedFilters(), NOW)
        assert [t.id for t in result.tasks] == ["task-same"]
        assert result.stats.total == 1

    async def test_sort_order(self):
        items = [
            _manual("no-due", start_date=datetime(2024, 1, 3, tzinfo=UTC)),
            _manual("late-due", end_date=datetime(2024, 1, 25, tzinfo=UTC)),
            _manual("early-due", end_date=datetime(2024, 1, 20, tzinfo=UTC)),
            _manual("overdue", end_date=datetime(2024, 1, 10, tzinfo=UTC)),
        ]
        reader = FakeReader("manual_tasks", {TaskType.TASK}, items)
        result = await Aggregator([reader], EngineSettings()).aggregate(
            START, END, FeedFilters(), NOW
        )
        assert [t.id for t in result.tasks] == [
            "task-overdue",
            "task-early-due",
            "task-late-due",
            "task-no-due",
        ]

    async def test_hide_completed_updates_stats(self):
        items = [
            _manual("open"),
            _manual(
                "done",
                status=TaskStatus.COMPLETED,
                completed_at=datetime(2024, 1, 3, tzinfo=UTC),
                completed_by="u-alice",
            ),
        ]
        reader = FakeReader("manual_tasks", {TaskType.TASK}, items)
        aggregator = Aggregator([reader], EngineSettings())

        shown = await aggregator.aggregate(START, END, FeedFilters(), NOW)
        assert shown.stats.total == 2
        assert shown.stats.by_status[TaskStatus.COMPLETED] == 1

        hidden = await aggregator.aggregate(START, END, FeedFilters(hide_completed=True), NOW)
        assert [t.id for t in hidden.tasks] == ["task-open"]
        assert hidden.stats.total == 1
        assert hidden.stats.by_status[TaskStatus.COMPLETED] == 0

    async def test_assignee_filters(self):
        items = [_manual("mine", assignee=ALICE), _manual("nobody")]
        reader = FakeReader("manual_tasks", {TaskType.TASK}, items)
        aggregator = Aggregator([reader], EngineSettings())

        mine = await aggregator.aggregate(
            START, END, FeedFilters(assigned_user_id="u-alice"), NOW
        )
        assert [t.id for t in mine.tasks] == ["task-mine"]
        assert mine.stats.assigned == 1

        unassigned = await aggregator.aggregate(
            START, END, FeedFilters(assigned_user_id="unassigned"), NOW
        )
        assert [t.id for t in unassigned.tasks] == ["task-nobody"]
        assert unassigned.stats.unassigned == 1

        everyone = await aggregator.aggregate(START, END, FeedFilters(), NOW)
        assert everyone.stats.assigned == 1
        assert everyone.stats.unassigned == 1


class TestDegradation:
    async def test_failing_reader_marks_partial(self):
        healthy = FakeReader("manual_tasks", {TaskType.TASK}, [_manual("a")])
        broken = FakeReader(
            "payments",
            {TaskType.PAYMENT_DUE},
            error=SourceUnavailableError("payments", RuntimeError("disk I/O error")),
        )
        result = await Aggregator([healthy, broken], EngineSettings()).aggregate(
            START, END, FeedFilters(), NOW
        )
        assert [t.id for t in result.tasks] == ["task-a"]
        assert result.partial is True
        assert len(result.skipped_sources) == 1
        failure = result.skipped_sources[0]
        assert failure.source == "payments"
        assert failure.reason == "error"
        assert failure.error_type == "SourceUnavailableError"

    async def test_slow_reader_times_out(self):
        healthy = FakeReader("manual_tasks", {TaskType.TASK}, [_manual("a")])
        slow = FakeReader("payments", {TaskType.PAYMENT_DUE}, [_payment("p", 10)], delay=5)
        settings = EngineSettings(reader_timeout_s=0.05)
        result = await Aggregator([healthy, slow], settings).aggregate(
            START, END, FeedFilters(), NOW
        )
        assert [t.id for t in result.tasks] == ["task-a"]
        assert result.partial is True
        assert result.skipped_sources[0].reason == "timeout"
        assert result.skipped_sources[0].task_types == [TaskType.PAYMENT_DUE]
        assert slow.cancelled

    async def test_concurrency_bound(self):
        active = 0
        peak = 0

        class CountingReader(FakeReader):
            async def fetch(self, window_start, window_end, task_types):
                nonlocal active, peak
                active += 1
                peak = max(peak, active)
                await asyncio.sleep(0.01)
                active -= 1
                return []

        readers = [CountingReader(f"r{i}", {TaskType.TASK}) for i in range(6)]
        settings = EngineSettings(max_concurrency=2)
        await Aggregator(readers, settings).aggregate(START, END, FeedFilters(), NOW)
        assert peak == 2

    async def test_cancellation_propagates_to_readers(self):
        slow = FakeReader("manual_tasks", {TaskType.TASK}, [_manual("a")], delay=5)
        aggregator = Aggregator([slow], EngineSettings())
        task = asyncio.create_task(aggregator.aggregate(START, END, FeedFilters(), NOW))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert slow.cancelled


class TestStats:
    def test_all_keys_present_for_empty_set(self):
        stats = compute_stats([])
        assert stats.total == 0
        assert set(stats.by_status) == set(TaskStatus)
        assert set(stats.by_priority) == set(TaskPriority)
        assert set(stats.by_type) == set(TaskType)
