"""Aggregator -- 有界并发 scatter/gather

对选中的 Source Reader 并行取数（信号量限流 + 单 Reader 超时），
失败或超时的 Reader 降级为空集并记录 SourceFailure，不影响兄弟 Reader。
合并后按 ID 去重、按负责人/完成状态筛选、排序，最后对返回集合计算统计。
"""

import asyncio
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import structlog

from .config import EngineSettings
from .exceptions import InvalidFilterError
from .models.enums import ALL_TYPES, TYPE_GROUPS, TaskPriority, TaskStatus, TaskType
from .models.records import SourceItem
from .models.task import (
    AggregationResult,
    FeedFilters,
    SourceFailure,
    Task,
    TaskStats,
)
from .normalizer import normalize
from .sources.base import SourceReader
from .timeutil import ensure_utc

log = structlog.get_logger()

ALL = "all"
UNASSIGNED = "unassigned"


def resolve_type_filter(type_filter: str | None) -> frozenset[TaskType]:
    """类型筛选 -> 类型集合

    接受 "all"、TaskType 名称或分组别名，其余一律拒绝（不回退到 all）。

    Raises:
        InvalidFilterError: 未知类型/别名
    """
    value = (type_filter or ALL).strip()
    if value == ALL:
        return ALL_TYPES
    if value in TYPE_GROUPS:
        return TYPE_GROUPS[value]
    try:
        return frozenset({TaskType(value)})
    except ValueError:
        raise InvalidFilterError(f"Unknown task filter: {value}") from None


def validate_window(
    window_start: datetime,
    window_end: datetime,
    max_window_days: int,
) -> tuple[datetime, datetime]:
    """校验时间窗口并归一化为 UTC

    Raises:
        InvalidFilterError: 起点晚于终点或跨度超限
    """
    start = ensure_utc(window_start)
    end = ensure_utc(window_end)
    if start > end:
        raise InvalidFilterError("startDate must not be after endDate")
    if end - start > timedelta(days=max_window_days):
        raise InvalidFilterError(f"Window exceeds {max_window_days} days")
    return start, end


def validate_assignee_filter(assigned_user_id: str | None) -> str:
    value = (assigned_user_id or ALL).strip()
    if not value:
        raise InvalidFilterError("assignedUserId must not be blank")
    return value


def sort_key(task: Task) -> tuple:
    """逾期优先 -> 截止日期升序（空值最后）-> 开始日期升序 -> ID"""
    due = ensure_utc(task.due_date) if task.due_date else None
    return (
        0 if task.status == TaskStatus.OVERDUE else 1,
        due is None,
        due or datetime.max.replace(tzinfo=UTC),
        ensure_utc(task.start_date),
        task.id,
    )


def compute_stats(tasks: Sequence[Task]) -> TaskStats:
    """对返回集合计算统计，所有枚举键均出现"""
    by_status = dict.fromkeys(TaskStatus, 0)
    by_priority = dict.fromkeys(TaskPriority, 0)
    by_type = dict.fromkeys(TaskType, 0)
    assigned = 0
    for task in tasks:
        by_status[task.status] += 1
        by_priority[task.priority] += 1
        by_type[task.type] += 1
        if task.assigned_to is not None:
            assigned += 1
    return TaskStats(
        total=len(tasks),
        by_status=by_status,
        by_priority=by_priority,
        by_type=by_type,
        assigned=assigned,
        unassigned=len(tasks) - assigned,
    )


def _matches_assignee(task: Task, assigned_user_id: str) -> bool:
    if assigned_user_id == ALL:
        return True
    if assigned_user_id == UNASSIGNED:
        return task.assigned_to is None
    return task.assigned_to is not None and task.assigned_to.id == assigned_user_id


class Aggregator:
    """任务流聚合器"""

    def __init__(self, readers: Sequence[SourceReader], settings: EngineSettings) -> None:
        self._readers = list(readers)
        self._settings = settings

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    async def collect(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> tuple[list[SourceItem], list[SourceFailure]]:
        """并行调用相关 Reader，返回源记录与降级列表

        本协程被取消时，所有 Reader 子任务随之取消。
        """
        selected = [
            (reader, reader.task_types & task_types)
            for reader in self._readers
            if reader.task_types & task_types
        ]
        semaphore = asyncio.Semaphore(self._settings.max_concurrency)

        async def run(reader: SourceReader, types: frozenset[TaskType]) -> list[SourceItem]:
            async with semaphore:
                return await asyncio.wait_for(
                    reader.fetch(window_start, window_end, types),
                    timeout=self._settings.reader_timeout_s,
                )

        tasks = [asyncio.create_task(run(reader, types)) for reader, types in selected]
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        items: list[SourceItem] = []
        failures: list[SourceFailure] = []
        for (reader, types), outcome in zip(selected, outcomes, strict=True):
            if isinstance(outcome, TimeoutError):
                log.warning(
                    "source_reader_timeout",
                    source=reader.name,
                    timeout_s=self._settings.reader_timeout_s,
                )
                failures.append(
                    SourceFailure(
                        source=reader.name,
                        task_types=sorted(types),
                        reason="timeout",
                        error_type="TimeoutError",
                    )
                )
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            elif isinstance(outcome, BaseException):
                log.warning(
                    "source_reader_failed",
                    source=reader.name,
                    error_type=type(outcome).__name__,
                    error=str(outcome),
                )
                failures.append(
                    SourceFailure(
                        source=reader.name,
                        task_types=sorted(types),
                        reason="error",
                        error_type=type(outcome).__name__,
                    )
                )
            else:
                items.extend(item for item in outcome if item.task_type in types)
        return items, failures

    def assemble(
        self,
        items: Sequence[SourceItem],
        failures: Sequence[SourceFailure],
        filters: FeedFilters,
        now: datetime,
    ) -> AggregationResult:
        """投影、去重、筛选、排序并统计（纯计算，基于当前时钟）"""
        assigned_user_id = validate_assignee_filter(filters.assigned_user_id)
        by_id: dict[str, Task] = {}
        for item in items:
            task = normalize(item, now, self._settings)
            by_id.setdefault(task.id, task)

        tasks = [
            task
            for task in by_id.values()
            if _matches_assignee(task, assigned_user_id)
            and not (filters.hide_completed and task.status == TaskStatus.COMPLETED)
        ]
        tasks.sort(key=sort_key)
        return AggregationResult(
            tasks=tasks,
            stats=compute_stats(tasks),
            partial=bool(failures),
            skipped_sources=list(failures),
        )

    async def aggregate(
        self,
        window_start: datetime,
        window_end: datetime,
        filters: FeedFilters,
        now: datetime,
    ) -> AggregationResult:
        """聚合任务流（只读，可安全重试）

        Raises:
            InvalidFilterError: 非法类型筛选、时间窗口或负责人筛选
        """
        task_types = resolve_type_filter(filters.type_filter)
        validate_assignee_filter(filters.assigned_user_id)
        start, end = validate_window(window_start, window_end, self._settings.max_window_days)
        items, failures = await self.collect(start, end, task_types)
        result = self.assemble(items, failures, filters, now)
        log.info(
            "task_feed_aggregated",
            type_filter=filters.type_filter,
            total=result.stats.total,
            partial=result.partial,
            skipped=[failure.source for failure in result.skipped_sources],
        )
        return result
