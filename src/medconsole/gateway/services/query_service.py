"""QueryService -- 任务流查询入口

职责：
1. 校验筛选与时间窗口（非法即拒绝）
2. 同一 (窗口, 筛选) 的新查询取代进行中的旧查询，旧查询以 QuerySupersededError 结束
3. 可选的源记录缓存（TTL，默认关闭）：缓存 Reader 输出而非 Task，
   每次返回前都基于当前时钟重新投影、排序、统计
"""

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import structlog
from medconsole.core.aggregator import (
    Aggregator,
    resolve_type_filter,
    validate_assignee_filter,
    validate_window,
)
from medconsole.core.exceptions import QuerySupersededError
from medconsole.core.models import AggregationResult, FeedFilters, SourceFailure, SourceItem
from medconsole.core.timeutil import utc_now

log = structlog.get_logger()


@dataclass(frozen=True)
class _CacheEntry:
    expires_at: float
    items: list[SourceItem]
    failures: list[SourceFailure]


class QueryService:
    """任务流查询服务"""

    def __init__(
        self,
        aggregator: Aggregator,
        clock: Callable[[], datetime] = utc_now,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._aggregator = aggregator
        self._clock = clock
        self._timer = timer
        self._inflight: dict[str, asyncio.Task] = {}
        self._cache: dict[str, _CacheEntry] = {}

    @property
    def cache_ttl_s(self) -> float:
        return self._aggregator.settings.feed_cache_ttl_s

    @staticmethod
    def _key(start: datetime, end: datetime, filters: FeedFilters) -> str:
        return "|".join(
            (
                start.isoformat(),
                end.isoformat(),
                filters.type_filter,
                filters.assigned_user_id,
                str(filters.hide_completed),
            )
        )

    def _cache_get(self, key: str) -> _CacheEntry | None:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._timer():
            self._cache.pop(key, None)
            return None
        return entry

    def _cache_put(
        self, key: str, items: list[SourceItem], failures: list[SourceFailure]
    ) -> None:
        """写入缓存，同时清除所有已过期条目"""
        now = self._timer()
        expired = [k for k, entry in self._cache.items() if entry.expires_at <= now]
        for stale_key in expired:
            del self._cache[stale_key]
        self._cache[key] = _CacheEntry(
            expires_at=now + self.cache_ttl_s, items=items, failures=failures
        )

    def invalidate(self) -> None:
        """清空缓存（写操作后调用）"""
        self._cache.clear()

    async def get_feed(
        self,
        window_start: datetime,
        window_end: datetime,
        filters: FeedFilters,
    ) -> AggregationResult:
        """查询任务流

        Raises:
            InvalidFilterError: 非法类型筛选、时间窗口或负责人筛选
            QuerySupersededError: 被同 key 的更新查询取代
        """
        task_types = resolve_type_filter(filters.type_filter)
        validate_assignee_filter(filters.assigned_user_id)
        start, end = validate_window(
            window_start, window_end, self._aggregator.settings.max_window_days
        )
        key = self._key(start, end, filters)

        cached = self._cache_get(key)
        if cached is not None:
            items, failures = cached.items, cached.failures
            log.debug("feed_cache_hit", key=key)
        else:
            items, failures = await self._collect_exclusive(key, start, end, task_types)
            if self.cache_ttl_s > 0 and not failures:
                self._cache_put(key, items, failures)

        result = self._aggregator.assemble(items, failures, filters, self._clock())
        log.info(
            "task_feed_aggregated",
            type_filter=filters.type_filter,
            total=result.stats.total,
            partial=result.partial,
            skipped=[failure.source for failure in result.skipped_sources],
            cached=cached is not None,
        )
        return result

    async def _collect_exclusive(
        self,
        key: str,
        start: datetime,
        end: datetime,
        task_types,
    ) -> tuple[list[SourceItem], list[SourceFailure]]:
        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            previous.cancel()
            log.info("feed_query_superseded", key=key)

        collect_task = asyncio.create_task(self._aggregator.collect(start, end, task_types))
        self._inflight[key] = collect_task
        try:
            return await collect_task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # 自身未被取消：说明是被更新的查询取代
            if collect_task.cancelled() and (current is None or current.cancelling() == 0):
                raise QuerySupersededError(key) from None
            raise
        finally:
            if self._inflight.get(key) is collect_task:
                del self._inflight[key]
