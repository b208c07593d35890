"""Source Reader 接口

每个 Reader 负责一个业务域，声明可产出的 TaskType 集合，
按时间窗口从自身存储读取相关记录。Reader 之间互不依赖。
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Protocol

import aiosqlite

from ..exceptions import SourceUnavailableError
from ..models.enums import TaskType
from ..models.records import SourceItem


class SourceReader(Protocol):
    """业务域读取接口"""

    name: str
    task_types: frozenset[TaskType]

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        """读取窗口内的记录

        Args:
            window_start: 窗口起点（含）
            window_end: 窗口终点（含）
            task_types: 本次请求需要的类型（已与 Reader 声明求交集）

        Raises:
            SourceUnavailableError: 后端存储不可用
        """
        ...


@asynccontextmanager
async def store_errors(source: str) -> AsyncIterator[None]:
    """将存储层异常转换为 SourceUnavailableError"""
    try:
        yield
    except aiosqlite.Error as e:
        raise SourceUnavailableError(source, e) from e
