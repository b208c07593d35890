"""手动任务 Reader"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import ManualTaskStore
from .base import store_errors


class ManualTaskReader:
    name = "manual_tasks"
    task_types = frozenset({TaskType.TASK})

    def __init__(self, store: ManualTaskStore) -> None:
        self._store = store

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        async with store_errors(self.name):
            records = await self._store.list_relevant(window_start, window_end)
        return [SourceItem(TaskType.TASK, record) for record in records]
