"""待处理诊断 Reader"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import DiagnosticStore
from .base import store_errors


class DiagnosticReader:
    name = "diagnostics"
    task_types = frozenset({TaskType.DIAGNOSTIC_PENDING})

    def __init__(self, store: DiagnosticStore) -> None:
        self._store = store

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        async with store_errors(self.name):
            records = await self._store.list_relevant(window_start, window_end)
        return [SourceItem(TaskType.DIAGNOSTIC_PENDING, record) for record in records]
