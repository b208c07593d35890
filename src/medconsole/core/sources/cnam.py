"""CNAM 报销单续期 Reader"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import CnamBonStore
from .base import store_errors


class CnamBonReader:
    name = "cnam_bons"
    task_types = frozenset({TaskType.CNAM_RENEWAL})

    def __init__(self, store: CnamBonStore) -> None:
        self._store = store

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        async with store_errors(self.name):
            records = await self._store.list_relevant(window_start, window_end)
        return [SourceItem(TaskType.CNAM_RENEWAL, record) for record in records]
