"""预约 Reader"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import AppointmentStore
from .base import store_errors


class AppointmentReader:
    name = "appointments"
    task_types = frozenset({TaskType.APPOINTMENT_REMINDER})

    def __init__(self, store: AppointmentStore) -> None:
        self._store = store

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        async with store_errors(self.name):
            records = await self._store.list_relevant(window_start, window_end)
        return [SourceItem(TaskType.APPOINTMENT_REMINDER, record) for record in records]
