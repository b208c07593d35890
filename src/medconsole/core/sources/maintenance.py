"""设备维护 Reader"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import DeviceStore
from .base import store_errors


class MaintenanceReader:
    name = "maintenance"
    task_types = frozenset({TaskType.MAINTENANCE_DUE})

    def __init__(self, store: DeviceStore, interval_months: int) -> None:
        self._store = store
        self._interval_months = interval_months

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        async with store_errors(self.name):
            records = await self._store.list_due(
                window_start, window_end, self._interval_months
            )
        return [SourceItem(TaskType.MAINTENANCE_DUE, record) for record in records]
