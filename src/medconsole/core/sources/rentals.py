"""租赁 Reader -- 到期 + 三类提醒

同一租赁记录按不同日期列投影为不同类型，
只查询本次请求需要的类型。
"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import RentalStore
from .base import store_errors

# 提醒类型 -> 日期列
REMINDER_COLUMNS: dict[TaskType, str] = {
    TaskType.RENTAL_ALERT: "alert_date",
    TaskType.RENTAL_TITRATION: "titration_reminder_date",
    TaskType.RENTAL_APPOINTMENT: "appointment_date",
}


class RentalReader:
    name = "rentals"
    task_types = frozenset({TaskType.RENTAL_EXPIRING, *REMINDER_COLUMNS})

    def __init__(self, store: RentalStore) -> None:
        self._store = store

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        items: list[SourceItem] = []
        async with store_errors(self.name):
            if TaskType.RENTAL_EXPIRING in task_types:
                for record in await self._store.list_expiring(window_start, window_end):
                    items.append(SourceItem(TaskType.RENTAL_EXPIRING, record))
            for task_type, column in REMINDER_COLUMNS.items():
                if task_type not in task_types:
                    continue
                for record in await self._store.list_reminders(column, window_start, window_end):
                    items.append(SourceItem(task_type, record))
        return items
