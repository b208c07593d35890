"""销售提醒 Reader -- 2 年配件 / 7 年设备"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import SaleStore
from .base import store_errors

# 提醒类型 -> 年限
RAPPEL_YEARS: dict[TaskType, int] = {
    TaskType.SALE_RAPPEL_2YEARS: 2,
    TaskType.SALE_RAPPEL_7YEARS: 7,
}


class SaleReader:
    name = "sales"
    task_types = frozenset(RAPPEL_YEARS)

    def __init__(self, store: SaleStore) -> None:
        self._store = store

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        items: list[SourceItem] = []
        async with store_errors(self.name):
            for task_type, years in RAPPEL_YEARS.items():
                if task_type not in task_types:
                    continue
                for record in await self._store.list_rappels(years, window_start, window_end):
                    items.append(SourceItem(task_type, record))
        return items
