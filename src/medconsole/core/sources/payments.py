"""付款 Reader -- 到期付款 + 账期结束"""

from datetime import datetime

from ..models.enums import TaskType
from ..models.records import SourceItem
from ..store.protocols import PaymentStore
from .base import store_errors


class PaymentReader:
    name = "payments"
    task_types = frozenset({TaskType.PAYMENT_DUE, TaskType.PAYMENT_PERIOD_END})

    def __init__(self, store: PaymentStore) -> None:
        self._store = store

    async def fetch(
        self,
        window_start: datetime,
        window_end: datetime,
        task_types: frozenset[TaskType],
    ) -> list[SourceItem]:
        items: list[SourceItem] = []
        async with store_errors(self.name):
            if TaskType.PAYMENT_DUE in task_types:
                for record in await self._store.list_due(window_start, window_end):
                    items.append(SourceItem(TaskType.PAYMENT_DUE, record))
            if TaskType.PAYMENT_PERIOD_END in task_types:
                for record in await self._store.list_period_ends(window_start, window_end):
                    items.append(SourceItem(TaskType.PAYMENT_PERIOD_END, record))
        return items
