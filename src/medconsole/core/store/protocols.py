"""Store Protocol 接口定义

Source Reader 与 Lifecycle Controller 只依赖这些结构化接口，
业务域存储可替换为任意实现（SQLite 适配器、远程服务客户端等）。
"""

from datetime import datetime
from typing import Protocol

from ..models.records import (
    AppointmentRecord,
    CnamBonRecord,
    DiagnosticRecord,
    MaintenanceRecord,
    ManualTaskRecord,
    PaymentRecord,
    RentalRecord,
    SaleRecord,
)


class ManualTaskStore(Protocol):
    """手动任务存储接口（可写）"""

    async def get_task(self, task_id: str) -> ManualTaskRecord | None: ...

    async def list_relevant(self, start: datetime, end: datetime) -> list[ManualTaskRecord]: ...

    async def add_task(self, record: ManualTaskRecord) -> None: ...

    async def mark_completed(
        self,
        task_id: str,
        expected_version: int,
        actor_id: str,
        now: datetime,
    ) -> int:
        """版本校验写入，冲突时抛 WriteConflictError"""
        ...

    async def update_notes(
        self,
        task_id: str,
        expected_version: int,
        notes: str | None,
        now: datetime,
    ) -> int: ...


class AppointmentStore(Protocol):
    """预约存储接口（可写）"""

    async def get_appointment(self, appointment_id: str) -> AppointmentRecord | None: ...

    async def list_relevant(self, start: datetime, end: datetime) -> list[AppointmentRecord]: ...

    async def mark_completed(
        self,
        appointment_id: str,
        expected_version: int,
        actor_id: str,
        now: datetime,
    ) -> int: ...

    async def update_notes(
        self,
        appointment_id: str,
        expected_version: int,
        notes: str | None,
        now: datetime,
    ) -> int: ...


class DiagnosticStore(Protocol):
    async def get_diagnostic(self, diagnostic_id: str) -> DiagnosticRecord | None: ...

    async def list_relevant(self, start: datetime, end: datetime) -> list[DiagnosticRecord]: ...


class RentalStore(Protocol):
    async def get_rental(self, rental_id: str) -> RentalRecord | None: ...

    async def list_expiring(self, start: datetime, end: datetime) -> list[RentalRecord]: ...

    async def list_reminders(
        self,
        column: str,
        start: datetime,
        end: datetime,
    ) -> list[RentalRecord]: ...


class PaymentStore(Protocol):
    async def get_payment(self, payment_id: str) -> PaymentRecord | None: ...

    async def list_due(self, start: datetime, end: datetime) -> list[PaymentRecord]: ...

    async def list_period_ends(self, start: datetime, end: datetime) -> list[PaymentRecord]: ...


class CnamBonStore(Protocol):
    async def get_bon(self, bon_id: str) -> CnamBonRecord | None: ...

    async def list_relevant(self, start: datetime, end: datetime) -> list[CnamBonRecord]: ...

    async def has_successor(self, bon: CnamBonRecord) -> bool: ...


class SaleStore(Protocol):
    async def get_sale(self, sale_id: str) -> SaleRecord | None: ...

    async def list_rappels(
        self,
        years: int,
        start: datetime,
        end: datetime,
    ) -> list[SaleRecord]: ...


class DeviceStore(Protocol):
    async def get_maintenance(
        self,
        device_id: str,
        interval_months: int,
    ) -> MaintenanceRecord | None: ...

    async def list_due(
        self,
        start: datetime,
        end: datetime,
        interval_months: int,
    ) -> list[MaintenanceRecord]: ...

    async def list_repair_dates(self, device_id: str) -> list[datetime]: ...


class NotificationStore(Protocol):
    async def mark_follow_up_read(self, related_id: str, now: datetime) -> int:
        """关联 FOLLOW_UP 通知置为 READ（随任务完成同事务提交）"""
        ...
