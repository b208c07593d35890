"""业务域记录模型 -- Source Reader 的输出

每个记录携带由 Reader 在本域关系内解析好的客户与负责人引用，
Normalizer 只依赖这些字段，不再回查存储。
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel

from .enums import (
    AppointmentPriority,
    AppointmentStatus,
    CnamStatus,
    DeviceStatus,
    DiagnosticStatus,
    PaymentStatus,
    RentalStatus,
    SaleStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
)
from .task import AssigneeRef, ClientRef


class DomainRecord(BaseModel):
    """业务域记录基类"""

    id: str
    version: int = 1
    assignee: AssigneeRef | None = None
    client: ClientRef | None = None


class ManualTaskRecord(DomainRecord):
    """手动任务（唯一持久化状态的类型）"""

    title: str
    description: str | None = None
    notes: str | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    start_date: datetime
    end_date: datetime | None = None
    created_at: datetime
    completed_at: datetime | None = None
    completed_by: str | None = None


class DiagnosticRecord(DomainRecord):
    """诊断记录"""

    diagnostic_code: str = ""
    status: DiagnosticStatus = DiagnosticStatus.PENDING
    device_name: str | None = None
    created_at: datetime
    follow_up_date: datetime | None = None


class RentalRecord(DomainRecord):
    """租赁记录（含三类提醒日期）"""

    rental_code: str = ""
    status: RentalStatus = RentalStatus.ACTIVE
    device_name: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    alert_date: datetime | None = None
    titration_reminder_date: datetime | None = None
    appointment_date: datetime | None = None


class PaymentRecord(DomainRecord):
    """付款记录"""

    payment_code: str = ""
    status: PaymentStatus = PaymentStatus.PENDING
    amount: float
    paid_amount: float = 0.0
    due_date: datetime | None = None
    period_end_date: datetime | None = None
    rental_id: str | None = None
    created_at: datetime

    @property
    def remaining(self) -> float:
        """剩余未付金额（保留两位小数，不为负）"""
        return max(round(self.amount - self.paid_amount, 2), 0.0)


class AppointmentRecord(DomainRecord):
    """预约记录"""

    appointment_code: str = ""
    appointment_type: str = ""
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    priority: AppointmentPriority = AppointmentPriority.NORMAL
    scheduled_date: datetime
    location: str | None = None
    notes: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
    completed_by: str | None = None


class CnamBonRecord(DomainRecord):
    """CNAM 报销单"""

    bon_number: str = ""
    bon_type: str = ""
    status: CnamStatus = CnamStatus.APPROUVE
    start_date: datetime
    end_date: datetime
    rental_id: str | None = None


class SaleRecord(DomainRecord):
    """销售记录（2 年配件 / 7 年设备提醒）"""

    sale_code: str = ""
    status: SaleStatus = SaleStatus.COMPLETED
    device_name: str | None = None
    sale_date: datetime
    rappel_2y_done_at: datetime | None = None
    rappel_7y_done_at: datetime | None = None


class MaintenanceRecord(DomainRecord):
    """设备维护到期记录（id 为设备 ID）"""

    device_name: str
    serial_number: str | None = None
    device_status: DeviceStatus = DeviceStatus.ACTIVE
    device_created_at: datetime
    last_maintenance_date: datetime | None = None
    due_date: datetime
    rental_id: str | None = None
    rental_code: str | None = None


@dataclass(frozen=True)
class SourceItem:
    """Reader 输出项：一个源记录在某个 TaskType 下的投影输入"""

    task_type: TaskType
    record: DomainRecord
