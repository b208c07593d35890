"""枚举定义

包含 TaskType 封闭变体、TaskStatus 状态机、TaskPriority，
类型分组别名 TYPE_GROUPS、直接可完成类型集合，
以及各业务域（诊断、租赁、付款、预约、CNAM、销售）的源状态枚举。
"""

from enum import StrEnum


class TaskType(StrEnum):
    """Task 类型 -- 封闭枚举，每个值对应一种规范化投影"""

    TASK = "TASK"
    DIAGNOSTIC_PENDING = "DIAGNOSTIC_PENDING"
    RENTAL_EXPIRING = "RENTAL_EXPIRING"
    PAYMENT_DUE = "PAYMENT_DUE"
    APPOINTMENT_REMINDER = "APPOINTMENT_REMINDER"
    CNAM_RENEWAL = "CNAM_RENEWAL"
    MAINTENANCE_DUE = "MAINTENANCE_DUE"
    SALE_RAPPEL_2YEARS = "SALE_RAPPEL_2YEARS"
    SALE_RAPPEL_7YEARS = "SALE_RAPPEL_7YEARS"
    RENTAL_ALERT = "RENTAL_ALERT"
    RENTAL_TITRATION = "RENTAL_TITRATION"
    RENTAL_APPOINTMENT = "RENTAL_APPOINTMENT"
    PAYMENT_PERIOD_END = "PAYMENT_PERIOD_END"


class TaskStatus(StrEnum):
    """Task 状态

    OVERDUE 是叠加在 TODO/IN_PROGRESS 上的派生状态，不是真实状态。
    """

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"


class TaskPriority(StrEnum):
    """Task 优先级"""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


# 持久化状态机（仅 TASK 类型落盘）
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.TODO: {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED},
    TaskStatus.IN_PROGRESS: {TaskStatus.COMPLETED},
    # 终态不可逆
    TaskStatus.COMPLETED: set(),
}

TERMINAL_STATES: set[TaskStatus] = {TaskStatus.COMPLETED}

# 支持直接完成 / 备注编辑的类型
DIRECTLY_COMPLETABLE: frozenset[TaskType] = frozenset(
    {TaskType.TASK, TaskType.APPOINTMENT_REMINDER}
)
NOTES_EDITABLE: frozenset[TaskType] = DIRECTLY_COMPLETABLE

# 分组别名 -> 类型集合
TYPE_GROUPS: dict[str, frozenset[TaskType]] = {
    "tasks": frozenset({TaskType.TASK}),
    "diagnostics": frozenset({TaskType.DIAGNOSTIC_PENDING}),
    "appointments": frozenset({TaskType.APPOINTMENT_REMINDER}),
    "rentals": frozenset(
        {
            TaskType.RENTAL_EXPIRING,
            TaskType.RENTAL_ALERT,
            TaskType.RENTAL_TITRATION,
            TaskType.RENTAL_APPOINTMENT,
        }
    ),
    "payments": frozenset({TaskType.PAYMENT_DUE, TaskType.PAYMENT_PERIOD_END}),
    "sales": frozenset({TaskType.SALE_RAPPEL_2YEARS, TaskType.SALE_RAPPEL_7YEARS}),
    "cnam": frozenset({TaskType.CNAM_RENEWAL}),
    "maintenance": frozenset({TaskType.MAINTENANCE_DUE}),
}

ALL_TYPES: frozenset[TaskType] = frozenset(TaskType)


class DiagnosticStatus(StrEnum):
    """诊断状态"""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RentalStatus(StrEnum):
    """租赁状态"""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


class PaymentStatus(StrEnum):
    """付款状态"""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    GUARANTEE = "GUARANTEE"
    CANCELLED = "CANCELLED"


class AppointmentStatus(StrEnum):
    """预约状态"""

    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RESCHEDULED = "RESCHEDULED"


class AppointmentPriority(StrEnum):
    """预约优先级（业务侧取值）"""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class CnamStatus(StrEnum):
    """CNAM 报销单状态"""

    EN_ATTENTE_APPROBATION = "EN_ATTENTE_APPROBATION"
    APPROUVE = "APPROUVE"
    EN_COURS = "EN_COURS"
    TERMINE = "TERMINE"
    REFUSE = "REFUSE"


class SaleStatus(StrEnum):
    """销售状态"""

    PENDING = "PENDING"
    ON_PROGRESS = "ON_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    RETURNED = "RETURNED"
    PARTIALLY_RETURNED = "PARTIALLY_RETURNED"


class DeviceStatus(StrEnum):
    """医疗设备状态"""

    ACTIVE = "ACTIVE"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"
    RESERVED = "RESERVED"
    SOLD = "SOLD"


class ClientKind(StrEnum):
    """客户类型"""

    PATIENT = "patient"
    COMPANY = "company"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证持久化状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
