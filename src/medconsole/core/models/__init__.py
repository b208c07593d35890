"""medconsole Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ALL_TYPES,
    DIRECTLY_COMPLETABLE,
    NOTES_EDITABLE,
    TERMINAL_STATES,
    TYPE_GROUPS,
    VALID_TRANSITIONS,
    AppointmentPriority,
    AppointmentStatus,
    ClientKind,
    CnamStatus,
    DeviceStatus,
    DiagnosticStatus,
    PaymentStatus,
    RentalStatus,
    SaleStatus,
    TaskPriority,
    TaskStatus,
    TaskType,
    validate_transition,
)
from .records import (
    AppointmentRecord,
    CnamBonRecord,
    DiagnosticRecord,
    DomainRecord,
    MaintenanceRecord,
    ManualTaskRecord,
    PaymentRecord,
    RentalRecord,
    SaleRecord,
    SourceItem,
)
from .results import LifecycleOutcome, LifecycleResult
from .task import (
    AggregationResult,
    AssigneeRef,
    ClientRef,
    FeedFilters,
    RelatedData,
    SourceFailure,
    Task,
    TaskStats,
)

__all__ = [
    # 枚举
    "TaskType",
    "TaskStatus",
    "TaskPriority",
    "ClientKind",
    "DiagnosticStatus",
    "RentalStatus",
    "PaymentStatus",
    "AppointmentStatus",
    "AppointmentPriority",
    "CnamStatus",
    "SaleStatus",
    "DeviceStatus",
    # 状态机 / 类型分组
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "DIRECTLY_COMPLETABLE",
    "NOTES_EDITABLE",
    "TYPE_GROUPS",
    "ALL_TYPES",
    "validate_transition",
    # Task
    "Task",
    "AssigneeRef",
    "ClientRef",
    "RelatedData",
    "FeedFilters",
    "TaskStats",
    "SourceFailure",
    "AggregationResult",
    # 业务域记录
    "DomainRecord",
    "ManualTaskRecord",
    "DiagnosticRecord",
    "RentalRecord",
    "PaymentRecord",
    "AppointmentRecord",
    "CnamBonRecord",
    "SaleRecord",
    "MaintenanceRecord",
    "SourceItem",
    # Lifecycle
    "LifecycleOutcome",
    "LifecycleResult",
]
