"""Task Domain Model -- 统一任务信封

Task 是各业务域记录的物化投影（projection），除 TASK 类型外不落盘。
对外 JSON 使用 camelCase 字段名。
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import ClientKind, TaskPriority, TaskStatus, TaskType


class CamelModel(BaseModel):
    """camelCase 序列化基类"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AssigneeRef(CamelModel):
    """负责人引用"""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    role: str = ""


class ClientRef(CamelModel):
    """客户引用（患者或公司）"""

    id: str
    name: str
    type: ClientKind
    telephone: str | None = None


class RelatedData(CamelModel):
    """按业务域填充的关联数据，字段随 type 变化"""

    device_name: str | None = None
    amount: float | None = None
    remaining_amount: float | None = None
    diagnostic_id: str | None = None
    diagnostic_code: str | None = None
    rental_id: str | None = None
    rental_code: str | None = None
    appointment_id: str | None = None
    appointment_code: str | None = None
    payment_id: str | None = None
    payment_code: str | None = None
    bon_number: str | None = None
    sale_code: str | None = None


class Task(CamelModel):
    """Task 数据模型

    status / priority 在读取时根据当前时钟派生，不可跨请求缓存。
    """

    id: str = Field(description="确定性 ID：<类型前缀>-<源记录 ID>")
    type: TaskType
    title: str
    description: str | None = None
    notes: str | None = None
    status: TaskStatus
    priority: TaskPriority
    start_date: datetime
    due_date: datetime | None = None
    completed_at: datetime | None = None
    completed_by: str | None = None
    assigned_to: AssigneeRef | None = Field(default=None, description="None 表示未分配")
    client: ClientRef | None = None
    related_data: RelatedData = Field(default_factory=RelatedData)
    action_url: str | None = None
    action_label: str | None = None
    can_complete: bool = False
    version: int = Field(default=1, description="源记录乐观锁版本号")


class FeedFilters(CamelModel):
    """任务流筛选条件"""

    type_filter: str = "all"
    assigned_user_id: str = "all"
    hide_completed: bool = False


class TaskStats(CamelModel):
    """任务统计 -- 始终描述实际返回的任务集合"""

    total: int = 0
    by_status: dict[TaskStatus, int] = Field(default_factory=dict)
    by_priority: dict[TaskPriority, int] = Field(default_factory=dict)
    by_type: dict[TaskType, int] = Field(default_factory=dict)
    assigned: int = 0
    unassigned: int = 0


class SourceFailure(CamelModel):
    """单个 Source Reader 的降级记录"""

    source: str
    task_types: list[TaskType]
    reason: str = Field(description="timeout / error")
    error_type: str = ""


class AggregationResult(CamelModel):
    """聚合结果"""

    tasks: list[Task]
    stats: TaskStats
    partial: bool = False
    skipped_sources: list[SourceFailure] = Field(default_factory=list)
