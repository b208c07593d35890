"""Lifecycle 操作结果 -- 类型化结果而非异常

完成/备注更新的所有可预期分支（需要操作、不可编辑、写冲突）
都以 LifecycleResult 返回，调用方按 outcome 分支处理。
"""

from enum import StrEnum

from .task import CamelModel, Task


class LifecycleOutcome(StrEnum):
    """Lifecycle 操作结果类型"""

    COMPLETED = "COMPLETED"
    ALREADY_COMPLETED = "ALREADY_COMPLETED"
    PRECONDITION_SATISFIED = "PRECONDITION_SATISFIED"
    NOTES_UPDATED = "NOTES_UPDATED"
    REQUIRES_ACTION = "REQUIRES_ACTION"
    NOT_EDITABLE = "NOT_EDITABLE"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"


SUCCESS_OUTCOMES: frozenset[LifecycleOutcome] = frozenset(
    {
        LifecycleOutcome.COMPLETED,
        LifecycleOutcome.ALREADY_COMPLETED,
        LifecycleOutcome.PRECONDITION_SATISFIED,
        LifecycleOutcome.NOTES_UPDATED,
    }
)


class LifecycleResult(CamelModel):
    """完成 / 备注更新结果"""

    outcome: LifecycleOutcome
    message: str = ""
    requires_action: bool = False
    action_url: str | None = None
    retryable: bool = False
    task: Task | None = None

    @property
    def success(self) -> bool:
        return self.outcome in SUCCESS_OUTCOMES
