"""任务引擎异常体系

SourceUnavailableError 在聚合器内被捕获降级；
InvalidFilterError / InvalidTaskReferenceError 直接拒绝请求；
WriteConflictError 由 Lifecycle Controller 转换为类型化 CONFLICT 结果。
"""


class TaskEngineError(Exception):
    """任务引擎基础异常"""

    def __init__(self, message: str, recoverable: bool = False) -> None:
        """
        Args:
            message: 错误描述
            recoverable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.recoverable = recoverable


class SourceUnavailableError(TaskEngineError):
    """Source Reader 后端存储不可用

    聚合器捕获后返回空集并记录降级，不中断整体聚合。
    """

    def __init__(self, source: str, original_error: Exception) -> None:
        super().__init__(
            f"Source 不可用: {source} -- {original_error}",
            recoverable=True,
        )
        self.source = source
        self.original_error = original_error


class InvalidFilterError(TaskEngineError):
    """未知类型/分组别名或非法时间窗口"""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class InvalidTaskReferenceError(TaskEngineError):
    """task_id 前缀与 task_type 不匹配"""

    def __init__(self, task_id: str, task_type: str) -> None:
        super().__init__(
            f"Task id '{task_id}' does not belong to type {task_type}",
            recoverable=False,
        )
        self.task_id = task_id
        self.task_type = task_type


class UnknownReferenceError(TaskEngineError):
    """创建手动任务时引用的用户/患者/公司不存在"""

    def __init__(self, message: str) -> None:
        super().__init__(message, recoverable=False)


class WriteConflictError(TaskEngineError):
    """乐观锁写冲突 -- 并发写入中落败的一方"""

    def __init__(self, table: str, record_id: str, expected_version: int) -> None:
        super().__init__(
            f"{table}/{record_id} 已被并发修改（期望版本 {expected_version}）",
            recoverable=True,
        )
        self.table = table
        self.record_id = record_id
        self.expected_version = expected_version


class QuerySupersededError(TaskEngineError):
    """同一窗口/筛选的查询被更新的请求取代"""

    def __init__(self, key: str) -> None:
        super().__init__(f"查询已被更新的请求取代: {key}", recoverable=True)
        self.key = key
