"""任务流路由

GET   /api/tasks:          统一任务流（时间窗口 + 筛选），含统计与降级信息
POST  /api/tasks/complete: 完成任务
PATCH /api/tasks/notes:    更新任务备注
POST  /api/tasks/manual:   创建手动任务
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Header, Query
from medconsole.core.config import NOTES_MAX_LENGTH, TITLE_MAX_LENGTH
from medconsole.core.exceptions import (
    InvalidFilterError,
    InvalidTaskReferenceError,
    QuerySupersededError,
    UnknownReferenceError,
)
from medconsole.core.lifecycle import LifecycleController
from medconsole.core.models import (
    FeedFilters,
    LifecycleOutcome,
    LifecycleResult,
    TaskPriority,
    TaskType,
)
from medconsole.core.models.task import CamelModel
from pydantic import Field, model_validator
from starlette.responses import JSONResponse

from ..deps import get_lifecycle, get_query_service
from ..middleware.trace_mw import bind_task_trace
from ..services.query_service import QueryService

log = structlog.get_logger()

router = APIRouter()

# 未提供操作人时的默认值（认证不在本服务范围内）
DEFAULT_ACTOR = "system"


class CompleteTaskRequest(CamelModel):
    """完成任务请求"""

    task_id: str = Field(min_length=1)
    task_type: TaskType
    expected_version: int | None = Field(default=None, ge=1)
    actor_id: str | None = None
    due_date: datetime | None = Field(
        default=None, description="任务流中显示的到期日（周期性维护任务按此定位轮次）"
    )


class UpdateNotesRequest(CamelModel):
    """备注更新请求（空字符串清空备注）"""

    task_id: str = Field(min_length=1)
    task_type: TaskType
    notes: str = Field(default="", max_length=NOTES_MAX_LENGTH)
    expected_version: int | None = Field(default=None, ge=1)


class CreateManualTaskRequest(CamelModel):
    """创建手动任务请求"""

    title: str = Field(min_length=1, max_length=TITLE_MAX_LENGTH)
    description: str | None = None
    start_date: datetime
    end_date: datetime | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    assigned_user_id: str | None = None
    patient_id: str | None = None
    company_id: str | None = None

    @model_validator(mode="after")
    def _check_dates(self) -> "CreateManualTaskRequest":
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("endDate must not be before startDate")
        return self


def _error(status_code: int, code: str, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}, **extra},
    )


def _lifecycle_response(result: LifecycleResult) -> JSONResponse:
    """LifecycleResult -> HTTP 响应"""
    if result.success:
        return JSONResponse(
            status_code=200,
            content={
                "success": True,
                "outcome": result.outcome.value,
                "message": result.message,
                "task": (
                    result.task.model_dump(mode="json", by_alias=True) if result.task else None
                ),
            },
        )
    if result.outcome == LifecycleOutcome.REQUIRES_ACTION:
        return _error(
            400,
            "REQUIRES_ACTION",
            result.message,
            requiresAction=True,
            actionUrl=result.action_url,
        )
    if result.outcome == LifecycleOutcome.NOT_FOUND:
        return _error(404, "TASK_NOT_FOUND", result.message)
    if result.outcome == LifecycleOutcome.NOT_EDITABLE:
        return _error(400, "NOT_EDITABLE", result.message)
    return _error(409, "WRITE_CONFLICT", result.message, retryable=result.retryable)


@router.get("/api/tasks")
async def list_tasks(
    start_date: datetime = Query(alias="startDate", description="窗口起点（含）"),
    end_date: datetime = Query(alias="endDate", description="窗口终点（含）"),
    type_filter: str = Query(default="all", alias="filter", description="类型或分组别名"),
    assigned_user_id: str = Query(default="all", alias="assignedUserId"),
    hide_completed: bool = Query(default=False, alias="hideCompleted"),
    query_service: QueryService = Depends(get_query_service),
):
    """统一任务流查询"""
    filters = FeedFilters(
        type_filter=type_filter,
        assigned_user_id=assigned_user_id,
        hide_completed=hide_completed,
    )
    try:
        result = await query_service.get_feed(start_date, end_date, filters)
    except InvalidFilterError as e:
        return _error(400, "INVALID_FILTER", str(e))
    except QuerySupersededError:
        return _error(409, "QUERY_SUPERSEDED", "Query superseded by a newer request")
    return result.model_dump(mode="json", by_alias=True)


@router.post("/api/tasks/complete")
async def complete_task(
    body: CompleteTaskRequest,
    x_user_id: str | None = Header(default=None),
    lifecycle: LifecycleController = Depends(get_lifecycle),
    query_service: QueryService = Depends(get_query_service),
):
    """完成任务（派生类型校验前置条件）"""
    bind_task_trace(body.task_id)
    actor_id = body.actor_id or x_user_id or DEFAULT_ACTOR
    try:
        result = await lifecycle.complete(
            body.task_id,
            body.task_type,
            actor_id,
            body.expected_version,
            due_date=body.due_date,
        )
    except InvalidTaskReferenceError as e:
        return _error(400, "INVALID_TASK_REFERENCE", str(e))
    if result.outcome == LifecycleOutcome.COMPLETED:
        query_service.invalidate()
    return _lifecycle_response(result)


@router.patch("/api/tasks/notes")
async def update_notes(
    body: UpdateNotesRequest,
    lifecycle: LifecycleController = Depends(get_lifecycle),
    query_service: QueryService = Depends(get_query_service),
):
    """更新备注（仅 TASK / APPOINTMENT_REMINDER）"""
    bind_task_trace(body.task_id)
    try:
        result = await lifecycle.update_notes(
            body.task_id, body.task_type, body.notes, body.expected_version
        )
    except InvalidTaskReferenceError as e:
        return _error(400, "INVALID_TASK_REFERENCE", str(e))
    if result.outcome == LifecycleOutcome.NOTES_UPDATED:
        query_service.invalidate()
    return _lifecycle_response(result)


@router.post("/api/tasks/manual", status_code=201)
async def create_manual_task(
    body: CreateManualTaskRequest,
    lifecycle: LifecycleController = Depends(get_lifecycle),
    query_service: QueryService = Depends(get_query_service),
):
    """创建手动任务，返回物化后的 Task"""
    try:
        task = await lifecycle.create_manual_task(
            title=body.title,
            start_date=body.start_date,
            end_date=body.end_date,
            description=body.description,
            priority=body.priority,
            assigned_user_id=body.assigned_user_id,
            patient_id=body.patient_id,
            company_id=body.company_id,
        )
    except UnknownReferenceError as e:
        return _error(400, "UNKNOWN_REFERENCE", str(e))
    query_service.invalidate()
    return task.model_dump(mode="json", by_alias=True)
