"""TraceMiddleware -- 任务变更追踪

任务变更请求（完成 / 备注）以 trace_id=trace-<taskId> 贯穿日志。
中间件从 X-Task-ID 请求头或 taskId 查询参数提取；
路由在解析请求体后调用 bind_task_trace() 补充绑定。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# 需要追踪的任务变更路径
MUTATION_PATHS = frozenset({"/api/tasks/complete", "/api/tasks/notes"})


def bind_task_trace(task_id: str) -> str:
    """绑定任务 trace_id 到当前日志上下文"""
    trace_id = f"trace-{task_id}"
    structlog.contextvars.bind_contextvars(trace_id=trace_id)
    return trace_id


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件 -- 为任务变更绑定 trace_id"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in MUTATION_PATHS:
            task_id = request.headers.get("X-Task-ID") or request.query_params.get("taskId")
            if task_id:
                bind_task_trace(task_id)

        return await call_next(request)
