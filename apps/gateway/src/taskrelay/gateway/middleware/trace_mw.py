"""TraceMiddleware -- 为任务操作绑定 trace_id

trace_id = trace-<task id>，task id 取自路径中 tasks 之后的段
（/api/agent/tasks/{task_id}/complete）或 taskId 查询参数。
"""

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# UUID 字符串长度
TASK_ID_LENGTH = 36


def extract_trace_task_id(request: Request) -> str | None:
    parts = request.url.path.split("/")
    for i, part in enumerate(parts[:-1]):
        if part == "tasks" and len(parts[i + 1]) == TASK_ID_LENGTH:
            return parts[i + 1]
    return request.query_params.get("taskId") or None


class TraceMiddleware(BaseHTTPMiddleware):
    """任务级追踪中间件"""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        task_id = extract_trace_task_id(request)
        if task_id:
            structlog.contextvars.bind_contextvars(trace_id=f"trace-{task_id}")
        return await call_next(request)
