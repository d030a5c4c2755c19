"""Agent 路由 -- start / continue / handoff

POST /api/agent/start: 创建任务并执行第一个轮次。
POST /api/agent/continue: 续接任务（可选先接受待处理的 handoff）。
POST /api/agent/handoff: 发起 handoff，不执行轮次。

响应体使用 camelCase 键名，未设置的可选字段省略。
"""

from fastapi import APIRouter, Depends, Query
from pydantic import Field
from taskrelay.core.models import (
    CamelModel,
    ContinueTaskRequest,
    HandoffRequest,
    Identity,
    StartTaskRequest,
    TaskStatus,
)

from ..deps import get_identity, get_task_service
from ..services.task_service import HANDOFF_INITIATED_MESSAGE, TaskService

router = APIRouter()


class StartResponse(CamelModel):
    success: bool = True
    task_id: str
    session_id: str
    status: TaskStatus
    progress: float
    issue_url: str | None = None
    state_url: str
    result: str | None = None
    error: str | None = None


class ContinueResponse(CamelModel):
    success: bool = True
    task_id: str
    session_id: str
    status: TaskStatus
    progress: float
    handoff_accepted: bool
    result: str | None = None
    error: str | None = None


class HandoffResponse(CamelModel):
    success: bool = True
    task_id: str
    status: TaskStatus
    handoff_url: str | None = None
    message: str = Field(default=HANDOFF_INITIATED_MESSAGE)
    summary: str


@router.post(
    "/api/agent/start",
    response_model=StartResponse,
    response_model_exclude_none=True,
)
async def start_task(
    request: StartTaskRequest,
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    """创建任务并执行第一个轮次；轮次失败时 success 为 false，任务状态为 failed"""
    outcome = await service.start_task(request, identity)
    return StartResponse(
        success=outcome.result.error is None,
        task_id=outcome.task.id,
        session_id=outcome.result.session_id,
        status=outcome.result.status,
        progress=outcome.result.progress,
        issue_url=outcome.issue_url,
        state_url=outcome.state_url,
        result=outcome.result.result,
        error=outcome.result.error,
    )


@router.post(
    "/api/agent/continue",
    response_model=ContinueResponse,
    response_model_exclude_none=True,
)
async def continue_task(
    request: ContinueTaskRequest,
    state_repo: str | None = Query(default=None, alias="stateRepo"),
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    """续接任务 -- 终态任务返回 409，未授权返回 403"""
    outcome = await service.continue_task(request, identity, state_repo)
    return ContinueResponse(
        success=outcome.result.error is None,
        task_id=outcome.task.id,
        session_id=outcome.result.session_id,
        status=outcome.result.status,
        progress=outcome.result.progress,
        handoff_accepted=outcome.handoff_accepted,
        result=outcome.result.result,
        error=outcome.result.error,
    )


@router.post(
    "/api/agent/handoff",
    response_model=HandoffResponse,
    response_model_exclude_none=True,
)
async def initiate_handoff(
    request: HandoffRequest,
    state_repo: str | None = Query(default=None, alias="stateRepo"),
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    outcome = await service.initiate_handoff(request, identity, state_repo)
    return HandoffResponse(
        task_id=outcome.task.id,
        status=outcome.task.status,
        handoff_url=outcome.handoff_url,
        summary=outcome.summary,
    )
