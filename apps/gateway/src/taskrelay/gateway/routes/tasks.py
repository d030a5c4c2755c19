"""任务查询与终态路由

GET /api/agent/status: 带 taskId 时返回单个任务的摘要视图，否则返回任务列表。
POST /api/agent/tasks/{task_id}/complete: 完成任务并关闭跟踪 issue。
POST /api/agent/tasks/{task_id}/cancel: 取消任务。
- 404: 任务不存在
- 409: 任务已在终态
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from taskrelay.core.models import (
    CamelModel,
    HandoffRecord,
    Identity,
    NextSteps,
    TaskProgress,
    TaskState,
    TaskStatus,
    TaskSummary,
)

from ..deps import get_identity, get_task_service
from ..services.task_service import TaskService, task_issue_url

router = APIRouter()


class GitHubView(CamelModel):
    repo: str
    issue_number: int | None = None
    issue_url: str | None = None


class TaskView(CamelModel):
    """单个任务的摘要视图 -- handoffs / files 只给出数量"""

    id: str
    title: str
    description: str
    status: TaskStatus
    progress: TaskProgress
    next_steps: NextSteps
    github: GitHubView
    handoffs: int
    last_handoff: HandoffRecord | None = None
    files: int
    created_at: datetime
    updated_at: datetime
    version: int

    @classmethod
    def from_state(cls, task: TaskState) -> "TaskView":
        return cls(
            id=task.id,
            title=task.title,
            description=task.description,
            status=task.status,
            progress=task.progress,
            next_steps=task.next_steps,
            github=GitHubView(
                repo=task.github.repo,
                issue_number=task.github.issue_number,
                issue_url=task_issue_url(task),
            ),
            handoffs=len(task.handoffs),
            last_handoff=task.last_handoff,
            files=len(task.files.modifications),
            created_at=task.created_at,
            updated_at=task.updated_at,
            version=task.version,
        )


class TaskDetailResponse(CamelModel):
    success: bool = True
    task: TaskView


class TaskListResponse(CamelModel):
    success: bool = True
    tasks: list[TaskSummary]
    state_repo: str


class TaskStatusResponse(CamelModel):
    task_id: str
    status: TaskStatus
    version: int


@router.get(
    "/api/agent/status",
    response_model=TaskDetailResponse | TaskListResponse,
    response_model_exclude_none=True,
)
async def task_status(
    task_id: str | None = Query(default=None, alias="taskId"),
    state_repo: str | None = Query(default=None, alias="stateRepo"),
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    """查询单个任务或列出全部任务"""
    if task_id:
        task = await service.get_task(task_id, state_repo)
        return TaskDetailResponse(task=TaskView.from_state(task))

    tasks = await service.list_tasks(state_repo)
    return TaskListResponse(
        tasks=tasks,
        state_repo=state_repo or service.backend.default_repo,
    )


@router.post("/api/agent/tasks/{task_id}/complete", response_model=TaskStatusResponse)
async def complete_task(
    task_id: str,
    state_repo: str | None = Query(default=None, alias="stateRepo"),
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    task = await service.complete_task(task_id, identity, state_repo)
    return TaskStatusResponse(task_id=task.id, status=task.status, version=task.version)


@router.post("/api/agent/tasks/{task_id}/cancel", response_model=TaskStatusResponse)
async def cancel_task(
    task_id: str,
    state_repo: str | None = Query(default=None, alias="stateRepo"),
    identity: Identity = Depends(get_identity),
    service: TaskService = Depends(get_task_service),
):
    task = await service.cancel_task(task_id, identity, state_repo)
    return TaskStatusResponse(task_id=task.id, status=task.status, version=task.version)
