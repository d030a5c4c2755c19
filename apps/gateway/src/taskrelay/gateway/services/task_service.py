"""TaskService -- start / continue / handoff / 查询 / 完成 / 取消

API 路由与 CLI 共用的业务入口：
- 授权门禁与终态检查在这里执行（Repository 不强制状态机）
- issue 通知均为旁路，失败只记录警告
"""

from collections.abc import Awaitable
from dataclasses import dataclass

import structlog

from taskrelay.core.exceptions import InvalidTransitionError, TaskTerminalError
from taskrelay.core.gate import ensure_agent_allowed
from taskrelay.core.models import (
    TERMINAL_STATES,
    AgentIdentity,
    ContinueTaskRequest,
    HandoffRecord,
    HandoffRequest,
    Identity,
    SecuritySettings,
    StartTaskRequest,
    TaskState,
    TaskStatus,
    TaskSummary,
    validate_transition,
)
from taskrelay.core.session import build_handoff_summary
from taskrelay.core.store import TaskRepository
from taskrelay.core.transitions import utc_now
from taskrelay.github import IssueTracker, issue_url
from taskrelay.provider import AgentRunner

from .state_backend import StateBackend
from .task_executor import ExecutionResult, TaskExecutor

log = structlog.get_logger()

HANDOFF_INITIATED_MESSAGE = "Handoff initiated. Task is now awaiting pickup by another agent."


@dataclass
class StartOutcome:
    task: TaskState
    result: ExecutionResult
    state_url: str
    issue_url: str | None = None


@dataclass
class ContinueOutcome:
    task: TaskState
    result: ExecutionResult
    handoff_accepted: bool


@dataclass
class HandoffOutcome:
    task: TaskState
    summary: str
    handoff_url: str | None = None


def task_issue_url(task: TaskState) -> str | None:
    if not task.github.issue_number:
        return None
    return issue_url(task.github.repo, task.github.issue_number)


def _ensure_not_terminal(task: TaskState) -> None:
    if task.status in TERMINAL_STATES:
        raise TaskTerminalError(task.id, task.status.value)


def _ensure_transition(task: TaskState, target: TaskStatus) -> None:
    """终态先报 TaskTerminalError，其余非法流转报 InvalidTransitionError"""
    _ensure_not_terminal(task)
    if not validate_transition(task.status, target):
        raise InvalidTransitionError(task.id, task.status.value, target.value)


async def _best_effort(awaitable: Awaitable, event: str, task_id: str) -> bool:
    """执行旁路通知；失败记录警告并返回 False"""
    try:
        await awaitable
    except Exception as e:
        log.warning(event, task_id=task_id, error_type=type(e).__name__, error=str(e))
        return False
    return True


class TaskService:
    """任务业务服务

    Args:
        backend: 状态存储后端
        runner: agent 轮次协作者
        default_model: 请求未指定模型时使用
        default_max_turns: 续接轮次的模型往返上限
    """

    def __init__(
        self,
        backend: StateBackend,
        runner: AgentRunner,
        *,
        default_model: str | None = None,
        default_max_turns: int | None = None,
    ) -> None:
        self._backend = backend
        self._runner = runner
        self._default_model = default_model
        self._default_max_turns = default_max_turns

    @property
    def backend(self) -> StateBackend:
        return self._backend

    def repository(self, state_repo: str | None = None) -> TaskRepository:
        return self._backend.repository(state_repo)

    def state_url(self, repository: TaskRepository, task_id: str) -> str:
        return f"https://github.com/{repository.state_repo}/blob/main/{repository.state_path(task_id)}"

    async def _refresh_issue(self, tracker: IssueTracker | None, task: TaskState) -> None:
        if tracker is not None and task.github.issue_number:
            await _best_effort(tracker.update_task_issue(task), "issue_refresh_failed", task.id)

    # ---- start / continue ----

    async def start_task(self, request: StartTaskRequest, identity: Identity) -> StartOutcome:
        """创建任务、按需创建跟踪 issue，并执行第一个轮次"""
        repository = self.repository(request.github.state_repo)
        task = await repository.create_task(
            title=request.title,
            description=request.description,
            repo=request.github.repo,
            branch=request.github.branch,
            creator=identity,
            security=SecuritySettings(
                allowed_agents=request.security.allowed_agents,
                require_approval=request.security.require_approval,
            ),
            system_prompt=request.config.system_prompt,
        )

        tracker = self._backend.issue_tracker(request.github.repo)
        if request.github.create_issue:
            if tracker is None:
                log.info("issue_tracking_disabled", task_id=task.id)
            else:
                try:
                    issue_number = await tracker.create_task_issue(task)
                except Exception as e:
                    log.warning(
                        "issue_create_failed",
                        task_id=task.id,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                else:
                    task = await repository.update_github(task.id, issue_number=issue_number)

        executor = TaskExecutor(
            task.id,
            repository,
            self._runner,
            identity,
            issue_tracker=tracker,
            model=request.config.model or self._default_model,
            max_turns=request.config.max_turns,
        )
        result = await executor.execute(request.prompt)

        task = await repository.require_task(task.id)
        await self._refresh_issue(tracker, task)
        return StartOutcome(
            task=task,
            result=result,
            state_url=self.state_url(repository, task.id),
            issue_url=task_issue_url(task),
        )

    async def continue_task(
        self,
        request: ContinueTaskRequest,
        identity: Identity,
        state_repo: str | None = None,
    ) -> ContinueOutcome:
        """续接任务：必要时先接受待处理的 handoff

        Raises:
            TaskNotFoundError / UnauthorizedError / TaskTerminalError
        """
        repository = self.repository(state_repo)
        task = await repository.require_task(request.task_id)
        ensure_agent_allowed(task, identity.agent_id)
        _ensure_not_terminal(task)

        handoff_accepted = False
        if request.accept_handoff and task.status == TaskStatus.AWAITING_HANDOFF:
            task = await repository.accept_handoff(task.id, identity)
            handoff_accepted = True

        tracker = self._backend.issue_tracker(task.github.repo)
        executor = TaskExecutor(
            task.id,
            repository,
            self._runner,
            identity,
            issue_tracker=tracker,
            model=self._default_model,
            max_turns=self._default_max_turns,
        )
        result = await executor.resume(
            task.session.current_session_id or None,
            request.prompt,
        )

        task = await repository.require_task(task.id)
        await self._refresh_issue(tracker, task)
        return ContinueOutcome(task=task, result=result, handoff_accepted=handoff_accepted)

    # ---- handoff ----

    async def initiate_handoff(
        self,
        request: HandoffRequest,
        identity: Identity,
        state_repo: str | None = None,
    ) -> HandoffOutcome:
        """不执行轮次，直接发起 handoff

        当前持有任务的 agent 总是可以发起；其他身份按 allowedAgents 判断。
        """
        repository = self.repository(state_repo)
        task = await repository.require_task(request.task_id)
        _ensure_not_terminal(task)

        last = task.last_handoff
        holder = (last.to_agent or last.from_agent) if last is not None else None
        holders = {a.agent_id for a in (last.from_agent, last.to_agent) if a} if last else set()
        if identity.agent_id not in holders:
            ensure_agent_allowed(task, identity.agent_id)

        now = utc_now()
        record = HandoffRecord(
            from_agent=AgentIdentity(
                user_id=identity.user_id,
                agent_id=request.from_agent_id,
                session_id=task.session.current_session_id,
                started_at=holder.started_at if holder is not None else task.created_at,
                ended_at=now,
            ),
            handoff_at=now,
            reason=request.reason.value,
            instructions=request.instructions,
        )
        task = await repository.initiate_handoff(task.id, record)

        tracker = self._backend.issue_tracker(task.github.repo)
        if tracker is not None and task.github.issue_number:
            await _best_effort(
                tracker.add_handoff_comment(task.github.issue_number, request),
                "handoff_notification_failed",
                task.id,
            )

        return HandoffOutcome(
            task=task,
            summary=build_handoff_summary(task, request.reason.value, request.instructions),
            handoff_url=task_issue_url(task),
        )

    async def accept_pending_handoff(
        self,
        task_id: str,
        identity: Identity,
        state_repo: str | None = None,
    ) -> TaskState | None:
        """接受待处理的 handoff；任务不在 awaiting_handoff 时返回 None"""
        repository = self.repository(state_repo)
        task = await repository.require_task(task_id)
        if task.status != TaskStatus.AWAITING_HANDOFF:
            log.info("no_pending_handoff", task_id=task_id, status=task.status.value)
            return None
        return await repository.accept_handoff(task_id, identity)

    # ---- 查询 ----

    async def get_task(self, task_id: str, state_repo: str | None = None) -> TaskState:
        return await self.repository(state_repo).require_task(task_id)

    async def list_tasks(self, state_repo: str | None = None) -> list[TaskSummary]:
        return await self.repository(state_repo).list_tasks()

    # ---- 终态 ----

    async def complete_task(
        self,
        task_id: str,
        identity: Identity | None = None,
        state_repo: str | None = None,
    ) -> TaskState:
        """完成任务并关闭跟踪 issue

        identity 为 None 表示系统触发（如 issue 被关闭）：不经过授权门禁，
        也不检查流转表，任何非终态都可以直接完成。
        """
        repository = self.repository(state_repo)
        task = await repository.require_task(task_id)
        if identity is None:
            _ensure_not_terminal(task)
        else:
            ensure_agent_allowed(task, identity.agent_id)
            _ensure_transition(task, TaskStatus.COMPLETED)

        # 完成会清空检查点，摘要需在完成前生成
        summary = build_handoff_summary(task, "Task completed", "No further action required.")
        task = await repository.complete_task(task_id)

        tracker = self._backend.issue_tracker(task.github.repo)
        if tracker is not None and task.github.issue_number:
            await _best_effort(
                tracker.close_task_issue(task.github.issue_number, summary),
                "issue_close_failed",
                task.id,
            )
        log.info("task_completed", task_id=task_id)
        return task

    async def cancel_task(
        self,
        task_id: str,
        identity: Identity,
        state_repo: str | None = None,
    ) -> TaskState:
        repository = self.repository(state_repo)
        task = await repository.require_task(task_id)
        ensure_agent_allowed(task, identity.agent_id)
        _ensure_transition(task, TaskStatus.CANCELLED)

        task = await repository.cancel_task(task_id)
        await self._refresh_issue(self._backend.issue_tracker(task.github.repo), task)
        log.info("task_cancelled", task_id=task_id)
        return task
