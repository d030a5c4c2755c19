"""TaskExecutor -- 执行一个 agent 轮次

流程：
1. 读取任务（不存在抛出 TaskNotFoundError，终态抛出 TaskTerminalError）
2. 分配或复用会话 ID，持久化并进入 in_progress
3. 渲染系统提示（续接时附带续接提示）
4. 调用 AgentRunner，工具调用在轮次内同步落盘
5. 轮次文本作为 assistant 消息追加到会话历史

runner 失败不向上抛出：错误信息写入 ExecutionResult；
当前状态允许流转到 failed 时任务标记为 failed（轮次内已发起 handoff 的任务保持 awaiting_handoff）。
有跟踪 issue 时，进度更新与 handoff 以评论形式旁路通知。
"""

import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, Field, ValidationError

from taskrelay.core.exceptions import TaskTerminalError, TaskValidationError
from taskrelay.core.models import (
    TERMINAL_STATES,
    AgentIdentity,
    CamelModel,
    ConversationMessage,
    FileAction,
    FileModification,
    HandoffReason,
    HandoffRecord,
    HandoffRequest,
    Identity,
    MessageRole,
    TaskState,
    TaskStatus,
    ToolCallRecord,
    Urgency,
    validate_transition,
)
from taskrelay.core.session import (
    build_resumption_prompt,
    build_system_prompt,
    format_percent,
)
from taskrelay.core.store import TaskRepository
from taskrelay.core.transitions import new_checkpoint, utc_now
from taskrelay.github import IssueTracker
from taskrelay.provider import AgentRunner, AgentTurnResult, ToolSpec

log = structlog.get_logger()

HANDOFF_MESSAGE = "Handoff requested: {reason}. Task is now awaiting pickup by another agent."


class ExecutionResult(BaseModel):
    """一个轮次的执行结果 -- status/progress 取自轮次结束后的任务状态"""

    session_id: str = Field(description="本轮使用的会话 ID")
    status: TaskStatus = Field(description="轮次结束后的任务状态")
    progress: float = Field(description="轮次结束后的完成百分比")
    result: str | None = Field(default=None, description="agent 最终文本输出")
    error: str | None = Field(default=None, description="runner 失败时的错误信息")


# ---- 工具入参（camelCase，与工具 JSON Schema 一致） ----


class UpdateProgressInput(CamelModel):
    phase: str
    percent_complete: float
    completed_steps: list[str] = Field(default_factory=list)
    remaining_steps: list[str] = Field(default_factory=list)


class UpdateNextStepsInput(CamelModel):
    immediate: list[str] = Field(default_factory=list)
    considerations: list[str] = Field(default_factory=list)
    blockers: list[str] = Field(default_factory=list)


class RecordFileChangeInput(CamelModel):
    path: str
    action: FileAction
    summary: str


class RequestHandoffInput(CamelModel):
    reason: HandoffReason
    instructions: str
    urgency: Urgency = Urgency.MEDIUM


def _string_array(description: str) -> dict[str, Any]:
    return {"type": "array", "items": {"type": "string"}, "description": description}


TOOL_SCHEMAS: dict[str, tuple[str, dict[str, Any]]] = {
    "update_progress": (
        "Update the task progress with current phase and percentage",
        {
            "type": "object",
            "properties": {
                "phase": {"type": "string", "description": "Current phase label"},
                "percentComplete": {"type": "number", "description": "0-100"},
                "completedSteps": _string_array("Steps finished so far"),
                "remainingSteps": _string_array("Steps still to do"),
            },
            "required": ["phase", "percentComplete", "completedSteps", "remainingSteps"],
        },
    ),
    "update_next_steps": (
        "Update the next steps for the task",
        {
            "type": "object",
            "properties": {
                "immediate": _string_array("Immediate next steps"),
                "considerations": _string_array("Things to keep in mind"),
                "blockers": _string_array("Known blockers"),
            },
            "required": ["immediate", "considerations", "blockers"],
        },
    ),
    "record_file_change": (
        "Record a file modification made during the task",
        {
            "type": "object",
            "properties": {
                "path": {"type": "string"},
                "action": {"type": "string", "enum": [a.value for a in FileAction]},
                "summary": {"type": "string"},
            },
            "required": ["path", "action", "summary"],
        },
    ),
    "request_handoff": (
        "Request a handoff to another agent when you need to stop or need different expertise",
        {
            "type": "object",
            "properties": {
                "reason": {"type": "string", "enum": [r.value for r in HandoffReason]},
                "instructions": {"type": "string"},
                "urgency": {"type": "string", "enum": [u.value for u in Urgency]},
            },
            "required": ["reason", "instructions", "urgency"],
        },
    ),
}


def _rejected(tool: str, handler: Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]):
    """入参或状态校验失败时把错误作为工具结果返回给模型，让模型自行修正"""

    async def wrapper(arguments: dict[str, Any]) -> dict[str, Any]:
        try:
            return await handler(arguments)
        except (TaskValidationError, ValidationError) as e:
            log.warning("tool_input_rejected", tool=tool, error=str(e))
            return {"success": False, "message": str(e)}

    return wrapper


class TaskExecutor:
    """单个任务的轮次执行器

    Args:
        task_id: 任务 ID
        repository: 任务状态仓库
        runner: agent 轮次协作者
        identity: 执行者身份（handoff 记录的 fromAgent）
        issue_tracker: 可选 issue 通知
        model: 模型名称，None 使用 runner 默认
        max_turns: 模型往返上限，None 使用 runner 默认
    """

    def __init__(
        self,
        task_id: str,
        repository: TaskRepository,
        runner: AgentRunner,
        identity: Identity,
        *,
        issue_tracker: IssueTracker | None = None,
        model: str | None = None,
        max_turns: int | None = None,
    ) -> None:
        self.task_id = task_id
        self._repository = repository
        self._runner = runner
        self._identity = identity
        self._issue_tracker = issue_tracker
        self._model = model
        self._max_turns = max_turns
        self._session_id = ""
        self._started_at: datetime | None = None

    @property
    def session_id(self) -> str:
        return self._session_id

    async def execute(self, prompt: str) -> ExecutionResult:
        """以新会话执行任务"""
        await self._load_runnable()
        return await self._run(str(uuid.uuid4()), prompt)

    async def resume(
        self,
        session_id: str | None = None,
        additional_prompt: str | None = None,
    ) -> ExecutionResult:
        """续接任务：复用已存储的会话 ID（没有时新建），以续接提示驱动本轮"""
        state = await self._load_runnable()
        session_id = session_id or state.session.current_session_id or str(uuid.uuid4())
        return await self._run(session_id, build_resumption_prompt(state, additional_prompt))

    async def _load_runnable(self) -> TaskState:
        state = await self._repository.require_task(self.task_id)
        if state.status in TERMINAL_STATES:
            raise TaskTerminalError(self.task_id, state.status.value)
        return state

    async def _run(self, session_id: str, user_prompt: str) -> ExecutionResult:
        self._session_id = session_id
        self._started_at = utc_now()

        state = await self._repository.update_session_id(self.task_id, session_id)
        system_prompt = build_system_prompt(state)

        log.info(
            "task_turn_started",
            task_id=self.task_id,
            session_id=session_id,
            agent_id=self._identity.agent_id,
        )

        try:
            turn = await self._runner.run_turn(
                system_prompt,
                user_prompt,
                self.build_tools(),
                model=self._model,
                max_turns=self._max_turns,
            )
        except Exception as e:
            error = str(e) or type(e).__name__
            log.error(
                "task_turn_failed",
                task_id=self.task_id,
                session_id=session_id,
                error_type=type(e).__name__,
            )
            state = await self._repository.require_task(self.task_id)
            if validate_transition(state.status, TaskStatus.FAILED):
                state = await self._repository.fail_task(self.task_id, error)
            else:
                # 轮次内已发起 handoff 等情况：保留当前状态，只在结果中返回错误
                log.warning(
                    "task_fail_transition_skipped",
                    task_id=self.task_id,
                    status=state.status.value,
                )
            return ExecutionResult(
                session_id=session_id,
                status=state.status,
                progress=state.progress.percent_complete,
                error=error,
            )

        state = await self._repository.add_conversation_message(
            self.task_id, self._assistant_message(turn)
        )
        log.info(
            "task_turn_completed",
            task_id=self.task_id,
            session_id=session_id,
            status=state.status.value,
            tool_calls=len(turn.tool_invocations),
        )
        return ExecutionResult(
            session_id=session_id,
            status=state.status,
            progress=state.progress.percent_complete,
            result=turn.text,
        )

    @staticmethod
    def _assistant_message(turn: AgentTurnResult) -> ConversationMessage:
        tool_calls = [
            ToolCallRecord(name=inv.name, input=inv.arguments, result=inv.result)
            for inv in turn.tool_invocations
        ]
        return ConversationMessage(
            role=MessageRole.ASSISTANT,
            content=turn.text,
            timestamp=utc_now(),
            tool_calls=tool_calls or None,
        )

    async def _notify(self, event: str, notification: Awaitable[None]) -> None:
        """issue 通知是旁路，失败只记录警告，不影响本轮"""
        try:
            await notification
        except Exception as e:
            log.warning(
                event,
                task_id=self.task_id,
                error_type=type(e).__name__,
                error=str(e),
            )

    # ---- 工具 ----

    def build_tools(self) -> list[ToolSpec]:
        handlers = {
            "update_progress": self._update_progress,
            "update_next_steps": self._update_next_steps,
            "record_file_change": self._record_file_change,
            "request_handoff": self._request_handoff,
        }
        return [
            ToolSpec(
                name=name,
                description=description,
                parameters=parameters,
                handler=_rejected(name, handlers[name]),
            )
            for name, (description, parameters) in TOOL_SCHEMAS.items()
        ]

    async def _update_progress(self, arguments: dict[str, Any]) -> dict[str, Any]:
        data = UpdateProgressInput.model_validate(arguments)
        checkpoint = new_checkpoint(
            f"Progress update: {data.phase}",
            completed_steps=data.completed_steps,
            remaining_steps=data.remaining_steps,
        )
        state = await self._repository.update_progress(
            self.task_id,
            phase=data.phase,
            percent_complete=data.percent_complete,
            checkpoint=checkpoint,
        )
        message = f"Progress updated to {format_percent(data.percent_complete)}%"

        if self._issue_tracker is not None and state.github.issue_number:
            await self._notify(
                "progress_notification_failed",
                self._issue_tracker.add_progress_comment(
                    state.github.issue_number,
                    f"**Phase:** {data.phase}\n**{message}**",
                    self._identity.agent_id,
                ),
            )
        return {"success": True, "message": message}

    async def _update_next_steps(self, arguments: dict[str, Any]) -> dict[str, Any]:
        data = UpdateNextStepsInput.model_validate(arguments)
        await self._repository.update_next_steps(
            self.task_id,
            immediate=data.immediate,
            considerations=data.considerations,
            blockers=data.blockers,
        )
        return {"success": True, "message": "Next steps updated"}

    async def _record_file_change(self, arguments: dict[str, Any]) -> dict[str, Any]:
        data = RecordFileChangeInput.model_validate(arguments)
        await self._repository.add_file_modification(
            self.task_id,
            FileModification(path=data.path, action=data.action, summary=data.summary),
        )
        return {"success": True, "message": f"Recorded {data.action.value} for {data.path}"}

    async def _request_handoff(self, arguments: dict[str, Any]) -> dict[str, Any]:
        data = RequestHandoffInput.model_validate(arguments)
        now = utc_now()
        record = HandoffRecord(
            from_agent=AgentIdentity(
                user_id=self._identity.user_id,
                agent_id=self._identity.agent_id,
                session_id=self._session_id,
                started_at=self._started_at or now,
                ended_at=now,
            ),
            handoff_at=now,
            reason=data.reason.value,
            instructions=data.instructions,
        )
        state = await self._repository.initiate_handoff(
            self.task_id, record, session_id=self._session_id
        )

        if self._issue_tracker is not None and state.github.issue_number:
            await self._notify(
                "handoff_notification_failed",
                self._issue_tracker.add_handoff_comment(
                    state.github.issue_number,
                    HandoffRequest(
                        task_id=self.task_id,
                        from_agent_id=self._identity.agent_id,
                        reason=data.reason,
                        instructions=data.instructions,
                        urgency=data.urgency,
                    ),
                ),
            )

        return {"success": True, "message": HANDOFF_MESSAGE.format(reason=data.reason.value)}
