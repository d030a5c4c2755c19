"""TaskState 纯变换函数

每个函数接收一个 TaskState，返回修改后的新值，不做 I/O，不做校验。
version / updatedAt 的推进由 Repository 在持久化前通过 bump_version 统一完成。
"""

import uuid
from datetime import UTC, datetime

from .compaction import compact_context
from .config import (
    DEFAULT_IMMEDIATE_STEPS,
    INITIAL_HANDOFF_INSTRUCTIONS,
    INITIAL_HANDOFF_REASON,
)
from .exceptions import NoHandoffRecordError
from .models import (
    AgentIdentity,
    ConversationMessage,
    FileModification,
    GitHubLink,
    HandoffRecord,
    Identity,
    NextSteps,
    ProgressCheckpoint,
    Resource,
    SecuritySettings,
    SessionInfo,
    TaskContext,
    TaskProgress,
    TaskState,
    TaskStatus,
)


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_task_state(
    *,
    title: str,
    description: str,
    github: GitHubLink,
    creator: Identity,
    transcript_path: str,
    task_id: str | None = None,
    security: SecuritySettings | None = None,
    system_prompt: str | None = None,
    now: datetime | None = None,
) -> TaskState:
    """构建新任务的初始状态（version=1, status=pending）

    handoffs 写入一条代表任务创建的初始记录。
    """
    now = now or utc_now()
    return TaskState(
        id=task_id or str(uuid.uuid4()),
        version=1,
        title=title,
        description=description,
        created_at=now,
        updated_at=now,
        status=TaskStatus.PENDING,
        github=github,
        session=SessionInfo(current_session_id="", transcript_path=transcript_path),
        context=TaskContext(system_prompt=system_prompt),
        progress=TaskProgress(current_phase="initialization", percent_complete=0),
        handoffs=[
            HandoffRecord(
                from_agent=AgentIdentity(
                    user_id=creator.user_id,
                    agent_id=creator.agent_id,
                    session_id="",
                    started_at=now,
                ),
                handoff_at=now,
                reason=INITIAL_HANDOFF_REASON,
                instructions=INITIAL_HANDOFF_INSTRUCTIONS,
            )
        ],
        next_steps=NextSteps(immediate=list(DEFAULT_IMMEDIATE_STEPS)),
        security=security or SecuritySettings(),
    )


def bump_version(state: TaskState, now: datetime | None = None) -> TaskState:
    """version +1 并刷新 updatedAt"""
    return state.model_copy(
        update={"version": state.version + 1, "updated_at": now or utc_now()}
    )


def with_status(state: TaskState, status: TaskStatus) -> TaskState:
    return state.model_copy(update={"status": status})


def with_session(state: TaskState, session_id: str) -> TaskState:
    """分配会话：写入 currentSessionId 和最后一条 handoff 的 fromAgent.sessionId

    状态进入 in_progress（已是 in_progress 时不变）。
    """
    session = state.session.model_copy(update={"current_session_id": session_id})
    handoffs = list(state.handoffs)
    if handoffs:
        last = handoffs[-1]
        handoffs[-1] = last.model_copy(
            update={"from_agent": last.from_agent.model_copy(update={"session_id": session_id})}
        )
    return state.model_copy(
        update={
            "session": session,
            "handoffs": handoffs,
            "status": TaskStatus.IN_PROGRESS,
        }
    )


def with_file_modification(state: TaskState, modification: FileModification) -> TaskState:
    files = state.files.model_copy(
        update={"modifications": [*state.files.modifications, modification]}
    )
    return state.model_copy(update={"files": files})


def with_message(state: TaskState, message: ConversationMessage) -> TaskState:
    """追加会话消息，超过阈值时压缩历史"""
    context = state.context.model_copy(
        update={"conversation_history": [*state.context.conversation_history, message]}
    )
    return state.model_copy(update={"context": compact_context(context)})


def with_progress(
    state: TaskState,
    *,
    phase: str | None = None,
    percent_complete: float | None = None,
    checkpoint: ProgressCheckpoint | None = None,
) -> TaskState:
    """更新进度；检查点追加到列表末尾

    percent_complete 不做截断，越界值交给持久化前校验拒绝。
    """
    update: dict = {}
    if phase is not None:
        update["current_phase"] = phase
    if percent_complete is not None:
        update["percent_complete"] = percent_complete
    if checkpoint is not None:
        update["checkpoints"] = [*state.progress.checkpoints, checkpoint]
    return state.model_copy(update={"progress": state.progress.model_copy(update=update)})


def with_next_steps(
    state: TaskState,
    *,
    immediate: list[str] | None = None,
    considerations: list[str] | None = None,
    blockers: list[str] | None = None,
    resources: list[Resource] | None = None,
) -> TaskState:
    """只替换传入的列表"""
    update: dict = {}
    if immediate is not None:
        update["immediate"] = list(immediate)
    if considerations is not None:
        update["considerations"] = list(considerations)
    if blockers is not None:
        update["blockers"] = list(blockers)
    if resources is not None:
        update["resources"] = list(resources)
    return state.model_copy(update={"next_steps": state.next_steps.model_copy(update=update)})


def with_github(
    state: TaskState,
    *,
    issue_number: int | None = None,
    pr_number: int | None = None,
    commit_sha: str | None = None,
) -> TaskState:
    update: dict = {}
    if issue_number is not None:
        update["issue_number"] = issue_number
    if pr_number is not None:
        update["pr_number"] = pr_number
    if commit_sha is not None:
        update["commit_sha"] = commit_sha
    return state.model_copy(update={"github": state.github.model_copy(update=update)})


def with_handoff(state: TaskState, record: HandoffRecord) -> TaskState:
    """发起 handoff：追加记录（toAgent 置空），状态进入 awaiting_handoff"""
    record = record.model_copy(update={"to_agent": None})
    return state.model_copy(
        update={
            "handoffs": [*state.handoffs, record],
            "status": TaskStatus.AWAITING_HANDOFF,
        }
    )


def with_accepted_handoff(
    state: TaskState,
    identity: Identity,
    now: datetime | None = None,
) -> TaskState:
    """接受 handoff：只修改最后一条记录的 toAgent，状态进入 handed_off

    Raises:
        NoHandoffRecordError: handoff 链为空
    """
    if not state.handoffs:
        raise NoHandoffRecordError(state.id)

    to_agent = AgentIdentity(
        user_id=identity.user_id,
        agent_id=identity.agent_id,
        session_id="",
        started_at=now or utc_now(),
    )
    handoffs = list(state.handoffs)
    handoffs[-1] = handoffs[-1].model_copy(update={"to_agent": to_agent})
    return state.model_copy(
        update={"handoffs": handoffs, "status": TaskStatus.HANDED_OFF}
    )


def completed(state: TaskState) -> TaskState:
    """标记完成：阶段 completed、进度 100，并清空检查点列表"""
    progress = TaskProgress(current_phase="completed", checkpoints=[], percent_complete=100)
    return state.model_copy(update={"status": TaskStatus.COMPLETED, "progress": progress})


def new_checkpoint(
    description: str,
    completed_steps: list[str] | None = None,
    remaining_steps: list[str] | None = None,
    blockers: list[str] | None = None,
    now: datetime | None = None,
) -> ProgressCheckpoint:
    return ProgressCheckpoint(
        id=str(uuid.uuid4()),
        timestamp=now or utc_now(),
        description=description,
        completed_steps=list(completed_steps or []),
        remaining_steps=list(remaining_steps or []),
        blockers=list(blockers) if blockers else None,
    )
