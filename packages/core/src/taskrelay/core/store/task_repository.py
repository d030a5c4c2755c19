"""TaskRepository -- 任务状态的唯一写入口

所有变更都是一次完整的 read-modify-write：
读取文档与 SHA -> 纯变换 -> version +1 / 刷新 updatedAt -> 校验 -> 携带 SHA 条件写。
条件写冲突时整轮重试，超过最大尝试次数后抛出 ConflictError。

存储布局（相对状态根路径）：
    tasks/<task-id>/state.json       TaskState 文档
    tasks/<task-id>/transcript.json  handoff 会话信封
    index.json                       任务索引
"""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import structlog

from ..config import get_max_write_retries, get_state_root
from ..exceptions import ConflictError, TaskNotFoundError
from ..gate import ensure_agent_allowed
from ..models import (
    ConversationMessage,
    FileModification,
    GitHubLink,
    HandoffRecord,
    Identity,
    ProgressCheckpoint,
    Resource,
    SecuritySettings,
    TaskIndex,
    TaskIndexEntry,
    TaskState,
    TaskStatus,
    TaskSummary,
)
from ..session import serialize_for_handoff
from ..transitions import (
    bump_version,
    completed,
    new_task_state,
    utc_now,
    with_accepted_handoff,
    with_file_modification,
    with_github,
    with_handoff,
    with_message,
    with_next_steps,
    with_progress,
    with_session,
    with_status,
)
from ..validation import parse_task_document, validate_task_state
from .protocols import CREATE_ONLY, BlobStore

log = structlog.get_logger()

Transform = Callable[[TaskState], TaskState]


def dump_document(data: dict[str, Any]) -> str:
    """pretty-printed UTF-8 JSON"""
    return json.dumps(data, indent=2, ensure_ascii=False)


class TaskRepository:
    """任务状态仓库

    Args:
        store: 版本化 Blob 存储
        state_repo: 状态仓库标识（owner/repo），写入新任务的 github.stateRepo
        root: 状态根路径，缺省读取 TASKRELAY_STATE_ROOT
        max_attempts: 条件写冲突时的最大尝试次数，缺省读取 TASKRELAY_MAX_WRITE_RETRIES
    """

    def __init__(
        self,
        store: BlobStore,
        state_repo: str,
        *,
        root: str | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self._store = store
        self.state_repo = state_repo
        self._root = (root if root is not None else get_state_root()).strip("/")
        self._max_attempts = max(max_attempts or get_max_write_retries(), 1)

    @property
    def store(self) -> BlobStore:
        return self._store

    # ---- 路径 ----

    def _path(self, *parts: str) -> str:
        return "/".join(p for p in (self._root, *parts) if p)

    def state_path(self, task_id: str) -> str:
        return self._path("tasks", task_id, "state.json")

    def transcript_path(self, task_id: str) -> str:
        return self._path("tasks", task_id, "transcript.json")

    @property
    def index_path(self) -> str:
        return self._path("index.json")

    # ---- 读取 ----

    async def _load(self, task_id: str) -> tuple[TaskState, str] | None:
        blob = await self._store.read(self.state_path(task_id))
        if blob is None:
            return None
        return parse_task_document(blob.content), blob.sha

    async def _load_required(self, task_id: str) -> tuple[TaskState, str]:
        loaded = await self._load(task_id)
        if loaded is None:
            raise TaskNotFoundError(task_id)
        return loaded

    async def get_task(self, task_id: str) -> TaskState | None:
        """读取任务，不存在时返回 None"""
        loaded = await self._load(task_id)
        return loaded[0] if loaded else None

    async def require_task(self, task_id: str) -> TaskState:
        """读取任务，不存在时抛出 TaskNotFoundError"""
        state, _ = await self._load_required(task_id)
        return state

    # ---- 写入 ----

    async def _write_state(self, state: TaskState, expected_sha: str | None) -> str:
        return await self._store.write(
            self.state_path(state.id),
            dump_document(state.to_document()),
            expected_sha=expected_sha,
            message=f"[Task Handoff] Update task {state.id} - v{state.version} - {state.status.value}",
        )

    async def save_task(self, state: TaskState, expected_sha: str | None = None) -> TaskState:
        """整文档保存（不推进 version）

        持久化前校验，未通过校验的文档绝不写入。
        """
        state = validate_task_state(state)
        await self._write_state(state, expected_sha)
        return state

    async def update_task(self, task_id: str, transform: Transform) -> TaskState:
        """对任务执行一次带冲突重试的 read-modify-write

        Args:
            task_id: 任务 ID
            transform: 纯变换函数，可抛出业务异常中止本次更新

        Returns:
            已持久化的新状态（version 已 +1）

        Raises:
            TaskNotFoundError: 任务不存在
            TaskValidationError: 变换结果未通过校验
            ConflictError: 超过最大尝试次数仍冲突
        """
        path = self.state_path(task_id)
        for attempt in range(1, self._max_attempts + 1):
            current, sha = await self._load_required(task_id)
            updated = validate_task_state(bump_version(transform(current)))
            try:
                await self._write_state(updated, expected_sha=sha)
            except ConflictError as e:
                if attempt < self._max_attempts:
                    log.warning(
                        "task_write_conflict_retry",
                        task_id=task_id,
                        attempt=attempt,
                    )
                    continue
                raise ConflictError(path, attempts=attempt) from e

            log.debug(
                "task_state_saved",
                task_id=task_id,
                version=updated.version,
                status=updated.status.value,
            )
            return updated

        raise ConflictError(path, attempts=self._max_attempts)

    # ---- 创建 / 索引 ----

    async def create_task(
        self,
        *,
        title: str,
        description: str,
        repo: str,
        branch: str = "main",
        creator: Identity,
        state_repo: str | None = None,
        security: SecuritySettings | None = None,
        system_prompt: str | None = None,
        task_id: str | None = None,
    ) -> TaskState:
        """创建任务：初始化全部字段、写入初始 handoff 记录、落盘并登记索引"""
        now = utc_now()
        state = new_task_state(
            title=title,
            description=description,
            github=GitHubLink(repo=repo, branch=branch, state_repo=state_repo or self.state_repo),
            creator=creator,
            transcript_path="",
            task_id=task_id,
            security=security,
            system_prompt=system_prompt,
            now=now,
        )
        state = state.model_copy(
            update={
                "session": state.session.model_copy(
                    update={"transcript_path": self.transcript_path(state.id)}
                )
            }
        )
        state = await self.save_task(state, expected_sha=CREATE_ONLY)
        await self._add_to_index(TaskIndexEntry(id=state.id, title=state.title, created_at=now))

        log.info(
            "task_created",
            task_id=state.id,
            repo=state.github.repo,
            agent_id=creator.agent_id,
        )
        return state

    async def _read_index(self) -> tuple[TaskIndex, str]:
        """索引不存在时返回空索引与 CREATE_ONLY，并发创建同样按冲突重试"""
        blob = await self._store.read(self.index_path)
        if blob is None:
            return TaskIndex(), CREATE_ONLY
        return TaskIndex.model_validate_json(blob.content), blob.sha

    async def _add_to_index(self, entry: TaskIndexEntry) -> None:
        """追加索引条目（不做去重）"""
        for attempt in range(1, self._max_attempts + 1):
            index, sha = await self._read_index()
            updated = TaskIndex(tasks=[*index.tasks, entry])
            try:
                await self._store.write(
                    self.index_path,
                    dump_document(updated.model_dump(mode="json", by_alias=True)),
                    expected_sha=sha,
                    message=f"[Task Handoff] Add task {entry.id} to index",
                )
                return
            except ConflictError as e:
                if attempt < self._max_attempts:
                    log.warning("task_index_conflict_retry", task_id=entry.id, attempt=attempt)
                    continue
                raise ConflictError(self.index_path, attempts=attempt) from e

    async def list_tasks(self) -> list[TaskSummary]:
        """列出索引中的任务及其当前状态；索引不存在时返回空列表"""
        index, _ = await self._read_index()
        states = await asyncio.gather(*(self.get_task(entry.id) for entry in index.tasks))
        return [
            TaskSummary(
                id=entry.id,
                title=entry.title,
                status=state.status if state is not None else None,
            )
            for entry, state in zip(index.tasks, states, strict=True)
        ]

    # ---- 语义化更新 ----

    async def update_session_id(self, task_id: str, session_id: str) -> TaskState:
        return await self.update_task(task_id, lambda s: with_session(s, session_id))

    async def add_file_modification(
        self, task_id: str, modification: FileModification
    ) -> TaskState:
        return await self.update_task(
            task_id, lambda s: with_file_modification(s, modification)
        )

    async def add_conversation_message(
        self, task_id: str, message: ConversationMessage
    ) -> TaskState:
        """追加会话消息；追加后超过阈值即压缩历史"""
        return await self.update_task(task_id, lambda s: with_message(s, message))

    async def update_progress(
        self,
        task_id: str,
        *,
        phase: str | None = None,
        percent_complete: float | None = None,
        checkpoint: ProgressCheckpoint | None = None,
    ) -> TaskState:
        return await self.update_task(
            task_id,
            lambda s: with_progress(
                s, phase=phase, percent_complete=percent_complete, checkpoint=checkpoint
            ),
        )

    async def update_next_steps(
        self,
        task_id: str,
        *,
        immediate: list[str] | None = None,
        considerations: list[str] | None = None,
        blockers: list[str] | None = None,
        resources: list[Resource] | None = None,
    ) -> TaskState:
        return await self.update_task(
            task_id,
            lambda s: with_next_steps(
                s,
                immediate=immediate,
                considerations=considerations,
                blockers=blockers,
                resources=resources,
            ),
        )

    async def update_github(
        self,
        task_id: str,
        *,
        issue_number: int | None = None,
        pr_number: int | None = None,
        commit_sha: str | None = None,
    ) -> TaskState:
        return await self.update_task(
            task_id,
            lambda s: with_github(
                s, issue_number=issue_number, pr_number=pr_number, commit_sha=commit_sha
            ),
        )

    async def update_status(self, task_id: str, status: TaskStatus) -> TaskState:
        return await self.update_task(task_id, lambda s: with_status(s, status))

    # ---- handoff ----

    async def initiate_handoff(
        self,
        task_id: str,
        record: HandoffRecord,
        session_id: str | None = None,
    ) -> TaskState:
        """发起 handoff 并写入会话快照"""
        state = await self.update_task(task_id, lambda s: with_handoff(s, record))
        await self.save_session_snapshot(task_id, session_id, state=state)
        log.info(
            "handoff_initiated",
            task_id=task_id,
            from_agent=record.from_agent.agent_id,
            reason=record.reason,
        )
        return state

    async def accept_handoff(self, task_id: str, identity: Identity) -> TaskState:
        """接受 handoff

        Raises:
            UnauthorizedError: identity 不在 allowedAgents 中
            NoHandoffRecordError: handoff 链为空
        """

        def transform(current: TaskState) -> TaskState:
            ensure_agent_allowed(current, identity.agent_id)
            return with_accepted_handoff(current, identity)

        state = await self.update_task(task_id, transform)
        log.info("handoff_accepted", task_id=task_id, agent_id=identity.agent_id)
        return state

    async def save_session_snapshot(
        self,
        task_id: str,
        session_id: str | None = None,
        *,
        state: TaskState | None = None,
    ) -> str:
        """将 handoff 会话信封写入 session.transcriptPath，返回写入路径

        state 为刚写入的任务状态时直接使用，省去一次读取。
        """
        if state is None:
            state = await self.require_task(task_id)
        path = state.session.transcript_path or self.transcript_path(state.id)
        await self._store.write(
            path,
            serialize_for_handoff(state, session_id),
            message=f"[Task Handoff] Save session snapshot for task {state.id}",
        )
        return path

    # ---- 终态 ----

    async def complete_task(self, task_id: str) -> TaskState:
        """标记完成（清空检查点列表）"""
        return await self.update_task(task_id, completed)

    async def fail_task(self, task_id: str, error: str) -> TaskState:
        state = await self.update_status(task_id, TaskStatus.FAILED)
        log.warning("task_marked_failed", task_id=task_id, error=error)
        return state

    async def cancel_task(self, task_id: str) -> TaskState:
        return await self.update_status(task_id, TaskStatus.CANCELLED)
