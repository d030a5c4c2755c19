"""TaskRepository 单元测试

测试内容：
1. 创建任务：初始文档、索引、提交说明
2. 每次变更 version 严格 +1，未通过校验的文档不落盘
3. 条件写冲突重试与耗尽，索引与状态文档的仅创建写
4. handoff 发起/接受、会话快照、授权门禁、空 handoff 链
5. 终态辅助与任务列表
"""

import json
from datetime import UTC, datetime

import pytest
from taskrelay.core.exceptions import (
    ConflictError,
    NoHandoffRecordError,
    TaskNotFoundError,
    TaskValidationError,
    UnauthorizedError,
)
from taskrelay.core.models import (
    AgentIdentity,
    ConversationMessage,
    FileAction,
    FileModification,
    HandoffRecord,
    Identity,
    MessageRole,
    TaskState,
    TaskStatus,
)
from taskrelay.core.session import deserialize_from_handoff
from taskrelay.core.store import CREATE_ONLY, InMemoryBlobStore, TaskRepository, dump_document
from taskrelay.core.transitions import new_checkpoint

MISSING_ID = "00000000-0000-4000-8000-000000000000"


class FlakyBlobStore(InMemoryBlobStore):
    """前 N 次按 SHA 条件写 state.json 时抛出冲突，模拟并发写入者"""

    def __init__(self, conflicts: int) -> None:
        super().__init__()
        self.remaining_conflicts = conflicts
        self.conditional_writes = 0

    async def write(self, path, content, expected_sha=None, message=""):
        if expected_sha and path.endswith("state.json"):
            self.conditional_writes += 1
            if self.remaining_conflicts > 0:
                self.remaining_conflicts -= 1
                raise ConflictError(path)
        return await super().write(path, content, expected_sha, message)


class RacingIndexStore(InMemoryBlobStore):
    """首次创建 index.json 前，另一个写入者抢先创建了索引"""

    def __init__(self, rival_entry: dict) -> None:
        super().__init__()
        self.rival_entry = rival_entry
        self.raced = False

    async def write(self, path, content, expected_sha=None, message=""):
        if path.endswith("index.json") and expected_sha == CREATE_ONLY and not self.raced:
            self.raced = True
            await super().write(path, dump_document({"tasks": [self.rival_entry]}))
        return await super().write(path, content, expected_sha, message)


def _record(agent_id: str = "agent-alpha") -> HandoffRecord:
    now = datetime.now(UTC)
    return HandoffRecord(
        from_agent=AgentIdentity(
            user_id="user-1", agent_id=agent_id, session_id="s-1", started_at=now, ended_at=now
        ),
        handoff_at=now,
        reason="expertise_needed",
        instructions="Needs a CSS expert",
    )


class TestCreateTask:
    """创建任务"""

    async def test_initial_document_persisted(
        self, repository: TaskRepository, memory_store: InMemoryBlobStore, task: TaskState
    ):
        assert task.version == 1
        assert task.status == TaskStatus.PENDING
        assert task.github.state_repo == "acme/task-state"
        assert task.session.transcript_path == f".task-handoff/tasks/{task.id}/transcript.json"

        blob = await memory_store.read(f".task-handoff/tasks/{task.id}/state.json")
        doc = json.loads(blob.content)
        assert doc["id"] == task.id
        assert doc["version"] == 1
        # pretty-printed
        assert blob.content.startswith("{\n  ")

    async def test_index_entry_added(
        self, repository: TaskRepository, memory_store: InMemoryBlobStore, task: TaskState
    ):
        blob = await memory_store.read(".task-handoff/index.json")
        index = json.loads(blob.content)
        assert [t["id"] for t in index["tasks"]] == [task.id]
        assert index["tasks"][0]["title"] == "Add dark mode"
        assert "createdAt" in index["tasks"][0]

    async def test_commit_messages(self, memory_store: InMemoryBlobStore, task: TaskState):
        messages = [message for _, message in memory_store.commits]
        assert messages == [
            f"[Task Handoff] Update task {task.id} - v1 - pending",
            f"[Task Handoff] Add task {task.id} to index",
        ]


class TestReadTask:
    """读取任务"""

    async def test_missing_task_returns_none(self, repository: TaskRepository):
        assert await repository.get_task(MISSING_ID) is None

    async def test_require_missing_raises(self, repository: TaskRepository):
        with pytest.raises(TaskNotFoundError):
            await repository.require_task(MISSING_ID)

    async def test_update_missing_raises(self, repository: TaskRepository):
        with pytest.raises(TaskNotFoundError):
            await repository.update_status(MISSING_ID, TaskStatus.IN_PROGRESS)


class TestVersioning:
    """version 单调递增"""

    async def test_each_update_increments_version(
        self, repository: TaskRepository, task: TaskState
    ):
        await repository.update_session_id(task.id, "session-1")
        await repository.update_progress(task.id, phase="planning", percent_complete=10)
        await repository.update_next_steps(task.id, immediate=["Write tests"])
        updated = await repository.add_file_modification(
            task.id,
            FileModification(path="a.py", action=FileAction.MODIFIED, summary="tweak"),
        )

        assert updated.version == 5
        stored = await repository.require_task(task.id)
        assert stored == updated
        assert stored.updated_at >= task.updated_at

    async def test_session_assignment_enters_in_progress(
        self, repository: TaskRepository, task: TaskState
    ):
        updated = await repository.update_session_id(task.id, "session-1")
        assert updated.status == TaskStatus.IN_PROGRESS
        assert updated.session.current_session_id == "session-1"
        assert updated.handoffs[-1].from_agent.session_id == "session-1"

    async def test_invalid_update_not_persisted(
        self, repository: TaskRepository, task: TaskState
    ):
        with pytest.raises(TaskValidationError):
            await repository.update_progress(task.id, percent_complete=150)

        stored = await repository.require_task(task.id)
        assert stored.version == 1
        assert stored.progress.percent_complete == 0

    async def test_checkpoints_append(self, repository: TaskRepository, task: TaskState):
        await repository.update_progress(task.id, checkpoint=new_checkpoint("first"))
        updated = await repository.update_progress(task.id, checkpoint=new_checkpoint("second"))
        assert [c.description for c in updated.progress.checkpoints] == ["first", "second"]

    async def test_messages_compacted_on_append(
        self, repository: TaskRepository, task: TaskState
    ):
        for i in range(51):
            state = await repository.add_conversation_message(
                task.id,
                ConversationMessage(
                    role=MessageRole.ASSISTANT, content=f"turn {i}", timestamp=datetime.now(UTC)
                ),
            )
        assert len(state.context.conversation_history) == 20
        assert state.context.compacted_summary.startswith("\n\n---\n[assistant]: turn 0...")
        assert state.version == 52


class TestConflictRetry:
    """条件写冲突"""

    async def test_conflict_retried_then_succeeds(self, creator: Identity):
        store = FlakyBlobStore(conflicts=0)
        repository = TaskRepository(store, "acme/state", root="", max_attempts=3)
        task = await repository.create_task(
            title="t", description="d", repo="acme/webapp", creator=creator
        )

        store.remaining_conflicts = 2
        updated = await repository.update_status(task.id, TaskStatus.IN_PROGRESS)

        assert updated.version == 2
        assert store.conditional_writes == 3
        assert (await repository.require_task(task.id)).status == TaskStatus.IN_PROGRESS

    async def test_conflict_exhausted_raises(self, creator: Identity):
        store = FlakyBlobStore(conflicts=0)
        repository = TaskRepository(store, "acme/state", root="", max_attempts=2)
        task = await repository.create_task(
            title="t", description="d", repo="acme/webapp", creator=creator
        )

        store.remaining_conflicts = 5
        with pytest.raises(ConflictError) as exc_info:
            await repository.update_status(task.id, TaskStatus.IN_PROGRESS)

        assert exc_info.value.attempts == 2
        assert (await repository.require_task(task.id)).version == 1

    async def test_stale_sha_rejected_by_store(self, memory_store: InMemoryBlobStore):
        sha = await memory_store.write("doc.json", "v1")
        await memory_store.write("doc.json", "v2", expected_sha=sha)
        with pytest.raises(ConflictError):
            await memory_store.write("doc.json", "v3", expected_sha=sha)

    async def test_concurrent_index_creation_keeps_both_entries(self, creator: Identity):
        rival = {"id": "rival-task", "title": "Rival", "createdAt": "2026-01-01T00:00:00Z"}
        store = RacingIndexStore(rival)
        repository = TaskRepository(store, "acme/state", root="", max_attempts=3)

        task = await repository.create_task(
            title="t", description="d", repo="acme/webapp", creator=creator
        )

        index = json.loads((await store.read("index.json")).content)
        assert [t["id"] for t in index["tasks"]] == ["rival-task", task.id]

    async def test_existing_task_document_not_overwritten(
        self, repository: TaskRepository, task: TaskState, creator: Identity
    ):
        with pytest.raises(ConflictError):
            await repository.create_task(
                title="dup", description="d", repo="acme/webapp", creator=creator, task_id=task.id
            )
        assert (await repository.require_task(task.id)).title == "Add dark mode"


class TestHandoff:
    """handoff 发起与接受"""

    async def test_initiate_handoff(
        self, repository: TaskRepository, memory_store: InMemoryBlobStore, task: TaskState
    ):
        updated = await repository.initiate_handoff(task.id, _record(), session_id="s-1")

        assert updated.status == TaskStatus.AWAITING_HANDOFF
        assert len(updated.handoffs) == 2
        assert updated.last_handoff.to_agent is None
        assert updated.last_handoff.reason == "expertise_needed"

        blob = await memory_store.read(updated.session.transcript_path)
        envelope = deserialize_from_handoff(blob.content)
        assert envelope.session_id == "s-1"

    async def test_initiate_handoff_saves_snapshot(
        self, repository: TaskRepository, task: TaskState, monkeypatch
    ):
        saved = []
        original = repository.save_session_snapshot

        async def spy(task_id, session_id=None, *, state=None):
            saved.append((task_id, session_id, state.version if state else None))
            return await original(task_id, session_id, state=state)

        monkeypatch.setattr(repository, "save_session_snapshot", spy)
        updated = await repository.initiate_handoff(task.id, _record(), session_id="s-7")

        assert saved == [(task.id, "s-7", updated.version)]

    async def test_save_session_snapshot_reads_current_state(
        self, repository: TaskRepository, memory_store: InMemoryBlobStore, task: TaskState
    ):
        checkpoint = new_checkpoint("Theme tokens done", completed_steps=["tokens"])
        await repository.update_session_id(task.id, "s-9")
        await repository.update_progress(task.id, checkpoint=checkpoint)
        path = await repository.save_session_snapshot(task.id)

        assert path == repository.transcript_path(task.id)
        envelope = deserialize_from_handoff((await memory_store.read(path)).content)
        assert envelope.session_id == "s-9"
        assert envelope.last_checkpoint.description == "Theme tokens done"

    async def test_accept_by_allowed_agent(
        self, repository: TaskRepository, task: TaskState, creator: Identity
    ):
        await repository.initiate_handoff(task.id, _record())
        accepted = await repository.accept_handoff(task.id, creator)

        assert accepted.status == TaskStatus.HANDED_OFF
        assert accepted.last_handoff.to_agent.agent_id == "agent-alpha"
        # 只修改最后一条记录
        assert accepted.handoffs[0].to_agent is None

    async def test_accept_by_unlisted_agent_rejected(
        self, repository: TaskRepository, task: TaskState, other_agent: Identity
    ):
        awaiting = await repository.initiate_handoff(task.id, _record())
        with pytest.raises(UnauthorizedError):
            await repository.accept_handoff(task.id, other_agent)

        stored = await repository.require_task(task.id)
        assert stored.version == awaiting.version
        assert stored.status == TaskStatus.AWAITING_HANDOFF

    async def test_empty_handoff_chain(
        self,
        repository: TaskRepository,
        memory_store: InMemoryBlobStore,
        task: TaskState,
        creator: Identity,
    ):
        corrupted = task.model_copy(update={"handoffs": []})
        await memory_store.write(
            repository.state_path(task.id), dump_document(corrupted.to_document())
        )
        with pytest.raises(NoHandoffRecordError):
            await repository.accept_handoff(task.id, creator)


class TestTerminalAndListing:
    """终态辅助与任务列表"""

    async def test_complete_clears_checkpoints(
        self, repository: TaskRepository, task: TaskState
    ):
        await repository.update_progress(
            task.id, percent_complete=60, checkpoint=new_checkpoint("halfway")
        )
        done = await repository.complete_task(task.id)

        assert done.status == TaskStatus.COMPLETED
        assert done.progress.current_phase == "completed"
        assert done.progress.percent_complete == 100
        assert done.progress.checkpoints == []

    async def test_fail_and_cancel(self, repository: TaskRepository, task: TaskState):
        failed = await repository.fail_task(task.id, "boom")
        assert failed.status == TaskStatus.FAILED
        cancelled = await repository.cancel_task(task.id)
        assert cancelled.status == TaskStatus.CANCELLED

    async def test_list_tasks_reports_status(
        self, repository: TaskRepository, task: TaskState, creator: Identity
    ):
        second = await repository.create_task(
            title="Second", description="d", repo="acme/webapp", creator=creator
        )
        await repository.update_session_id(second.id, "s-2")

        summaries = await repository.list_tasks()
        assert [(s.id, s.title, s.status) for s in summaries] == [
            (task.id, "Add dark mode", TaskStatus.PENDING),
            (second.id, "Second", TaskStatus.IN_PROGRESS),
        ]

    async def test_list_tasks_without_index(self, repository: TaskRepository):
        assert await repository.list_tasks() == []
