"""TaskState 模型单元测试

测试内容：
1. camelCase 持久化文档与回读（含完整填充的文档）
2. 字段约束（id 格式、进度范围）
3. 持久化前校验（结构化 issues、handoff 链非空）
"""

import json
from datetime import UTC, datetime

import pytest
from pydantic import ValidationError
from taskrelay.core.exceptions import TaskValidationError
from taskrelay.core.models import (
    AgentIdentity,
    ConversationMessage,
    FileAction,
    FileModification,
    GitHubLink,
    HandoffRecord,
    Identity,
    MessageRole,
    StartTaskRequest,
    TaskProgress,
    TaskState,
    TaskStatus,
    ToolCallRecord,
)
from taskrelay.core.transitions import (
    new_checkpoint,
    new_task_state,
    with_file_modification,
    with_handoff,
    with_message,
    with_progress,
    with_session,
)
from taskrelay.core.validation import parse_task_document, validate_task_state

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=UTC)


def _state() -> TaskState:
    return new_task_state(
        title="Add dark mode",
        description="Add a dark mode toggle",
        github=GitHubLink(repo="acme/webapp", branch="main", state_repo="acme/task-state"),
        creator=Identity(user_id="user-1", agent_id="agent-alpha"),
        transcript_path=".task-handoff/tasks/x/transcript.json",
        task_id="0b4f5b8e-6d57-4e7c-9a57-3f3c1d2f9a10",
        now=NOW,
    )


class TestTaskDocument:
    """持久化文档格式"""

    def test_document_uses_camel_case_keys(self):
        doc = _state().to_document()
        assert doc["createdAt"] == "2025-01-01T12:00:00Z"
        assert doc["progress"]["percentComplete"] == 0
        assert doc["github"]["stateRepo"] == "acme/task-state"
        assert doc["security"]["allowedAgents"] == ["*"]
        assert doc["session"]["currentSessionId"] == ""

    def test_document_omits_unset_optionals(self):
        """未设置的可选字段不出现在文档中"""
        doc = _state().to_document()
        assert "issueNumber" not in doc["github"]
        assert "toAgent" not in doc["handoffs"][0]

    def test_document_reads_back(self):
        state = _state()
        restored = parse_task_document(json.dumps(state.to_document()))
        assert restored == state

    def test_populated_document_reads_back(self):
        """会话、检查点、文件变更、handoff 链全部填充后回读，数组顺序保持不变"""
        state = _state()
        state = with_session(state, "session-1")
        state = with_message(
            state,
            ConversationMessage(role=MessageRole.USER, content="Add the toggle", timestamp=NOW),
        )
        state = with_message(
            state,
            ConversationMessage(
                role=MessageRole.ASSISTANT,
                content="Saving progress",
                timestamp=NOW,
                tool_calls=[
                    ToolCallRecord(
                        name="save_checkpoint",
                        input={"description": "Theme tokens", "completedSteps": ["tokens"]},
                        result="Checkpoint saved",
                    ),
                    ToolCallRecord(name="update_progress", input={"percentComplete": 40}),
                ],
            ),
        )
        for step in ("Theme tokens", "Toggle component", "Settings wiring"):
            state = with_progress(
                state,
                phase="implementation",
                checkpoint=new_checkpoint(step, completed_steps=[step], now=NOW),
            )
        for path, action in (
            ("src/theme.css", FileAction.CREATED),
            ("src/Settings.tsx", FileAction.MODIFIED),
            ("src/legacy.css", FileAction.DELETED),
        ):
            state = with_file_modification(
                state, FileModification(path=path, action=action, summary=f"{action} {path}")
            )
        state = with_handoff(
            state,
            HandoffRecord(
                from_agent=AgentIdentity(
                    user_id="user-1",
                    agent_id="agent-alpha",
                    session_id="session-1",
                    started_at=NOW,
                    ended_at=NOW,
                ),
                handoff_at=NOW,
                reason="expertise_needed",
                instructions="Needs a CSS expert",
            ),
        )

        doc = state.to_document()
        assert doc["context"]["conversationHistory"][1]["toolCalls"][0]["name"] == "save_checkpoint"
        assert "result" not in doc["context"]["conversationHistory"][1]["toolCalls"][1]

        restored = parse_task_document(json.dumps(doc))
        assert restored == state
        assert [c.description for c in restored.progress.checkpoints] == [
            "Theme tokens",
            "Toggle component",
            "Settings wiring",
        ]
        assert [m.path for m in restored.files.modifications] == [
            "src/theme.css",
            "src/Settings.tsx",
            "src/legacy.css",
        ]
        assert [m.role for m in restored.context.conversation_history] == ["user", "assistant"]
        assert restored.context.conversation_history[1].tool_calls[1].input == {
            "percentComplete": 40
        }
        assert len(restored.handoffs) == 2

    def test_snake_case_input_accepted(self):
        """populate_by_name：Python 侧也可用 snake_case 构造"""
        progress = TaskProgress(current_phase="planning", percent_complete=10)
        assert progress.model_dump(by_alias=True)["currentPhase"] == "planning"


class TestNewTaskState:
    """新任务初始值"""

    def test_initial_fields(self):
        state = _state()
        assert state.version == 1
        assert state.status == TaskStatus.PENDING
        assert state.progress.current_phase == "initialization"
        assert state.progress.percent_complete == 0
        assert state.next_steps.immediate == [
            "Analyze task requirements",
            "Plan implementation approach",
        ]

    def test_initial_handoff_record(self):
        state = _state()
        assert len(state.handoffs) == 1
        record = state.handoffs[0]
        assert record.reason == "Task created"
        assert record.instructions == "Initial task creation"
        assert record.from_agent.agent_id == "agent-alpha"
        assert record.to_agent is None

    def test_generated_id_is_uuid4(self):
        state = new_task_state(
            title="t",
            description="d",
            github=GitHubLink(repo="a/b", branch="main", state_repo="a/s"),
            creator=Identity(user_id="u", agent_id="a"),
            transcript_path="",
        )
        assert len(state.id) == 36
        assert state.id[14] == "4"


class TestFieldConstraints:
    """字段约束"""

    def test_percent_above_100_rejected(self):
        with pytest.raises(ValidationError):
            TaskProgress(current_phase="x", percent_complete=150)

    def test_negative_percent_rejected(self):
        with pytest.raises(ValidationError):
            TaskProgress(current_phase="x", percent_complete=-1)

    def test_invalid_task_id_rejected(self):
        doc = _state().to_document()
        doc["id"] = "not-a-uuid"
        with pytest.raises(TaskValidationError):
            parse_task_document(json.dumps(doc))

    def test_start_request_title_length(self):
        with pytest.raises(ValidationError):
            StartTaskRequest.model_validate(
                {
                    "title": "x" * 201,
                    "description": "d",
                    "prompt": "p",
                    "github": {"repo": "acme/webapp"},
                }
            )

    def test_start_request_defaults(self):
        request = StartTaskRequest.model_validate(
            {"title": "t", "description": "d", "prompt": "p", "github": {"repo": "acme/webapp"}}
        )
        assert request.github.branch == "main"
        assert request.github.create_issue is True
        assert request.config.max_turns == 50
        assert request.security.allowed_agents == ["*"]


class TestValidateTaskState:
    """持久化前校验"""

    def test_valid_state_passes(self):
        state = _state()
        assert validate_task_state(state) == state

    def test_model_copy_bypass_is_caught(self):
        """model_copy 不触发校验，越界值在持久化前被拒绝"""
        state = _state()
        bad = state.model_copy(
            update={"progress": state.progress.model_copy(update={"percent_complete": 150})}
        )
        with pytest.raises(TaskValidationError) as exc_info:
            validate_task_state(bad)
        locs = [issue["loc"] for issue in exc_info.value.issues]
        assert ["progress", "percentComplete"] in locs

    def test_empty_handoff_chain_rejected(self):
        bad = _state().model_copy(update={"handoffs": []})
        with pytest.raises(TaskValidationError) as exc_info:
            validate_task_state(bad)
        assert exc_info.value.issues[0]["type"] == "too_short"

    def test_document_dict_accepted(self):
        state = _state()
        assert validate_task_state(state.to_document()) == state
