"""TaskState Domain Model

任务状态聚合根及其子对象。所有模型均为不可变值（frozen），
修改通过 model_copy 产生新值，持久化前必须再次校验。

持久化 JSON 使用 camelCase 键名（createdAt / percentComplete / allowedAgents ...），
Python 侧使用 snake_case 属性名。
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .enums import FileAction, MessageRole, ResourceType, TaskStatus

UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
REPO_PATTERN = r"^[^/\s]+/[^/\s]+$"


class CamelModel(BaseModel):
    """camelCase 序列化 + 不可变的模型基类"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class ToolCallRecord(CamelModel):
    """一次工具调用记录"""

    name: str
    input: dict[str, Any] = Field(default_factory=dict)
    result: str | None = None


class ConversationMessage(CamelModel):
    """会话消息 -- 用于跨 agent 传递上下文"""

    role: MessageRole
    content: str
    timestamp: datetime
    tool_calls: list[ToolCallRecord] | None = None


class ProgressCheckpoint(CamelModel):
    """进度检查点 -- 某一时刻已完成/待完成步骤的快照"""

    id: str = Field(pattern=UUID_PATTERN)
    timestamp: datetime
    description: str
    completed_steps: list[str] = Field(default_factory=list)
    remaining_steps: list[str] = Field(default_factory=list)
    blockers: list[str] | None = None


class Identity(CamelModel):
    """请求方身份 -- 由凭证校验得到，授权门禁按 agent_id 判断"""

    user_id: str
    agent_id: str


class AgentIdentity(CamelModel):
    """agent 身份（某个用户的某个 agent 的某个会话）"""

    user_id: str
    agent_id: str
    session_id: str = ""
    started_at: datetime
    ended_at: datetime | None = None


class HandoffRecord(CamelModel):
    """handoff 记录

    handoffs 列表 append-only，最后一条即"进行中或最近被接受的 handoff"。
    """

    from_agent: AgentIdentity
    to_agent: AgentIdentity | None = None
    handoff_at: datetime
    reason: str
    instructions: str


class Resource(CamelModel):
    """参考资源"""

    type: ResourceType
    path: str
    description: str


class GitHubLink(CamelModel):
    """外部关联信息 -- 目标仓库/分支与独立的状态仓库"""

    repo: str
    branch: str
    state_repo: str
    issue_number: int | None = None
    pr_number: int | None = None
    commit_sha: str | None = None


class SessionInfo(CamelModel):
    """会话信息"""

    current_session_id: str = ""
    transcript_path: str
    last_message_uuid: str | None = None


class TaskContext(CamelModel):
    """会话上下文：历史消息 + 压缩摘要"""

    system_prompt: str | None = None
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    compacted_summary: str | None = None


class TaskProgress(CamelModel):
    """进度跟踪"""

    current_phase: str
    checkpoints: list[ProgressCheckpoint] = Field(default_factory=list)
    percent_complete: float = Field(ge=0, le=100)


class FileModification(CamelModel):
    """文件变更记录"""

    path: str
    action: FileAction
    previous_hash: str | None = None
    current_hash: str | None = None
    summary: str


class TaskFiles(CamelModel):
    """文件变更汇总"""

    modifications: list[FileModification] = Field(default_factory=list)
    working_directory: str = "."


class NextSteps(CamelModel):
    """下一步计划"""

    immediate: list[str] = Field(default_factory=list)
    considerations: list[str] = Field(default_factory=list)
    blockers: list[str] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)


class SecuritySettings(CamelModel):
    """安全设置 -- allowedAgents 支持通配符 "*" """

    encrypted_secrets: str | None = None
    allowed_agents: list[str] = Field(default_factory=lambda: ["*"])
    require_approval: bool = False


class TaskState(CamelModel):
    """TaskState 聚合根

    - version 每次成功持久化的变更严格 +1
    - handoffs 创建后不为空（创建时写入初始记录）
    - id 创建后不可变，是状态存储路径的唯一键
    """

    id: str = Field(pattern=UUID_PATTERN, description="唯一标识，UUID4 格式")
    version: int = Field(ge=1, description="版本号，每次变更 +1")

    title: str
    description: str
    created_at: datetime
    updated_at: datetime

    status: TaskStatus = TaskStatus.PENDING

    github: GitHubLink
    session: SessionInfo
    context: TaskContext = Field(default_factory=TaskContext)
    progress: TaskProgress
    files: TaskFiles = Field(default_factory=TaskFiles)
    handoffs: list[HandoffRecord] = Field(default_factory=list)
    next_steps: NextSteps = Field(default_factory=NextSteps)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    @property
    def last_handoff(self) -> HandoffRecord | None:
        """最后一条 handoff 记录"""
        return self.handoffs[-1] if self.handoffs else None

    @property
    def last_checkpoint(self) -> ProgressCheckpoint | None:
        """最近的检查点"""
        return self.progress.checkpoints[-1] if self.progress.checkpoints else None

    def to_document(self) -> dict[str, Any]:
        """转换为持久化文档（camelCase，省略未设置的可选字段）"""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class TaskIndexEntry(CamelModel):
    """任务索引条目"""

    id: str
    title: str
    created_at: datetime


class TaskIndex(CamelModel):
    """任务索引文档 index.json"""

    tasks: list[TaskIndexEntry] = Field(default_factory=list)


class TaskSummary(CamelModel):
    """任务列表项 -- 状态文档缺失时 status 为 None"""

    id: str
    title: str
    status: TaskStatus | None = None


class SerializedSession(CamelModel):
    """对外 handoff 的会话信封

    只携带最近一个检查点；完整信息需读取 TaskState。
    """

    version: int = 1
    session_id: str
    conversation_history: list[ConversationMessage] = Field(default_factory=list)
    compacted_summary: str | None = None
    last_checkpoint: ProgressCheckpoint | None = None
    next_steps: NextSteps
    files_modified: list[FileModification] = Field(default_factory=list)
