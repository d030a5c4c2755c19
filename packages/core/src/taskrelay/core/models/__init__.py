"""taskrelay Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    FileAction,
    HandoffReason,
    MessageRole,
    ResourceType,
    TaskStatus,
    Urgency,
    validate_transition,
)
from .requests import (
    ContinueTaskRequest,
    HandoffRequest,
    StartGitHubOptions,
    StartSecurityOptions,
    StartTaskConfig,
    StartTaskRequest,
)
from .task import (
    AgentIdentity,
    CamelModel,
    ConversationMessage,
    FileModification,
    GitHubLink,
    HandoffRecord,
    Identity,
    NextSteps,
    ProgressCheckpoint,
    Resource,
    SecuritySettings,
    SerializedSession,
    SessionInfo,
    TaskContext,
    TaskFiles,
    TaskIndex,
    TaskIndexEntry,
    TaskProgress,
    TaskState,
    TaskSummary,
    ToolCallRecord,
)

__all__ = [
    # 枚举
    "TaskStatus",
    "MessageRole",
    "FileAction",
    "ResourceType",
    "HandoffReason",
    "Urgency",
    # 状态机
    "VALID_TRANSITIONS",
    "TERMINAL_STATES",
    "validate_transition",
    # TaskState
    "CamelModel",
    "TaskState",
    "ToolCallRecord",
    "ConversationMessage",
    "ProgressCheckpoint",
    "Identity",
    "AgentIdentity",
    "HandoffRecord",
    "Resource",
    "GitHubLink",
    "SessionInfo",
    "TaskContext",
    "TaskProgress",
    "FileModification",
    "TaskFiles",
    "NextSteps",
    "SecuritySettings",
    # 索引 / 会话信封
    "TaskIndex",
    "TaskIndexEntry",
    "TaskSummary",
    "SerializedSession",
    # 请求
    "StartTaskRequest",
    "StartGitHubOptions",
    "StartTaskConfig",
    "StartSecurityOptions",
    "ContinueTaskRequest",
    "HandoffRequest",
]
