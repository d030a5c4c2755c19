"""枚举定义

包含 TaskStatus 状态机、消息角色、文件操作、handoff 原因与紧急程度等枚举，
以及 VALID_TRANSITIONS 合法流转映射和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TaskStatus(StrEnum):
    """Task 状态机"""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    AWAITING_HANDOFF = "awaiting_handoff"
    HANDED_OFF = "handed_off"

    # 终态
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# 合法状态流转
VALID_TRANSITIONS: dict[TaskStatus, set[TaskStatus]] = {
    TaskStatus.PENDING: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    TaskStatus.IN_PROGRESS: {
        TaskStatus.AWAITING_HANDOFF,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.CANCELLED,
    },
    # 无人接手时，发起方可以自行恢复执行
    TaskStatus.AWAITING_HANDOFF: {
        TaskStatus.HANDED_OFF,
        TaskStatus.IN_PROGRESS,
        TaskStatus.CANCELLED,
    },
    TaskStatus.HANDED_OFF: {TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED},
    # 终态不可再流转
    TaskStatus.COMPLETED: set(),
    TaskStatus.FAILED: set(),
    TaskStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[TaskStatus] = {
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.CANCELLED,
}


class MessageRole(StrEnum):
    """会话消息角色"""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class FileAction(StrEnum):
    """文件变更类型"""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


class ResourceType(StrEnum):
    """参考资源类型"""

    FILE = "file"
    URL = "url"
    DOCUMENTATION = "documentation"


class HandoffReason(StrEnum):
    """handoff 原因"""

    TASK_COMPLETE_PHASE = "task_complete_phase"
    EXPERTISE_NEEDED = "expertise_needed"
    TIME_LIMIT = "time_limit"
    USER_REQUEST = "user_request"
    ERROR_RECOVERY = "error_recovery"


class Urgency(StrEnum):
    """handoff 紧急程度"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


def validate_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
