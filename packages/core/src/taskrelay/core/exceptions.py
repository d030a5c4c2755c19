"""Core 异常体系

Repository / 执行器 / 授权门禁共用的错误类型。
API 层按类型映射为 4xx/5xx 响应，CLI 层打印消息并以非零码退出。
"""

from typing import Any


class TaskRelayError(Exception):
    """taskrelay 基础异常"""


class TaskNotFoundError(TaskRelayError):
    """任务（或其状态文档）不存在"""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskValidationError(TaskRelayError):
    """任务文档未通过校验 -- 该文档绝不能被持久化

    issues 为结构化错误列表，每项包含 loc / msg / type。
    """

    def __init__(self, message: str, issues: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.issues = issues or []


class ConflictError(TaskRelayError):
    """条件写失败：版本令牌（SHA）已过期"""

    def __init__(self, path: str, attempts: int = 1) -> None:
        super().__init__(f"Write conflict on {path} after {attempts} attempt(s)")
        self.path = path
        self.attempts = attempts


class UnauthorizedError(TaskRelayError):
    """请求身份不在任务的 allowedAgents 中"""

    def __init__(self, agent_id: str, task_id: str) -> None:
        super().__init__(f"Agent {agent_id} is not authorized to act on task {task_id}")
        self.agent_id = agent_id
        self.task_id = task_id


class NoHandoffRecordError(TaskRelayError):
    """handoff 链为空 -- 创建任务时必然写入首条记录，出现即视为数据损坏"""

    def __init__(self, task_id: str) -> None:
        super().__init__(f"No handoff record found for task {task_id}")
        self.task_id = task_id


class TaskTerminalError(TaskRelayError):
    """任务已处于终态，不能继续执行或再次流转"""

    def __init__(self, task_id: str, status: str) -> None:
        super().__init__(f"Task {task_id} is already in terminal state: {status}")
        self.task_id = task_id
        self.status = status


class InvalidTransitionError(TaskRelayError):
    """状态流转不在 VALID_TRANSITIONS 中"""

    def __init__(self, task_id: str, from_status: str, to_status: str) -> None:
        super().__init__(f"Task {task_id} cannot move from {from_status} to {to_status}")
        self.task_id = task_id
        self.from_status = from_status
        self.to_status = to_status


class BlobStoreError(TaskRelayError):
    """状态存储传输失败（网络错误、非预期的 HTTP 状态码等）"""
