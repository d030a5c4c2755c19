"""Handoff 授权门禁

agent_id 出现在 security.allowedAgents 中，或列表包含通配符 "*"，即可操作该任务。
"""

from .exceptions import UnauthorizedError
from .models import TaskState

WILDCARD = "*"


def is_agent_allowed(state: TaskState, agent_id: str) -> bool:
    allowed = state.security.allowed_agents
    return WILDCARD in allowed or agent_id in allowed


def ensure_agent_allowed(state: TaskState, agent_id: str) -> None:
    """不在允许列表中时抛出 UnauthorizedError"""
    if not is_agent_allowed(state, agent_id):
        raise UnauthorizedError(agent_id=agent_id, task_id=state.id)
