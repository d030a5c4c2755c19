"""Handoff 授权门禁单元测试"""

import pytest
from taskrelay.core.exceptions import UnauthorizedError
from taskrelay.core.gate import ensure_agent_allowed, is_agent_allowed
from taskrelay.core.models import GitHubLink, Identity, SecuritySettings, TaskState
from taskrelay.core.transitions import new_task_state


def _state(allowed: list[str]) -> TaskState:
    return new_task_state(
        title="t",
        description="d",
        github=GitHubLink(repo="a/b", branch="main", state_repo="a/s"),
        creator=Identity(user_id="u", agent_id="agent-alpha"),
        transcript_path="",
        security=SecuritySettings(allowed_agents=allowed),
    )


class TestGate:
    def test_wildcard_allows_anyone(self):
        assert is_agent_allowed(_state(["*"]), "anyone") is True

    def test_listed_agent_allowed(self):
        assert is_agent_allowed(_state(["agent-alpha", "agent-beta"]), "agent-beta") is True

    def test_unlisted_agent_rejected(self):
        state = _state(["agent-alpha"])
        assert is_agent_allowed(state, "agent-beta") is False
        with pytest.raises(UnauthorizedError) as exc_info:
            ensure_agent_allowed(state, "agent-beta")
        assert exc_info.value.agent_id == "agent-beta"
        assert exc_info.value.task_id == state.id

    def test_empty_list_rejects_everyone(self):
        assert is_agent_allowed(_state([]), "agent-alpha") is False
