"""全局 pytest 配置 -- 共享的身份 fixture 与脚本化 agent runner"""

import json

import pytest
from taskrelay.core.models import Identity
from taskrelay.provider import AgentTurnResult, ToolInvocation


@pytest.fixture
def creator() -> Identity:
    """创建任务的身份"""
    return Identity(user_id="user-1", agent_id="agent-alpha")


@pytest.fixture
def other_agent() -> Identity:
    """接手任务的另一个身份"""
    return Identity(user_id="user-2", agent_id="agent-beta")


@pytest.fixture(autouse=True)
def _no_logfire(monkeypatch: pytest.MonkeyPatch) -> None:
    """测试中不向 Logfire 发送数据"""
    monkeypatch.setenv("LOGFIRE_SEND_TO_LOGFIRE", "false")


class ScriptedRunner:
    """按脚本调用工具的 AgentRunner

    steps 为 (工具名, 参数) 列表，按顺序调用 TaskExecutor 提供的工具 handler；
    error 不为 None 时直接抛出，模拟模型调用失败。
    """

    def __init__(
        self,
        steps: list[tuple[str, dict]] | None = None,
        text: str = "Turn complete",
        error: Exception | None = None,
    ) -> None:
        self.steps = list(steps or [])
        self.text = text
        self.error = error
        self.calls: list[dict] = []
        self.tool_results: list[dict] = []

    async def run_turn(self, system_prompt, user_prompt, tools, *, model=None, max_turns=None):
        self.calls.append(
            {
                "system_prompt": system_prompt,
                "user_prompt": user_prompt,
                "tools": [t.name for t in tools],
                "model": model,
                "max_turns": max_turns,
            }
        )
        if self.error is not None:
            raise self.error

        handlers = {t.name: t.handler for t in tools}
        invocations = []
        for name, arguments in self.steps:
            result = await handlers[name](arguments)
            self.tool_results.append(result)
            invocations.append(
                ToolInvocation(name=name, arguments=arguments, result=json.dumps(result))
            )
        return AgentTurnResult(text=self.text, tool_invocations=invocations, model_name="scripted")


@pytest.fixture
def scripted_runner() -> type[ScriptedRunner]:
    """返回 ScriptedRunner 类，测试按需构造"""
    return ScriptedRunner
