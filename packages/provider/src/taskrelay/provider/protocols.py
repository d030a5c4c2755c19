"""AgentRunner Protocol -- 不透明的 agent 轮次协作者"""

from typing import Protocol

from .models import AgentTurnResult, ToolSpec


class AgentRunner(Protocol):
    """agent 轮次接口

    (system_prompt, user_prompt, tools) -> AgentTurnResult。
    工具 handler 在轮次内同步执行；模型/传输失败抛出 ProviderError。
    """

    async def run_turn(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolSpec],
        *,
        model: str | None = None,
        max_turns: int | None = None,
    ) -> AgentTurnResult:
        ...
