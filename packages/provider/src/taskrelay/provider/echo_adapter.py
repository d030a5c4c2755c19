"""EchoAgentRunner -- Echo 模式 agent runner

不调用任何模型、不调用任何工具，返回用户提示的回声。
用于 TASKRELAY_LLM_MODE=echo 的本地开发与联调。
"""

import asyncio
import time

from .models import AgentTurnResult, TokenUsage, ToolSpec


class EchoAgentRunner:
    """AgentRunner 的回声实现"""

    async def run_turn(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolSpec],
        *,
        model: str | None = None,
        max_turns: int | None = None,
    ) -> AgentTurnResult:
        """返回 "Echo: {user_prompt}"

        token 按 word 简单估算。
        """
        start_time = time.monotonic()

        # 模拟少量延迟
        await asyncio.sleep(0.01)

        content = user_prompt or "(empty)"
        response_text = f"Echo: {content}"
        prompt_tokens = len(system_prompt.split()) + len(content.split())
        completion_tokens = len(response_text.split())

        return AgentTurnResult(
            text=response_text,
            tool_invocations=[],
            model_name="echo",
            duration_ms=int((time.monotonic() - start_time) * 1000),
            token_usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
            turns=1,
        )
