"""数据模型 -- 工具定义、工具调用记录、TokenUsage、AgentTurnResult

AgentTurnResult 是一次 agent 轮次（prompt + tools 进，文本 + 工具调用出）的统一返回类型，
LiteLLM、Echo 以及测试中的脚本化 runner 都返回此类型。
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field

ToolHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]


@dataclass
class ToolSpec:
    """可供 agent 调用的工具

    parameters 为 JSON Schema（OpenAI function calling 格式），
    handler 接收解析后的参数并返回可 JSON 序列化的结果。
    """

    name: str
    description: str
    parameters: dict[str, Any]
    handler: ToolHandler

    def to_openai(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class TokenUsage(BaseModel):
    """Token 使用统计

    key 命名对齐 OpenAI/LiteLLM 行业标准：
    prompt_tokens / completion_tokens / total_tokens
    """

    prompt_tokens: int = Field(default=0, ge=0, description="输入 token 数")
    completion_tokens: int = Field(default=0, ge=0, description="输出 token 数")
    total_tokens: int = Field(default=0, ge=0, description="总 token 数")

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class ToolInvocation(BaseModel):
    """一次工具调用及其结果"""

    name: str = Field(description="工具名称")
    arguments: dict[str, Any] = Field(default_factory=dict, description="解析后的调用参数")
    result: str = Field(default="", description="返回给模型的 JSON 结果")


class AgentTurnResult(BaseModel):
    """agent 轮次结果"""

    text: str = Field(description="最终文本输出")
    tool_invocations: list[ToolInvocation] = Field(
        default_factory=list,
        description="按调用顺序排列的工具调用",
    )
    model_name: str = Field(default="", description="实际调用的模型名称")
    duration_ms: int = Field(default=0, ge=0, description="端到端耗时（毫秒）")
    token_usage: TokenUsage = Field(
        default_factory=TokenUsage,
        description="整轮累计 Token 使用",
    )
    turns: int = Field(default=1, ge=0, description="模型往返次数")
    max_turns_reached: bool = Field(default=False, description="是否因达到轮数上限而结束")
