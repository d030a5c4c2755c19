"""LiteLLMAgentRunner -- 基于 LiteLLM Proxy 的工具调用循环

通过 litellm.acompletion() 调用 Proxy：
模型返回 tool_calls 时执行对应工具并回填结果，直到模型给出最终文本或达到往返上限。
"""

import json
import time
from typing import Any

import httpx
import structlog
from litellm import acompletion

from .exceptions import ProviderError, ProxyUnreachableError
from .models import AgentTurnResult, TokenUsage, ToolInvocation, ToolSpec

log = structlog.get_logger()

# 健康检查超时（硬编码，应快速响应）
HEALTH_CHECK_TIMEOUT_S = 5

# 连接类异常类型集合（触发 ProxyUnreachableError）
_CONNECTION_ERROR_TYPES = (
    ConnectionError,
    OSError,
    TimeoutError,
    httpx.ConnectError,
    httpx.ConnectTimeout,
    httpx.TimeoutException,
)


def _is_connection_error(e: Exception) -> bool:
    """判断异常是否为连接类错误（Proxy 不可达）"""
    if isinstance(e, _CONNECTION_ERROR_TYPES):
        return True
    # LiteLLM 的 APIConnectionError 也属于连接类错误
    error_name = type(e).__name__
    return error_name in ("APIConnectionError", "APITimeoutError")


def _parse_usage(response: Any) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage()
    try:
        return TokenUsage(
            prompt_tokens=int(getattr(usage, "prompt_tokens", 0) or 0),
            completion_tokens=int(getattr(usage, "completion_tokens", 0) or 0),
            total_tokens=int(getattr(usage, "total_tokens", 0) or 0),
        )
    except (TypeError, ValueError):
        return TokenUsage()


def _parse_arguments(raw: str | None) -> dict[str, Any] | None:
    """解析工具参数 JSON；非法时返回 None"""
    try:
        parsed = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class LiteLLMAgentRunner:
    """LiteLLM Proxy agent runner

    Args:
        proxy_base_url: Proxy 基础 URL
        proxy_api_key: Proxy 访问密钥（LITELLM_PROXY_KEY）
        model: 默认模型
        max_turns: 默认模型往返上限
        timeout_s: 单次请求超时（秒）

    注意: proxy_api_key 是 Proxy 管理密钥，不是 LLM provider API key。
    """

    def __init__(
        self,
        proxy_base_url: str = "http://localhost:4000",
        proxy_api_key: str = "",
        model: str = "claude-sonnet-4-5-20250929",
        max_turns: int = 50,
        timeout_s: int = 60,
    ) -> None:
        self._proxy_base_url = proxy_base_url.rstrip("/")
        self._proxy_api_key = proxy_api_key
        self._model = model
        self._max_turns = max_turns
        self._timeout_s = timeout_s

    async def _complete(self, model: str, messages: list[dict[str, Any]], tools: list[ToolSpec]):
        call_kwargs: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "api_base": self._proxy_base_url,
            "api_key": self._proxy_api_key or "no-key",
            "timeout": self._timeout_s,
        }
        if tools:
            call_kwargs["tools"] = [t.to_openai() for t in tools]

        try:
            return await acompletion(**call_kwargs)
        except Exception as e:
            log.error(
                "litellm_call_failed",
                model=model,
                error=str(e),
                error_type=type(e).__name__,
            )
            # 区分连接类错误与业务错误
            if _is_connection_error(e):
                raise ProxyUnreachableError(self._proxy_base_url, e, model=model) from e
            raise ProviderError(f"LLM call failed: {e}", model=model) from e

    async def _invoke_tool(
        self, tools_by_name: dict[str, ToolSpec], name: str, raw_arguments: str | None
    ) -> ToolInvocation:
        arguments = _parse_arguments(raw_arguments)
        if arguments is None:
            result: dict[str, Any] = {"success": False, "message": "Invalid JSON arguments"}
            return ToolInvocation(name=name, arguments={}, result=json.dumps(result))

        tool = tools_by_name.get(name)
        if tool is None:
            result = {"success": False, "message": f"Unknown tool: {name}"}
        else:
            result = await tool.handler(arguments)

        log.debug("agent_tool_invoked", tool=name)
        return ToolInvocation(
            name=name,
            arguments=arguments,
            result=json.dumps(result, ensure_ascii=False),
        )

    async def run_turn(
        self,
        system_prompt: str,
        user_prompt: str,
        tools: list[ToolSpec],
        *,
        model: str | None = None,
        max_turns: int | None = None,
    ) -> AgentTurnResult:
        """执行一个 agent 轮次

        Returns:
            AgentTurnResult

        Raises:
            ProxyUnreachableError: Proxy 连接失败或超时
            ProviderError: Proxy 返回错误（如模型不可用、配额耗尽）
        """
        model = model or self._model
        max_turns = max_turns or self._max_turns
        tools_by_name = {t.name: t for t in tools}
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        invocations: list[ToolInvocation] = []
        usage = TokenUsage()
        model_name = model
        text = ""
        start_time = time.monotonic()

        log.debug("agent_turn_start", model=model, tool_count=len(tools))

        turns = 0
        max_turns_reached = True
        while turns < max_turns:
            turns += 1
            response = await self._complete(model, messages, tools)
            usage = usage + _parse_usage(response)
            model_name = getattr(response, "model", None) or model_name

            message = response.choices[0].message
            text = message.content or ""
            tool_calls = message.tool_calls or []
            if not tool_calls:
                max_turns_reached = False
                break

            messages.append(
                {
                    "role": "assistant",
                    "content": message.content,
                    "tool_calls": [
                        {
                            "id": call.id,
                            "type": "function",
                            "function": {
                                "name": call.function.name,
                                "arguments": call.function.arguments,
                            },
                        }
                        for call in tool_calls
                    ],
                }
            )
            for call in tool_calls:
                invocation = await self._invoke_tool(
                    tools_by_name, call.function.name, call.function.arguments
                )
                invocations.append(invocation)
                messages.append(
                    {"role": "tool", "tool_call_id": call.id, "content": invocation.result}
                )

        if max_turns_reached:
            log.warning("agent_max_turns_reached", model=model, max_turns=max_turns)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        log.info(
            "agent_turn_completed",
            model=model,
            model_name=model_name,
            turns=turns,
            tool_calls=len(invocations),
            duration_ms=duration_ms,
        )
        return AgentTurnResult(
            text=text,
            tool_invocations=invocations,
            model_name=model_name,
            duration_ms=duration_ms,
            token_usage=usage,
            turns=turns,
            max_turns_reached=max_turns_reached,
        )

    async def health_check(self) -> bool:
        """检查 LiteLLM Proxy 可达性

        发送 GET {proxy_base_url}/health/liveliness 请求。

        注意: 此方法不抛出异常，所有异常内部捕获并返回 False。
        """
        url = f"{self._proxy_base_url}/health/liveliness"
        try:
            async with httpx.AsyncClient() as http_client:
                resp = await http_client.get(url, timeout=HEALTH_CHECK_TIMEOUT_S)
                return resp.status_code == 200
        except Exception as e:
            log.debug("health_check_failed", url=url, error=str(e))
            return False
