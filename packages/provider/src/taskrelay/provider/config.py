"""ProviderConfig -- Provider 配置加载

从环境变量加载配置，不硬编码 provider 密钥。
"""

import os
from typing import Literal

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()

DEFAULT_MODEL = "claude-sonnet-4-5-20250929"


class ProviderConfig(BaseModel):
    """Provider 包配置 -- 从环境变量加载

    环境变量:
        LITELLM_PROXY_URL: Proxy 地址（默认 http://localhost:4000）
        LITELLM_PROXY_KEY: Proxy 访问密钥
        TASKRELAY_LLM_MODE: LLM 运行模式（litellm/echo）
        TASKRELAY_MODEL: 默认模型
        TASKRELAY_MAX_TURNS: 单轮次内模型往返上限（默认 50）
        TASKRELAY_LLM_TIMEOUT_S: 调用超时（秒，默认 60）
    """

    proxy_base_url: str = Field(
        default="http://localhost:4000",
        description="LiteLLM Proxy 基础 URL",
    )
    proxy_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Proxy 访问密钥（不是 LLM provider API key）",
    )
    llm_mode: Literal["litellm", "echo"] = Field(
        default="litellm",
        description="LLM 运行模式：litellm / echo",
    )
    model: str = Field(default=DEFAULT_MODEL, description="默认模型名称")
    max_turns: int = Field(default=50, ge=1, description="模型往返上限")
    timeout_s: int = Field(
        default=60,
        ge=1,
        description="LLM 调用超时（秒）",
    )


def _int_env(env_var: str, fallback: int) -> int | None:
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        return int(val)
    except ValueError:
        log.warning(
            "invalid_int_config",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        # 使用默认值，不阻塞启动
        return None


def load_provider_config() -> ProviderConfig:
    """从环境变量加载 Provider 配置

    Returns:
        ProviderConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("LITELLM_PROXY_URL"):
        kwargs["proxy_base_url"] = val

    if val := os.environ.get("LITELLM_PROXY_KEY"):
        kwargs["proxy_api_key"] = SecretStr(val)

    if val := os.environ.get("TASKRELAY_LLM_MODE"):
        kwargs["llm_mode"] = val

    if val := os.environ.get("TASKRELAY_MODEL"):
        kwargs["model"] = val

    if (val := _int_env("TASKRELAY_MAX_TURNS", 50)) is not None:
        kwargs["max_turns"] = val

    if (val := _int_env("TASKRELAY_LLM_TIMEOUT_S", 60)) is not None:
        kwargs["timeout_s"] = val

    return ProviderConfig(**kwargs)
