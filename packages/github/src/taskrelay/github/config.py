"""GitHubConfig -- GitHub 配置加载

从环境变量加载配置，token 以 SecretStr 保存，避免出现在日志中。
"""

import os

import structlog
from pydantic import BaseModel, Field, SecretStr

log = structlog.get_logger()


class GitHubConfig(BaseModel):
    """GitHub 包配置 -- 从环境变量加载

    环境变量:
        GITHUB_TOKEN: 访问令牌
        GITHUB_API_URL: API 地址（默认 https://api.github.com）
        TASKRELAY_GITHUB_TIMEOUT_S: 请求超时（秒，默认 30）
    """

    token: SecretStr = Field(
        default=SecretStr(""),
        description="GitHub 访问令牌",
    )
    api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API 基础 URL",
    )
    timeout_s: int = Field(
        default=30,
        ge=1,
        description="请求超时（秒）",
    )


def load_github_config() -> GitHubConfig:
    """从环境变量加载 GitHub 配置

    Returns:
        GitHubConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("GITHUB_TOKEN"):
        kwargs["token"] = SecretStr(val)

    if val := os.environ.get("GITHUB_API_URL"):
        kwargs["api_url"] = val

    if val := os.environ.get("TASKRELAY_GITHUB_TIMEOUT_S"):
        try:
            kwargs["timeout_s"] = int(val)
        except ValueError:
            log.warning(
                "invalid_timeout_config",
                env_var="TASKRELAY_GITHUB_TIMEOUT_S",
                value=val,
                fallback=30,
            )

    return GitHubConfig(**kwargs)
