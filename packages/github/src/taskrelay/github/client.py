"""GitHub HTTP 客户端工厂

客户端由调用方显式创建并注入 GitHubBlobStore / IssueTracker，
不使用进程级单例，测试可通过 transport 注入 httpx.MockTransport。
"""

import httpx

from .config import GitHubConfig
from .exceptions import GitHubConfigError

GITHUB_API_VERSION = "2022-11-28"


def parse_repo_string(repo: str) -> tuple[str, str]:
    """解析 "owner/repo" 字符串

    Raises:
        GitHubConfigError: 格式不是 owner/repo
    """
    parts = repo.split("/")
    if len(parts) != 2 or not all(parts):
        raise GitHubConfigError(f"Invalid repo string: {repo}. Expected format: owner/repo")
    return parts[0], parts[1]


def create_http_client(
    config: GitHubConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """创建访问 GitHub REST API 的 AsyncClient

    Raises:
        GitHubConfigError: 未配置 GITHUB_TOKEN
    """
    token = config.token.get_secret_value()
    if not token:
        raise GitHubConfigError("GITHUB_TOKEN environment variable is required")

    return httpx.AsyncClient(
        base_url=config.api_url.rstrip("/"),
        headers={
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        },
        timeout=config.timeout_s,
        transport=transport,
    )
