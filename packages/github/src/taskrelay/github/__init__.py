"""taskrelay GitHub -- 状态仓库与 issue 通知

packages/github 的公开接口导出。
"""

from .blob_store import GitHubBlobStore
from .client import create_http_client, parse_repo_string
from .config import GitHubConfig, load_github_config
from .exceptions import GitHubConfigError, GitHubError
from .issue_tracker import IssueTracker, extract_task_id, issue_url

__all__ = [
    "GitHubBlobStore",
    "IssueTracker",
    "extract_task_id",
    "issue_url",
    "GitHubConfig",
    "load_github_config",
    "create_http_client",
    "parse_repo_string",
    "GitHubError",
    "GitHubConfigError",
]
