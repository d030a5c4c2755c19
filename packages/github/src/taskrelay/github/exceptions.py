"""GitHub 异常体系"""

from taskrelay.core.exceptions import TaskRelayError


class GitHubError(TaskRelayError):
    """GitHub API 调用失败"""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubConfigError(GitHubError):
    """GitHub 配置缺失或非法（如未设置 GITHUB_TOKEN、仓库字符串格式错误）"""
