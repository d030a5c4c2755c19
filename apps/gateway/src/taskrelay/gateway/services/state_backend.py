"""StateBackend -- 按状态仓库创建 TaskRepository

状态仓库可以按请求切换（stateRepo 查询参数），
每个状态仓库对应一个 BlobStore 实例，按需创建并缓存。
GitHub 客户端由 lifespan 显式创建并注入，不使用进程级单例。
"""

from pathlib import Path

import httpx
import structlog

from taskrelay.core.config import (
    get_default_state_repo,
    get_local_state_dir,
    get_state_backend,
)
from taskrelay.core.store import BlobStore, InMemoryBlobStore, LocalBlobStore, TaskRepository
from taskrelay.github import (
    GitHubBlobStore,
    GitHubConfigError,
    IssueTracker,
    create_http_client,
    load_github_config,
)

log = structlog.get_logger()


class StateBackend:
    """状态存储后端

    Args:
        kind: github / local / memory
        default_repo: 未指定 stateRepo 时使用的状态仓库
        github_client: GitHub API 客户端；None 时不创建 issue 通知
        local_dir: local 后端的根目录
        root: 状态根路径（仓库内），None 读取 TASKRELAY_STATE_ROOT
        max_attempts: 条件写冲突最大尝试次数
    """

    def __init__(
        self,
        kind: str,
        *,
        default_repo: str,
        github_client: httpx.AsyncClient | None = None,
        local_dir: Path | None = None,
        root: str | None = None,
        max_attempts: int | None = None,
    ) -> None:
        if kind == "github" and github_client is None:
            raise GitHubConfigError("GitHub state backend requires a GitHub client")
        self.kind = kind
        self.default_repo = default_repo
        self._github_client = github_client
        self._local_dir = local_dir or get_local_state_dir()
        self._root = root
        self._max_attempts = max_attempts
        self._stores: dict[str, BlobStore] = {}

    @classmethod
    def from_env(cls) -> "StateBackend":
        """按环境变量创建后端；配置了 GITHUB_TOKEN 时同时启用 issue 通知"""
        kind = get_state_backend()
        github_config = load_github_config()
        client = None
        if github_config.token.get_secret_value():
            client = create_http_client(github_config)
        backend = cls(kind, default_repo=get_default_state_repo(), github_client=client)
        log.info(
            "state_backend_initialized",
            backend=kind,
            default_repo=backend.default_repo,
            issue_tracking=client is not None,
        )
        return backend

    def store_for(self, state_repo: str) -> BlobStore:
        store = self._stores.get(state_repo)
        if store is None:
            if self.kind == "github":
                store = GitHubBlobStore(self._github_client, state_repo)
            elif self.kind == "local":
                store = LocalBlobStore(self._local_dir / state_repo)
            else:
                store = InMemoryBlobStore()
            self._stores[state_repo] = store
        return store

    def repository(self, state_repo: str | None = None) -> TaskRepository:
        state_repo = state_repo or self.default_repo
        return TaskRepository(
            self.store_for(state_repo),
            state_repo,
            root=self._root,
            max_attempts=self._max_attempts,
        )

    def issue_tracker(self, repo: str) -> IssueTracker | None:
        if self._github_client is None:
            return None
        return IssueTracker(self._github_client, repo)

    async def ping(self, state_repo: str | None = None) -> bool:
        return await self.store_for(state_repo or self.default_repo).ping()

    async def aclose(self) -> None:
        if self._github_client is not None:
            await self._github_client.aclose()
