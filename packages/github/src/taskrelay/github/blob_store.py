"""GitHubBlobStore -- 基于 Contents API 的版本化 Blob 存储

文件的 blob SHA 即版本令牌：
- 携带 expected_sha 的 PUT 在 SHA 过期时返回 409，映射为 ConflictError
- 不携带 SHA 的写入先读取当前 SHA 再覆盖（创建或覆盖语义）
- expected_sha 为 CREATE_ONLY 时 PUT 不带 sha，文件已存在时 GitHub 返回 422，同样映射为 ConflictError
"""

import base64
from typing import Any

import httpx
import structlog

from taskrelay.core.exceptions import BlobStoreError, ConflictError
from taskrelay.core.store.protocols import CREATE_ONLY, Blob

from .client import parse_repo_string

log = structlog.get_logger()


class GitHubBlobStore:
    """BlobStore 的 GitHub 仓库实现

    Args:
        client: 已配置认证的 httpx.AsyncClient（base_url 指向 GitHub API）
        repo: 状态仓库 owner/repo
        branch: 读写的分支，None 使用仓库默认分支
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        repo: str,
        branch: str | None = None,
    ) -> None:
        self._client = client
        self._owner, self._repo = parse_repo_string(repo)
        self._branch = branch

    @property
    def repo(self) -> str:
        return f"{self._owner}/{self._repo}"

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self._owner}/{self._repo}/contents/{path.lstrip('/')}"

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            log.error(
                "github_request_failed",
                method=method,
                url=url,
                error_type=type(e).__name__,
            )
            raise BlobStoreError(f"GitHub request failed: {method} {url}: {e}") from e

    async def read(self, path: str) -> Blob | None:
        params = {"ref": self._branch} if self._branch else None
        resp = await self._request("GET", self._contents_url(path), params=params)
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise BlobStoreError(f"Unexpected status {resp.status_code} reading {path}")

        data = resp.json()
        if not isinstance(data, dict) or data.get("type") != "file":
            raise BlobStoreError(f"Path is not a file: {path}")

        if data.get("encoding") == "base64":
            raw = base64.b64decode(data.get("content", ""))
        else:
            # 超过 1MB 的文件 Contents API 不返回内容，改走 git blob 接口
            raw = await self._read_git_blob(data["sha"])
        return Blob(content=raw.decode("utf-8"), sha=data["sha"])

    async def _read_git_blob(self, sha: str) -> bytes:
        resp = await self._request(
            "GET", f"/repos/{self._owner}/{self._repo}/git/blobs/{sha}"
        )
        if resp.status_code != 200:
            raise BlobStoreError(f"Unexpected status {resp.status_code} reading blob {sha}")
        return base64.b64decode(resp.json().get("content", ""))

    async def write(
        self,
        path: str,
        content: str,
        expected_sha: str | None = None,
        message: str = "",
    ) -> str:
        sha = expected_sha
        if sha is None:
            existing = await self.read(path)
            sha = existing.sha if existing else None

        body: dict[str, Any] = {
            "message": message or f"Update {path}",
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
        }
        if sha is not None and sha != CREATE_ONLY:
            body["sha"] = sha
        if self._branch:
            body["branch"] = self._branch

        resp = await self._request("PUT", self._contents_url(path), json=body)
        if resp.status_code in (200, 201):
            return resp.json()["content"]["sha"]

        if resp.status_code == 409 or (
            resp.status_code == 422 and "sha" in resp.text.lower()
        ):
            log.info(
                "github_write_conflict",
                repo=self.repo,
                path=path,
                status_code=resp.status_code,
            )
            raise ConflictError(path)

        raise BlobStoreError(f"Unexpected status {resp.status_code} writing {path}")

    async def ping(self) -> bool:
        """检查状态仓库是否可访问"""
        try:
            resp = await self._client.get(f"/repos/{self._owner}/{self._repo}")
        except httpx.HTTPError as e:
            log.debug("github_ping_failed", repo=self.repo, error=str(e))
            return False
        return resp.status_code == 200
