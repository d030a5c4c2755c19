"""InMemoryBlobStore -- 进程内 Blob 存储

用于测试与 TASKRELAY_STATE_BACKEND=memory。SHA 为内容的 sha1。
"""

import asyncio
import hashlib

from ..exceptions import ConflictError
from .protocols import CREATE_ONLY, Blob


def content_sha(content: str) -> str:
    return hashlib.sha1(content.encode("utf-8")).hexdigest()


class InMemoryBlobStore:
    """BlobStore 的内存实现"""

    def __init__(self) -> None:
        self._blobs: dict[str, Blob] = {}
        self._lock = asyncio.Lock()
        # 最近的提交说明，测试可据此断言
        self.commits: list[tuple[str, str]] = []

    async def read(self, path: str) -> Blob | None:
        return self._blobs.get(path)

    async def write(
        self,
        path: str,
        content: str,
        expected_sha: str | None = None,
        message: str = "",
    ) -> str:
        async with self._lock:
            if expected_sha is not None:
                current = self._blobs.get(path)
                if (current.sha if current else CREATE_ONLY) != expected_sha:
                    raise ConflictError(path)
            sha = content_sha(content)
            self._blobs[path] = Blob(content=content, sha=sha)
            self.commits.append((path, message))
            return sha

    async def ping(self) -> bool:
        return True

    def paths(self) -> list[str]:
        return sorted(self._blobs)
