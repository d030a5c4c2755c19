"""LocalBlobStore -- 本地文件系统 Blob 存储

TASKRELAY_STATE_BACKEND=local 时使用，目录结构与远端仓库一致。
SHA 为文件内容的 sha1，条件写在进程内串行化。
"""

import asyncio
import os
from pathlib import Path

import structlog

from ..exceptions import BlobStoreError, ConflictError
from .memory_store import content_sha
from .protocols import CREATE_ONLY, Blob

log = structlog.get_logger()


class LocalBlobStore:
    """BlobStore 的本地文件实现"""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._lock = asyncio.Lock()

    def _resolve(self, path: str) -> Path:
        target = (self._base_dir / path).resolve()
        if not target.is_relative_to(self._base_dir.resolve()):
            raise BlobStoreError(f"Path escapes state directory: {path}")
        return target

    async def read(self, path: str) -> Blob | None:
        file_path = self._resolve(path)
        if not file_path.exists():
            return None
        content = file_path.read_text(encoding="utf-8")
        return Blob(content=content, sha=content_sha(content))

    async def write(
        self,
        path: str,
        content: str,
        expected_sha: str | None = None,
        message: str = "",
    ) -> str:
        file_path = self._resolve(path)
        async with self._lock:
            if expected_sha is not None:
                current = await self.read(path)
                if (current.sha if current else CREATE_ONLY) != expected_sha:
                    raise ConflictError(path)
            try:
                file_path.parent.mkdir(parents=True, exist_ok=True)
                # 先写临时文件再替换，避免读到半写入的文档
                tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")
                tmp_path.write_text(content, encoding="utf-8")
                tmp_path.replace(file_path)
            except OSError as e:
                raise BlobStoreError(f"Failed to write {path}: {e}") from e

        log.debug("local_blob_written", path=path, message=message)
        return content_sha(content)

    async def ping(self) -> bool:
        """目录尚未创建时，检查最近的已存在上级目录可写"""
        for candidate in (self._base_dir, *self._base_dir.resolve().parents):
            if candidate.exists():
                return os.access(candidate, os.W_OK)
        return False
