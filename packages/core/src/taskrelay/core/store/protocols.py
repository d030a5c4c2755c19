"""Store Protocol 接口定义

版本化 Blob 存储：整文档读写，条件写通过上一次读取得到的 SHA 检测并发修改。
使用 Python Protocol 实现结构化子类型（duck typing）。
"""

from dataclasses import dataclass
from typing import Protocol

# expected_sha 取此值表示仅创建：路径已存在即冲突
CREATE_ONLY = ""


@dataclass(frozen=True)
class Blob:
    """一次读取的结果：文档内容 + 版本令牌"""

    content: str
    sha: str


class BlobStore(Protocol):
    """版本化 Blob 存储接口"""

    async def read(self, path: str) -> Blob | None:
        """读取文档，不存在时返回 None"""
        ...

    async def write(
        self,
        path: str,
        content: str,
        expected_sha: str | None = None,
        message: str = "",
    ) -> str:
        """写入文档并返回新的版本令牌

        expected_sha 不为 None 时为条件写：令牌过期抛出 ConflictError。
        expected_sha 为 CREATE_ONLY（空串）时要求路径尚不存在，否则抛出 ConflictError。
        expected_sha 为 None 时创建或覆盖。
        message 为提交说明（后端不支持时忽略）。
        """
        ...

    async def ping(self) -> bool:
        """检查存储是否可达"""
        ...
