"""taskrelay Core Store -- 版本化 Blob 存储与 TaskRepository"""

from .local_store import LocalBlobStore
from .memory_store import InMemoryBlobStore, content_sha
from .protocols import CREATE_ONLY, Blob, BlobStore
from .task_repository import TaskRepository, dump_document

__all__ = [
    "CREATE_ONLY",
    "Blob",
    "BlobStore",
    "InMemoryBlobStore",
    "LocalBlobStore",
    "TaskRepository",
    "content_sha",
    "dump_document",
]
