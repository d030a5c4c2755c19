"""packages/core 测试配置 -- 内存存储与仓库 fixture"""

import pytest
import pytest_asyncio
from taskrelay.core.models import Identity, SecuritySettings, TaskState
from taskrelay.core.store import InMemoryBlobStore, TaskRepository

STATE_REPO = "acme/task-state"


@pytest.fixture
def memory_store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
def repository(memory_store: InMemoryBlobStore) -> TaskRepository:
    return TaskRepository(memory_store, STATE_REPO, root=".task-handoff", max_attempts=3)


@pytest_asyncio.fixture
async def task(repository: TaskRepository, creator: Identity) -> TaskState:
    """仅允许 agent-alpha 的已创建任务"""
    return await repository.create_task(
        title="Add dark mode",
        description="Add a dark mode toggle to the settings page",
        repo="acme/webapp",
        creator=creator,
        security=SecuritySettings(allowed_agents=["agent-alpha"]),
    )
