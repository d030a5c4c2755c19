"""apps/gateway 测试配置 -- 内存状态后端 + 脚本化 runner + httpx AsyncClient"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from taskrelay.gateway.main import create_app, init_app_state
from taskrelay.gateway.services.auth import TokenAuthenticator
from taskrelay.gateway.services.state_backend import StateBackend

STATE_REPO = "acme/task-state"
JWT_SECRET = "test-secret"


@pytest.fixture
def backend() -> StateBackend:
    return StateBackend("memory", default_repo=STATE_REPO, root=".task-handoff", max_attempts=3)


@pytest.fixture
def authenticator() -> TokenAuthenticator:
    """token 模式，测试共享签名密钥"""
    return TokenAuthenticator(JWT_SECRET, mode="token")


@pytest.fixture
def runner(scripted_runner):
    """默认 runner：只返回文本，不调用工具"""
    return scripted_runner()


@pytest.fixture
def app(backend, runner, authenticator):
    """创建测试用 FastAPI app（手动初始化 app.state，绕过 lifespan）"""
    application = create_app(backend=backend, runner=runner, authenticator=authenticator)
    init_app_state(application, backend, runner, authenticator)
    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """提供 httpx AsyncClient 用于测试"""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def alpha_headers(authenticator) -> dict[str, str]:
    return {"Authorization": f"Bearer {authenticator.mint('user-1', 'agent-alpha')}"}


@pytest.fixture
def beta_headers(authenticator) -> dict[str, str]:
    return {"Authorization": f"Bearer {authenticator.mint('user-2', 'agent-beta')}"}
