"""集成测试共享 fixture -- local 状态后端 + JWT 身份校验，经 lifespan 初始化"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from taskrelay.gateway.services.auth import mint_token

STATE_REPO = "acme/task-state"
JWT_SECRET = "integration-secret"


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def relay_runner(scripted_runner):
    return scripted_runner()


@pytest_asyncio.fixture
async def integration_app(state_dir: Path, relay_runner, monkeypatch):
    """集成测试用 FastAPI app：除 runner 外全部组件由环境变量构建"""
    monkeypatch.setenv("TASKRELAY_STATE_BACKEND", "local")
    monkeypatch.setenv("TASKRELAY_LOCAL_STATE_DIR", str(state_dir))
    monkeypatch.setenv("TASKRELAY_STATE_REPO", STATE_REPO)
    monkeypatch.setenv("TASKRELAY_AUTH_MODE", "token")
    monkeypatch.setenv("TASKRELAY_JWT_SECRET", JWT_SECRET)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

    from taskrelay.gateway.main import create_app

    app = create_app(runner=relay_runner)
    async with app.router.lifespan_context(app):
        yield app


@pytest_asyncio.fixture
async def client(integration_app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=integration_app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def alpha() -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(JWT_SECRET, 'user-1', 'agent-alpha')}"}


@pytest.fixture
def beta() -> dict[str, str]:
    return {"Authorization": f"Bearer {mint_token(JWT_SECRET, 'user-2', 'agent-beta')}"}
