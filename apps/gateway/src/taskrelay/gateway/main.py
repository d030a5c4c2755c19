"""FastAPI 应用主文件

app 创建 + lifespan 管理：状态后端 / agent runner / 身份校验器初始化 + 路由注册。
测试可通过 create_app 的参数注入各组件，注入的组件不会在关闭时被清理。
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from taskrelay.provider import (
    AgentRunner,
    EchoAgentRunner,
    LiteLLMAgentRunner,
    load_provider_config,
)

from .errors import register_exception_handlers
from .middleware.logging_config import setup_logfire, setup_logging
from .middleware.logging_mw import LoggingMiddleware
from .middleware.trace_mw import TraceMiddleware
from .routes import agent, health, tasks, webhooks
from .services.auth import TokenAuthenticator
from .services.state_backend import StateBackend
from .services.task_service import TaskService

log = structlog.get_logger()


def build_runner() -> AgentRunner:
    """根据 Provider 配置选择 runner"""
    provider_config = load_provider_config()
    if provider_config.llm_mode == "litellm":
        log.info(
            "agent_runner_initialized",
            mode="litellm",
            proxy_url=provider_config.proxy_base_url,
            model=provider_config.model,
            timeout_s=provider_config.timeout_s,
        )
        return LiteLLMAgentRunner(
            proxy_base_url=provider_config.proxy_base_url,
            proxy_api_key=provider_config.proxy_api_key.get_secret_value(),
            model=provider_config.model,
            max_turns=provider_config.max_turns,
            timeout_s=provider_config.timeout_s,
        )
    log.info("agent_runner_initialized", mode="echo")
    return EchoAgentRunner()


def init_app_state(
    app: FastAPI,
    backend: StateBackend,
    runner: AgentRunner,
    authenticator: TokenAuthenticator,
) -> TaskService:
    """把组件挂到 app.state；lifespan 与测试共用"""
    service = TaskService(backend, runner)
    app.state.backend = backend
    app.state.runner = runner
    app.state.authenticator = authenticator
    app.state.task_service = service
    return service


def create_app(
    backend: StateBackend | None = None,
    runner: AgentRunner | None = None,
    authenticator: TokenAuthenticator | None = None,
) -> FastAPI:
    """创建 FastAPI 应用实例"""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """启动时初始化组件，关闭时释放自建的 GitHub 客户端"""
        owned_backend = backend is None
        state_backend = backend or StateBackend.from_env()

        init_app_state(
            app,
            state_backend,
            runner or build_runner(),
            authenticator or TokenAuthenticator.from_env(),
        )

        yield

        if owned_backend:
            await state_backend.aclose()

    app = FastAPI(
        title="TaskRelay Gateway",
        version="0.1.0",
        description="跨 agent 任务接力 API",
        lifespan=lifespan,
    )

    # 注册中间件（顺序：先 Trace 后 Logging）
    app.add_middleware(TraceMiddleware)
    app.add_middleware(LoggingMiddleware)

    # 初始化日志
    setup_logging()
    setup_logfire(app)

    register_exception_handlers(app)

    app.include_router(agent.router, tags=["agent"])
    app.include_router(tasks.router, tags=["tasks"])
    app.include_router(webhooks.router, tags=["webhooks"])
    app.include_router(health.router, tags=["health"])

    return app
