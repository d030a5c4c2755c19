"""依赖注入模块 -- 通过 FastAPI Depends 注入 TaskService 与请求身份

TaskService / TokenAuthenticator 通过 app.state 管理，在 lifespan 中初始化。
"""

from fastapi import Request
from taskrelay.core.models import Identity

from .services.auth import TokenAuthenticator
from .services.task_service import TaskService


def get_task_service(request: Request) -> TaskService:
    """从 app.state 获取 TaskService 实例"""
    return request.app.state.task_service


def get_identity(request: Request) -> Identity:
    """校验请求凭证，失败抛出 AuthenticationError（映射为 401）"""
    authenticator: TokenAuthenticator = request.app.state.authenticator
    return authenticator.authenticate(
        {key.lower(): value for key, value in request.headers.items()}
    )
