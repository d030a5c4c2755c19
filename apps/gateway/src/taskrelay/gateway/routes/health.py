"""健康检查路由

GET /health: 进程存活即返回 200。
GET /ready: 探测默认状态仓库；profile=llm/full 时同时探测 LiteLLM Proxy。
任一检查项不是 ok 时返回 503。
"""

from collections.abc import Awaitable, Callable

import structlog
from fastapi import APIRouter, Query, Request
from starlette.responses import JSONResponse

log = structlog.get_logger()

router = APIRouter()

LLM_PROFILES = ("llm", "full")


async def _run_check(name: str, check: Callable[[], Awaitable[bool]]) -> str:
    """执行一次探测：ok / unreachable / error: <类型>"""
    try:
        return "ok" if await check() else "unreachable"
    except Exception as e:
        log.warning(
            "readiness_check_failed",
            check=name,
            error_type=type(e).__name__,
            error=str(e),
        )
        return f"error: {type(e).__name__}"


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/ready")
async def ready(
    request: Request,
    profile: str = Query(
        default="core",
        description="core 仅检查状态存储；llm/full 追加 LiteLLM Proxy",
    ),
):
    service = request.app.state.task_service
    checks = {"state_store": await _run_check("state_store", service.backend.ping)}

    # echo 模式的 runner 没有 health_check
    health_check = getattr(request.app.state.runner, "health_check", None)
    if profile in LLM_PROFILES and health_check is not None:
        status = await _run_check("litellm_proxy", health_check)
        checks["litellm_proxy"] = "ok" if status == "ok" else "unreachable"
    else:
        checks["litellm_proxy"] = "skipped"

    ok = all(v in ("ok", "skipped") for v in checks.values())
    return JSONResponse(
        status_code=200 if ok else 503,
        content={"status": "ready" if ok else "not_ready", "profile": profile, "checks": checks},
    )
