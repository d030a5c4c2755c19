"""错误响应 -- 异常类型到 HTTP 状态码与错误信封的映射

错误信封：{"error": {"code": ..., "message": ..., "details": ...}}
未预期的异常统一返回 500 INTERNAL_ERROR，不暴露内部信息。
"""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from starlette.responses import JSONResponse

from taskrelay.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    TaskNotFoundError,
    TaskRelayError,
    TaskTerminalError,
    TaskValidationError,
    UnauthorizedError,
)

from .services.auth import AuthenticationError

log = structlog.get_logger()

# 按 MRO 匹配，子类在前
ERROR_CODES: list[tuple[type[Exception], int, str]] = [
    (AuthenticationError, 401, "UNAUTHENTICATED"),
    (UnauthorizedError, 403, "UNAUTHORIZED"),
    (TaskNotFoundError, 404, "TASK_NOT_FOUND"),
    (TaskValidationError, 400, "VALIDATION_ERROR"),
    (ConflictError, 409, "CONFLICT"),
    (TaskTerminalError, 409, "TASK_ALREADY_TERMINAL"),
    (InvalidTransitionError, 409, "INVALID_TRANSITION"),
]


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


def _issues(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
        for e in errors
    ]


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, "VALIDATION_ERROR", "Request validation failed", _issues(exc.errors()))


async def handle_pydantic_validation(request: Request, exc: ValidationError) -> JSONResponse:
    return error_response(400, "VALIDATION_ERROR", "Validation failed", _issues(exc.errors()))


async def handle_taskrelay_error(request: Request, exc: TaskRelayError) -> JSONResponse:
    for exc_type, status_code, code in ERROR_CODES:
        if isinstance(exc, exc_type):
            details = exc.issues if isinstance(exc, TaskValidationError) and exc.issues else None
            return error_response(status_code, code, str(exc), details)
    return await handle_unexpected(request, exc)


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    log.error(
        "unhandled_exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        exc_info=exc,
    )
    return error_response(500, "INTERNAL_ERROR", "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(ValidationError, handle_pydantic_validation)
    app.add_exception_handler(TaskRelayError, handle_taskrelay_error)
    app.add_exception_handler(Exception, handle_unexpected)
