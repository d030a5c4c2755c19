"""GitHub webhook 路由

POST /api/webhooks/github
- X-Hub-Signature-256 校验（密钥 GITHUB_WEBHOOK_SECRET，未配置时跳过并记录警告）
- issues.closed: 完成 issue 正文中 Task ID 对应的任务
- issue_comment.created 且以 /accept 开头（/accept 与 /accept-handoff 均可）: 以 github:<login> 身份接受待处理的 handoff

任务相关的业务错误只记录日志，仍返回 200，避免 GitHub 反复重投。
"""

import hashlib
import hmac
import json
import os
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Request
from taskrelay.core.exceptions import TaskRelayError
from taskrelay.core.models import Identity
from taskrelay.github import extract_task_id

from ..deps import get_task_service
from ..errors import error_response
from ..services.task_service import TaskService

log = structlog.get_logger()

router = APIRouter()

ACCEPT_HANDOFF_COMMAND = "/accept"


def verify_signature(payload: bytes, signature: str, secret: str | None) -> bool:
    """校验 sha256=<hex> 签名；secret 为空时跳过校验"""
    if not secret:
        log.warning("webhook_signature_skipped", reason="GITHUB_WEBHOOK_SECRET not set")
        return True
    digest = "sha256=" + hmac.new(secret.encode(), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(digest, signature)


async def _handle_issue_closed(service: TaskService, data: dict[str, Any]) -> str | None:
    task_id = extract_task_id((data.get("issue") or {}).get("body") or "")
    if task_id is None:
        return None
    # 系统触发，不经过授权门禁
    await service.complete_task(task_id)
    return task_id


async def _handle_issue_comment(service: TaskService, data: dict[str, Any]) -> str | None:
    comment = data.get("comment") or {}
    if not (comment.get("body") or "").strip().lower().startswith(ACCEPT_HANDOFF_COMMAND):
        return None
    task_id = extract_task_id((data.get("issue") or {}).get("body") or "")
    if task_id is None:
        log.info("webhook_task_id_missing", issue=(data.get("issue") or {}).get("number"))
        return None
    login = (comment.get("user") or {}).get("login", "unknown")
    identity = Identity(user_id=login, agent_id=f"github:{login}")
    await service.accept_pending_handoff(task_id, identity)
    return task_id


@router.post("/api/webhooks/github")
async def github_webhook(
    request: Request,
    service: TaskService = Depends(get_task_service),
):
    payload = await request.body()
    signature = request.headers.get("x-hub-signature-256", "")
    if not verify_signature(payload, signature, os.environ.get("GITHUB_WEBHOOK_SECRET")):
        return error_response(401, "UNAUTHENTICATED", "Invalid signature")

    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        return error_response(400, "VALIDATION_ERROR", "Invalid JSON payload")

    event = request.headers.get("x-github-event", "")
    action = data.get("action")
    task_id = None
    try:
        if event == "issues" and action == "closed":
            task_id = await _handle_issue_closed(service, data)
        elif event == "issue_comment" and action == "created":
            task_id = await _handle_issue_comment(service, data)
        else:
            log.info("webhook_event_ignored", event=event, action=action)
    except TaskRelayError as e:
        log.warning(
            "webhook_handling_failed",
            event=event,
            action=action,
            error_type=type(e).__name__,
            error=str(e),
        )
        return {"success": False, "event": event, "error": str(e)}

    return {"success": True, "event": event, "taskId": task_id}
