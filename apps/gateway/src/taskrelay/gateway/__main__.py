"""CLI 入口模块 -- taskrelay <command> / python -m taskrelay.gateway <command>

支持的命令：
  start     创建任务并执行第一个轮次
  continue  续接任务（可选先接受待处理的 handoff）
  handoff   发起 handoff
  status    查询单个任务或列出全部任务
  complete  完成任务
  cancel    取消任务
  token     签发 agent 访问令牌（JWT）
  serve     启动 API 服务

除 serve 与 token 外均在进程内直接调用 TaskService，状态后端与模型配置读取与服务端相同的环境变量。
调用者身份取自 TASKRELAY_USER_ID / TASKRELAY_AGENT_ID。
"""

import argparse
import asyncio
import json
import os
import sys
from typing import Any

from pydantic import ValidationError
from taskrelay.core.exceptions import TaskRelayError
from taskrelay.core.models import (
    ContinueTaskRequest,
    HandoffReason,
    HandoffRequest,
    Identity,
    StartTaskRequest,
    Urgency,
)

from .main import build_runner
from .middleware.logging_config import setup_logging
from .services.auth import DEFAULT_TTL_HOURS, TokenAuthenticator
from .services.state_backend import StateBackend
from .services.task_service import TaskService


def cli_identity() -> Identity:
    return Identity(
        user_id=os.environ.get("TASKRELAY_USER_ID", "cli-user"),
        agent_id=os.environ.get("TASKRELAY_AGENT_ID", "cli-agent"),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="taskrelay", description="跨 agent 任务接力")
    parser.add_argument("--state-repo", default=None, help="状态仓库 owner/repo")
    commands = parser.add_subparsers(dest="command", required=True)

    start = commands.add_parser("start", help="创建任务并执行第一个轮次")
    start.add_argument("--title", required=True)
    start.add_argument("--prompt", required=True)
    start.add_argument("--repo", required=True, help="目标仓库 owner/repo")
    start.add_argument("--description", default=None, help="缺省与 prompt 相同")
    start.add_argument("--branch", default="main")
    start.add_argument("--model", default=None)
    start.add_argument("--no-issue", action="store_true", help="不创建跟踪 issue")
    start.add_argument(
        "--allowed-agent",
        action="append",
        dest="allowed_agents",
        help="可接手的 agent，可重复；缺省为 *",
    )

    cont = commands.add_parser("continue", help="续接任务")
    cont.add_argument("task_id")
    cont.add_argument("--prompt", default=None)
    cont.add_argument("--accept-handoff", action="store_true")

    handoff = commands.add_parser("handoff", help="发起 handoff")
    handoff.add_argument("task_id")
    handoff.add_argument("--reason", required=True, choices=[r.value for r in HandoffReason])
    handoff.add_argument("--instructions", required=True)
    handoff.add_argument(
        "--urgency", default=Urgency.MEDIUM.value, choices=[u.value for u in Urgency]
    )

    status = commands.add_parser("status", help="查询任务")
    status.add_argument("task_id", nargs="?", default=None)

    for name, help_text in (("complete", "完成任务"), ("cancel", "取消任务")):
        commands.add_parser(name, help=help_text).add_argument("task_id")

    token = commands.add_parser("token", help="签发 agent 访问令牌")
    token.add_argument("--user-id", required=True)
    token.add_argument("--agent-id", required=True)
    token.add_argument("--hours", type=float, default=DEFAULT_TTL_HOURS, help="有效期（小时）")

    serve = commands.add_parser("serve", help="启动 API 服务")
    serve.add_argument("--host", default=os.environ.get("TASKRELAY_HOST", "127.0.0.1"))
    serve.add_argument("--port", type=int, default=int(os.environ.get("TASKRELAY_PORT", "8000")))
    return parser


async def run_command(
    args: argparse.Namespace,
    service: TaskService,
    identity: Identity,
) -> dict[str, Any]:
    """执行一条命令并返回可 JSON 序列化的结果"""
    state_repo = args.state_repo

    if args.command == "start":
        request = StartTaskRequest.model_validate(
            {
                "title": args.title,
                "description": args.description or args.prompt,
                "prompt": args.prompt,
                "github": {
                    "repo": args.repo,
                    "branch": args.branch,
                    "stateRepo": state_repo,
                    "createIssue": not args.no_issue,
                },
                "config": {"model": args.model},
                "security": {"allowedAgents": args.allowed_agents or ["*"]},
            }
        )
        outcome = await service.start_task(request, identity)
        return {
            "taskId": outcome.task.id,
            "sessionId": outcome.result.session_id,
            "status": outcome.result.status.value,
            "progress": outcome.result.progress,
            "issueUrl": outcome.issue_url,
            "stateUrl": outcome.state_url,
            "result": outcome.result.result,
            "error": outcome.result.error,
        }

    if args.command == "continue":
        request = ContinueTaskRequest(
            task_id=args.task_id, prompt=args.prompt, accept_handoff=args.accept_handoff
        )
        outcome = await service.continue_task(request, identity, state_repo)
        return {
            "taskId": outcome.task.id,
            "sessionId": outcome.result.session_id,
            "status": outcome.result.status.value,
            "progress": outcome.result.progress,
            "handoffAccepted": outcome.handoff_accepted,
            "result": outcome.result.result,
            "error": outcome.result.error,
        }

    if args.command == "handoff":
        request = HandoffRequest(
            task_id=args.task_id,
            from_agent_id=identity.agent_id,
            reason=HandoffReason(args.reason),
            instructions=args.instructions,
            urgency=Urgency(args.urgency),
        )
        outcome = await service.initiate_handoff(request, identity, state_repo)
        return {
            "taskId": outcome.task.id,
            "status": outcome.task.status.value,
            "handoffUrl": outcome.handoff_url,
            "summary": outcome.summary,
        }

    if args.command == "status":
        if args.task_id:
            task = await service.get_task(args.task_id, state_repo)
            return task.to_document()
        tasks = await service.list_tasks(state_repo)
        return {"tasks": [t.model_dump(mode="json", by_alias=True) for t in tasks]}

    if args.command == "complete":
        task = await service.complete_task(args.task_id, identity, state_repo)
    else:
        task = await service.cancel_task(args.task_id, identity, state_repo)
    return {"taskId": task.id, "status": task.status.value, "version": task.version}


async def _run(args: argparse.Namespace) -> dict[str, Any]:
    backend = StateBackend.from_env()
    try:
        service = TaskService(backend, build_runner())
        return await run_command(args, service, cli_identity())
    finally:
        await backend.aclose()


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("taskrelay.gateway.main:create_app", factory=True, host=host, port=port)


def main(argv: list[str] | None = None) -> None:
    """CLI 主入口"""
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        serve(args.host, args.port)
        return

    if args.command == "token":
        try:
            authenticator = TokenAuthenticator.from_env()
        except TaskRelayError as e:
            print(f"错误: {e}", file=sys.stderr)
            sys.exit(1)
        print(authenticator.mint(args.user_id, args.agent_id, ttl_hours=args.hours))
        return

    setup_logging()
    try:
        result = asyncio.run(_run(args))
    except (TaskRelayError, ValidationError) as e:
        print(f"错误: {e}", file=sys.stderr)
        sys.exit(1)

    print(json.dumps(result, indent=2, ensure_ascii=False))


if __name__ == "__main__":
    main()
