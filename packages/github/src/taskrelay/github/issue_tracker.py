"""IssueTracker -- 任务跟踪 issue 的创建、刷新、评论与关闭

issue 正文中以 **Task ID:** `<id>` 标记所属任务，webhook 据此反查任务。
"""

import re
from datetime import UTC, datetime

import httpx
import structlog

from taskrelay.core.models import HandoffRequest, TaskState
from taskrelay.core.session import format_percent

from .client import parse_repo_string
from .exceptions import GitHubError

log = structlog.get_logger()

ISSUE_LABELS = ["task-handoff", "automated"]
TASK_ID_PATTERN = re.compile(r"Task ID:\**\s*`([^`]+)`")


def extract_task_id(issue_body: str | None) -> str | None:
    """从 issue 正文中提取任务 ID"""
    if not issue_body:
        return None
    match = TASK_ID_PATTERN.search(issue_body)
    return match.group(1) if match else None


def issue_url(repo: str, issue_number: int) -> str:
    return f"https://github.com/{repo}/issues/{issue_number}"


def _lines(items: list[str], prefix: str, empty: str) -> str:
    return "\n".join(f"{prefix}{item}" for item in items) or empty


class IssueTracker:
    """在目标仓库中维护任务跟踪 issue

    Args:
        client: 已配置认证的 httpx.AsyncClient
        repo: 目标仓库 owner/repo
    """

    def __init__(self, client: httpx.AsyncClient, repo: str) -> None:
        self._client = client
        self._owner, self._repo = parse_repo_string(repo)

    def issue_url(self, issue_number: int) -> str:
        return issue_url(f"{self._owner}/{self._repo}", issue_number)

    async def _call(self, method: str, url: str, json: dict) -> dict:
        try:
            resp = await self._client.request(method, url, json=json)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise GitHubError(
                f"GitHub API error {e.response.status_code}: {method} {url}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise GitHubError(f"GitHub request failed: {method} {url}: {e}") from e
        return resp.json()

    def _issues_url(self, issue_number: int | None = None) -> str:
        base = f"/repos/{self._owner}/{self._repo}/issues"
        return base if issue_number is None else f"{base}/{issue_number}"

    async def create_task_issue(self, task: TaskState) -> int:
        """为新任务创建跟踪 issue，返回 issue 编号"""
        body = f"""## Task Handoff Agent

**Task ID:** `{task.id}`
**Status:** {task.status.value}
**Created:** {task.created_at.isoformat()}

### Description
{task.description}

### Progress
- Phase: {task.progress.current_phase}
- Completion: {format_percent(task.progress.percent_complete)}%

---
*This issue is managed by the Task Handoff Agent system.*
*State is stored in: `{task.github.state_repo}`*
"""
        data = await self._call(
            "POST",
            self._issues_url(),
            json={
                "title": f"[Task Handoff] {task.title}",
                "body": body,
                "labels": ISSUE_LABELS,
            },
        )
        log.info("task_issue_created", task_id=task.id, issue_number=data["number"])
        return data["number"]

    async def update_task_issue(self, task: TaskState) -> None:
        """用当前任务状态刷新 issue 正文；未关联 issue 时跳过"""
        if not task.github.issue_number:
            return

        files = "\n".join(
            f"- `{f.path}` ({f.action.value}): {f.summary}" for f in task.files.modifications
        ) or "_None yet_"
        history = "\n".join(
            f"{i}. **{h.reason}** at {h.handoff_at.isoformat()}\n"
            f"   - From: {h.from_agent.agent_id}\n"
            f"   - To: {h.to_agent.agent_id if h.to_agent else '_Awaiting_'}"
            for i, h in enumerate(task.handoffs, start=1)
        )
        body = f"""## Task Handoff Agent

**Task ID:** `{task.id}`
**Status:** {task.status.value}
**Last Updated:** {task.updated_at.isoformat()}

### Description
{task.description}

### Progress
- Phase: {task.progress.current_phase}
- Completion: {format_percent(task.progress.percent_complete)}%

### Next Steps
{_lines(task.next_steps.immediate, "- [ ] ", "")}

### Considerations
{_lines(task.next_steps.considerations, "- ", "_None_")}

### Blockers
{_lines(task.next_steps.blockers, "- ", "_None_")}

### File Modifications
{files}

### Handoff History
{history}

---
*This issue is managed by the Task Handoff Agent system.*
*State repo: `{task.github.state_repo}`*
"""
        await self._call(
            "PATCH", self._issues_url(task.github.issue_number), json={"body": body}
        )

    async def add_handoff_comment(self, issue_number: int, handoff: HandoffRequest) -> None:
        """发布 handoff 通知评论"""
        body = f"""## Handoff Initiated

**Reason:** {handoff.reason.value.replace("_", " ")}
**Urgency:** {handoff.urgency.value}
**Target Agent:** {handoff.target_agent_id or "_Open for any agent_"}

### Instructions for Next Agent
{handoff.instructions}

---
To accept this handoff, use:
```bash
taskrelay continue {handoff.task_id} --accept-handoff
```

Or via API:
```json
POST /api/agent/continue
{{
  "taskId": "{handoff.task_id}",
  "acceptHandoff": true
}}
```

Or comment `/accept-handoff` on this issue.
"""
        await self._call(
            "POST", f"{self._issues_url(issue_number)}/comments", json={"body": body}
        )
        log.info("handoff_comment_posted", task_id=handoff.task_id, issue_number=issue_number)

    async def add_progress_comment(self, issue_number: int, message: str, agent_id: str) -> None:
        body = f"""### Progress Update
**Agent:** `{agent_id}`
**Time:** {datetime.now(UTC).isoformat()}

{message}
"""
        await self._call(
            "POST", f"{self._issues_url(issue_number)}/comments", json={"body": body}
        )

    async def close_task_issue(self, issue_number: int, summary: str) -> None:
        """发布完成评论并关闭 issue"""
        await self._call(
            "POST",
            f"{self._issues_url(issue_number)}/comments",
            json={"body": f"## Task Completed\n\n{summary}"},
        )
        await self._call("PATCH", self._issues_url(issue_number), json={"state": "closed"})
