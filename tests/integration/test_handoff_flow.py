"""端到端 handoff 流程：alpha 启动 -> 请求 handoff -> beta 接手续接 -> 完成

状态写入 local 后端，断言落盘的 state.json / transcript.json / index.json。
"""

import json
from pathlib import Path

STATE_REPO = "acme/task-state"

PROGRESS = (
    "update_progress",
    {
        "phase": "implementation",
        "percentComplete": 60,
        "completedSteps": ["Theme tokens", "CSS variables"],
        "remainingSteps": ["Toggle component"],
    },
)
NEXT_STEPS = (
    "update_next_steps",
    {
        "immediate": ["Build the toggle component"],
        "considerations": ["Respect prefers-color-scheme"],
        "blockers": [],
    },
)
FILE_CHANGE = (
    "record_file_change",
    {"path": "src/theme.css", "action": "modified", "summary": "Added dark palette"},
)
HANDOFF = (
    "request_handoff",
    {"reason": "time_limit", "instructions": "Finish the toggle component", "urgency": "medium"},
)


def _task_dir(state_dir: Path, task_id: str) -> Path:
    return state_dir / STATE_REPO / ".task-handoff" / "tasks" / task_id


class TestHandoffFlow:
    async def test_relay_between_agents(self, client, relay_runner, state_dir, alpha, beta):
        # 1. alpha 启动任务，本轮记录进度后请求 handoff
        relay_runner.steps = [PROGRESS, NEXT_STEPS, FILE_CHANGE, HANDOFF]
        resp = await client.post(
            "/api/agent/start",
            json={
                "title": "Add dark mode",
                "description": "Add a dark mode toggle to the settings page",
                "prompt": "Start with the theme tokens",
                "github": {"repo": "acme/webapp", "createIssue": False},
                "security": {"allowedAgents": ["agent-alpha", "agent-beta"]},
            },
            headers=alpha,
        )
        assert resp.status_code == 200, resp.text
        started = resp.json()
        task_id = started["taskId"]
        assert started["status"] == "awaiting_handoff"
        assert started["progress"] == 60

        task_dir = _task_dir(state_dir, task_id)
        state = json.loads((task_dir / "state.json").read_text(encoding="utf-8"))
        assert state["status"] == "awaiting_handoff"
        assert state["handoffs"][-1]["reason"] == "time_limit"
        assert state["files"]["modifications"][0]["path"] == "src/theme.css"

        transcript = json.loads((task_dir / "transcript.json").read_text(encoding="utf-8"))
        assert transcript["sessionId"] == started["sessionId"]
        assert transcript["lastCheckpoint"]["completedSteps"] == ["Theme tokens", "CSS variables"]

        index = json.loads(
            (state_dir / STATE_REPO / ".task-handoff" / "index.json").read_text(encoding="utf-8")
        )
        assert [t["id"] for t in index["tasks"]] == [task_id]

        # 2. beta 接手并续接，续接提示携带上一轮的进度与下一步
        relay_runner.steps = []
        resp = await client.post(
            "/api/agent/continue",
            json={"taskId": task_id, "acceptHandoff": True},
            headers=beta,
        )
        assert resp.status_code == 200, resp.text
        continued = resp.json()
        assert continued["handoffAccepted"] is True
        assert continued["status"] == "in_progress"
        assert continued["sessionId"] == started["sessionId"]

        resume_prompt = relay_runner.calls[-1]["user_prompt"]
        assert "Build the toggle component" in resume_prompt
        assert "60" in resume_prompt

        # 3. 查询摘要视图
        resp = await client.get("/api/agent/status", params={"taskId": task_id}, headers=beta)
        view = resp.json()["task"]
        assert view["lastHandoff"]["toAgent"]["agentId"] == "agent-beta"
        assert view["files"] == 1

        # 4. beta 完成任务，之后的续接被拒绝
        resp = await client.post(f"/api/agent/tasks/{task_id}/complete", headers=beta)
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

        resp = await client.post(
            "/api/agent/continue", json={"taskId": task_id}, headers=alpha
        )
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "TASK_ALREADY_TERMINAL"

        final = json.loads((task_dir / "state.json").read_text(encoding="utf-8"))
        assert final["status"] == "completed"
        assert final["progress"]["checkpoints"] == []
        assert final["version"] > state["version"]

    async def test_readiness_with_local_backend(self, client):
        resp = await client.get("/ready")
        assert resp.status_code == 200
        assert resp.json()["checks"]["state_store"] == "ok"
