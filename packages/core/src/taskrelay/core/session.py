"""会话/提示词构建

对 TaskState 快照做纯渲染：系统提示、续接提示、handoff 摘要，
以及对外 handoff 的会话信封序列化。无 I/O，不修改状态。
"""

import json

from .config import INITIAL_HANDOFF_INSTRUCTIONS
from .models import SerializedSession, TaskState

SYSTEM_PROMPT_TEMPLATE = """You are a collaborative AI agent working on a task that may be handed off to other agents.

## Your Responsibilities:
1. Work on the assigned task efficiently
2. Keep clear records of your progress and decisions
3. When you reach a natural stopping point or need expertise you don't have, prepare for handoff
4. Document next steps clearly for the next agent

## Task Context:
- **Task ID:** {task_id}
- **Repository:** {repo}
- **Branch:** {branch}

## Important Guidelines:
- Always explain your reasoning before making changes
- Document any assumptions you make
- If you encounter blockers, note them clearly
- Keep the next steps list updated as you work
- When ready to handoff, clearly state what's done and what remains

{suffix}"""

RESUMPTION_FOOTER = (
    "---\n"
    "Please review this context and continue working on the task. "
    "Start by confirming your understanding of the current state, "
    "then proceed with the next steps."
)


def format_percent(value: float) -> str:
    """45.0 -> "45"，45.5 -> "45.5" """
    return f"{value:g}"


def _bullets(items: list[str], empty: str) -> str:
    return "\n".join(f"- {item}" for item in items) or empty


def _numbered(items: list[str], empty: str = "") -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1)) or empty


def build_system_prompt(state: TaskState, suffix: str | None = None) -> str:
    """系统提示：固定角色说明 + 任务 id/仓库/分支 + 可选后缀

    suffix 缺省时使用任务创建时保存的 context.systemPrompt。
    """
    if suffix is None:
        suffix = state.context.system_prompt
    return SYSTEM_PROMPT_TEMPLATE.format(
        task_id=state.id,
        repo=state.github.repo,
        branch=state.github.branch,
        suffix=suffix or "",
    )


def build_resumption_prompt(state: TaskState, additional_instructions: str | None = None) -> str:
    """续接提示 -- 各段只在对应数据非空时出现"""
    last_checkpoint = state.last_checkpoint
    last_handoff = state.last_handoff

    by_agent = ""
    if last_handoff is not None and last_handoff.from_agent.agent_id:
        by_agent = f" by agent {last_handoff.from_agent.agent_id}"

    sections = [
        "## Task Resumption Context\n\n"
        f"You are continuing a task that was previously worked on{by_agent}.\n\n"
        f"### Task: {state.title}\n"
        f"{state.description}\n\n"
        "### Current Status\n"
        f"- **Phase:** {state.progress.current_phase}\n"
        f"- **Progress:** {format_percent(state.progress.percent_complete)}% complete\n"
        f"- **Status:** {state.status.value}\n"
    ]

    if last_checkpoint is not None:
        sections.append(
            "### Last Checkpoint\n"
            f"**{last_checkpoint.description}** ({last_checkpoint.timestamp.isoformat()})\n\n"
            "#### Completed Steps:\n"
            f"{_bullets(last_checkpoint.completed_steps, '- None recorded')}\n\n"
            "#### Remaining Steps:\n"
            f"{_bullets(last_checkpoint.remaining_steps, '- To be determined')}\n"
        )

    if state.files.modifications:
        files = "\n".join(
            f"- `{f.path}` ({f.action.value}): {f.summary}" for f in state.files.modifications
        )
        sections.append(f"### Files Modified:\n{files}\n")

    sections.append(
        "### Immediate Next Steps:\n"
        f"{_numbered(state.next_steps.immediate, '- To be determined')}\n"
    )

    if state.next_steps.considerations:
        sections.append(
            f"### Important Considerations:\n{_bullets(state.next_steps.considerations, '')}\n"
        )

    if state.next_steps.blockers:
        sections.append(f"### Known Blockers:\n{_bullets(state.next_steps.blockers, '')}\n")

    if (
        last_handoff is not None
        and last_handoff.instructions
        and last_handoff.instructions != INITIAL_HANDOFF_INSTRUCTIONS
    ):
        sections.append(
            f"### Handoff Instructions from Previous Agent:\n{last_handoff.instructions}\n"
        )

    if state.context.compacted_summary:
        sections.append(
            f"### Previous Conversation Summary:\n{state.context.compacted_summary}\n"
        )

    if additional_instructions:
        sections.append(f"### Additional Instructions:\n{additional_instructions}\n")

    sections.append(RESUMPTION_FOOTER)
    return "\n".join(sections)


def build_handoff_summary(state: TaskState, reason: str, instructions: str) -> str:
    """handoff 摘要：汇总所有检查点的已完成步骤"""
    completed_steps = [step for cp in state.progress.checkpoints for step in cp.completed_steps]
    files = "\n".join(f"- `{f.path}`: {f.summary}" for f in state.files.modifications) or "- None"

    return (
        "## Handoff Summary\n\n"
        f"**Task:** {state.title}\n"
        f"**Reason for Handoff:** {reason}\n\n"
        "### Work Completed:\n"
        f"{_bullets(completed_steps, '- See conversation history')}\n\n"
        "### Current State:\n"
        f"- Phase: {state.progress.current_phase}\n"
        f"- Progress: {format_percent(state.progress.percent_complete)}%\n\n"
        "### Files Modified:\n"
        f"{files}\n\n"
        "### Next Steps:\n"
        f"{_numbered(state.next_steps.immediate)}\n\n"
        "### Blockers:\n"
        f"{_bullets(state.next_steps.blockers, '- None')}\n\n"
        "### Instructions for Next Agent:\n"
        f"{instructions}\n"
    )


def build_session_envelope(state: TaskState, session_id: str | None = None) -> SerializedSession:
    """构建对外 handoff 信封（只含最近一个检查点）"""
    return SerializedSession(
        version=1,
        session_id=session_id or state.session.current_session_id,
        conversation_history=state.context.conversation_history,
        compacted_summary=state.context.compacted_summary,
        last_checkpoint=state.last_checkpoint,
        next_steps=state.next_steps,
        files_modified=state.files.modifications,
    )


def serialize_for_handoff(state: TaskState, session_id: str | None = None) -> str:
    envelope = build_session_envelope(state, session_id)
    return json.dumps(
        envelope.model_dump(mode="json", by_alias=True, exclude_none=True),
        indent=2,
        ensure_ascii=False,
    )


def deserialize_from_handoff(data: str) -> SerializedSession:
    return SerializedSession.model_validate_json(data)
