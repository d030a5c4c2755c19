"""会话历史压缩

历史长度超过阈值时，保留最近 HISTORY_KEEP_RECENT 条消息，
更早的消息折叠为 "[role]: 前 100 字符..." 摘要行，追加到 compactedSummary。
压缩是有损且单向的。
"""

from .config import (
    HISTORY_COMPACTION_THRESHOLD,
    HISTORY_KEEP_RECENT,
    SUMMARY_DELIMITER,
    SUMMARY_PREVIEW_LENGTH,
)
from .models import ConversationMessage, TaskContext


def summarize_messages(messages: list[ConversationMessage]) -> str:
    """将消息折叠为逐行摘要"""
    return "\n".join(
        f"[{m.role.value}]: {m.content[:SUMMARY_PREVIEW_LENGTH]}..." for m in messages
    )


def needs_compaction(context: TaskContext) -> bool:
    return len(context.conversation_history) > HISTORY_COMPACTION_THRESHOLD


def compact_context(context: TaskContext) -> TaskContext:
    """压缩会话上下文，返回新的 TaskContext

    未超过阈值时原样返回。
    """
    if not needs_compaction(context):
        return context

    history = context.conversation_history
    to_fold = history[:-HISTORY_KEEP_RECENT]
    to_keep = history[-HISTORY_KEEP_RECENT:]

    summary = (context.compacted_summary or "") + SUMMARY_DELIMITER + summarize_messages(to_fold)
    return context.model_copy(
        update={
            "conversation_history": list(to_keep),
            "compacted_summary": summary,
        }
    )
