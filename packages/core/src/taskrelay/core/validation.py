"""持久化前校验

任何写入状态存储的 TaskState 都必须经过这里：
schema 校验（pydantic）+ 聚合级不变量检查。
校验失败抛出 TaskValidationError，携带结构化 issues 列表。
"""

from typing import Any

from pydantic import ValidationError

from .exceptions import TaskValidationError
from .models import TaskState


def _issues_from(error: ValidationError) -> list[dict[str, Any]]:
    return [
        {
            "loc": [str(part) for part in item["loc"]],
            "msg": item["msg"],
            "type": item["type"],
        }
        for item in error.errors()
    ]


def validate_task_state(data: TaskState | dict[str, Any]) -> TaskState:
    """校验任务文档并返回新的 TaskState

    model_copy 不会触发校验，因此已有的 TaskState 会先导出再重新校验。

    Args:
        data: TaskState 实例或 camelCase 文档字典

    Returns:
        通过校验的 TaskState

    Raises:
        TaskValidationError: schema 或不变量校验失败
    """
    if isinstance(data, TaskState):
        data = data.model_dump(by_alias=True, warnings=False)
    try:
        state = TaskState.model_validate(data)
    except ValidationError as e:
        raise TaskValidationError(
            f"Task state failed validation with {e.error_count()} issue(s)",
            issues=_issues_from(e),
        ) from e

    if not state.handoffs:
        raise TaskValidationError(
            "Task state must carry at least one handoff record",
            issues=[
                {
                    "loc": ["handoffs"],
                    "msg": "List should have at least 1 item",
                    "type": "too_short",
                }
            ],
        )
    return state


def parse_task_document(content: str) -> TaskState:
    """解析状态存储中读取的 JSON 文档

    只做 schema 校验；聚合级不变量由写路径保证。
    """
    try:
        return TaskState.model_validate_json(content)
    except ValidationError as e:
        raise TaskValidationError(
            f"Stored task document is invalid: {e.error_count()} issue(s)",
            issues=_issues_from(e),
        ) from e
