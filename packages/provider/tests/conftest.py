"""Provider 包测试 fixtures"""

import pytest
from taskrelay.provider import ToolSpec


@pytest.fixture
def recorded_calls() -> list[dict]:
    """echo 工具收到的参数"""
    return []


@pytest.fixture
def echo_tool(recorded_calls: list[dict]) -> ToolSpec:
    """记录参数并回显的测试工具"""

    async def handler(arguments: dict) -> dict:
        recorded_calls.append(arguments)
        return {"success": True, "echo": arguments}

    return ToolSpec(
        name="echo",
        description="Echo the arguments back",
        parameters={"type": "object", "properties": {"text": {"type": "string"}}},
        handler=handler,
    )
