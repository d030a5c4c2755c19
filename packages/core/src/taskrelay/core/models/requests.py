"""请求模型 -- start / continue / handoff 的入参

与 TaskState 相同，JSON 使用 camelCase 键名。
"""

from pydantic import Field

from .enums import HandoffReason, Urgency
from .task import REPO_PATTERN, UUID_PATTERN, CamelModel


class StartGitHubOptions(CamelModel):
    """新任务的仓库关联选项"""

    repo: str = Field(pattern=REPO_PATTERN, description="目标仓库 owner/repo")
    branch: str = Field(default="main")
    state_repo: str | None = Field(
        default=None,
        pattern=REPO_PATTERN,
        description="状态仓库 owner/repo，缺省使用服务端默认值",
    )
    create_issue: bool = Field(default=True, description="是否创建跟踪 issue")


class StartTaskConfig(CamelModel):
    """新任务的执行配置"""

    model: str | None = Field(default=None, description="模型名称，缺省使用服务端配置")
    max_turns: int = Field(default=50, ge=1, le=100)
    system_prompt: str | None = Field(default=None, description="追加到系统提示末尾的文本")


class StartSecurityOptions(CamelModel):
    """新任务的授权选项"""

    allowed_agents: list[str] = Field(default_factory=lambda: ["*"])
    require_approval: bool = False


class StartTaskRequest(CamelModel):
    """创建并启动任务"""

    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1, max_length=5000)
    prompt: str = Field(min_length=1)
    github: StartGitHubOptions
    config: StartTaskConfig = Field(default_factory=StartTaskConfig)
    security: StartSecurityOptions = Field(default_factory=StartSecurityOptions)


class ContinueTaskRequest(CamelModel):
    """继续执行已有任务"""

    task_id: str = Field(pattern=UUID_PATTERN)
    prompt: str | None = None
    accept_handoff: bool = False


class HandoffRequest(CamelModel):
    """发起 handoff，同时作为 issue 通知的 payload"""

    task_id: str = Field(pattern=UUID_PATTERN)
    from_agent_id: str
    reason: HandoffReason
    instructions: str
    urgency: Urgency = Urgency.MEDIUM
    target_agent_id: str | None = None
