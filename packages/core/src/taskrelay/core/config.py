"""配置常量模块 -- 可通过环境变量覆盖

包含状态存储后端、状态根路径、状态仓库、写冲突重试次数等可配置项，
以及会话历史压缩的固定阈值。
"""

import os
from pathlib import Path

import structlog

log = structlog.get_logger()

# 状态存储后端：github（远端仓库）/ local（本地文件）/ memory（进程内，测试用）
STATE_BACKENDS = ("github", "local", "memory")


def get_state_backend() -> str:
    """获取状态存储后端类型"""
    backend = os.environ.get("TASKRELAY_STATE_BACKEND", "github").lower()
    if backend not in STATE_BACKENDS:
        log.warning(
            "invalid_state_backend_config",
            env_var="TASKRELAY_STATE_BACKEND",
            value=backend,
            fallback="github",
        )
        return "github"
    return backend


def get_state_root() -> str:
    """获取状态文件根路径（仓库内相对路径）"""
    return os.environ.get("TASKRELAY_STATE_ROOT", ".task-handoff").strip("/")


def get_default_state_repo() -> str:
    """获取默认状态仓库（owner/repo）"""
    return os.environ.get("TASKRELAY_STATE_REPO", "counciloftroas/task-handoff-state")


def get_local_state_dir() -> Path:
    """获取 local 后端的状态目录"""
    return Path(os.environ.get("TASKRELAY_LOCAL_STATE_DIR", str(Path("data") / "state")))


def get_max_write_retries() -> int:
    """获取条件写冲突时的最大尝试次数"""
    val = os.environ.get("TASKRELAY_MAX_WRITE_RETRIES", "3")
    try:
        retries = int(val)
    except ValueError:
        log.warning(
            "invalid_retry_config",
            env_var="TASKRELAY_MAX_WRITE_RETRIES",
            value=val,
            fallback=3,
        )
        return 3
    return max(retries, 1)


# 会话历史超过此长度时触发压缩
HISTORY_COMPACTION_THRESHOLD: int = 50

# 压缩后保留的最近消息数
HISTORY_KEEP_RECENT: int = 20

# 压缩摘要中每条消息保留的字符数
SUMMARY_PREVIEW_LENGTH: int = 100

# 压缩摘要段落分隔符
SUMMARY_DELIMITER: str = "\n\n---\n"

# 初始 handoff 记录的固定说明文本（续接提示中不展示）
INITIAL_HANDOFF_INSTRUCTIONS: str = "Initial task creation"

# 初始 handoff 记录的原因
INITIAL_HANDOFF_REASON: str = "Task created"

# 新任务的默认下一步
DEFAULT_IMMEDIATE_STEPS: tuple[str, ...] = (
    "Analyze task requirements",
    "Plan implementation approach",
)
