"""taskrelay Provider -- agent 轮次抽象层

packages/provider 的公开接口导出。
"""

# 核心组件
from .client import LiteLLMAgentRunner

# 配置
from .config import DEFAULT_MODEL, ProviderConfig, load_provider_config
from .echo_adapter import EchoAgentRunner

# 异常
from .exceptions import ProviderError, ProxyUnreachableError

# 数据模型
from .models import AgentTurnResult, TokenUsage, ToolInvocation, ToolSpec
from .protocols import AgentRunner

__all__ = [
    "AgentRunner",
    "AgentTurnResult",
    "TokenUsage",
    "ToolInvocation",
    "ToolSpec",
    "LiteLLMAgentRunner",
    "EchoAgentRunner",
    "DEFAULT_MODEL",
    "ProviderConfig",
    "load_provider_config",
    "ProviderError",
    "ProxyUnreachableError",
]
