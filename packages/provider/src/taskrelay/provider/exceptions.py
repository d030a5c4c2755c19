"""Provider 异常 -- agent 轮次中模型调用的失败

TaskExecutor 捕获这些异常并把任务标记为 failed，错误文本写入 ExecutionResult。
"""


class ProviderError(Exception):
    """模型调用失败（模型不可用、配额耗尽、响应格式错误等）

    Attributes:
        model: 失败时使用的模型名称，未知时为 None
        recoverable: 换一个会话重试是否可能成功
    """

    def __init__(self, message: str, *, model: str | None = None, recoverable: bool = True) -> None:
        super().__init__(message)
        self.model = model
        self.recoverable = recoverable


class ProxyUnreachableError(ProviderError):
    """LiteLLM Proxy 连接失败或超时"""

    def __init__(self, proxy_url: str, cause: Exception, *, model: str | None = None) -> None:
        super().__init__(f"LiteLLM Proxy unreachable at {proxy_url}: {cause}", model=model)
        self.proxy_url = proxy_url
        self.cause = cause
