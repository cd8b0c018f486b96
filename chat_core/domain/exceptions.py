"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层或 UI 层做统一捕获与用户提示。
"""

from typing import List, Optional


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 provider、chat_id 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ValidationError(BusinessError):
    """参数或配置校验失败，errors 中保存全部失败原因。"""

    def __init__(self, errors: List[str], code: str = "VALIDATION_FAILED", message: Optional[str] = None, **extra):
        self.errors = list(errors)
        super().__init__(
            code=code,
            message=message or "Validation failed: " + ", ".join(self.errors),
            http_status=422,
            **extra,
        )


class NotFoundError(BusinessError):
    """按 id 显式查找的 Chat/Project/Provider 不存在。"""

    def __init__(self, code: str, message: str, **extra):
        super().__init__(code=code, message=message, http_status=404, **extra)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、读取中断等。"""


class ApiError(BusinessError):
    """上游 API 返回非 2xx 时抛出，body 为原始响应文本。"""

    def __init__(self, http_status: int, body: str, code: str = "API_ERROR", **extra):
        self.body = body
        super().__init__(
            code=code,
            message=f"API request failed: {http_status} - {body}",
            http_status=http_status,
            **extra,
        )


class StreamParseError(BusinessError):
    """单条 SSE 记录解析失败；只记录日志，不向调用方传播。"""


class StorageError(BusinessError):
    """持久化端口读写失败，直接向上传递，不做自动重试。"""

    def __init__(self, code: str, message: str, **extra):
        super().__init__(code=code, message=message, http_status=500, **extra)
