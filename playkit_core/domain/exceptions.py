"""统一业务异常模型。

SDK 内部各层在检测到失败时抛出 BusinessError 子类，每个异常都携带一个
ErrorRecord。公开 API 在边界处捕获 BusinessError 并转换成 Result，
因此调用方永远拿到的是按值传递的失败结果，而不是异常。
"""

from typing import Optional

from .errors import ErrorCategory, ErrorCode, ErrorRecord, make_error


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "NETWORK_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时的状态码。
        extra: 其他补充字段（例如原始响应体、参数名）。
        record: 对应的不可变 ErrorRecord。
    """

    def __init__(
        self,
        code: str,
        message: Optional[str] = None,
        http_status: Optional[int] = None,
        *,
        record: Optional[ErrorRecord] = None,
        **extra,
    ):
        self.record = record or make_error(code, message=message, http_status=http_status, **extra)
        self.code = self.record.code
        self.message = self.record.message
        self.http_status = self.record.http_status
        self.extra = dict(self.record.details)
        super().__init__(self.message)

    @classmethod
    def from_record(cls, record: ErrorRecord) -> "BusinessError":
        """根据 ErrorRecord 的类别选择最贴切的异常子类。"""

        if record.code == ErrorCode.PROVIDER_RATE_LIMIT:
            exc_cls = RateLimitError
        else:
            exc_cls = _CATEGORY_EXCEPTIONS.get(record.category, ApiError)
        return exc_cls(record.code, record=record)


class NetworkError(BusinessError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(BusinessError):
    """服务端返回非 2xx 或响应无法解析时抛出。"""


class RateLimitError(BusinessError):
    """Provider 限流错误，退避策略由调用方决定。"""


class ValidationError(BusinessError):
    """参数或配置校验失败（本地检测，不会发起网络请求）。"""


class AuthenticationError(BusinessError):
    """缺少 token、token 失效或登录被取消。"""


_CATEGORY_EXCEPTIONS = {
    ErrorCategory.NETWORK: NetworkError,
    ErrorCategory.VALIDATION: ValidationError,
    ErrorCategory.AUTHENTICATION: AuthenticationError,
}
