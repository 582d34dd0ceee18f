"""公开 API 的返回值类型。

所有对外操作都返回带 success 标记的结果对象，失败信息以 ErrorRecord 按值携带：

- Result[T]: 通用结果，成功时 value 有值。
- ObjectResult: 结构化对象生成的结果，字段形状固定为
  {success, object_data, error, error_code}。
"""

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

from .errors import ErrorRecord, make_error
from .exceptions import BusinessError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    success: bool
    value: Optional[T] = None
    error: Optional[ErrorRecord] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(success=True, value=value)

    @classmethod
    def fail(cls, error: ErrorRecord) -> "Result[T]":
        return cls(success=False, error=error)

    @classmethod
    def from_exception(cls, exc: BusinessError) -> "Result[T]":
        return cls(success=False, error=exc.record)

    @classmethod
    def failure(cls, code: str, message: Optional[str] = None, **details: Any) -> "Result[T]":
        return cls(success=False, error=make_error(code, message=message, **details))

    @property
    def error_code(self) -> str:
        return self.error.code if self.error else ""

    @property
    def error_message(self) -> str:
        return self.error.message if self.error else ""

    def __bool__(self) -> bool:
        return self.success


@dataclass(frozen=True)
class ObjectResult:
    """结构化输出结果。

    - object_data: 成功时为服务端返回的 JSON 对象。
    - error / error_code: 失败时的用户可读信息与错误码。
    - error_record: 完整的 ErrorRecord（含类别与可重试性）。
    - raw: 原始响应 JSON，便于调试（finishReason、usage 等）。
    """

    success: bool
    object_data: Optional[Any] = None
    error: str = ""
    error_code: str = ""
    error_record: Optional[ErrorRecord] = None
    raw: Optional[dict] = None

    @classmethod
    def ok(cls, object_data: Any, raw: Optional[dict] = None) -> "ObjectResult":
        return cls(success=True, object_data=object_data, raw=raw)

    @classmethod
    def fail(cls, record: ErrorRecord) -> "ObjectResult":
        return cls(success=False, error=record.message, error_code=record.code, error_record=record)

    def __bool__(self) -> bool:
        return self.success
