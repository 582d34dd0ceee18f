"""错误分类（Error Taxonomy）。

本模块是错误码的唯一事实来源，负责把服务端/本地的错误码映射为：

- 默认的人类可读信息（default message）
- HTTP 状态码
- 错误类别（ErrorCategory，封闭集合，共 8 类）
- 是否可重试，以及建议的重试等待时间

SDK 本身从不自动重试，这里给出的 retryable / retry_delay 只是给调用方的建议。
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Union


class ErrorCategory(str, Enum):
    AUTHENTICATION = "authentication"
    GAME = "game"
    PROVIDER = "provider"
    CREDIT = "credit"
    IMAGE_GENERATION = "image_generation"
    VALIDATION = "validation"
    NETWORK = "network"
    API = "api"


class ErrorCode:
    """已知错误码常量（字符串，与服务端线上格式一致）。"""

    # authentication
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    NOT_AUTHENTICATED = "NOT_AUTHENTICATED"
    LOGIN_CANCELLED = "LOGIN_CANCELLED"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    # game
    GAME_NOT_FOUND = "GAME_NOT_FOUND"
    GAME_DISABLED = "GAME_DISABLED"
    MODEL_NOT_ALLOWED = "MODEL_NOT_ALLOWED"
    # provider
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    PROVIDER_RATE_LIMIT = "PROVIDER_RATE_LIMIT"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    # credit
    INSUFFICIENT_CREDITS = "INSUFFICIENT_CREDITS"
    CREDIT_DEDUCTION_FAILED = "CREDIT_DEDUCTION_FAILED"
    # image generation
    IMAGE_GENERATION_FAILED = "IMAGE_GENERATION_FAILED"
    CONTENT_POLICY_VIOLATION = "CONTENT_POLICY_VIOLATION"
    INVALID_IMAGE_SIZE = "INVALID_IMAGE_SIZE"
    # validation（本地校验失败，永不重试）
    INVALID_REQUEST = "INVALID_REQUEST"
    INVALID_PARAMETERS = "INVALID_PARAMETERS"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    MISSING_CONFIGURATION = "MISSING_CONFIGURATION"
    INVALID_SCHEMA = "INVALID_SCHEMA"
    SCHEMA_NOT_FOUND = "SCHEMA_NOT_FOUND"
    NO_SCHEMA_REGISTRY = "NO_SCHEMA_REGISTRY"
    EMPTY_HISTORY = "EMPTY_HISTORY"
    NPC_BUSY = "NPC_BUSY"
    # network
    NETWORK_ERROR = "NETWORK_ERROR"
    # api
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    STORE_READ_ERROR = "STORE_READ_ERROR"
    STORE_WRITE_ERROR = "STORE_WRITE_ERROR"
    SNAPSHOT_NOT_FOUND = "SNAPSHOT_NOT_FOUND"


@dataclass(frozen=True)
class ErrorInfo:
    """单个错误码的静态分类信息。"""

    category: ErrorCategory
    http_status: int
    retryable: bool
    default_message: str


_C = ErrorCategory

# code -> (category, http_status, default_message)
_TAXONOMY: Dict[str, tuple] = {
    ErrorCode.UNAUTHORIZED: (_C.AUTHENTICATION, 401, "Authentication required"),
    ErrorCode.INVALID_TOKEN: (_C.AUTHENTICATION, 401, "Invalid or revoked token"),
    ErrorCode.TOKEN_EXPIRED: (_C.AUTHENTICATION, 401, "Token has expired, please log in again"),
    ErrorCode.NOT_AUTHENTICATED: (_C.AUTHENTICATION, 401, "Not authenticated"),
    ErrorCode.LOGIN_CANCELLED: (_C.AUTHENTICATION, 401, "Login was cancelled"),
    ErrorCode.PLAYER_NOT_FOUND: (_C.AUTHENTICATION, 404, "Player not found"),
    ErrorCode.GAME_NOT_FOUND: (_C.GAME, 404, "Game not found"),
    ErrorCode.GAME_DISABLED: (_C.GAME, 403, "Game is disabled"),
    ErrorCode.MODEL_NOT_ALLOWED: (_C.GAME, 403, "Model is not allowed for this game"),
    ErrorCode.PROVIDER_ERROR: (_C.PROVIDER, 502, "AI provider returned an error"),
    ErrorCode.PROVIDER_UNAVAILABLE: (_C.PROVIDER, 503, "AI provider is temporarily unavailable"),
    ErrorCode.PROVIDER_RATE_LIMIT: (_C.PROVIDER, 429, "AI provider rate limit reached"),
    ErrorCode.MODEL_NOT_FOUND: (_C.PROVIDER, 404, "Model not found"),
    ErrorCode.INSUFFICIENT_CREDITS: (_C.CREDIT, 402, "Insufficient credits"),
    ErrorCode.CREDIT_DEDUCTION_FAILED: (_C.CREDIT, 402, "Failed to deduct credits"),
    ErrorCode.IMAGE_GENERATION_FAILED: (_C.IMAGE_GENERATION, 500, "Image generation failed"),
    ErrorCode.CONTENT_POLICY_VIOLATION: (_C.IMAGE_GENERATION, 400, "Request violates content policy"),
    ErrorCode.INVALID_IMAGE_SIZE: (_C.IMAGE_GENERATION, 400, "Invalid image size"),
    ErrorCode.INVALID_REQUEST: (_C.VALIDATION, 400, "Invalid request"),
    ErrorCode.INVALID_PARAMETERS: (_C.VALIDATION, 400, "Invalid parameters"),
    ErrorCode.MISSING_REQUIRED_FIELD: (_C.VALIDATION, 400, "Missing required field"),
    ErrorCode.MISSING_CONFIGURATION: (_C.VALIDATION, 400, "SDK is not configured"),
    ErrorCode.INVALID_SCHEMA: (_C.VALIDATION, 400, "Schema is not a valid JSON object"),
    ErrorCode.SCHEMA_NOT_FOUND: (_C.VALIDATION, 404, "Schema not found"),
    ErrorCode.NO_SCHEMA_REGISTRY: (_C.VALIDATION, 400, "No schema registry configured"),
    ErrorCode.EMPTY_HISTORY: (_C.VALIDATION, 400, "Conversation history is empty"),
    ErrorCode.NPC_BUSY: (_C.VALIDATION, 409, "NPC is already talking"),
    ErrorCode.NETWORK_ERROR: (_C.NETWORK, 0, "Network error, please check your connection"),
    ErrorCode.INTERNAL_ERROR: (_C.API, 500, "Internal server error"),
    ErrorCode.DATABASE_ERROR: (_C.API, 500, "Database error"),
    ErrorCode.INVALID_RESPONSE: (_C.API, 500, "Failed to get response"),
    ErrorCode.STORE_READ_ERROR: (_C.API, 500, "Failed to read local storage"),
    ErrorCode.STORE_WRITE_ERROR: (_C.API, 500, "Failed to write local storage"),
    ErrorCode.SNAPSHOT_NOT_FOUND: (_C.API, 404, "Conversation snapshot not found"),
}

RETRYABLE_CODES = frozenset(
    {
        ErrorCode.PROVIDER_UNAVAILABLE,
        ErrorCode.PROVIDER_RATE_LIMIT,
        ErrorCode.NETWORK_ERROR,
        ErrorCode.INTERNAL_ERROR,
        ErrorCode.DATABASE_ERROR,
    }
)

_RETRY_DELAYS = {
    ErrorCode.PROVIDER_RATE_LIMIT: 60,
    ErrorCode.PROVIDER_UNAVAILABLE: 30,
    ErrorCode.NETWORK_ERROR: 5,
}
DEFAULT_RETRY_DELAY = 10

UNKNOWN_ERROR = ErrorInfo(
    category=ErrorCategory.API,
    http_status=500,
    retryable=False,
    default_message="Unknown error",
)

# 远端既没给 code 也没给 message 时，按 HTTP 状态推断
_STATUS_FALLBACK = {
    401: ErrorCode.UNAUTHORIZED,
    402: ErrorCode.INSUFFICIENT_CREDITS,
    403: ErrorCode.GAME_DISABLED,
    404: ErrorCode.GAME_NOT_FOUND,
    429: ErrorCode.PROVIDER_RATE_LIMIT,
    503: ErrorCode.PROVIDER_UNAVAILABLE,
}


def known_codes() -> frozenset:
    return frozenset(_TAXONOMY)


def classify(code: str) -> ErrorInfo:
    """把错误码映射为分类信息；未知错误码统一落到 api/500/不可重试。"""

    entry = _TAXONOMY.get(code)
    if entry is None:
        return UNKNOWN_ERROR
    category, status, message = entry
    return ErrorInfo(
        category=category,
        http_status=status,
        retryable=code in RETRYABLE_CODES,
        default_message=message,
    )


def is_retryable(code: str) -> bool:
    return code in RETRYABLE_CODES


def suggested_retry_delay(code: str) -> int:
    """建议的退避秒数；不可重试的错误码返回 0。"""

    if code not in RETRYABLE_CODES:
        return 0
    return _RETRY_DELAYS.get(code, DEFAULT_RETRY_DELAY)


@dataclass(frozen=True)
class ErrorRecord:
    """一次失败的不可变记录，按值在 Result 中传递。

    Attributes:
        code: 机器可读错误码（如 "INSUFFICIENT_CREDITS"）。
        message: 用户可读信息。
        http_status: HTTP 状态码；网络层失败为 0。
        details: 补充字段（原始响应、参数名等）。
        category: 错误类别。
        retryable: 调用方是否可以重试。
    """

    code: str
    message: str
    http_status: int
    category: ErrorCategory
    retryable: bool
    details: Mapping[str, Any] = field(default_factory=dict)

    @property
    def retry_delay(self) -> int:
        return suggested_retry_delay(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "httpStatus": self.http_status,
            "category": self.category.value,
            "retryable": self.retryable,
            "details": dict(self.details),
        }


def make_error(
    code: str,
    message: Optional[str] = None,
    http_status: Optional[int] = None,
    **details: Any,
) -> ErrorRecord:
    """按错误码构造 ErrorRecord，未指定的字段取分类表中的默认值。"""

    info = classify(code)
    return ErrorRecord(
        code=code,
        message=message or info.default_message,
        http_status=info.http_status if http_status is None else http_status,
        category=info.category,
        retryable=info.retryable,
        details=details,
    )


def parse_remote_error(body: Union[str, bytes, Mapping[str, Any], None], http_status: int) -> ErrorRecord:
    """解析服务端返回的错误体。

    支持三种线上格式：
        {"error": {"code": ..., "message": ...}}
        {"error": "string"}
        {"code": ..., "message": ...}

    body 不是合法 JSON 时，生成携带原始文本的 INTERNAL_ERROR。
    """

    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, Mapping):
        data: Any = body
    else:
        raw = body or ""
        try:
            data = json.loads(raw) if raw.strip() else {}
        except (json.JSONDecodeError, TypeError):
            return make_error(
                ErrorCode.INTERNAL_ERROR,
                message=raw or classify(ErrorCode.INTERNAL_ERROR).default_message,
                http_status=http_status or None,
                raw_body=raw,
            )
    if not isinstance(data, Mapping):
        text = json.dumps(data, ensure_ascii=False)
        return make_error(ErrorCode.INTERNAL_ERROR, message=text, http_status=http_status or None, raw_body=text)

    code: Optional[str] = None
    message: Optional[str] = None
    error = data.get("error")
    if isinstance(error, Mapping):
        code = error.get("code")
        message = error.get("message")
    elif isinstance(error, str):
        message = error
    if not code:
        code = data.get("code")
    if not message:
        message = data.get("message")

    if not code:
        if message:
            code = ErrorCode.INTERNAL_ERROR
        else:
            code = _STATUS_FALLBACK.get(http_status, ErrorCode.INTERNAL_ERROR)
    code = str(code)
    details = {k: v for k, v in data.items() if k not in ("error", "code", "message")}
    return make_error(code, message=message or None, http_status=http_status or None, **details)
