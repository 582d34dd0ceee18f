"""统一的请求与结果数据模型。

本模块定义了 SDK 各客户端之间共享的标准数据结构：

- Message: 一条带角色的对话消息（system/user/assistant，封闭集合，不可变）。
- ChatRequest: 发给 AI 服务的请求信封（对话、结构化对象共用）。
- ChatResult: 同步对话调用解析后的统一响应。
- AuthToken / TokenExchange / PlayerInfo: 认证与玩家资料。
- ImageGenerationResult: 图片生成结果。

各客户端负责在服务端 JSON 与这些模型之间做转换。
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union, get_args

# 消息角色（封闭集合）
Role = Literal["system", "user", "assistant"]
ROLES = frozenset(get_args(Role))

# AuthToken.expires_at 的“永不过期”标记
NEVER_EXPIRES = "never"


@dataclass(frozen=True)
class Message:
    """一条对话消息，创建后不可修改。"""

    role: Role
    content: str

    def __post_init__(self) -> None:
        if self.role not in ROLES:
            raise ValueError(f"Unknown message role: {self.role!r}")

    def to_payload(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Message":
        return cls(role=data.get("role") or "", content=data.get("content") or "")


@dataclass
class ChatRequest:
    """一次 AI 请求的信封。

    prompt 与 messages 互斥；两者都给时 prompt 优先，messages 不会被发送。
    schema 等字段只在结构化对象生成时使用。
    """

    model: str
    messages: List[Message] = field(default_factory=list)
    prompt: Optional[str] = None
    temperature: Optional[float] = 0.7
    max_tokens: Optional[int] = None
    # 结构化输出
    schema: Optional[Dict[str, Any]] = None
    schema_name: Optional[str] = None
    schema_description: Optional[str] = None
    system: Optional[str] = None


@dataclass
class ChatUsage:
    """服务端返回的 token 统计信息。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    @classmethod
    def from_payload(cls, data: Optional[Dict[str, Any]]) -> Optional["ChatUsage"]:
        if not data:
            return None
        return cls(
            prompt_tokens=data.get("prompt_tokens", data.get("promptTokens", 0)),
            completion_tokens=data.get("completion_tokens", data.get("completionTokens", 0)),
            total_tokens=data.get("total_tokens", data.get("totalTokens", 0)),
        )


@dataclass
class ChatChoice:
    """单个候选回答（通常只用 index=0）。"""

    index: int
    message: Message
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """同步对话调用的最终结果。"""

    id: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def text(self) -> str:
        return self.choices[0].message.content if self.choices else ""


class TokenOrigin(str, Enum):
    DEVELOPER = "developer"
    SHARED = "shared"
    SESSION = "session"


@dataclass(frozen=True)
class AuthToken:
    """Bearer token 及其过期信息。

    expires_at 为 Unix 秒；NEVER_EXPIRES 表示永不过期（仅开发者 token）；
    None 表示过期时间未知。
    """

    value: str
    expires_at: Union[int, str, None]
    origin: TokenOrigin

    @property
    def never_expires(self) -> bool:
        return self.expires_at == NEVER_EXPIRES

    def is_expired(self, now: float) -> bool:
        """只有真实存在且已过去的时间戳才算过期。"""

        if self.never_expires or not isinstance(self.expires_at, int) or self.expires_at <= 0:
            return False
        return self.expires_at <= now


@dataclass(frozen=True)
class TokenExchange:
    """一次性登录凭证兑换得到的会话 token。"""

    token: str
    user_id: str = ""
    token_name: str = ""
    created_at: str = ""
    expires_at: Optional[int] = None


@dataclass(frozen=True)
class PlayerInfo:
    user_id: str
    credits: float


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    revised_prompt: Optional[str] = None
    url: Optional[str] = None


@dataclass
class ImageGenerationResult:
    created: int
    images: List[GeneratedImage]
    raw: Optional[dict] = None
