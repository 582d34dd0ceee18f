"""AI 服务请求层。

该包下的模块负责：
- 定义请求传输协议 (base) 与端点配置 (registry)。
- 带认证的请求管道与流式帧解析 (pipeline、sse)。
- 各能力的具体客户端 (chat_client、object_client、image_client)。
"""

from typing import Literal, Optional

from playkit_core.providers.base import RequestTransport
from playkit_core.providers.chat_client import ChatSession
from playkit_core.providers.image_client import ImageClient
from playkit_core.providers.object_client import StructuredOutputSession


def create_client(name: str, transport: RequestTransport, settings, model: Optional[str] = None):
    """根据能力名创建客户端实例。"""

    kind = name.lower()
    if kind == "chat":
        return ChatSession(transport, settings, model=model)
    if kind == "object":
        return StructuredOutputSession(transport, settings, model=model)
    if kind == "image":
        return ImageClient(transport, settings, model=model)
    raise KeyError(f"Unknown client: {name!r}")


ClientName = Literal["chat", "object", "image"]
