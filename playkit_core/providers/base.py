"""请求传输协议。

功能客户端（ChatSession、StructuredOutputSession、ImageClient）不直接依赖 httpx，
而是依赖此协议；RequestPipeline 是唯一的具体实现，测试中可以替换为假对象。
"""

from typing import Any, Callable, Dict, Optional, Protocol

from playkit_core.domain.models import ChatRequest
from playkit_core.providers.pipeline import StreamOutcome
from playkit_core.providers.registry import EndpointConfig


class RequestTransport(Protocol):
    def build_body(self, req: ChatRequest, *, stream: bool = False) -> Dict[str, Any]:
        ...

    async def post(self, endpoint: EndpointConfig, body: Dict[str, Any]) -> Dict[str, Any]:
        """同步调用，失败时抛 BusinessError。"""

        ...

    async def stream(
        self,
        endpoint: EndpointConfig,
        body: Dict[str, Any],
        on_chunk: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[str], None]] = None,
    ) -> StreamOutcome:
        """流式调用，从不抛出业务异常。"""

        ...
