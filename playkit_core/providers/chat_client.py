"""对话补全客户端。

把带角色的消息列表转成 /v1/chat 请求，支持：

- chat(): 同步调用，返回完整的 ChatResult（候选、finish_reason、usage）。
- complete(): 同步调用的文本便捷版，只取第一个候选的内容。
- complete_streamed(): 流式调用，逐块回调并在结束时给出完整文本。
"""

import dataclasses
from typing import Any, Callable, Dict, Iterable, List, Optional

from playkit_core.domain.errors import ErrorCode, ErrorRecord, make_error
from playkit_core.domain.exceptions import BusinessError
from playkit_core.domain.models import ROLES, ChatChoice, ChatRequest, ChatResult, ChatUsage, Message
from playkit_core.domain.results import Result
from playkit_core.infrastructure.logging.logger import get_logger
from playkit_core.providers.base import RequestTransport
from playkit_core.providers.registry import CHAT, CHAT_STREAM

log = get_logger("chat")

FAILED_TO_GET_RESPONSE = "Failed to get response"


class ChatSession:
    name = "chat"

    def __init__(self, transport: RequestTransport, settings, model: Optional[str] = None):
        self._transport = transport
        self._settings = settings
        self.model = model or settings.default_chat_model

    def _build_request(
        self,
        history: Iterable[Message],
        model: Optional[str],
        temperature: Optional[float],
        max_tokens: Optional[int],
    ) -> ChatRequest:
        return ChatRequest(
            model=model or self.model,
            messages=list(history),
            temperature=self._settings.default_temperature if temperature is None else temperature,
            max_tokens=max_tokens,
        )

    async def chat(
        self,
        history: Iterable[Message],
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Result[ChatResult]:
        """执行一次非流式对话调用。"""

        req = self._build_request(history, model, temperature, max_tokens)
        if not req.messages:
            return Result.failure(ErrorCode.EMPTY_HISTORY)
        try:
            data = await self._transport.post(CHAT, self._transport.build_body(req, stream=False))
        except BusinessError as e:
            return Result.from_exception(e)
        return Result.ok(self._parse_response(data, req))

    async def complete(self, history: Iterable[Message], **options: Any) -> Result[str]:
        """返回第一个候选的文本；无候选或传输失败统一报告为“获取响应失败”。"""

        result = await self.chat(history, **options)
        if not result.success:
            return Result.fail(_failed(result.error))
        chat_result = result.value
        if not chat_result.choices:
            return Result.failure(ErrorCode.INVALID_RESPONSE, FAILED_TO_GET_RESPONSE)
        return Result.ok(chat_result.text)

    async def complete_streamed(
        self,
        history: Iterable[Message],
        on_chunk: Optional[Callable[[str], None]] = None,
        on_complete: Optional[Callable[[str], None]] = None,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> Result[str]:
        """流式对话。

        on_chunk 按到达顺序对每段非空文本触发一次；on_complete 在最后恰好触发一次，
        参数为完整的拼接文本（完全失败时为空串）。返回值携带同样的文本或错误，
        部分失败时错误的 details["partial_text"] 中保留已收到的内容。
        """

        req = self._build_request(history, model, temperature, max_tokens)
        if not req.messages:
            if on_complete is not None:
                on_complete("")
            return Result.failure(ErrorCode.EMPTY_HISTORY)
        body = self._transport.build_body(req, stream=True)
        outcome = await self._transport.stream(CHAT_STREAM, body, on_chunk=on_chunk, on_complete=on_complete)
        if outcome.error is not None:
            return Result.fail(_failed(outcome.error, partial_text=outcome.text))
        return Result.ok(outcome.text)

    def _parse_response(self, data: Dict[str, Any], req: ChatRequest) -> ChatResult:
        choices: List[ChatChoice] = []
        for i, ch in enumerate(data.get("choices") or []):
            if not isinstance(ch, dict):
                continue
            msg = ch.get("message") or {}
            role = msg.get("role") if msg.get("role") in ROLES else "assistant"
            choices.append(
                ChatChoice(
                    index=ch.get("index", i),
                    message=Message(role=role, content=msg.get("content") or ""),
                    finish_reason=ch.get("finish_reason"),
                )
            )
        return ChatResult(
            id=str(data.get("id") or ""),
            model=data.get("model") or req.model,
            choices=choices,
            usage=ChatUsage.from_payload(data.get("usage")),
            raw=data,
        )


def _failed(record: Optional[ErrorRecord], **details: Any) -> ErrorRecord:
    if record is None:
        return make_error(ErrorCode.INVALID_RESPONSE, FAILED_TO_GET_RESPONSE, **details)
    message = f"{FAILED_TO_GET_RESPONSE}: {record.message}" if record.message else FAILED_TO_GET_RESPONSE
    return dataclasses.replace(record, message=message, details={**record.details, **details})
