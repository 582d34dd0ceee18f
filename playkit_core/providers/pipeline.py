"""带认证的 HTTP 请求管道。

所有功能客户端（chat / 结构化对象 / 图片）都经由 RequestPipeline 发请求：

1. 检查 bearer token 与应用 ID（缺失时本地失败，不发网络请求）。
2. 把 ChatRequest 序列化为 JSON 请求体（prompt 与 messages 互斥，prompt 优先）。
3. 发送请求：同步模式等待完整响应；流式模式逐帧消费 SSE。
4. 非 200 响应经 ErrorTaxonomy 分类后以 BusinessError 抛出（同步）
   或在流结束时一次性报告（流式）。

每次调用都会新建一个 httpx.AsyncClient，调用之间互不排队。
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from playkit_core.domain.errors import ErrorCode, ErrorRecord, make_error, parse_remote_error
from playkit_core.domain.exceptions import (
    ApiError,
    AuthenticationError,
    BusinessError,
    NetworkError,
    ValidationError,
)
from playkit_core.domain.models import ChatRequest
from playkit_core.infrastructure.logging.logger import get_logger
from playkit_core.providers.registry import EndpointConfig, build_url, timeout_for
from playkit_core.providers.sse import SSELineBuffer, parse_frame

log = get_logger("pipeline")

ChunkCallback = Callable[[str], None]
CompleteCallback = Callable[[str], None]


def _headers(bearer: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {bearer}",
        "Content-Type": "application/json",
    }


def _transport_error(exc: httpx.RequestError) -> ErrorRecord:
    if isinstance(exc, httpx.TimeoutException):
        return make_error(ErrorCode.NETWORK_ERROR, message="Request timed out")
    return make_error(ErrorCode.NETWORK_ERROR, message=str(exc) or None)


async def send_json(
    method: str,
    url: str,
    *,
    bearer: str,
    timeout: float,
    payload: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """发送一次 JSON 请求并返回解析后的响应体。

    Raises:
        NetworkError: 连接失败、超时等传输层错误。
        BusinessError: 非 200 响应（按服务端错误码选择具体子类）。
        ApiError: 响应体不是合法 JSON 对象。
    """

    try:
        async with httpx.AsyncClient(timeout=timeout, trust_env=False) as client:
            if method.upper() == "GET":
                resp = await client.get(url, headers=_headers(bearer))
            else:
                resp = await client.post(url, json=payload if payload is not None else {}, headers=_headers(bearer))
    except httpx.RequestError as e:
        raise NetworkError(ErrorCode.NETWORK_ERROR, record=_transport_error(e))
    if resp.status_code != 200:
        record = parse_remote_error(resp.text, resp.status_code)
        log.warning(
            "Request failed",
            extra={"extra": {"url": url, "status": resp.status_code, "code": record.code}},
        )
        raise BusinessError.from_record(record)
    try:
        data = resp.json()
    except ValueError:
        raise ApiError(code=ErrorCode.INTERNAL_ERROR, message="Failed to parse response", raw_body=resp.text[:500])
    if not isinstance(data, dict):
        raise ApiError(code=ErrorCode.INVALID_RESPONSE, message="Response is not a JSON object")
    return data


@dataclass
class StreamOutcome:
    """一次流式调用的最终结果：累积文本与（可能存在的）错误。"""

    text: str
    error: Optional[ErrorRecord] = None

    @property
    def success(self) -> bool:
        return self.error is None


class RequestPipeline:
    """把 (模型, 消息或 prompt, 选项) 变成一次带认证的调用。"""

    def __init__(self, settings, auth):
        # auth 需提供 app_id 属性与 get_bearer_token()
        self._settings = settings
        self._auth = auth

    def build_body(self, req: ChatRequest, *, stream: bool = False) -> Dict[str, Any]:
        """将 ChatRequest 转成请求 JSON；带 schema 的请求使用 generateObject 的字段名。"""

        body: Dict[str, Any] = {"model": req.model}
        if req.prompt:
            if req.messages:
                log.debug("Both prompt and messages supplied, prompt wins")
            body["prompt"] = req.prompt
        else:
            body["messages"] = [m.to_payload() for m in req.messages]

        if req.schema is not None:
            body["schema"] = req.schema
            if req.schema_name:
                body["schemaName"] = req.schema_name
            if req.schema_description:
                body["schemaDescription"] = req.schema_description
            if req.max_tokens:
                body["maxTokens"] = req.max_tokens
            if req.system:
                body["system"] = req.system
            return body

        temperature = req.temperature
        body["temperature"] = self._settings.default_temperature if temperature is None else temperature
        if req.max_tokens:
            body["max_tokens"] = req.max_tokens
        body["stream"] = stream
        return body

    def _target(self, endpoint: EndpointConfig) -> tuple:
        bearer = self._auth.get_bearer_token()
        if not bearer:
            raise AuthenticationError(code=ErrorCode.NOT_AUTHENTICATED)
        app_id = getattr(self._auth, "app_id", "") or self._settings.app_id
        if not app_id:
            raise ValidationError(code=ErrorCode.MISSING_CONFIGURATION, message="App id is not configured")
        return bearer, build_url(self._settings.base_url, endpoint, app_id)

    async def post(self, endpoint: EndpointConfig, body: Dict[str, Any]) -> Dict[str, Any]:
        """同步模式：等待完整响应并返回 JSON；失败时抛 BusinessError。"""

        bearer, url = self._target(endpoint)
        log.debug("Dispatching request", extra={"extra": {"endpoint": endpoint.name, "model": body.get("model")}})
        return await send_json("POST", url, bearer=bearer, timeout=timeout_for(self._settings, endpoint), payload=body)

    async def stream(
        self,
        endpoint: EndpointConfig,
        body: Dict[str, Any],
        on_chunk: Optional[ChunkCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ) -> StreamOutcome:
        """流式模式：逐帧回调 on_chunk，结束时 on_complete 恰好触发一次。

        本方法不抛出业务异常；任何失败都记录在返回的 StreamOutcome.error 中，
        连同已累积的部分文本一起交给调用方。
        """

        parts: List[str] = []
        error: Optional[ErrorRecord] = None
        try:
            try:
                bearer, url = self._target(endpoint)
                body = {**body, "stream": True}
                log.debug("Dispatching stream", extra={"extra": {"endpoint": endpoint.name, "model": body.get("model")}})
                async with httpx.AsyncClient(timeout=timeout_for(self._settings, endpoint), trust_env=False) as client:
                    async with client.stream("POST", url, json=body, headers=_headers(bearer)) as resp:
                        if resp.status_code != 200:
                            raw = await resp.aread()
                            error = parse_remote_error(raw, resp.status_code)
                        else:
                            error = await self._consume(resp, parts, on_chunk)
            except BusinessError as e:
                error = e.record
            except httpx.RequestError as e:
                error = _transport_error(e)
        finally:
            # on_chunk 抛出的异常照常向上传播，但 on_complete 仍要触发
            text = "".join(parts)
            if on_complete is not None:
                on_complete(text)

        if error is not None:
            log.warning(
                "Stream failed",
                extra={"extra": {"endpoint": endpoint.name, "code": error.code, "partial_chars": len(text)}},
            )
        return StreamOutcome(text=text, error=error)

    async def _consume(self, resp, parts: List[str], on_chunk: Optional[ChunkCallback]) -> Optional[ErrorRecord]:
        buffer = SSELineBuffer()
        async for chunk in resp.aiter_text():
            for line in buffer.feed(chunk):
                error = self._handle_line(line, parts, on_chunk)
                if error is not None:
                    return error
        for line in buffer.flush():
            error = self._handle_line(line, parts, on_chunk)
            if error is not None:
                return error
        return None

    @staticmethod
    def _handle_line(line: str, parts: List[str], on_chunk: Optional[ChunkCallback]) -> Optional[ErrorRecord]:
        frame = parse_frame(line)
        if frame is None or frame.done:
            return None
        if frame.error is not None:
            return frame.error
        if frame.text:
            parts.append(frame.text)
            if on_chunk is not None:
                on_chunk(frame.text)
        return None
