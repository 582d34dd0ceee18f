import asyncio
import json as jsonlib

import httpx
import pytest

from playkit_core.domain.errors import ErrorCategory, ErrorCode
from playkit_core.domain.exceptions import AuthenticationError, BusinessError, NetworkError, ValidationError
from playkit_core.domain.models import ChatRequest, Message
from playkit_core.providers.pipeline import RequestPipeline
from playkit_core.providers.registry import CHAT, CHAT_STREAM, OBJECT


class SettingsStub:
    base_url = "https://api.test"
    app_id = ""
    http_timeout = 1.0
    stream_timeout = 2.0
    image_timeout = 3.0
    default_temperature = 0.7


class AuthStub:
    def __init__(self, token="tok-123", app_id="game-1"):
        self._token = token
        self.app_id = app_id

    def get_bearer_token(self):
        return self._token


class Resp:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else jsonlib.dumps(payload)

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


class FakeStreamResponse:
    def __init__(self, chunks, status_code=200, body=b""):
        self._chunks = list(chunks)
        self.status_code = status_code
        self._body = body

    async def aiter_text(self):
        for chunk in self._chunks:
            yield chunk

    async def aread(self):
        return self._body


class StreamContext:
    def __init__(self, response):
        self._response = response

    async def __aenter__(self):
        return self._response

    async def __aexit__(self, *args):
        return False


def make_client(captured, resp=None, stream_resp=None, error=None):
    class Client:
        def __init__(self, *a, **kw):
            captured["timeout"] = kw.get("timeout")

        async def __aenter__(self):
            return self

        async def __aexit__(self, *a):
            return False

        async def post(self, url, json=None, headers=None):
            captured["url"] = url
            captured["payload"] = json
            captured["headers"] = headers
            if error is not None:
                raise error
            return resp

        def stream(self, method, url, json=None, headers=None):
            captured["url"] = url
            captured["payload"] = json
            if error is not None:
                raise error
            return StreamContext(stream_resp)

    return Client


def _req(**kw):
    return ChatRequest(model="m", messages=[Message("user", "hi")], **kw)


def test_build_chat_body():
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    body = pipe.build_body(_req(temperature=0.2, max_tokens=50))
    assert body == {
        "model": "m",
        "messages": [{"role": "user", "content": "hi"}],
        "temperature": 0.2,
        "max_tokens": 50,
        "stream": False,
    }


def test_build_body_prompt_wins_over_messages():
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    body = pipe.build_body(_req(prompt="describe a sword", schema={"type": "object"}, schema_name="item"))
    assert body["prompt"] == "describe a sword"
    assert "messages" not in body
    assert body["schema"] == {"type": "object"}
    assert body["schemaName"] == "item"
    assert "temperature" not in body


def test_post_requires_token(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, Resp(200, {})))
    pipe = RequestPipeline(SettingsStub(), AuthStub(token=""))
    with pytest.raises(AuthenticationError):
        asyncio.run(pipe.post(CHAT, {}))
    assert "url" not in captured


def test_post_requires_app_id(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, Resp(200, {})))
    pipe = RequestPipeline(SettingsStub(), AuthStub(app_id=""))
    with pytest.raises(ValidationError) as exc:
        asyncio.run(pipe.post(CHAT, {}))
    assert exc.value.record.category == ErrorCategory.VALIDATION
    assert "url" not in captured


def test_post_success(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, Resp(200, {"object": {"a": 1}})))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    data = asyncio.run(pipe.post(OBJECT, {"model": "m"}))
    assert data == {"object": {"a": 1}}
    assert captured["url"] == "https://api.test/ai/game-1/v1/generateObject"
    assert captured["headers"]["Authorization"] == "Bearer tok-123"
    assert captured["timeout"] == 1.0


def test_post_classifies_non_200(monkeypatch):
    captured = {}
    resp = Resp(402, {"error": {"code": "INSUFFICIENT_CREDITS", "message": "top up"}})
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, resp))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    with pytest.raises(BusinessError) as exc:
        asyncio.run(pipe.post(CHAT, {}))
    assert exc.value.code == "INSUFFICIENT_CREDITS"
    assert exc.value.record.category == ErrorCategory.CREDIT


def test_post_unparseable_body(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, Resp(200, None, text="oops")))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    with pytest.raises(BusinessError) as exc:
        asyncio.run(pipe.post(CHAT, {}))
    assert exc.value.code == ErrorCode.INTERNAL_ERROR
    assert exc.value.record.retryable is True


def test_post_timeout_is_network_error(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, error=httpx.ReadTimeout("slow")))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    with pytest.raises(NetworkError) as exc:
        asyncio.run(pipe.post(CHAT, {}))
    assert exc.value.code == ErrorCode.NETWORK_ERROR
    assert exc.value.message == "Request timed out"
    assert exc.value.record.retryable is True


def test_stream_callbacks_in_order(monkeypatch):
    captured = {}
    chunks = [
        'data: {"type":"text-delta","delta":"He"}\n\n',
        'data: {"type":"text-delta","delta":"llo"}\n\n',
        "data: [DONE]\n\n",
    ]
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, stream_resp=FakeStreamResponse(chunks)))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    events = []
    outcome = asyncio.run(
        pipe.stream(
            CHAT_STREAM,
            {"model": "m"},
            on_chunk=lambda t: events.append(("chunk", t)),
            on_complete=lambda t: events.append(("complete", t)),
        )
    )
    assert events == [("chunk", "He"), ("chunk", "llo"), ("complete", "Hello")]
    assert outcome.success
    assert outcome.text == "Hello"
    assert captured["payload"]["stream"] is True
    assert captured["timeout"] == 2.0


def test_stream_handles_split_lines_and_mixed_shapes(monkeypatch):
    captured = {}
    chunks = [
        'data: {"type":"text-',
        'delta","delta":"A"}\n\ndata: {"choices":[{"delta":{"con',
        'tent":"B"}}]}\n\ndata: garbage\n\ndata: {"type":"finish"}\n\n',
        'data: {"type":"text-delta","delta":"C"}',
    ]
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, stream_resp=FakeStreamResponse(chunks)))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    seen = []
    outcome = asyncio.run(pipe.stream(CHAT_STREAM, {"model": "m"}, on_chunk=seen.append))
    assert seen == ["A", "B", "C"]
    assert outcome.text == "ABC"


def test_stream_non_200_reports_at_completion(monkeypatch):
    captured = {}
    body = b'{"code": "PROVIDER_UNAVAILABLE", "message": "down"}'
    resp = FakeStreamResponse([], status_code=503, body=body)
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, stream_resp=resp))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    completed = []
    outcome = asyncio.run(pipe.stream(CHAT_STREAM, {}, on_complete=completed.append))
    assert completed == [""]
    assert outcome.error.code == "PROVIDER_UNAVAILABLE"
    assert outcome.error.retry_delay == 30


def test_stream_mid_stream_error_keeps_partial_text(monkeypatch):
    captured = {}
    chunks = [
        'data: {"type":"text-delta","delta":"Par"}\n\n',
        'data: {"type":"error","error":{"code":"PROVIDER_ERROR","message":"boom"}}\n\n',
        'data: {"type":"text-delta","delta":"ignored"}\n\n',
    ]
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, stream_resp=FakeStreamResponse(chunks)))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    completed = []
    outcome = asyncio.run(pipe.stream(CHAT_STREAM, {}, on_complete=completed.append))
    assert completed == ["Par"]
    assert outcome.text == "Par"
    assert outcome.error.code == "PROVIDER_ERROR"


def test_stream_chunk_callback_error_still_completes(monkeypatch):
    captured = {}
    chunks = [
        'data: {"type":"text-delta","delta":"He"}\n\n',
        'data: {"type":"text-delta","delta":"llo"}\n\n',
    ]
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, stream_resp=FakeStreamResponse(chunks)))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    completed = []

    def explode(text):
        raise RuntimeError("ui gone")

    with pytest.raises(RuntimeError):
        asyncio.run(pipe.stream(CHAT_STREAM, {}, on_chunk=explode, on_complete=completed.append))
    assert completed == ["He"]


def test_stream_without_token_completes_once(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, stream_resp=FakeStreamResponse([])))
    pipe = RequestPipeline(SettingsStub(), AuthStub(token=""))
    completed = []
    outcome = asyncio.run(pipe.stream(CHAT_STREAM, {}, on_complete=completed.append))
    assert completed == [""]
    assert outcome.error.code == ErrorCode.NOT_AUTHENTICATED
    assert "url" not in captured


def test_stream_connect_error(monkeypatch):
    captured = {}
    monkeypatch.setattr("httpx.AsyncClient", make_client(captured, error=httpx.ConnectError("refused")))
    pipe = RequestPipeline(SettingsStub(), AuthStub())
    outcome = asyncio.run(pipe.stream(CHAT_STREAM, {}))
    assert outcome.error.code == ErrorCode.NETWORK_ERROR
    assert outcome.error.message == "refused"
