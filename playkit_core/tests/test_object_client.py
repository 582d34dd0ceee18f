import asyncio

from playkit_core.domain.errors import ErrorCode, make_error
from playkit_core.domain.exceptions import BusinessError
from playkit_core.domain.models import Message
from playkit_core.domain.schemas import SchemaRegistry
from playkit_core.providers.object_client import StructuredOutputSession
from playkit_core.providers.pipeline import RequestPipeline
from playkit_core.providers.registry import OBJECT


class SettingsStub:
    default_temperature = 0.7
    default_object_model = "obj-model"


class SpyTransport:
    def __init__(self, response=None, error=None):
        self.calls = []
        self._response = response
        self._error = error
        self._builder = RequestPipeline(SettingsStub(), None)

    def build_body(self, req, *, stream=False):
        return self._builder.build_body(req, stream=stream)

    async def post(self, endpoint, body):
        self.calls.append((endpoint, body))
        if self._error is not None:
            raise self._error
        return self._response


ITEM_SCHEMA = '{"type": "object", "properties": {"name": {"type": "string"}}}'


def _registry():
    reg = SchemaRegistry()
    reg.add("item", ITEM_SCHEMA, "A game item")
    reg.add("broken", "not json")
    return reg


def test_unknown_schema_fails_without_network():
    transport = SpyTransport(response={"object": {}})
    session = StructuredOutputSession(transport, SettingsStub(), registry=SchemaRegistry())
    result = asyncio.run(session.generate_by_name("missing", "make a sword"))
    assert not result.success
    assert result.error_code == ErrorCode.SCHEMA_NOT_FOUND
    assert result.object_data is None
    assert transport.calls == []


def test_no_registry_fails_without_network():
    transport = SpyTransport(response={"object": {}})
    session = StructuredOutputSession(transport, SettingsStub())
    result = asyncio.run(session.generate_by_name("item", "make a sword"))
    assert result.error_code == ErrorCode.NO_SCHEMA_REGISTRY
    assert transport.calls == []


def test_invalid_registered_schema_fails_without_network():
    transport = SpyTransport(response={"object": {}})
    session = StructuredOutputSession(transport, SettingsStub(), registry=_registry())
    result = asyncio.run(session.generate_by_name("broken", "x"))
    assert result.error_code == ErrorCode.INVALID_SCHEMA
    assert transport.calls == []


def test_generate_by_name_unwraps_object():
    transport = SpyTransport(response={"object": {"name": "Excalibur"}, "finishReason": "stop"})
    session = StructuredOutputSession(transport, SettingsStub(), registry=_registry())
    result = asyncio.run(session.generate_by_name("item", "make a sword", max_tokens=200))
    assert result.success
    assert result.object_data == {"name": "Excalibur"}
    assert result.raw["finishReason"] == "stop"
    endpoint, body = transport.calls[0]
    assert endpoint is OBJECT
    assert body["model"] == "obj-model"
    assert body["prompt"] == "make a sword"
    assert body["schemaName"] == "item"
    assert body["schemaDescription"] == "A game item"
    assert body["maxTokens"] == 200
    assert body["schema"]["type"] == "object"


def test_generate_with_history_sends_messages():
    transport = SpyTransport(response={"object": {"name": "Shield"}})
    session = StructuredOutputSession(transport, SettingsStub(), registry=_registry())
    history = [Message("user", "I need armor")]
    result = asyncio.run(session.generate_by_name_with_history("item", history))
    assert result.success
    body = transport.calls[0][1]
    assert body["messages"] == [{"role": "user", "content": "I need armor"}]
    assert "prompt" not in body


def test_generate_with_empty_history_fails_locally():
    transport = SpyTransport(response={"object": {}})
    session = StructuredOutputSession(transport, SettingsStub(), registry=_registry())
    result = asyncio.run(session.generate_by_name_with_history("item", []))
    assert result.error_code == ErrorCode.EMPTY_HISTORY
    assert transport.calls == []


def test_inline_schema():
    transport = SpyTransport(response={"object": [1, 2]})
    session = StructuredOutputSession(transport, SettingsStub())
    result = asyncio.run(session.generate_with_inline_schema('{"type": "array"}', "numbers", schema_name="nums"))
    assert result.success
    assert result.object_data == [1, 2]
    assert transport.calls[0][1]["schemaName"] == "nums"


def test_inline_schema_must_be_object():
    transport = SpyTransport(response={"object": {}})
    session = StructuredOutputSession(transport, SettingsStub())
    result = asyncio.run(session.generate_with_inline_schema("[1, 2]", "numbers"))
    assert result.error_code == ErrorCode.INVALID_SCHEMA
    assert transport.calls == []


def test_missing_object_field_is_failure():
    session = StructuredOutputSession(SpyTransport(response={"text": "hi"}), SettingsStub(), registry=_registry())
    result = asyncio.run(session.generate_by_name("item", "x"))
    assert result.error_code == ErrorCode.INVALID_RESPONSE


def test_remote_failure_passes_code_through():
    err = BusinessError.from_record(make_error(ErrorCode.PROVIDER_RATE_LIMIT, "slow down"))
    session = StructuredOutputSession(SpyTransport(error=err), SettingsStub(), registry=_registry())
    result = asyncio.run(session.generate_by_name("item", "x"))
    assert result.error_code == ErrorCode.PROVIDER_RATE_LIMIT
    assert result.error == "slow down"
    assert result.error_record.retry_delay == 60
