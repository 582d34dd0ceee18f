import asyncio
import tempfile
from pathlib import Path

from playkit_core.agents.npc_agent import NpcAgent, NpcConfig
from playkit_core.domain.errors import ErrorCode, make_error
from playkit_core.domain.exceptions import BusinessError
from playkit_core.domain.schemas import SchemaRegistry
from playkit_core.infrastructure.storage.json_store import JsonConversationStore
from playkit_core.providers.chat_client import ChatSession
from playkit_core.providers.object_client import StructuredOutputSession
from playkit_core.providers.pipeline import RequestPipeline, StreamOutcome


class SettingsStub:
    default_temperature = 0.7
    default_chat_model = "chat-model"
    default_object_model = "obj-model"


class ScriptedTransport:
    """按顺序返回预设回复；回复为异常时抛出。"""

    def __init__(self, replies=(), gate=None):
        self.replies = list(replies)
        self.bodies = []
        self._gate = gate
        self._builder = RequestPipeline(SettingsStub(), None)

    def build_body(self, req, *, stream=False):
        return self._builder.build_body(req, stream=stream)

    async def post(self, endpoint, body):
        self.bodies.append(body)
        if self._gate is not None:
            await self._gate.wait()
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def stream(self, endpoint, body, on_chunk=None, on_complete=None):
        self.bodies.append(body)
        chunks = self.replies.pop(0)
        for c in chunks:
            if on_chunk:
                on_chunk(c)
        text = "".join(chunks)
        if on_complete:
            on_complete(text)
        return StreamOutcome(text=text)


def _reply(text):
    return {"choices": [{"message": {"role": "assistant", "content": text}}]}


def _npc(transport, prompt="You are a tavern keeper.", **kw):
    registry = SchemaRegistry()
    registry.add("mood", '{"type": "object", "properties": {"mood": {"type": "string"}}}')
    return NpcAgent(
        ChatSession(transport, SettingsStub()),
        objects=StructuredOutputSession(transport, SettingsStub(), registry=registry),
        config=NpcConfig(character_prompt=prompt),
        **kw,
    )


def test_talk_appends_exchange():
    transport = ScriptedTransport([_reply("Welcome, traveler!")])
    npc = _npc(transport)
    events = []
    npc.talk_started.connect(lambda text: events.append(("start", text)))
    npc.talk_finished.connect(lambda result: events.append(("finish", result.value)))
    result = asyncio.run(npc.talk("Hello"))
    assert result.value == "Welcome, traveler!"
    assert [(m.role, m.content) for m in npc.history] == [
        ("system", "You are a tavern keeper."),
        ("user", "Hello"),
        ("assistant", "Welcome, traveler!"),
    ]
    assert transport.bodies[0]["messages"][0]["role"] == "system"
    assert events == [("start", "Hello"), ("finish", "Welcome, traveler!")]


def test_failed_talk_rolls_back_user_message():
    err = BusinessError.from_record(make_error(ErrorCode.PROVIDER_UNAVAILABLE))
    npc = _npc(ScriptedTransport([err]))
    result = asyncio.run(npc.talk("Hello"))
    assert result.error_code == ErrorCode.PROVIDER_UNAVAILABLE
    assert [m.role for m in npc.history] == ["system"]
    assert not npc.is_talking


def test_overlapping_talk_is_busy():
    async def scenario():
        gate = asyncio.Event()
        npc = _npc(ScriptedTransport([_reply("one")], gate=gate))
        first = asyncio.ensure_future(npc.talk("first"))
        await asyncio.sleep(0)
        second = await npc.talk("second")
        gate.set()
        return npc, await first, second

    npc, first, second = asyncio.run(scenario())
    assert first.value == "one"
    assert second.error_code == ErrorCode.NPC_BUSY
    assert [m.content for m in npc.history][1:] == ["first", "one"]


def test_talk_stream_collects_reply():
    npc = _npc(ScriptedTransport([["Ale ", "is ", "cheap."]]))
    seen = []
    result = asyncio.run(npc.talk_stream("Prices?", on_chunk=seen.append))
    assert seen == ["Ale ", "is ", "cheap."]
    assert result.value == "Ale is cheap."
    assert npc.history.last().content == "Ale is cheap."


def test_empty_stream_reply_is_a_failure():
    npc = _npc(ScriptedTransport([[]]))
    finished = []
    npc.talk_finished.connect(finished.append)
    result = asyncio.run(npc.talk_stream("Anyone there?"))
    assert not result.success
    assert result.error_code == ErrorCode.INVALID_RESPONSE
    assert finished == [result]
    assert [m.role for m in npc.history] == ["system"]


def test_talk_structured_records_json_reply():
    npc = _npc(ScriptedTransport([{"object": {"mood": "cheerful"}}]))
    result = asyncio.run(npc.talk_structured("mood", "How are you?"))
    assert result.object_data == {"mood": "cheerful"}
    assert npc.history.last().role == "assistant"
    assert '"cheerful"' in npc.history.last().content


def test_empty_message_rejected():
    transport = ScriptedTransport()
    npc = _npc(transport)
    assert asyncio.run(npc.talk("")).error_code == ErrorCode.MISSING_REQUIRED_FIELD
    assert transport.bodies == []
    assert len(npc.history) == 1


def test_revert_and_reset():
    npc = _npc(ScriptedTransport([_reply("a"), _reply("b")]))
    asyncio.run(npc.talk("one"))
    asyncio.run(npc.talk("two"))
    assert npc.revert_exchanges(1) == 1
    assert [m.content for m in npc.history][-1] == "a"
    npc.reset()
    assert [m.role for m in npc.history] == ["system"]


def test_character_prompt_change():
    npc = _npc(ScriptedTransport())
    npc.set_character_prompt("You are a grumpy guard.")
    npc.set_character_prompt("You are a grumpy guard.")
    assert [m.content for m in npc.history] == ["You are a grumpy guard."]


def test_save_and_load_history():
    with tempfile.TemporaryDirectory() as d:
        store = JsonConversationStore(root=Path(d))
        npc = _npc(ScriptedTransport([_reply("Aye")]), store=store)
        asyncio.run(npc.talk("Got rooms?"))
        assert npc.save_history("keeper").value == "keeper"

        other = _npc(ScriptedTransport(), prompt="", store=store)
        loaded = other.load_history("keeper")
        assert loaded.success
        assert [m.content for m in other.history] == ["You are a tavern keeper.", "Got rooms?", "Aye"]
        assert other.config.character_prompt == "You are a tavern keeper."
        assert other.load_history("missing").error_code == ErrorCode.SNAPSHOT_NOT_FOUND


def test_history_without_store():
    npc = _npc(ScriptedTransport())
    assert npc.save_history().error_code == ErrorCode.MISSING_CONFIGURATION
