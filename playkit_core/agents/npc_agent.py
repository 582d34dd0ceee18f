"""NPC 对话封装。

在 ChatSession 之上为单个角色维护对话历史：

- 角色设定作为 system 消息固定在历史首位；
- talk / talk_stream / talk_structured 先追加用户消息，再调用服务，
  成功后追加助手回复；失败时撤回刚追加的用户消息，保持历史成对；
- 同一个 NPC 同时只允许一次对话，重叠调用直接返回 NPC_BUSY；
- 通过 ConversationStore 保存/恢复历史快照。
"""

import json
from dataclasses import dataclass
from typing import Callable, Optional

from playkit_core.domain.conversation import ConversationHistory, ConversationStore
from playkit_core.domain.errors import ErrorCode, make_error
from playkit_core.domain.events import Signal
from playkit_core.domain.exceptions import BusinessError
from playkit_core.domain.results import ObjectResult, Result
from playkit_core.infrastructure.logging.logger import get_logger
from playkit_core.providers.chat_client import ChatSession
from playkit_core.providers.object_client import StructuredOutputSession

log = get_logger("npc")


@dataclass
class NpcConfig:
    character_prompt: str = ""
    model: Optional[str] = None
    temperature: Optional[float] = None  # None 时使用全局默认 0.7
    max_tokens: Optional[int] = None
    conversation_id: str = "npc"  # 快照保存时使用的键


class NpcAgent:
    def __init__(
        self,
        chat: ChatSession,
        objects: Optional[StructuredOutputSession] = None,
        config: Optional[NpcConfig] = None,
        store: Optional[ConversationStore] = None,
    ):
        self._chat = chat
        self._objects = objects
        self._config = config or NpcConfig()
        self._store = store
        self._talking = False
        self.history = ConversationHistory(
            system_prompt=self._config.character_prompt,
            model_name=self._config.model or chat.model,
        )
        self.talk_started = Signal("talk_started")
        self.talk_finished = Signal("talk_finished")
        self.history_changed = Signal("history_changed")

    @property
    def is_talking(self) -> bool:
        return self._talking

    @property
    def config(self) -> NpcConfig:
        return self._config

    def set_character_prompt(self, text: str) -> None:
        self._config.character_prompt = text
        self.history.set_system_prompt(text)
        self.history_changed.emit(self.history)

    # ---- 对话 ----

    async def talk(self, text: str) -> Result[str]:
        precheck = self._begin(text)
        if precheck is not None:
            return precheck
        try:
            result = await self._chat.complete(
                self.history,
                model=self._config.model,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
            )
        finally:
            self._talking = False
        return self._finish(result, result.value if result.success else None)

    async def talk_stream(self, text: str, on_chunk: Optional[Callable[[str], None]] = None) -> Result[str]:
        """流式对话；on_chunk 逐段回调，完整回复在返回值与 talk_finished 中给出。"""

        precheck = self._begin(text)
        if precheck is not None:
            return precheck
        try:
            result = await self._chat.complete_streamed(
                self.history,
                on_chunk=on_chunk,
                model=self._config.model,
                temperature=self._config.temperature,
                max_tokens=self._config.max_tokens,
            )
        finally:
            self._talking = False
        return self._finish(result, result.value if result.success else None)

    async def talk_structured(self, schema_name: str, text: str) -> ObjectResult:
        """让 NPC 按指定 schema 返回结构化回复（携带完整历史）。"""

        if self._objects is None:
            return ObjectResult.fail(make_error(ErrorCode.MISSING_CONFIGURATION, "No structured output session"))
        precheck = self._begin(text)
        if precheck is not None:
            return ObjectResult.fail(precheck.error)
        try:
            result = await self._objects.generate_by_name_with_history(
                schema_name,
                self.history,
                model=self._config.model,
                max_tokens=self._config.max_tokens,
            )
        finally:
            self._talking = False
        reply = json.dumps(result.object_data, ensure_ascii=False) if result.success else None
        return self._finish(result, reply, fail=ObjectResult.fail)

    def _begin(self, text: str) -> Optional[Result[str]]:
        if self._talking:
            return Result.failure(ErrorCode.NPC_BUSY)
        if not text:
            return Result.failure(ErrorCode.MISSING_REQUIRED_FIELD, "Message is empty", field="text")
        self._talking = True
        self.history.append("user", text)
        self.history_changed.emit(self.history)
        self.talk_started.emit(text)
        return None

    def _finish(self, result, reply: Optional[str], fail=Result.fail):
        if result.success and not reply:
            result = fail(make_error(ErrorCode.INVALID_RESPONSE, "Failed to get response"))
        if result.success:
            self.history.append("assistant", reply)
        else:
            # 撤回本轮追加的用户消息
            self.history.revert_messages(1)
            log.warning("NPC talk failed", extra={"extra": {"code": result.error_code}})
        self.history_changed.emit(self.history)
        self.talk_finished.emit(result)
        return result

    # ---- 历史管理 ----

    def revert_exchanges(self, count: int = 1) -> int:
        reverted = self.history.revert_exchanges(count)
        if reverted:
            self.history_changed.emit(self.history)
        return reverted

    def revert_messages(self, count: int) -> int:
        removed = self.history.revert_messages(count)
        if removed:
            self.history_changed.emit(self.history)
        return removed

    def reset(self) -> None:
        self.history.reset()
        self.history_changed.emit(self.history)

    def save_history(self, conversation_id: Optional[str] = None) -> Result[str]:
        if self._store is None:
            return Result.failure(ErrorCode.MISSING_CONFIGURATION, "No conversation store configured")
        key = conversation_id or self._config.conversation_id
        try:
            self._store.save_snapshot(key, self.history.serialize())
        except BusinessError as e:
            return Result.from_exception(e)
        return Result.ok(key)

    def load_history(self, conversation_id: Optional[str] = None) -> Result[ConversationHistory]:
        if self._store is None:
            return Result.failure(ErrorCode.MISSING_CONFIGURATION, "No conversation store configured")
        key = conversation_id or self._config.conversation_id
        try:
            snapshot = self._store.load_snapshot(key)
        except BusinessError as e:
            return Result.from_exception(e)
        self.history = ConversationHistory.deserialize(snapshot)
        self._config.character_prompt = self.history.system_prompt
        self.history_changed.emit(self.history)
        return Result.ok(self.history)
