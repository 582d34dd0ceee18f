"""对话历史模型。

ConversationHistory 是一个有序、可变的消息日志：

- 至多一条 system 消息，且一旦存在必定位于下标 0。
- 支持追加、批量追加、按条回退、按“一问一答”回退、重置与快照持久化。

该结构不是并发安全的：同一个历史对象不要在多个任务里同时修改。
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

from playkit_core.infrastructure.logging.logger import get_logger

from .models import ROLES, Message

log = get_logger("conversation")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_iso(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None


class ConversationHistory:
    def __init__(self, system_prompt: str = "", model_name: str = ""):
        self._messages: List[Message] = []
        self._system_prompt = ""
        self.model_name = model_name
        self.created_at = _utcnow()
        self.updated_at = self.created_at
        if system_prompt:
            self.set_system_prompt(system_prompt)

    # ---- 只读视图 ----

    @property
    def messages(self) -> List[Message]:
        return list(self._messages)

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def __len__(self) -> int:
        return len(self._messages)

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def to_payload(self) -> List[Dict[str, str]]:
        return [m.to_payload() for m in self._messages]

    # ---- 修改 ----

    def set_system_prompt(self, text: str) -> None:
        """移除所有已有 system 消息，非空时在下标 0 插入新的。"""

        self._messages = [m for m in self._messages if m.role != "system"]
        self._system_prompt = text or ""
        if text:
            self._messages.insert(0, Message(role="system", content=text))
        self._touch()

    def append(self, role: str, content: str) -> bool:
        """追加一条消息；角色或内容为空（或角色未知）时拒绝并返回 False。

        system 角色会走 set_system_prompt，以保持“至多一条且在首位”的约束。
        """

        if not role or not content:
            log.warning("Rejected message with empty role or content")
            return False
        if role not in ROLES:
            log.warning("Rejected message with unknown role %r", role)
            return False
        if role == "system":
            self.set_system_prompt(content)
            return True
        self._messages.append(Message(role=role, content=content))
        self._touch()
        return True

    def append_message(self, message: Message) -> bool:
        return self.append(message.role, message.content)

    def extend(self, messages: Iterable[Message]) -> int:
        """批量追加，返回实际追加的条数。"""

        return sum(1 for m in messages if self.append(m.role, m.content))

    def append_exchange(self, user_text: str, assistant_text: str) -> bool:
        if not user_text or not assistant_text:
            log.warning("Rejected exchange with empty user or assistant text")
            return False
        self.append("user", user_text)
        self.append("assistant", assistant_text)
        return True

    def revert_exchanges(self, count: int) -> int:
        """回退最近的 count 组“一问一答”，返回实际回退的组数。

        每一轮找到最后一条 assistant 消息及其之前最近的一条 user 消息，
        两条一起删除；找不到完整的一组时提前停止。
        """

        reverted = 0
        while reverted < count:
            assistant_idx = self._rfind("assistant", len(self._messages))
            if assistant_idx < 0:
                break
            user_idx = self._rfind("user", assistant_idx)
            if user_idx < 0:
                break
            del self._messages[assistant_idx]
            del self._messages[user_idx]
            reverted += 1
        if reverted:
            self._touch()
        return reverted

    def revert_messages(self, count: int) -> int:
        """无视角色配对，直接删除末尾 count 条消息，返回实际删除条数。"""

        removed = max(0, min(count, len(self._messages)))
        if removed:
            del self._messages[-removed:]
            self._touch()
        return removed

    def reset(self) -> None:
        """清空历史；如果之前设置过 system prompt，则重新放回。"""

        self._messages = []
        if self._system_prompt:
            self._messages.append(Message(role="system", content=self._system_prompt))
        self._touch()

    def _rfind(self, role: str, before: int) -> int:
        for idx in range(before - 1, -1, -1):
            if self._messages[idx].role == role:
                return idx
        return -1

    def _touch(self) -> None:
        self.updated_at = _utcnow()

    # ---- 持久化 ----

    def serialize(self) -> Dict[str, Any]:
        return {
            "systemPrompt": self._system_prompt,
            "modelName": self.model_name,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "totalMessages": len(self._messages),
            "history": self.to_payload(),
        }

    @classmethod
    def deserialize(cls, snapshot: Dict[str, Any]) -> "ConversationHistory":
        """从快照重建；history 中的 system 条目被忽略，以 systemPrompt 字段为准。"""

        history = cls(model_name=snapshot.get("modelName") or "")
        history.set_system_prompt(snapshot.get("systemPrompt") or "")
        for item in snapshot.get("history") or []:
            if not isinstance(item, dict) or item.get("role") == "system":
                continue
            history.append(item.get("role") or "", item.get("content") or "")
        history.created_at = _parse_iso(snapshot.get("createdAt")) or history.created_at
        history.updated_at = _parse_iso(snapshot.get("updatedAt")) or history.updated_at
        return history


class ConversationStore(Protocol):
    """对话快照的持久化接口。"""

    def save_snapshot(self, conversation_id: str, snapshot: Dict[str, Any]) -> None:
        ...

    def load_snapshot(self, conversation_id: str) -> Dict[str, Any]:
        ...

    def list_snapshots(self) -> List[str]:
        ...

    def delete_snapshot(self, conversation_id: str) -> None:
        ...
