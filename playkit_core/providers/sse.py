"""流式响应（SSE 风格）的行缓冲与帧解析。

服务端按 `data: {...}\\n\\n` 逐帧推送，网络分块可能在任意位置切断一行，
因此先用 SSELineBuffer 攒齐整行，再逐行交给 parse_frame 解析。

同时支持两种帧格式：
- 增量流：{"type": "text-delta", "delta": "..."}，只有 text-delta 贡献文本；
- 旧版 choices：{"choices": [{"delta": {"content": "..."}}]}。
"""

import json
from dataclasses import dataclass
from typing import Any, List, Optional

from playkit_core.domain.errors import ErrorRecord, parse_remote_error
from playkit_core.infrastructure.logging.logger import get_logger

log = get_logger("sse")

DONE_MARKER = "[DONE]"


class SSELineBuffer:
    """跨网络分块缓冲不完整的行，只在看到换行后才吐出整行。"""

    def __init__(self):
        self._pending = ""

    def feed(self, chunk: str) -> List[str]:
        self._pending += chunk
        if "\n" not in self._pending:
            return []
        *lines, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        """流结束时取出残留的最后一行（没有换行结尾）。"""

        rest, self._pending = self._pending, ""
        return [rest.rstrip("\r")] if rest.strip() else []


@dataclass
class StreamFrame:
    """解析后的一帧：text 为本帧贡献的文本，error 为服务端中途报告的错误。"""

    text: Optional[str] = None
    error: Optional[ErrorRecord] = None
    done: bool = False


def parse_frame(line: str) -> Optional[StreamFrame]:
    """解析一行；空行、注释、无法解析或不认识的帧返回 None（静默跳过）。"""

    if not line:
        return None
    data_str = line
    if data_str.startswith("data:"):
        data_str = data_str[5:].strip()
    else:
        data_str = data_str.strip()
    if not data_str or data_str.startswith(":"):
        return None
    if data_str == DONE_MARKER:
        return StreamFrame(done=True)
    try:
        payload = json.loads(data_str)
    except json.JSONDecodeError:
        log.debug("Skipping unparseable stream frame", extra={"extra": {"frame": data_str[:200]}})
        return None
    if not isinstance(payload, dict):
        return None
    return _frame_from_payload(payload)


def _frame_from_payload(payload: dict) -> Optional[StreamFrame]:
    frame_type = payload.get("type")
    if frame_type is not None:
        if frame_type == "text-delta":
            delta = payload.get("delta")
            if delta is None:
                delta = payload.get("textDelta")
            return StreamFrame(text=delta) if isinstance(delta, str) else None
        if frame_type == "error":
            return StreamFrame(error=parse_remote_error(payload, 0))
        return None
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first: Any = choices[0]
        if not isinstance(first, dict):
            return None
        delta = first.get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        return StreamFrame(text=content) if isinstance(content, str) else None
    return None
