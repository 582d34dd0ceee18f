import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from uuid import uuid4

from playkit_core.config.settings import settings
from playkit_core.domain.conversation import ConversationStore
from playkit_core.domain.errors import ErrorCode
from playkit_core.domain.exceptions import BusinessError

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.\-]+$")


class JsonConversationStore(ConversationStore):
    """每个会话一份 JSON 快照：<root>/conversations/<conversation_id>.json。"""

    def __init__(self, root: Optional[Union[str, Path]] = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._conv_root = self._root / "conversations"
        self._conv_root.mkdir(parents=True, exist_ok=True)

    def save_snapshot(self, conversation_id: str, snapshot: Dict[str, Any]) -> None:
        path = self._path(conversation_id)
        tmp_path = self._conv_root / f"{conversation_id}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(snapshot, ensure_ascii=False, indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            raise BusinessError(code=ErrorCode.STORE_WRITE_ERROR, message=str(e))

    def load_snapshot(self, conversation_id: str) -> Dict[str, Any]:
        path = self._path(conversation_id)
        if not path.exists():
            raise BusinessError(code=ErrorCode.SNAPSHOT_NOT_FOUND, message=conversation_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BusinessError(code=ErrorCode.STORE_READ_ERROR, message=str(e))
        if not isinstance(data, dict):
            raise BusinessError(code=ErrorCode.STORE_READ_ERROR, message=f"{conversation_id} is not a snapshot")
        return data

    def list_snapshots(self) -> List[str]:
        return sorted(p.stem for p in self._conv_root.glob("*.json"))

    def delete_snapshot(self, conversation_id: str) -> None:
        path = self._path(conversation_id)
        if not path.exists():
            raise BusinessError(code=ErrorCode.SNAPSHOT_NOT_FOUND, message=conversation_id)
        try:
            path.unlink()
        except OSError as e:
            raise BusinessError(code=ErrorCode.STORE_WRITE_ERROR, message=str(e))

    def _path(self, conversation_id: str) -> Path:
        if not conversation_id or not _SAFE_ID.match(conversation_id):
            raise BusinessError(
                code=ErrorCode.INVALID_PARAMETERS,
                message=f"Invalid conversation id: {conversation_id!r}",
            )
        return self._conv_root / f"{conversation_id}.json"
