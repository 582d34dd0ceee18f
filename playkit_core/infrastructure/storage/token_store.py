"""TokenStore 的几种实现。

- MemoryTokenStore: 进程内字典，适合测试与 Web 平台的只读共享存储模拟。
- JsonFileTokenStore: 应用内 token 存储，明文 JSON 文件，原子写入。
- EncryptedFileTokenStore: 跨应用共享 token 存储，使用 Fernet 加密落盘。
"""

import base64
import hashlib
import json
import os
import platform
from pathlib import Path
from typing import Dict, Optional, Union
from uuid import uuid4

from cryptography.fernet import Fernet, InvalidToken

from playkit_core.domain.errors import ErrorCode
from playkit_core.domain.exceptions import BusinessError
from playkit_core.infrastructure.logging.logger import get_logger

log = get_logger("token_store")


class MemoryTokenStore:
    def __init__(self, initial: Optional[Dict[str, str]] = None, read_only: bool = False):
        self._data: Dict[str, str] = dict(initial or {})
        self.read_only = read_only

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.read_only:
            return
        self._data[key] = value

    def delete(self, key: str) -> None:
        if self.read_only:
            return
        self._data.pop(key, None)


class JsonFileTokenStore:
    """把键值对保存在单个 JSON 文件里。"""

    def __init__(self, path: Union[str, Path], read_only: bool = False):
        self._path = Path(path).expanduser()
        self.read_only = read_only

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> Optional[str]:
        value = self._read().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        if self.read_only:
            return
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        if self.read_only:
            return
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def _read(self) -> Dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._decode(self._path.read_bytes()))
        except (OSError, ValueError) as e:
            log.warning("Token store unreadable, treating as empty", extra={"extra": {"path": str(self._path), "error": str(e)}})
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        tmp_path = self._path.with_name(f"{self._path.name}.{uuid4().hex}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(self._encode(json.dumps(data, ensure_ascii=False)))
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise BusinessError(code=ErrorCode.STORE_WRITE_ERROR, message=str(e))

    def _encode(self, text: str) -> bytes:
        return text.encode("utf-8")

    def _decode(self, raw: bytes) -> str:
        return raw.decode("utf-8")


def derive_host_key() -> str:
    """由本机信息派生一个稳定的 Fernet 密钥（未配置 shared_token_key 时使用）。"""

    seed = f"playkit-shared:{platform.node()}:{Path.home()}".encode("utf-8")
    return base64.urlsafe_b64encode(hashlib.sha256(seed).digest()).decode("ascii")


class EncryptedFileTokenStore(JsonFileTokenStore):
    """跨应用共享的 token 文件，整个 JSON 内容用 Fernet 加密。"""

    def __init__(self, path: Union[str, Path], key: Optional[str] = None, read_only: bool = False):
        super().__init__(path, read_only=read_only)
        self._fernet = Fernet((key or derive_host_key()).encode("utf-8"))

    def _encode(self, text: str) -> bytes:
        return self._fernet.encrypt(text.encode("utf-8"))

    def _decode(self, raw: bytes) -> str:
        try:
            return self._fernet.decrypt(raw).decode("utf-8")
        except InvalidToken as e:
            raise ValueError("Shared token file cannot be decrypted (wrong key or corrupted data)") from e
