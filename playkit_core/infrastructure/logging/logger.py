import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from playkit_core.config.settings import settings


class JsonFormatter(logging.Formatter):
    def __init__(self, redact: bool = False):
        super().__init__()
        self._redact = redact

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage()
        if self._redact:
            msg = (msg or "")[:64]
        payload = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "name": record.name,
            "msg": msg,
        }
        extra = getattr(record, "extra", None)
        if isinstance(extra, dict):
            payload.update(extra)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger(cfg=settings) -> logging.Logger:
    logger = logging.getLogger("playkit_core")
    logger.setLevel(getattr(logging, str(cfg.log_level).upper(), logging.INFO))
    if any(getattr(h, "_playkit", False) for h in logger.handlers):
        return logger
    log_dir = Path(cfg.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    fh = logging.FileHandler(log_dir / "playkit.log", encoding="utf-8")
    fh.setFormatter(JsonFormatter(redact=cfg.log_redact_content))
    fh._playkit = True
    logger.addHandler(fh)
    return logger


def get_logger(name: str) -> logging.Logger:
    """返回 playkit_core 下的子 logger，例如 get_logger("auth")。"""

    return logger.getChild(name)


def mask_token(token: Optional[str]) -> str:
    if not token:
        return "<none>"
    return token[:4] + "***"


logger = setup_logger()
