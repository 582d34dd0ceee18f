"""JSON Schema 注册表。

结构化输出按“名字”引用 schema，名字到 schema 文本的映射由 SchemaRegistry 维护。

- SchemaEntry.is_valid 每次按需计算（能否解析为 JSON 对象），不做缓存。
- 重名：插入时允许，查找时“后写入者胜出”，并记录一条 WARNING。
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import yaml

from playkit_core.infrastructure.logging.logger import get_logger

log = get_logger("schemas")


@dataclass(frozen=True)
class SchemaEntry:
    name: str
    description: str
    json_schema_text: str

    def parse(self) -> Optional[Dict[str, Any]]:
        """解析 schema 文本；不是 JSON 对象时返回 None。"""

        return parse_schema_text(self.json_schema_text)

    @property
    def is_valid(self) -> bool:
        return self.parse() is not None


def parse_schema_text(text: str) -> Optional[Dict[str, Any]]:
    if not text:
        return None
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError):
        return None
    return data if isinstance(data, dict) else None


class SchemaRegistry:
    def __init__(self, entries: Iterable[SchemaEntry] = ()):
        self._entries: List[SchemaEntry] = list(entries)

    def add(self, name: str, schema: Union[str, Mapping[str, Any]], description: str = "") -> SchemaEntry:
        """注册一个 schema；schema 可以是 JSON 文本或 dict。"""

        text = schema if isinstance(schema, str) else json.dumps(schema, ensure_ascii=False)
        entry = SchemaEntry(name=name, description=description, json_schema_text=text)
        self._entries.append(entry)
        return entry

    def get(self, name: str) -> Optional[SchemaEntry]:
        matches = [e for e in self._entries if e.name == name]
        if not matches:
            return None
        if len(matches) > 1:
            log.warning("Schema %r registered %d times, using the last one", name, len(matches))
        return matches[-1]

    def names(self) -> List[str]:
        seen: Dict[str, None] = {}
        for entry in self._entries:
            seen.setdefault(entry.name, None)
        return list(seen)

    def __len__(self) -> int:
        return len(self.names())

    def __contains__(self, name: object) -> bool:
        return any(e.name == name for e in self._entries)

    @classmethod
    def from_mapping(cls, items: Iterable[Mapping[str, Any]]) -> "SchemaRegistry":
        """从 [{name, description, schema}, ...] 构造。"""

        registry = cls()
        for item in items:
            name = item.get("name")
            if not name:
                log.warning("Skipping schema entry without a name")
                continue
            schema = item.get("schema", "")
            registry.add(name, schema if schema is not None else "", item.get("description") or "")
        return registry

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "SchemaRegistry":
        """从 YAML 或 JSON 文件加载；文件顶层可以是列表，也可以是 {schemas: [...]}。"""

        p = Path(path).expanduser()
        text = p.read_text(encoding="utf-8")
        if p.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
        if isinstance(data, dict):
            data = data.get("schemas") or []
        if not isinstance(data, list):
            raise ValueError(f"Schema file {p} must contain a list of schema entries")
        return cls.from_mapping(data)
