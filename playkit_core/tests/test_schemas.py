import json
import logging

import pytest

from playkit_core.domain.schemas import SchemaRegistry


def test_lookup_last_registration_wins(caplog):
    reg = SchemaRegistry()
    reg.add("npc", '{"type": "object", "title": "v1"}')
    reg.add("npc", {"type": "object", "title": "v2"})
    with caplog.at_level(logging.WARNING, logger="playkit_core.schemas"):
        entry = reg.get("npc")
    assert json.loads(entry.json_schema_text)["title"] == "v2"
    assert "registered 2 times" in caplog.text
    assert reg.names() == ["npc"]
    assert len(reg) == 1


def test_validity_is_computed_on_demand():
    reg = SchemaRegistry()
    good = reg.add("good", '{"type": "object"}')
    bad = reg.add("bad", "[]")
    assert good.is_valid
    assert not bad.is_valid
    assert reg.get("missing") is None
    assert "good" in reg


def test_from_yaml_file(tmp_path):
    path = tmp_path / "schemas.yaml"
    path.write_text(
        "schemas:\n"
        "  - name: quest\n"
        "    description: A quest\n"
        "    schema:\n"
        "      type: object\n"
        "      properties:\n"
        "        title: {type: string}\n"
        "  - description: no name\n",
        encoding="utf-8",
    )
    reg = SchemaRegistry.from_file(path)
    assert reg.names() == ["quest"]
    entry = reg.get("quest")
    assert entry.description == "A quest"
    assert entry.parse()["properties"]["title"]["type"] == "string"


def test_from_json_file(tmp_path):
    path = tmp_path / "schemas.json"
    path.write_text(json.dumps([{"name": "loot", "schema": '{"type": "object"}'}]), encoding="utf-8")
    assert SchemaRegistry.from_file(path).get("loot").is_valid


def test_from_file_rejects_non_list(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("just a string\n", encoding="utf-8")
    with pytest.raises(ValueError):
        SchemaRegistry.from_file(path)
