"""Key-value stores backing the descriptor cache and custom search paths."""

from __future__ import annotations

from pathlib import Path

import pytest

from lib_environment_modules.adapters.store.default import JsonFileStore, MemoryStore
from lib_environment_modules.domain.errors import InvalidDescriptor


def test_json_store_round_trip(tmp_path: Path) -> None:
    store = JsonFileStore(tmp_path / "nested" / "store.json")
    assert store.load() == {}
    store.save({"Tool": [{"Type": "DIRECTORY", "Key": "/opt"}]})
    assert JsonFileStore(tmp_path / "nested" / "store.json").load() == {"Tool": [{"Type": "DIRECTORY", "Key": "/opt"}]}


def test_json_store_rejects_garbage(tmp_path: Path) -> None:
    path = tmp_path / "store.json"
    path.write_text("not json", encoding="utf-8")
    with pytest.raises(InvalidDescriptor):
        JsonFileStore(path).load()
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(InvalidDescriptor):
        JsonFileStore(path).load()


def test_memory_store_returns_copies() -> None:
    store = MemoryStore()
    payload = {"Tool": {"ModuleType": "Default"}}
    store.save(payload)
    payload["Tool"]["ModuleType"] = "Meta"
    loaded = store.load()
    assert loaded == {"Tool": {"ModuleType": "Default"}}
    loaded["Other"] = {}
    assert "Other" not in store.load()
