"""JSON-backed key-value store.

Purpose
-------
Implement :class:`lib_environment_modules.application.ports.KeyValueStore` for
the descriptor cache and the custom search path table. The store only knows
how to load and save a whole mapping; it never interprets the content.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

from ...domain.errors import InvalidDescriptor
from ...observability import log_debug, log_error


class JsonFileStore:
    """Persist a mapping as a UTF-8 JSON document.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> store = JsonFileStore(Path(tmp.name) / "cache" / "modules.json")
    >>> store.load()
    {}
    >>> store.save({"Foo": {"ModuleType": "Default"}})
    >>> store.load()["Foo"]["ModuleType"]
    'Default'
    >>> tmp.cleanup()
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> dict[str, object]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            log_error("store_invalid", module=None, path=str(self.path), error=str(exc))
            raise InvalidDescriptor(f"Invalid JSON store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidDescriptor(f"Store {self.path} did not contain a mapping")
        log_debug("store_loaded", module=None, path=str(self.path), keys=len(data))
        return data

    def save(self, data: Mapping[str, object]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(dict(data), indent=2, sort_keys=True), encoding="utf-8")
        log_debug("store_saved", module=None, path=str(self.path), keys=len(data))


class MemoryStore:
    """In-memory store used when persistence is disabled."""

    def __init__(self, data: Mapping[str, object] | None = None) -> None:
        self._data: dict[str, object] = dict(data or {})

    def load(self) -> dict[str, object]:
        return json.loads(json.dumps(self._data))

    def save(self, data: Mapping[str, object]) -> None:
        self._data = json.loads(json.dumps(dict(data)))
