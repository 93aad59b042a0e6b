"""Installed module unit enumeration.

Purpose
-------
Implement :class:`lib_environment_modules.application.ports.UnitEnumerator` by
walking the configured module paths. A unit is a directory named after the
module's full name that contains a descriptor file of the same name::

    <module path>/NotepadPlusPlus-x64/NotepadPlusPlus-x64.toml

A unit depends on the core runtime when its descriptor lists the core module
in ``RequiredModules``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, Sequence

from ...application.ports import UnitMetadata
from ...domain.errors import InvalidDescriptor, NotFound
from ...observability import log_debug, log_warning
from ..descriptors.structured import find_descriptor_file, load_mapping


class DirectoryUnitEnumerator:
    """Enumerate unit directories below each module path (sorted, first path wins)."""

    def __init__(self, module_paths: Sequence[Path], *, core_module: str) -> None:
        self.module_paths = [Path(path) for path in module_paths]
        self.core_module = core_module

    def enumerate(self) -> Iterable[UnitMetadata]:
        return list(self._iter_units())

    def _iter_units(self) -> Iterator[UnitMetadata]:
        seen: set[str] = set()
        for root in self.module_paths:
            if not root.is_dir():
                log_debug("module_path_missing", module=None, path=str(root))
                continue
            for unit_dir in sorted(child for child in root.iterdir() if child.is_dir()):
                if unit_dir.name in seen:
                    continue
                descriptor_path = find_descriptor_file(unit_dir, unit_dir.name)
                if descriptor_path is None:
                    continue
                try:
                    data = load_mapping(descriptor_path)
                except (InvalidDescriptor, NotFound) as exc:
                    log_warning("unit_unreadable", module=unit_dir.name, path=str(descriptor_path), error=str(exc))
                    continue
                seen.add(unit_dir.name)
                required = data.get("RequiredModules") or []
                if isinstance(required, str):
                    required = [required]
                yield UnitMetadata(
                    full_name=unit_dir.name,
                    depends_on_core=self.core_module in required,  # type: ignore[operator]
                    base_directory=unit_dir,
                    descriptor_path=descriptor_path,
                )
