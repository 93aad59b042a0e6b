"""Descriptor repository.

Purpose
-------
Keep the in-memory mapping of full module name → :class:`ModuleDescriptor`
and rebuild it from the installed units on demand.

What ``rescan`` does
--------------------
1. Enumerate installed units and keep those depending on the core runtime.
2. Decode each descriptor; broken ones are logged and skipped.
3. Group the concrete (non-meta) modules by bare name, by
   ``(name, architecture)`` and by ``(name, major version[, architecture])``.
4. For every group whose synthesized full name is free, generate a Meta
   descriptor listing the group members best-first (highest version, then
   the preferred architecture). The loader forwards such a meta module to the
   first member that loads. Generated descriptors are also written as JSON into
   the generated directory so shells can inspect them.
5. Persist a summary of all descriptors through the key-value store.

Synthesized descriptors never shadow a module with the same full name.
"""

from __future__ import annotations

import fnmatch
import json
from pathlib import Path
from typing import Iterable, Mapping

from ..domain.descriptor import ModuleDescriptor, ModuleType, decode_descriptor
from ..domain.errors import InvalidDescriptor, NotFound
from ..domain.names import ModuleName, version_key
from ..observability import log_debug, log_error, log_info, make_event
from .ports import DescriptorDecoder, KeyValueStore, UnitEnumerator

_GENERATED_DESCRIPTION = "Generated meta module"


class DescriptorRepository:
    """In-memory descriptor table with scan, synthesis and cache support."""

    def __init__(
        self,
        *,
        enumerator: UnitEnumerator,
        decoder: DescriptorDecoder,
        cache: KeyValueStore,
        core_module: str,
        generated_path: Path | None = None,
        preferred_architecture: str = "x64",
    ) -> None:
        self._enumerator = enumerator
        self._decoder = decoder
        self._cache = cache
        self.core_module = core_module
        self.generated_path = generated_path
        self.preferred_architecture = preferred_architecture
        self._descriptors: dict[str, ModuleDescriptor] = {}
        self._generated: set[str] = set()

    def __contains__(self, full_name: object) -> bool:
        return full_name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def get(self, full_name: str) -> ModuleDescriptor | None:
        return self._descriptors.get(full_name)

    def require(self, full_name: str) -> ModuleDescriptor:
        descriptor = self._descriptors.get(full_name)
        if descriptor is None:
            raise NotFound(f"No module descriptor named '{full_name}' is available", module=full_name)
        return descriptor

    def is_generated(self, full_name: str) -> bool:
        return full_name in self._generated

    def add(self, descriptor: ModuleDescriptor) -> None:
        """Register *descriptor* directly (used by tests and embedding hosts)."""

        self._descriptors[descriptor.full_name] = descriptor
        self._generated.discard(descriptor.full_name)

    def list_available(self, pattern: str | None = None, *, include_generated: bool = True) -> list[ModuleDescriptor]:
        """Return descriptors whose full name matches the shell-style *pattern*."""

        pattern = pattern or "*"
        return [
            descriptor
            for name, descriptor in sorted(self._descriptors.items())
            if fnmatch.fnmatchcase(name, pattern) and (include_generated or name not in self._generated)
        ]

    def rescan(self) -> None:
        """Rebuild the descriptor table from the installed units.

        Why
        ----
        Units are added and deleted outside the session; a rescan is the only
        point where the table, the generated meta modules and the cache are
        brought back in line with the disk.

        Side Effects
        ------------
        Writes generated meta descriptors below ``generated_path``, saves the
        cache and emits ``descriptor_invalid`` (per broken unit) and
        ``rescan_complete`` events.
        """

        descriptors: dict[str, ModuleDescriptor] = {}
        for unit in self._enumerator.enumerate():
            if not unit.depends_on_core:
                log_debug("unit_skipped", **make_event(unit.full_name, str(unit.base_directory), {"reason": "core"}))
                continue
            try:
                descriptor = self._decoder.decode(unit.descriptor_path, full_name=unit.full_name)
            except (InvalidDescriptor, NotFound) as exc:
                log_error("descriptor_invalid", **make_event(unit.full_name, str(unit.descriptor_path), {"error": str(exc)}))
                continue
            descriptors[descriptor.full_name] = descriptor

        generated = synthesize_meta_descriptors(
            descriptors.values(),
            core_module=self.core_module,
            preferred_architecture=self.preferred_architecture,
        )
        for descriptor in generated:
            descriptors[descriptor.full_name] = descriptor
            self._write_generated(descriptor)

        self._descriptors = descriptors
        self._generated = {descriptor.full_name for descriptor in generated}
        self.save_cache()
        log_info("rescan_complete", module=None, path=None, modules=len(descriptors), generated=len(generated))

    def save_cache(self) -> None:
        summary: dict[str, object] = {}
        for name, descriptor in self._descriptors.items():
            entry = descriptor.to_mapping()
            entry["ModuleBase"] = str(descriptor.module_base) if descriptor.module_base else None
            entry["Generated"] = name in self._generated
            summary[name] = entry
        self._cache.save(summary)

    def load_cache(self) -> bool:
        """Populate the table from the cache; return ``False`` when it is empty."""

        data = self._cache.load()
        if not data:
            return False
        descriptors: dict[str, ModuleDescriptor] = {}
        generated: set[str] = set()
        for name, entry in data.items():
            if not isinstance(entry, Mapping):
                raise InvalidDescriptor(f"Cache entry for '{name}' is not a mapping", module=name)
            payload = dict(entry)
            base = payload.pop("ModuleBase", None)
            if payload.pop("Generated", False):
                generated.add(name)
            descriptors[name] = decode_descriptor(name, payload, module_base=Path(base) if base else None)
        self._descriptors = descriptors
        self._generated = generated
        log_debug("cache_loaded", module=None, path=None, modules=len(descriptors))
        return True

    def load_patch(self, descriptor: ModuleDescriptor, reference: str) -> ModuleDescriptor:
        """Decode the ``MergeModules`` entry *reference* of *descriptor*.

        Relative references are resolved against the descriptor's base
        directory; the patch is decoded under the descriptor's own full name.
        """

        path = Path(reference)
        if not path.is_absolute() and descriptor.module_base is not None:
            path = descriptor.module_base / path
        if not path.is_file():
            raise NotFound(f"Merge module '{reference}' of '{descriptor.full_name}' not found", module=descriptor.full_name)
        return self._decoder.decode(path, full_name=descriptor.full_name)

    def forget(self, full_name: str) -> None:
        self._descriptors.pop(full_name, None)
        self._generated.discard(full_name)

    def _write_generated(self, descriptor: ModuleDescriptor) -> None:
        if self.generated_path is None:
            return
        target = self.generated_path / descriptor.full_name / f"{descriptor.full_name}.json"
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps(descriptor.to_mapping(), indent=2), encoding="utf-8")
        log_debug("meta_synthesized", **make_event(descriptor.full_name, str(target)))


def synthesize_meta_descriptors(
    descriptors: Iterable[ModuleDescriptor],
    *,
    core_module: str,
    preferred_architecture: str = "x64",
) -> list[ModuleDescriptor]:
    """Generate short-hand meta descriptors for the concrete *descriptors*.

    Examples
    --------
    >>> concrete = [
    ...     decode_descriptor("NotepadPlusPlus-x64", {}),
    ...     decode_descriptor("NotepadPlusPlus-x86", {}),
    ... ]
    >>> [meta.full_name for meta in synthesize_meta_descriptors(concrete, core_module="EnvironmentModules")]
    ['NotepadPlusPlus']
    """

    existing = {descriptor.full_name: descriptor for descriptor in descriptors}
    concrete = [descriptor for descriptor in existing.values() if descriptor.module_type is not ModuleType.META]

    groups: dict[str, list[ModuleDescriptor]] = {}
    for descriptor in concrete:
        for alias in _group_names(descriptor.module_name):
            groups.setdefault(alias, []).append(descriptor)

    def architecture_rank(descriptor: ModuleDescriptor) -> tuple[int, str]:
        architecture = descriptor.module_name.architecture
        rank = 0 if architecture == preferred_architecture else 1 if architecture is None else 2
        return rank, descriptor.full_name

    generated: list[ModuleDescriptor] = []
    for alias, members in sorted(groups.items()):
        if alias in existing:
            continue
        ordered = sorted(members, key=architecture_rank)
        ordered.sort(key=lambda member: version_key(member.module_name.version), reverse=True)
        generated.append(
            decode_descriptor(
                alias,
                {
                    "ModuleType": ModuleType.META.value,
                    "DirectUnload": True,
                    "Dependencies": [{"Name": member.full_name} for member in ordered],
                    "RequiredModules": [core_module],
                    "Description": _GENERATED_DESCRIPTION,
                },
            )
        )
    return generated


def _group_names(name: ModuleName) -> list[str]:
    """Return the short-hand names a concrete module can be reached by.

    Examples
    --------
    >>> from lib_environment_modules.domain.names import parse_module_name
    >>> _group_names(parse_module_name("Aspell-2_1-x86"))
    ['Aspell', 'Aspell-x86', 'Aspell-2', 'Aspell-2-x86']
    """

    aliases = [name.name]
    if name.architecture:
        aliases.append(f"{name.name}-{name.architecture}")
    if name.major_version:
        aliases.append(f"{name.name}-{name.major_version}")
        if name.architecture:
            aliases.append(f"{name.name}-{name.major_version}-{name.architecture}")
    return aliases

