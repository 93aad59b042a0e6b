"""Structured descriptor file decoders.

Purpose
-------
Convert descriptor documents on disk into :class:`ModuleDescriptor` values.
Small loaders wrap ``tomllib``/``json``/``yaml.safe_load`` so error handling
and observability live in one place; the decoder picks a loader by suffix and
hands the mapping to :func:`lib_environment_modules.domain.descriptor.decode_descriptor`.

Contents
--------
* :class:`BaseFileLoader` – shared helpers for reading files and validating
  mapping outputs.
* :class:`TOMLFileLoader` / :class:`JSONFileLoader` / :class:`YAMLFileLoader`.
* :data:`DESCRIPTOR_SUFFIXES` – suffixes recognised as descriptor files.
* :class:`StructuredDescriptorDecoder` – the
  :class:`lib_environment_modules.application.ports.DescriptorDecoder` adapter.
* :func:`find_descriptor_file` – locate ``<FullName>.<suffix>`` in a unit dir.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping

try:  # Python >= 3.11
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for <3.11
    import tomli as tomllib  # type: ignore[no-redef]

import yaml

from ...domain.descriptor import ModuleDescriptor, decode_descriptor, unknown_keys
from ...domain.errors import InvalidDescriptor, NotFound
from ...observability import log_debug, log_error, log_warning


class BaseFileLoader:
    """Common utilities shared by the structured file loaders."""

    format_name = "unknown"

    def _read(self, path: str) -> bytes:
        file_path = Path(path)
        if not file_path.is_file():
            raise NotFound(f"Descriptor file not found: {path}")
        payload = file_path.read_bytes()
        log_debug("descriptor_file_read", module=None, path=path, size=len(payload))
        return payload

    @staticmethod
    def _ensure_mapping(data: object, *, path: str) -> Mapping[str, object]:
        """Ensure *data* behaves like a mapping, otherwise raise ``InvalidDescriptor``.

        Examples
        --------
        >>> BaseFileLoader._ensure_mapping({"ModuleType": "Meta"}, path="demo")
        {'ModuleType': 'Meta'}
        """

        if not isinstance(data, Mapping):
            raise InvalidDescriptor(f"File {path} did not produce a mapping")
        return data

    def _invalid(self, path: str, exc: Exception) -> InvalidDescriptor:
        log_error("descriptor_file_invalid", module=None, path=path, format=self.format_name, error=str(exc))
        return InvalidDescriptor(f"Invalid {self.format_name.upper()} in {path}: {exc}")


class TOMLFileLoader(BaseFileLoader):
    """Load TOML descriptor documents using the standard library parser."""

    format_name = "toml"

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = tomllib.loads(self._read(path).decode("utf-8"))
        except (tomllib.TOMLDecodeError, UnicodeDecodeError) as exc:
            raise self._invalid(path, exc) from exc
        return self._ensure_mapping(data, path=path)


class JSONFileLoader(BaseFileLoader):
    """Load JSON descriptor documents (also used for generated meta modules)."""

    format_name = "json"

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = json.loads(self._read(path))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise self._invalid(path, exc) from exc
        return self._ensure_mapping(data, path=path)


class YAMLFileLoader(BaseFileLoader):
    """Load YAML descriptor documents; an empty document is an empty mapping."""

    format_name = "yaml"

    def load(self, path: str) -> Mapping[str, object]:
        try:
            data = yaml.safe_load(self._read(path))
        except yaml.YAMLError as exc:
            raise self._invalid(path, exc) from exc
        return self._ensure_mapping({} if data is None else data, path=path)


_LOADERS: dict[str, BaseFileLoader] = {
    ".toml": TOMLFileLoader(),
    ".json": JSONFileLoader(),
    ".yaml": YAMLFileLoader(),
    ".yml": YAMLFileLoader(),
}

DESCRIPTOR_SUFFIXES: tuple[str, ...] = tuple(_LOADERS)


def load_mapping(path: Path) -> Mapping[str, object]:
    """Parse *path* with the loader matching its suffix."""

    loader = _LOADERS.get(path.suffix.lower())
    if loader is None:
        raise InvalidDescriptor(f"Unsupported descriptor format: {path}")
    return loader.load(str(path))  # type: ignore[attr-defined]


def find_descriptor_file(directory: Path, full_name: str) -> Path | None:
    """Return ``directory/<full_name><suffix>`` for the first supported suffix present.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> _ = (Path(tmp.name) / "Foo-1_0.json").write_text("{}", encoding="utf-8")
    >>> find_descriptor_file(Path(tmp.name), "Foo-1_0").name
    'Foo-1_0.json'
    >>> tmp.cleanup()
    """

    for suffix in DESCRIPTOR_SUFFIXES:
        candidate = directory / f"{full_name}{suffix}"
        if candidate.is_file():
            return candidate
    return None


class StructuredDescriptorDecoder:
    """Decode descriptor files; the file stem is the module full name by default."""

    def decode(self, path: Path, *, full_name: str | None = None) -> ModuleDescriptor:
        """Return the :class:`ModuleDescriptor` stored in *path*.

        Why
        ----
        Descriptors are decoded eagerly so a malformed unit is reported once,
        at scan time, instead of failing halfway through a load.

        Parameters
        ----------
        path:
            Descriptor file; its suffix selects the parser.
        full_name:
            Module full name; defaults to the file stem. ``MergeModules``
            patches pass the full name of the descriptor they extend.

        Returns
        -------
        ModuleDescriptor
            Descriptor whose ``module_base`` is the file's directory.

        Raises
        ------
        InvalidDescriptor
            When the document cannot be parsed or has malformed keys.

        Side Effects
        ------------
        Emits ``descriptor_unknown_key`` warnings for keys nobody reads.

        Examples
        --------
        >>> from tempfile import TemporaryDirectory
        >>> tmp = TemporaryDirectory()
        >>> target = Path(tmp.name) / "Aspell-2_1-x86.json"
        >>> _ = target.write_text('{"ModuleType": "Abstract"}', encoding="utf-8")
        >>> descriptor = StructuredDescriptorDecoder().decode(target)
        >>> descriptor.full_name, descriptor.module_type.value
        ('Aspell-2_1-x86', 'Abstract')
        >>> tmp.cleanup()
        """

        path = Path(path)
        name = full_name or path.stem
        data = load_mapping(path)
        for key in unknown_keys(data):
            log_warning("descriptor_unknown_key", module=name, path=str(path), key=key)
        descriptor = decode_descriptor(name, data, module_base=path.parent)
        log_debug("descriptor_decoded", module=name, path=str(path), module_type=descriptor.module_type.value)
        return descriptor
