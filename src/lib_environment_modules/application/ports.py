"""Application-layer ports describing adapter responsibilities.

Purpose
-------
Define the structural contracts that adapters must satisfy so the resolver,
repository and mount registry can orchestrate behaviour without depending on
concrete implementations.

Contents
--------
* :class:`SearchPathHandler` – turns a search path into a candidate folder.
* :class:`RequiredItemHandler` – checks one required item against a folder.
* :class:`DescriptorDecoder` – decodes a descriptor file.
* :class:`UnitEnumerator` – lists installed module units.
* :class:`KeyValueStore` – load/save of a JSON-compatible mapping.
* :class:`EnvironmentEditor` – reversible environment variable edits.
* :class:`UnitMetadata` – value exchanged with the unit enumerator.

System Role
-----------
These protocols are the extension points: a new search path type or required
item predicate is a class implementing one method plus one registration call.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Protocol, Sequence, runtime_checkable

from ..domain.descriptor import ModuleDescriptor, RequiredItem, SearchPath


@dataclass(frozen=True, slots=True)
class UnitMetadata:
    """An installed module unit as reported by a :class:`UnitEnumerator`."""

    full_name: str
    depends_on_core: bool
    base_directory: Path
    descriptor_path: Path


@runtime_checkable
class SearchPathHandler(Protocol):
    """Resolve a :class:`SearchPath` into a candidate root folder."""

    def candidate(self, search_path: SearchPath) -> Path | None:
        """Return the folder the search path points at, or ``None``."""


@runtime_checkable
class RequiredItemHandler(Protocol):
    """Decide whether a candidate folder satisfies a :class:`RequiredItem`."""

    def satisfied(self, directory: Path, item: RequiredItem) -> bool:
        """Return ``True`` when *directory* fulfils *item*."""


@runtime_checkable
class DescriptorDecoder(Protocol):
    """Decode a descriptor document stored on disk."""

    def decode(self, path: Path, *, full_name: str | None = None) -> ModuleDescriptor:
        """Read *path* or raise ``InvalidDescriptor`` / ``NotFound``."""


@runtime_checkable
class UnitEnumerator(Protocol):
    """List the module units installed on this machine."""

    def enumerate(self) -> Iterable[UnitMetadata]:
        """Yield one :class:`UnitMetadata` per unit directory."""


@runtime_checkable
class KeyValueStore(Protocol):
    """Persist a JSON-compatible mapping (load/save only)."""

    def load(self) -> dict[str, object]:
        """Return the stored mapping or an empty dict."""

    def save(self, data: Mapping[str, object]) -> None:
        """Replace the stored mapping with *data*."""


@runtime_checkable
class EnvironmentEditor(Protocol):
    """Reversible edits on process environment variables."""

    separator: str

    def get(self, variable: str) -> str | None:
        """Return the current value of *variable*."""

    def prepend(self, variable: str, values: Sequence[str]) -> str:
        """Prepend *values*, returning the joined entries that were inserted."""

    def append(self, variable: str, values: Sequence[str]) -> str:
        """Append *values*, returning the joined entries that were inserted."""

    def set(self, variable: str, value: str) -> str | None:
        """Overwrite *variable*, returning its prior value."""

    def remove_prepended(self, variable: str, inserted: str) -> bool:
        """Remove the run of entries a prepend inserted, searching from the front."""

    def remove_appended(self, variable: str, inserted: str) -> bool:
        """Remove the run of entries an append inserted, searching from the back."""

    def restore(self, variable: str, written: str, prior: str | None) -> bool:
        """Undo a SET edit when the variable still holds *written*."""
