"""Search path strategies.

Purpose
-------
Implement :class:`lib_environment_modules.application.ports.SearchPathHandler`
for the three built-in search path types. Each strategy only answers "which
folder does this search path point at"; required-item checks and priority
ordering belong to the resolver.

Contents
--------
* :class:`DirectorySearchPathHandler` – ``DIRECTORY``: the key is a folder.
* :class:`EnvironmentSearchPathHandler` – ``ENVIRONMENT_VARIABLE``: the key
  names a variable holding the folder.
* :class:`RegistrySearchPathHandler` – ``REGISTRY``: the key is looked up in a
  registry-style table, falling back to the Windows registry on win32.
* :func:`default_search_path_handlers` – the registration table used by the
  composition root.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping

from ...application.ports import SearchPathHandler
from ...domain.descriptor import SearchPath
from ...observability import log_debug

_REGISTRY_HIVES = {
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKCU": "HKEY_CURRENT_USER",
}


class DirectorySearchPathHandler:
    """Treat the search path key as a literal directory (``~`` and variables expanded)."""

    def candidate(self, search_path: SearchPath) -> Path | None:
        folder = Path(os.path.expandvars(os.path.expanduser(search_path.key)))
        return folder if folder.is_dir() else None


class EnvironmentSearchPathHandler:
    """Read the folder from the environment variable named by the key."""

    def __init__(self, *, environ: Mapping[str, str] | None = None) -> None:
        self._environ = environ if environ is not None else os.environ

    def candidate(self, search_path: SearchPath) -> Path | None:
        value = self._environ.get(search_path.key)
        if not value:
            log_debug("search_path_variable_unset", module=None, path=None, variable=search_path.key)
            return None
        folder = Path(value)
        return folder if folder.is_dir() else None


class RegistrySearchPathHandler:
    """Look the key up in a registry-style table.

    Why
    ----
    Windows installers publish install locations in the registry. Other
    platforms (and tests) provide the same information through the
    ``registry`` table of the settings.

    Keys have the form ``HIVE\\Path\\To\\Key`` with an optional ``:ValueName``
    suffix; without suffix the key's default value is read.
    """

    def __init__(self, *, table: Mapping[str, str] | None = None, platform: str | None = None) -> None:
        self._table = dict(table or {})
        self.platform = platform or sys.platform

    def candidate(self, search_path: SearchPath) -> Path | None:
        value = self._table.get(search_path.key)
        if value is None and self.platform.startswith("win"):
            value = _read_windows_registry(search_path.key)
        if not value:
            log_debug("search_path_registry_miss", module=None, path=None, key=search_path.key)
            return None
        folder = Path(value)
        return folder if folder.is_dir() else None


def _read_windows_registry(key: str) -> str | None:  # pragma: no cover - requires Windows
    import winreg  # type: ignore[import-not-found]

    path, _, value_name = key.partition(":")
    hive_name, _, sub_key = path.partition("\\")
    hive = _REGISTRY_HIVES.get(hive_name.upper())
    if hive is None:
        return None
    try:
        with winreg.OpenKey(getattr(winreg, hive), sub_key) as handle:
            value, _ = winreg.QueryValueEx(handle, value_name or "")
    except OSError:
        return None
    return str(value)


def default_search_path_handlers(
    *,
    environ: Mapping[str, str] | None = None,
    registry: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> dict[str, SearchPathHandler]:
    """Return the built-in handlers keyed by search path type."""

    return {
        "DIRECTORY": DirectorySearchPathHandler(),
        "ENVIRONMENT_VARIABLE": EnvironmentSearchPathHandler(environ=environ),
        "REGISTRY": RegistrySearchPathHandler(table=registry, platform=platform),
    }
