"""Settings value object for the module engine.

Purpose
-------
Collect every knob the composition root needs (module paths, cache and
generated-descriptor locations, architecture preference, emulated registry)
in one immutable structure. Loading lives in
:mod:`lib_environment_modules.adapters.settings.default`.
"""

from __future__ import annotations

import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

#: Name of the runtime every installable module unit must depend on.
CORE_MODULE_NAME = "EnvironmentModules"


def _default_generated_path() -> Path:
    return Path(tempfile.gettempdir()) / "lib_environment_modules" / "generated"


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable configuration of a :class:`lib_environment_modules.core.Session`.

    Attributes
    ----------
    module_paths:
        Directories scanned for module units (one sub-directory per unit).
    core_module:
        Runtime name a unit must list in ``RequiredModules`` to be picked up.
    cache_file:
        JSON file holding the descriptor cache; ``None`` disables caching.
    search_path_file:
        JSON file persisting custom search paths; ``None`` keeps them in memory.
    generated_path:
        Directory receiving synthesized meta descriptors.
    preferred_architecture:
        Architecture tried first when a meta module has several candidates.
    registry:
        Registry-style key → directory table used by ``REGISTRY`` search paths.
    use_cache:
        Populate the repository from ``cache_file`` instead of rescanning.
    """

    module_paths: tuple[Path, ...] = ()
    core_module: str = CORE_MODULE_NAME
    cache_file: Path | None = None
    search_path_file: Path | None = None
    generated_path: Path = field(default_factory=_default_generated_path)
    preferred_architecture: str = "x64"
    registry: Mapping[str, str] = field(default_factory=dict)
    use_cache: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "module_paths", tuple(Path(path) for path in self.module_paths))
        object.__setattr__(self, "registry", MappingProxyType(dict(self.registry)))
