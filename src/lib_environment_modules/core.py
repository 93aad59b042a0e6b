"""Composition root for ``lib_environment_modules``.

Purpose
-------
Wire the adapters (descriptor files, unit enumeration, search path and
required item strategies, JSON stores, environment mutator) to the
application services and expose the result as one :class:`Session` object:
the surface shells and the CLI talk to.

Contents
--------
* :class:`Session` – public module operations, serialised by a re-entrant lock.
* :func:`create_session` – build a session from :class:`Settings`.

System Role
-----------
Owns the only :class:`SessionState` of a shell session. Every public
operation binds the session identifier for structured logging and holds the
lock while it runs, so a future daemon entry point cannot interleave
mutations.
"""

from __future__ import annotations

import fnmatch
import shutil
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, MutableMapping

from .adapters.descriptors.structured import StructuredDescriptorDecoder
from .adapters.environment.default import EnvironmentMutator
from .adapters.required_items.default import default_required_item_handlers
from .adapters.search_paths.default import default_search_path_handlers
from .adapters.settings.default import load_settings
from .adapters.store.default import JsonFileStore, MemoryStore
from .adapters.units.default import DirectoryUnitEnumerator
from .application.loader import DependencyLoader
from .application.mount import MountRegistry
from .application.ports import KeyValueStore
from .application.repository import DescriptorRepository
from .application.resolver import RootResolver
from .domain.descriptor import DEFAULT_SEARCH_PATH_PRIORITIES, ModuleDescriptor, SearchPath, sort_search_paths
from .domain.errors import (
    CircularDependency,
    Conflict,
    DependencyFailed,
    EnvironmentModuleError,
    InvalidDescriptor,
    InvalidModuleType,
    NotFound,
    ParseError,
    RemovalBlocked,
)
from .domain.names import parse_module_name
from .domain.session import DEFAULT_VIRTUAL_ENV, AliasInfo, FunctionInfo, LoadedModule, ParameterInfo, SessionState
from .domain.settings import Settings
from .observability import bind_session_id, log_debug, log_info, make_event


class Session:
    """One shell session's view of loaded environment modules.

    Examples
    --------
    >>> from pathlib import Path
    >>> from tempfile import TemporaryDirectory
    >>> tmp = TemporaryDirectory()
    >>> unit = Path(tmp.name) / "modules" / "Hello-1_0"
    >>> _ = unit.mkdir(parents=True)
    >>> _ = (unit / "Hello-1_0.json").write_text(
    ...     '{"RequiredModules": ["EnvironmentModules"],'
    ...     ' "Paths": [{"Variable": "HELLO_PATH", "Value": "${ModuleBase}"}]}',
    ...     encoding="utf-8",
    ... )
    >>> env = {}
    >>> session = create_session(Settings(module_paths=(Path(tmp.name) / "modules",), generated_path=Path(tmp.name) / "gen"), env)
    >>> session.import_module("Hello").full_name
    'Hello-1_0'
    >>> env["HELLO_PATH"] == str(unit)
    True
    >>> _ = session.remove_module("Hello-1_0")
    >>> env
    {}
    >>> tmp.cleanup()
    """

    def __init__(
        self,
        *,
        settings: Settings,
        repository: DescriptorRepository,
        resolver: RootResolver,
        editor: EnvironmentMutator,
        search_path_store: KeyValueStore,
        state: SessionState | None = None,
        session_id: str | None = None,
    ) -> None:
        self.settings = settings
        self.repository = repository
        self.resolver = resolver
        self.editor = editor
        self.state = state if state is not None else SessionState()
        self.registry = MountRegistry(self.state, editor)
        self.loader = DependencyLoader(repository=repository, resolver=resolver, registry=self.registry)
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._search_path_store = search_path_store
        self._lock = threading.RLock()

    @property
    def environ(self) -> MutableMapping[str, str]:
        return self.editor.environ

    @contextmanager
    def _guard(self) -> Iterator[None]:
        with self._lock:
            bind_session_id(self.session_id)
            yield

    def initialize(self) -> None:
        """Populate descriptors (cache or rescan) and persisted search paths."""

        with self._guard():
            if not (self.settings.use_cache and self.repository.load_cache()):
                self.repository.rescan()
            self._load_search_paths()

    def import_module(self, full_name: str) -> LoadedModule | None:
        with self._guard():
            return self.loader.load(full_name, loaded_directly=True)

    def remove_module(self, full_name: str, *, force: bool = False, delete: bool = False) -> LoadedModule:
        """Unload *full_name*; with ``delete`` also remove its unit directory and rescan."""

        with self._guard():
            if delete:
                loaded = self._loaded_or_none(full_name)
                if loaded is not None and loaded.reference_counter > 1 and not force:
                    raise RemovalBlocked(
                        f"Module '{loaded.full_name}' is still referenced {loaded.reference_counter} times",
                        module=loaded.full_name,
                    )
            loaded = self.loader.unload(full_name, force=force)
            if delete:
                self._delete_unit(loaded.full_name)
            return loaded

    def get_loaded(self, pattern: str | None = None) -> list[LoadedModule]:
        with self._guard():
            pattern = pattern or "*"
            return sorted(
                (loaded for loaded in self.state.iter_loaded() if fnmatch.fnmatchcase(loaded.full_name, pattern)),
                key=lambda loaded: loaded.full_name,
            )

    def list_available(self, pattern: str | None = None) -> list[ModuleDescriptor]:
        with self._guard():
            return self.repository.list_available(pattern)

    def switch_module(self, old_name: str, new_name: str) -> LoadedModule | None:
        """Replace the loaded *old_name* by *new_name*, restoring *old_name* on failure."""

        with self._guard():
            old = self._loaded_or_none(old_name)
            if old is None:
                raise NotFound(f"Module '{old_name}' is not loaded", module=old_name)
            if old.reference_counter > 1:
                raise RemovalBlocked(
                    f"Module '{old.full_name}' is referenced by other modules and cannot be switched",
                    module=old.full_name,
                )
            old_full_name = old.full_name
            self.loader.unload(old_full_name)
            try:
                loaded = self.loader.load(new_name, loaded_directly=True)
            except EnvironmentModuleError:
                self.loader.load(old_full_name, loaded_directly=True)
                raise
            log_info("module_switched", **make_event(new_name, None, {"previous": old_full_name}))
            return loaded

    def add_search_path(
        self,
        full_name: str,
        path_type: str,
        key: str,
        *,
        sub_folder: str = "",
        priority: int | None = None,
    ) -> SearchPath:
        with self._guard():
            self.repository.require(full_name)
            path_type = path_type.upper()
            if priority is None:
                priority = DEFAULT_SEARCH_PATH_PRIORITIES.get(path_type, 10)
            search_path = SearchPath(path_type, key, sub_folder, priority, is_default=False)
            self.state.custom_search_paths.setdefault(full_name, []).append(search_path)
            self._search_paths_changed(full_name)
            return search_path

    def remove_search_path(self, full_name: str, key: str) -> list[SearchPath]:
        """Drop the custom search paths of *full_name* whose key equals *key*."""

        with self._guard():
            paths = self.state.custom_search_paths.get(full_name, [])
            removed = [path for path in paths if path.key == key]
            if not removed:
                raise NotFound(f"Module '{full_name}' has no custom search path '{key}'", module=full_name)
            remaining = [path for path in paths if path.key != key]
            if remaining:
                self.state.custom_search_paths[full_name] = remaining
            else:
                del self.state.custom_search_paths[full_name]
            self._search_paths_changed(full_name)
            return removed

    def get_search_paths(self, full_name: str) -> tuple[SearchPath, ...]:
        with self._guard():
            descriptor = self.repository.require(full_name)
            return sort_search_paths([*descriptor.search_paths, *self.state.custom_search_paths.get(full_name, [])])

    def set_parameter(self, name: str, value: Any, virtual_env: str = DEFAULT_VIRTUAL_ENV) -> ParameterInfo:
        with self._guard():
            current = self.state.get_parameter(name, virtual_env)
            info = ParameterInfo(
                name,
                value,
                virtual_env,
                current.module_full_name if current is not None else None,
                is_user_defined=True,
            )
            self.state.set_parameter(info)
            log_debug("parameter_set", module=info.module_full_name, path=None, parameter=name, virtual_env=virtual_env)
            return info

    def get_parameter(self, name: str, virtual_env: str = DEFAULT_VIRTUAL_ENV) -> ParameterInfo | None:
        with self._guard():
            return self.state.get_parameter(name, virtual_env)

    def rescan(self) -> None:
        with self._guard():
            self.repository.rescan()
            self.resolver.invalidate()

    def resolve_alias(self, name: str) -> AliasInfo | None:
        with self._guard():
            return self.state.active_alias(name)

    def resolve_function(self, name: str) -> FunctionInfo | None:
        with self._guard():
            return self.state.active_function(name)

    def _loaded_or_none(self, full_name: str) -> LoadedModule | None:
        requested = parse_module_name(full_name)
        loaded = self.state.get_loaded(requested.short_name)
        if loaded is None or not loaded.module_name.is_compatible_with(requested):
            return None
        return loaded

    def _delete_unit(self, full_name: str) -> None:
        descriptor = self.repository.get(full_name)
        if descriptor is None or descriptor.module_base is None or self.repository.is_generated(full_name):
            raise NotFound(f"Module '{full_name}' has no unit directory to delete", module=full_name)
        shutil.rmtree(descriptor.module_base)
        log_info("module_deleted", **make_event(full_name, str(descriptor.module_base)))
        self.repository.rescan()
        self.resolver.invalidate()

    def _search_paths_changed(self, full_name: str) -> None:
        self.resolver.invalidate(full_name)
        self._search_path_store.save(
            {name: [path.to_mapping() for path in paths] for name, paths in self.state.custom_search_paths.items()}
        )

    def _load_search_paths(self) -> None:
        stored = self._search_path_store.load()
        for full_name, entries in stored.items():
            if not isinstance(entries, list):
                raise InvalidDescriptor(f"Stored search paths of '{full_name}' are not a list", module=full_name)
            self.state.custom_search_paths[full_name] = [_stored_search_path(entry) for entry in entries]
        if stored:
            log_debug("search_paths_loaded", module=None, path=None, modules=len(stored))


def _stored_search_path(entry: Mapping[str, Any]) -> SearchPath:
    return SearchPath(
        str(entry["Type"]),
        str(entry["Key"]),
        str(entry.get("SubFolder") or ""),
        int(entry.get("Priority", 10)),
        is_default=False,
    )


def create_session(
    settings: Settings | None = None,
    environ: MutableMapping[str, str] | None = None,
    *,
    platform: str | None = None,
) -> Session:
    """Return an initialised :class:`Session` wired from *settings*.

    Parameters
    ----------
    settings:
        Explicit settings; loaded through :func:`load_settings` when omitted.
    environ:
        Environment mapping the session reads and mutates (``os.environ`` by
        default). Tests pass a plain ``dict``.
    platform:
        Overrides ``sys.platform`` for the settings and registry adapters.
    """

    if settings is None:
        settings = load_settings(environ=environ, platform=platform)
    repository = DescriptorRepository(
        enumerator=DirectoryUnitEnumerator(settings.module_paths, core_module=settings.core_module),
        decoder=StructuredDescriptorDecoder(),
        cache=_store(settings.cache_file),
        core_module=settings.core_module,
        generated_path=settings.generated_path,
        preferred_architecture=settings.preferred_architecture,
    )
    resolver = RootResolver(
        default_search_path_handlers(environ=environ, registry=settings.registry, platform=platform),
        default_required_item_handlers(),
    )
    session = Session(
        settings=settings,
        repository=repository,
        resolver=resolver,
        editor=EnvironmentMutator(environ=environ),
        search_path_store=_store(settings.search_path_file),
    )
    session.initialize()
    return session


def _store(path: Path | None) -> KeyValueStore:
    if path is None:
        return MemoryStore()
    return JsonFileStore(path)


__all__ = [
    "Session",
    "Settings",
    "create_session",
    "load_settings",
    "EnvironmentModuleError",
    "ParseError",
    "NotFound",
    "Conflict",
    "CircularDependency",
    "DependencyFailed",
    "InvalidDescriptor",
    "InvalidModuleType",
    "RemovalBlocked",
]
