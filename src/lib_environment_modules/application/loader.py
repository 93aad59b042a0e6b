"""Dependency loader.

Purpose
-------
Turn "load X" into an ordered, reversible series of mounts: dependencies
first, the requested module last, and every reference taken during the call
released again (newest first) when anything fails.

Load algorithm
--------------
1. A name that is still being loaded higher up the chain and has no live
   instance is a :class:`CircularDependency`.
2. A loaded module with the same short name but a different version,
   architecture or option set is a :class:`Conflict`.
3. A compatible loaded module is reused: its reference counter grows by one
   and a direct request promotes it to "loaded directly".
4. Otherwise the descriptor is fetched, ``MergeModules`` patches are applied,
   abstract modules are refused for direct requests and the root is resolved
   (fatal only when the descriptor declares required items).
5. Dependencies are loaded recursively. Meta modules keep the first candidate
   that loads; optional dependencies that fail are skipped with a warning.
6. The module's own edits are mounted and it is registered with a reference
   counter of one.

Modules with ``DirectUnload`` (every Meta module) stop after step 5: they
apply no edits of their own, are never registered, and pass the request's
"loaded directly" flag on to their dependencies.

A failure anywhere after step 3 releases every reference this call took,
newest first, and demotes instances it promoted, so the session looks as if
the call never happened.
"""

from __future__ import annotations

from pathlib import Path

from ..domain.descriptor import ModuleDescriptor, ModuleType
from ..domain.errors import (
    CircularDependency,
    Conflict,
    DependencyFailed,
    EnvironmentModuleError,
    InvalidModuleType,
    NotFound,
    RemovalBlocked,
)
from ..domain.names import parse_module_name
from ..domain.session import LoadedModule, ResolvedModule, SessionState
from ..observability import log_debug, log_info, log_warning, make_event
from .mount import MountRegistry
from .repository import DescriptorRepository
from .resolver import RootResolver

#: An instance a reference was taken on, and whether this call promoted it.
_Acquired = tuple[LoadedModule, bool]


class DependencyLoader:
    """Load and release modules with reference counting and rollback."""

    def __init__(
        self,
        *,
        repository: DescriptorRepository,
        resolver: RootResolver,
        registry: MountRegistry,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.registry = registry

    @property
    def state(self) -> SessionState:
        return self.registry.state

    def load(
        self,
        full_name: str,
        *,
        loaded_directly: bool = True,
        visiting: frozenset[str] = frozenset(),
    ) -> LoadedModule | None:
        """Load *full_name* and return the instance serving the request.

        A meta module returns the concrete module it forwarded to. ``None`` is
        returned only for a ``DirectUnload`` module none of whose (optional)
        dependencies loaded.
        """

        acquired = self._acquire(full_name, loaded_directly, visiting)
        return acquired[0][0] if acquired else None

    def unload(self, full_name: str, *, force: bool = False) -> LoadedModule:
        """Release one reference of the loaded module matching *full_name*.

        ``force`` allows removing a module that was only loaded as a
        dependency and tears it down regardless of its reference counter.
        Modules that depended on it forget it, so a later direct load of the
        same module is not released on their behalf.
        """

        requested = parse_module_name(full_name)
        loaded = self.state.get_loaded(requested.short_name)
        if loaded is None or not loaded.module_name.is_compatible_with(requested):
            raise NotFound(f"Module '{full_name}' is not loaded", module=full_name)
        if not loaded.is_loaded_directly and not force:
            raise RemovalBlocked(
                f"Module '{loaded.full_name}' was loaded as a dependency and cannot be removed directly",
                module=loaded.full_name,
            )
        if force:
            loaded.reference_counter = 1
        self._release(loaded)
        if force:
            self._detach(loaded.short_name)
        return loaded

    def _acquire(self, full_name: str, loaded_directly: bool, visiting: frozenset[str]) -> list[_Acquired]:
        """Load *full_name* and take one reference on the instance(s) serving it.

        Why
        ----
        Callers roll back by releasing exactly what this returns, so the
        result names every instance referenced on the request's behalf: one
        entry for a concrete module, the forwarded targets for a
        ``DirectUnload`` module.

        Returns
        -------
        list[tuple[LoadedModule, bool]]
            Instances with one extra reference each, paired with whether this
            call promoted them to "loaded directly".

        Raises
        ------
        CircularDependency, Conflict, NotFound, InvalidModuleType, DependencyFailed
            After everything acquired below this call has been released.
        """

        requested = parse_module_name(full_name)
        existing = self.state.get_loaded(requested.short_name)
        if full_name in visiting and existing is None:
            raise CircularDependency(
                f"Circular dependency: '{full_name}' is required while it is being loaded",
                module=full_name,
            )

        conflict = self.registry.find_conflict(requested)
        if conflict is not None:
            raise Conflict(
                f"Cannot load '{full_name}': '{conflict.full_name}' is already loaded",
                module=full_name,
            )

        if existing is not None:
            promoted = loaded_directly and not existing.is_loaded_directly
            if promoted:
                existing.is_loaded_directly = True
            existing.reference_counter += 1
            log_debug(
                "module_referenced",
                **make_event(existing.full_name, None, {"reference_counter": existing.reference_counter}),
            )
            return [(existing, promoted)]

        descriptor = self._descriptor(full_name)
        if loaded_directly and descriptor.module_type is ModuleType.ABSTRACT:
            raise InvalidModuleType(f"Abstract module '{full_name}' can only be loaded as a dependency", module=full_name)
        root = self._root(descriptor)

        chain = visiting | {full_name}
        child_direct = loaded_directly if descriptor.is_direct_unload else False
        acquired: list[_Acquired] = []
        try:
            if descriptor.module_type is ModuleType.META:
                acquired.extend(self._acquire_first(descriptor, child_direct, chain))
            else:
                self._acquire_dependencies(descriptor, child_direct, chain, acquired)
            if descriptor.is_direct_unload:
                log_info(
                    "module_forwarded",
                    **make_event(full_name, None, {"targets": [loaded.full_name for loaded, _ in acquired]}),
                )
                return acquired
            loaded = self.registry.mount(
                ResolvedModule(descriptor, root),
                loaded_directly=loaded_directly,
                dependencies=[dependency.short_name for dependency, _ in acquired],
            )
        except Exception:
            self._rollback(full_name, acquired)
            raise
        return [(loaded, False)]

    def _acquire_dependencies(
        self,
        descriptor: ModuleDescriptor,
        loaded_directly: bool,
        chain: frozenset[str],
        acquired: list[_Acquired],
    ) -> None:
        for dependency in descriptor.dependencies:
            try:
                acquired.extend(self._acquire(dependency.full_name, loaded_directly, chain))
            except CircularDependency:
                raise
            except EnvironmentModuleError as exc:
                if not dependency.optional:
                    raise DependencyFailed(
                        f"Dependency '{dependency.full_name}' of '{descriptor.full_name}' failed: {exc}",
                        module=descriptor.full_name,
                    ) from exc
                log_warning(
                    "dependency_skipped",
                    **make_event(descriptor.full_name, None, {"dependency": dependency.full_name, "error": str(exc)}),
                )

    def _acquire_first(
        self,
        descriptor: ModuleDescriptor,
        loaded_directly: bool,
        chain: frozenset[str],
    ) -> list[_Acquired]:
        """Forward a meta module to the first candidate that loads."""

        last_error: EnvironmentModuleError | None = None
        for candidate in descriptor.dependencies:
            try:
                return self._acquire(candidate.full_name, loaded_directly, chain)
            except CircularDependency:
                raise
            except EnvironmentModuleError as exc:
                log_debug(
                    "meta_candidate_failed",
                    **make_event(descriptor.full_name, None, {"candidate": candidate.full_name, "error": str(exc)}),
                )
                last_error = exc
        if last_error is None:
            return []
        raise DependencyFailed(
            f"None of the candidates of meta module '{descriptor.full_name}' could be loaded: {last_error}",
            module=descriptor.full_name,
        ) from last_error

    def _descriptor(self, full_name: str) -> ModuleDescriptor:
        descriptor = self.repository.require(full_name)
        for reference in descriptor.merge_refs:
            descriptor = descriptor.with_patch(self.repository.load_patch(descriptor, reference))
        return descriptor

    def _root(self, descriptor: ModuleDescriptor) -> Path | None:
        custom = self.state.custom_search_paths.get(descriptor.full_name, ())
        if not descriptor.search_paths and not custom:
            if descriptor.required_items:
                raise NotFound(
                    f"Module '{descriptor.full_name}' declares required items but no search paths",
                    module=descriptor.full_name,
                )
            return descriptor.module_base
        try:
            return self.resolver.resolve_root(descriptor, custom)
        except NotFound:
            if descriptor.required_items:
                raise
            return descriptor.module_base

    def _release(self, loaded: LoadedModule) -> None:
        loaded.reference_counter -= 1
        if loaded.reference_counter > 0:
            log_debug(
                "module_dereferenced",
                **make_event(loaded.full_name, None, {"reference_counter": loaded.reference_counter}),
            )
            return
        self.registry.unmount(loaded)
        for short_name in reversed(loaded.dependencies):
            dependency = self.state.get_loaded(short_name)
            if dependency is None:
                log_debug("dependency_already_removed", **make_event(loaded.full_name, None, {"dependency": short_name}))
                continue
            self._release(dependency)

    def _detach(self, short_name: str) -> None:
        for other in self.state.iter_loaded():
            if short_name in other.dependencies:
                other.dependencies.remove(short_name)
                log_debug("dependency_detached", **make_event(other.full_name, None, {"dependency": short_name}))

    def _rollback(self, full_name: str, acquired: list[_Acquired]) -> None:
        for loaded, promoted in reversed(acquired):
            if promoted:
                loaded.is_loaded_directly = False
            self._release(loaded)
        if acquired:
            log_debug(
                "load_rolled_back",
                **make_event(full_name, None, {"released": [loaded.full_name for loaded, _ in acquired]}),
            )
