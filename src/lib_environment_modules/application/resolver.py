"""Module root resolution.

Purpose
-------
Find the on-disk directory a module wraps. Search paths are visited by
descending priority (declaration order on ties); each is turned into a
candidate folder by the strategy registered for its type and accepted when
every required item is satisfied. The first accepted candidate wins.

Contents
--------
* :class:`RootResolver` – strategy registries plus a per-session root cache.

System Role
-----------
Called by :class:`lib_environment_modules.application.loader.DependencyLoader`
before a module is mounted. Unknown search path or required item types are
reported once per lookup and never match.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping

from ..domain.descriptor import ModuleDescriptor, RequiredItem, SearchPath, sort_search_paths
from ..domain.errors import NotFound
from ..observability import log_debug, log_warning, make_event
from .ports import RequiredItemHandler, SearchPathHandler


class RootResolver:
    """Resolve module roots through pluggable strategies.

    Examples
    --------
    >>> from tempfile import TemporaryDirectory
    >>> from lib_environment_modules.domain.descriptor import decode_descriptor
    >>> from lib_environment_modules.adapters.search_paths.default import DirectorySearchPathHandler
    >>> from lib_environment_modules.adapters.required_items.default import FileItemHandler
    >>> tmp = TemporaryDirectory()
    >>> _ = (Path(tmp.name) / "tool.exe").write_text("", encoding="utf-8")
    >>> descriptor = decode_descriptor("Tool", {
    ...     "DefaultSearchPaths": [{"Type": "DIRECTORY", "Key": tmp.name}],
    ...     "RequiredItems": [{"Type": "FILE", "Value": "tool.exe"}],
    ... })
    >>> resolver = RootResolver({"DIRECTORY": DirectorySearchPathHandler()}, {"FILE": FileItemHandler()})
    >>> resolver.resolve_root(descriptor) == Path(tmp.name)
    True
    >>> tmp.cleanup()
    """

    def __init__(
        self,
        search_path_handlers: Mapping[str, SearchPathHandler] | None = None,
        required_item_handlers: Mapping[str, RequiredItemHandler] | None = None,
    ) -> None:
        self._search_path_handlers: dict[str, SearchPathHandler] = dict(search_path_handlers or {})
        self._required_item_handlers: dict[str, RequiredItemHandler] = dict(required_item_handlers or {})
        self._cache: dict[str, Path] = {}

    def register_search_path_handler(self, path_type: str, handler: SearchPathHandler) -> None:
        self._search_path_handlers[path_type.upper()] = handler
        self._cache.clear()

    def register_required_item_handler(self, item_type: str, handler: RequiredItemHandler) -> None:
        self._required_item_handlers[item_type.upper()] = handler
        self._cache.clear()

    def invalidate(self, full_name: str | None = None) -> None:
        """Forget cached roots (all of them when *full_name* is ``None``)."""

        if full_name is None:
            self._cache.clear()
        else:
            self._cache.pop(full_name, None)

    def cached_root(self, full_name: str) -> Path | None:
        return self._cache.get(full_name)

    def resolve_root(
        self,
        descriptor: ModuleDescriptor,
        extra_search_paths: Iterable[SearchPath] = (),
    ) -> Path:
        """Return the root of *descriptor* or raise :class:`NotFound`.

        Why
        ----
        A module's edits refer to its install directory through
        ``${ModuleRoot}``; the same module may live in different places on
        different machines, so each search path proposes a candidate and the
        required items decide.

        Parameters
        ----------
        descriptor:
            Module whose default search paths and required items are used.
        extra_search_paths:
            Session search paths added at runtime; merged with the defaults
            and ordered by descending priority, declaration order on ties.

        Returns
        -------
        Path
            First candidate folder satisfying every required item. Cached per
            full name until :meth:`invalidate` is called.

        Side Effects
        ------------
        Emits ``root_resolved`` or ``root_not_found`` debug events.
        """

        cached = self._cache.get(descriptor.full_name)
        if cached is not None:
            return cached

        search_paths = sort_search_paths([*descriptor.search_paths, *extra_search_paths])
        for search_path in search_paths:
            candidate = self._candidate(descriptor, search_path)
            if candidate is None:
                continue
            if self._satisfies_all(descriptor, candidate):
                self._cache[descriptor.full_name] = candidate
                log_debug(
                    "root_resolved",
                    **make_event(descriptor.full_name, str(candidate), {"search_path_type": search_path.type}),
                )
                return candidate

        log_debug("root_not_found", **make_event(descriptor.full_name, None, {"search_paths": len(search_paths)}))
        raise NotFound(
            f"No root directory satisfying the required items of '{descriptor.full_name}' was found",
            module=descriptor.full_name,
        )

    def _candidate(self, descriptor: ModuleDescriptor, search_path: SearchPath) -> Path | None:
        handler = self._search_path_handlers.get(search_path.type.upper())
        if handler is None:
            log_warning("handler_missing", **make_event(descriptor.full_name, None, {"search_path_type": search_path.type}))
            return None
        folder = handler.candidate(search_path)
        if folder is None:
            return None
        if search_path.sub_folder:
            folder = folder / search_path.sub_folder
        return folder if folder.is_dir() else None

    def _satisfies_all(self, descriptor: ModuleDescriptor, folder: Path) -> bool:
        return all(self._satisfies(descriptor, folder, item) for item in descriptor.required_items)

    def _satisfies(self, descriptor: ModuleDescriptor, folder: Path, item: RequiredItem) -> bool:
        handler = self._required_item_handlers.get(item.type.upper())
        if handler is None:
            log_warning("handler_missing", **make_event(descriptor.full_name, str(folder), {"required_item_type": item.type}))
            return False
        return handler.satisfied(folder, item)
