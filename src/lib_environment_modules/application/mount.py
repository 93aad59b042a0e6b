"""Session mount registry.

Purpose
-------
Apply a resolved module's own edits to the session and take them back later.
The registry is the only component that touches the environment editor and
the alias/function stacks, so "what a module changed" is recorded in one
place: the :class:`LoadedModule` it returns.

Contents
--------
* :class:`MountRegistry` – ``find_conflict``, ``mount`` and ``unmount``.
* :func:`expand_value` – ``${ModuleRoot}`` / ``${ModuleBase}`` substitution.

System Role
-----------
Driven by :class:`lib_environment_modules.application.loader.DependencyLoader`.
Reference counting and dependency cascades live in the loader; the registry
only knows about a single module at a time.
"""

from __future__ import annotations

from pathlib import Path
from string import Template
from typing import Iterable, Mapping

from ..domain.descriptor import PathEdit, PathMode
from ..domain.names import ModuleName
from ..domain.session import (
    DEFAULT_VIRTUAL_ENV,
    AliasInfo,
    AppliedPathEdit,
    FunctionInfo,
    LoadedModule,
    ParameterInfo,
    ResolvedModule,
    SessionState,
)
from ..observability import log_debug, log_info, make_event
from .ports import EnvironmentEditor


def expand_value(value: str, variables: Mapping[str, str]) -> str:
    """Substitute module placeholders, leaving unknown ``${...}`` untouched.

    Examples
    --------
    >>> expand_value("${ModuleRoot}/bin:${HOME}", {"ModuleRoot": "/opt/tool"})
    '/opt/tool/bin:${HOME}'
    """

    return Template(value).safe_substitute(variables)


class MountRegistry:
    """Mount and unmount single modules on a :class:`SessionState`."""

    def __init__(self, state: SessionState, editor: EnvironmentEditor) -> None:
        self.state = state
        self.editor = editor

    def find_conflict(self, requested: ModuleName) -> LoadedModule | None:
        """Return the loaded module that *requested* clashes with, if any.

        Examples
        --------
        >>> from lib_environment_modules.domain.names import parse_module_name
        >>> from lib_environment_modules.adapters.environment.default import EnvironmentMutator
        >>> state = SessionState()
        >>> state.register(LoadedModule(parse_module_name("Aspell-2_1-x86"), "Aspell-2_1-x86", None))
        >>> registry = MountRegistry(state, EnvironmentMutator(environ={}))
        >>> registry.find_conflict(parse_module_name("Aspell-x64")).full_name
        'Aspell-2_1-x86'
        >>> registry.find_conflict(parse_module_name("Aspell")) is None
        True
        """

        loaded = self.state.get_loaded(requested.short_name)
        if loaded is None or loaded.module_name.is_compatible_with(requested):
            return None
        return loaded

    def mount(
        self,
        resolved: ResolvedModule,
        *,
        loaded_directly: bool,
        dependencies: Iterable[str] = (),
    ) -> LoadedModule:
        """Register *resolved* and apply its edits; revert everything on failure.

        Why
        ----
        Registering first makes a short-name clash fail before the environment
        is touched; every edit applied afterwards is recorded on the returned
        instance so :meth:`unmount` can take back exactly that.

        Parameters
        ----------
        resolved:
            Descriptor plus the root found by the resolver.
        loaded_directly:
            Whether the user asked for this module (as opposed to a dependency).
        dependencies:
            Short names of the modules acquired on behalf of this one.

        Returns
        -------
        LoadedModule
            The registered instance with a reference counter of one.

        Raises
        ------
        Conflict
            When another instance is registered under the same short name.
        """

        descriptor = resolved.descriptor
        loaded = LoadedModule(
            module_name=descriptor.module_name,
            full_name=descriptor.full_name,
            module_root=resolved.module_root,
            module_type=descriptor.module_type,
            is_loaded_directly=loaded_directly,
            dependencies=list(dependencies),
        )
        self.state.register(loaded)
        variables = _placeholders(resolved.module_root, descriptor.module_base)
        try:
            for edit in descriptor.path_edits:
                loaded.installed_paths.append(self._apply(edit, variables))
            for alias in descriptor.aliases:
                info = AliasInfo(alias.name, descriptor.full_name, alias.definition, alias.description)
                self.state.push_alias(info)
                loaded.installed_aliases.append(info)
            for function in descriptor.functions:
                info = FunctionInfo(function.name, descriptor.full_name, function.definition, function.description)
                self.state.push_function(info)
                loaded.installed_functions.append(info)
            for name, value in descriptor.parameters.items():
                current = self.state.get_parameter(name)
                if current is not None and current.is_user_defined:
                    continue
                self.state.set_parameter(ParameterInfo(name, value, DEFAULT_VIRTUAL_ENV, descriptor.full_name))
        except Exception:
            self.unmount(loaded)
            raise

        log_info(
            "module_loaded",
            **make_event(
                loaded.full_name,
                str(loaded.module_root) if loaded.module_root else None,
                {"loaded_directly": loaded_directly, "dependencies": list(loaded.dependencies)},
            ),
        )
        return loaded

    def unmount(self, loaded: LoadedModule) -> None:
        """Revert the edits of *loaded* in reverse order and drop its record.

        Path entries are cut out wherever they ended up. A SET edit that a
        newer module has since overwritten passes its prior value on to that
        module instead of touching the variable, so SETs unwind like a stack in
        any unload order.
        """

        for applied in reversed(loaded.installed_paths):
            self._revert(loaded, applied)
        loaded.installed_paths.clear()
        for alias in reversed(loaded.installed_aliases):
            self.state.remove_alias(alias.name, loaded.full_name)
        loaded.installed_aliases.clear()
        for function in reversed(loaded.installed_functions):
            self.state.remove_function(function.name, loaded.full_name)
        loaded.installed_functions.clear()
        self.state.remove_module_parameters(loaded.full_name)
        if self.state.get_loaded(loaded.short_name) is loaded:
            self.state.unregister(loaded.short_name)
        log_info("module_unloaded", **make_event(loaded.full_name, None))

    def _apply(self, edit: PathEdit, variables: Mapping[str, str]) -> AppliedPathEdit:
        values = [expand_value(value, variables) for value in edit.values]
        if edit.mode is PathMode.PREPEND:
            return AppliedPathEdit(edit, self.editor.prepend(edit.variable, values))
        if edit.mode is PathMode.APPEND:
            return AppliedPathEdit(edit, self.editor.append(edit.variable, values))
        written = self.editor.separator.join(values)
        applied = AppliedPathEdit(edit, written, self.editor.set(edit.variable, written))
        self.state.push_set_edit(applied)
        return applied

    def _revert(self, loaded: LoadedModule, applied: AppliedPathEdit) -> None:
        edit = applied.edit
        if edit.mode is PathMode.PREPEND:
            reverted = self.editor.remove_prepended(edit.variable, applied.inserted)
        elif edit.mode is PathMode.APPEND:
            reverted = self.editor.remove_appended(edit.variable, applied.inserted)
        elif self.state.pop_set_edit(applied) is not None:
            reverted = True
        else:
            reverted = self.editor.restore(edit.variable, applied.inserted, applied.prior)
        log_debug(
            "path_edit_reverted",
            **make_event(loaded.full_name, None, {"variable": edit.variable, "mode": edit.mode.value, "reverted": reverted}),
        )


def _placeholders(module_root: Path | None, module_base: Path | None) -> dict[str, str]:
    variables: dict[str, str] = {}
    if module_root is not None:
        variables["ModuleRoot"] = str(module_root)
    if module_base is not None:
        variables["ModuleBase"] = str(module_base)
    return variables
