"""Mutable session state.

Purpose
-------
Hold everything one shell session knows about mounted modules: the loaded
instances keyed by short name, the alias and function override stacks, the
parameter table and the custom search paths added at runtime.

Contents
--------
* :class:`ResolvedModule` – descriptor plus discovered root, ephemeral.
* :class:`AppliedPathEdit` – a path edit with the entries or value it wrote.
* :class:`AliasInfo` / :class:`FunctionInfo` – stack entries per name.
* :class:`ParameterInfo` – a parameter value scoped to a virtual environment.
* :class:`LoadedModule` – runtime record of a mounted module.
* :class:`SessionState` – the container; no I/O, no environment access.

System Role
-----------
Owned by :class:`lib_environment_modules.core.Session` and mutated only through
the mount registry and the loader. Nothing here persists beyond the process.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterator, TypeVar

from .descriptor import ModuleDescriptor, ModuleType, PathEdit, SearchPath
from .errors import Conflict
from .names import ModuleName

DEFAULT_VIRTUAL_ENV = "Default"


@dataclass(frozen=True, slots=True)
class ResolvedModule:
    descriptor: ModuleDescriptor
    module_root: Path | None

    @property
    def full_name(self) -> str:
        return self.descriptor.full_name

    @property
    def short_name(self) -> str:
        return self.descriptor.short_name


@dataclass(slots=True, eq=False)
class AppliedPathEdit:
    """Record of a mounted :class:`PathEdit`.

    ``inserted`` holds the joined entries added for APPEND/PREPEND edits (or the
    value written for SET); ``prior`` is the value the variable held before a
    SET edit. ``prior`` changes hands when an older SET on the same variable is
    unmounted first, so records compare by identity.
    """

    edit: PathEdit
    inserted: str
    prior: str | None = None


@dataclass(frozen=True, slots=True)
class CommandInfo:
    name: str
    module_full_name: str
    definition: str
    description: str = ""


class AliasInfo(CommandInfo):
    __slots__ = ()


class FunctionInfo(CommandInfo):
    __slots__ = ()


@dataclass(frozen=True, slots=True)
class ParameterInfo:
    name: str
    value: Any
    virtual_env: str = DEFAULT_VIRTUAL_ENV
    module_full_name: str | None = None
    is_user_defined: bool = False


@dataclass(slots=True)
class LoadedModule:
    """Runtime record of a mounted module.

    ``dependencies`` lists the short names that were mounted (or referenced)
    on behalf of this module, in load order; releasing the module releases
    exactly those.
    """

    module_name: ModuleName
    full_name: str
    module_root: Path | None
    module_type: ModuleType = ModuleType.DEFAULT
    reference_counter: int = 1
    is_loaded_directly: bool = True
    dependencies: list[str] = field(default_factory=list)
    installed_paths: list[AppliedPathEdit] = field(default_factory=list)
    installed_aliases: list[AliasInfo] = field(default_factory=list)
    installed_functions: list[FunctionInfo] = field(default_factory=list)

    @property
    def short_name(self) -> str:
        return self.module_name.short_name

    def to_mapping(self) -> dict[str, object]:
        return {
            "FullName": self.full_name,
            "ShortName": self.short_name,
            "ModuleRoot": str(self.module_root) if self.module_root else None,
            "ModuleType": self.module_type.value,
            "ReferenceCounter": self.reference_counter,
            "IsLoadedDirectly": self.is_loaded_directly,
            "Dependencies": list(self.dependencies),
        }


_Command = TypeVar("_Command", bound=CommandInfo)


class SessionState:
    """Process-wide view of what is mounted.

    Examples
    --------
    >>> state = SessionState()
    >>> state.push_alias(AliasInfo("edit", "Vim-9_0", "vim"))
    >>> state.push_alias(AliasInfo("edit", "NotepadPlusPlus-x64", "notepad++"))
    >>> state.active_alias("edit").definition
    'notepad++'
    >>> state.remove_alias("edit", "NotepadPlusPlus-x64")
    >>> state.active_alias("edit").definition
    'vim'
    """

    def __init__(self) -> None:
        self.loaded_modules: dict[str, LoadedModule] = {}
        self.loaded_aliases: dict[str, list[AliasInfo]] = {}
        self.loaded_functions: dict[str, list[FunctionInfo]] = {}
        self.parameters: dict[tuple[str, str], ParameterInfo] = {}
        self.custom_search_paths: dict[str, list[SearchPath]] = {}
        self.set_edits: dict[str, list[AppliedPathEdit]] = {}

    def get_loaded(self, short_name: str) -> LoadedModule | None:
        return self.loaded_modules.get(short_name)

    def iter_loaded(self) -> Iterator[LoadedModule]:
        return iter(list(self.loaded_modules.values()))

    def register(self, loaded: LoadedModule) -> None:
        existing = self.loaded_modules.get(loaded.short_name)
        if existing is not None and existing is not loaded:
            raise Conflict(
                f"Module '{existing.full_name}' is already loaded under short name '{loaded.short_name}'",
                module=loaded.full_name,
            )
        self.loaded_modules[loaded.short_name] = loaded

    def unregister(self, short_name: str) -> None:
        self.loaded_modules.pop(short_name, None)

    def push_alias(self, info: AliasInfo) -> None:
        self.loaded_aliases.setdefault(info.name, []).append(info)

    def remove_alias(self, name: str, module_full_name: str) -> None:
        _remove_entry(self.loaded_aliases, name, module_full_name)

    def active_alias(self, name: str) -> AliasInfo | None:
        stack = self.loaded_aliases.get(name)
        return stack[-1] if stack else None

    def push_function(self, info: FunctionInfo) -> None:
        self.loaded_functions.setdefault(info.name, []).append(info)

    def remove_function(self, name: str, module_full_name: str) -> None:
        _remove_entry(self.loaded_functions, name, module_full_name)

    def active_function(self, name: str) -> FunctionInfo | None:
        stack = self.loaded_functions.get(name)
        return stack[-1] if stack else None

    def set_parameter(self, info: ParameterInfo) -> None:
        self.parameters[(info.name, info.virtual_env)] = info

    def get_parameter(self, name: str, virtual_env: str = DEFAULT_VIRTUAL_ENV) -> ParameterInfo | None:
        return self.parameters.get((name, virtual_env))

    def remove_module_parameters(self, module_full_name: str) -> None:
        """Drop parameters a module declared unless the user overrode them."""

        for key, info in list(self.parameters.items()):
            if info.module_full_name == module_full_name and not info.is_user_defined:
                del self.parameters[key]

    def push_set_edit(self, applied: AppliedPathEdit) -> None:
        self.set_edits.setdefault(applied.edit.variable, []).append(applied)

    def pop_set_edit(self, applied: AppliedPathEdit) -> AppliedPathEdit | None:
        """Drop *applied* from its variable's SET stack.

        Returns the newer SET record that captured *applied*'s value as its
        own prior, after handing it *applied*'s prior value; ``None`` when
        *applied* was the newest SET and must restore the variable itself.

        Examples
        --------
        >>> from lib_environment_modules.domain.descriptor import PathEdit, PathMode
        >>> edit = PathEdit("TOOL_HOME", PathMode.SET, ("/a",))
        >>> state = SessionState()
        >>> older, newer = AppliedPathEdit(edit, "/a", None), AppliedPathEdit(edit, "/b", "/a")
        >>> state.push_set_edit(older)
        >>> state.push_set_edit(newer)
        >>> state.pop_set_edit(older) is newer, newer.prior
        (True, None)
        >>> state.pop_set_edit(newer) is None
        True
        """

        variable = applied.edit.variable
        stack = self.set_edits.get(variable, [])
        position = next((index for index, entry in enumerate(stack) if entry is applied), None)
        if position is None:
            return None
        del stack[position]
        successor = stack[position] if position < len(stack) else None
        if successor is not None:
            successor.prior = applied.prior
        if not stack:
            del self.set_edits[variable]
        return successor


def _remove_entry(stacks: dict[str, list[_Command]], name: str, module_full_name: str) -> None:
    """Remove the newest entry of *module_full_name* from the stack of *name*."""

    stack = stacks.get(name)
    if not stack:
        return
    for index in range(len(stack) - 1, -1, -1):
        if stack[index].module_full_name == module_full_name:
            del stack[index]
            break
    if not stack:
        del stacks[name]
