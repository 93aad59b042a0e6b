"""Module descriptor value objects.

Purpose
-------
Model the immutable template read once per environment module. Descriptor
documents are decoded eagerly into strongly typed frozen dataclasses so the
rest of the engine never handles loosely typed mappings.

Contents
--------
* :class:`ModuleType` / :class:`PathMode` – enumerations used by descriptors.
* :class:`DependencyRef`, :class:`SearchPath`, :class:`RequiredItem`,
  :class:`PathEdit`, :class:`CommandDefinition` – descriptor parts.
* :class:`ModuleDescriptor` – the template itself, with patch merging and a
  serialisable summary used by the descriptor cache.
* :func:`decode_descriptor` – mapping → descriptor conversion.
* :func:`unknown_keys` – keys a document carries that nobody understands.

System Role
-----------
Produced by :mod:`lib_environment_modules.adapters.descriptors.structured` and
the repository cache, consumed by the resolver, loader and mount registry.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Final, Iterable, Mapping

from .errors import InvalidDescriptor, ParseError
from .names import ModuleName, parse_module_name


class ModuleType(str, Enum):
    DEFAULT = "Default"
    META = "Meta"
    ABSTRACT = "Abstract"


class PathMode(str, Enum):
    APPEND = "APPEND"
    PREPEND = "PREPEND"
    SET = "SET"


#: Priorities applied when a search path does not declare one.
DEFAULT_SEARCH_PATH_PRIORITIES: Final[Mapping[str, int]] = MappingProxyType(
    {"DIRECTORY": 10, "ENVIRONMENT_VARIABLE": 20, "REGISTRY": 30}
)

KNOWN_KEYS: Final[frozenset[str]] = frozenset(
    {
        "Dependencies",
        "ModuleType",
        "DirectUnload",
        "DefaultSearchPaths",
        "RequiredItems",
        "Parameters",
        "MergeModules",
        "StyleVersion",
        "Category",
        "Paths",
        "Aliases",
        "Functions",
        "RequiredModules",
        "Description",
    }
)


@dataclass(frozen=True, slots=True)
class DependencyRef:
    full_name: str
    optional: bool = False


@dataclass(frozen=True, slots=True)
class SearchPath:
    """Typed strategy input used to locate a module root.

    ``is_default`` distinguishes paths declared by the descriptor from paths
    added at runtime through :meth:`lib_environment_modules.core.Session.add_search_path`.
    """

    type: str
    key: str
    sub_folder: str = ""
    priority: int = 10
    is_default: bool = True

    def to_mapping(self) -> dict[str, object]:
        return {"Type": self.type, "Key": self.key, "SubFolder": self.sub_folder, "Priority": self.priority}


@dataclass(frozen=True, slots=True)
class RequiredItem:
    type: str
    value: str


@dataclass(frozen=True, slots=True)
class PathEdit:
    """A single environment variable edit applied when the module is mounted.

    ``values`` are joined with the platform path separator for APPEND and
    PREPEND edits. ``key`` is an optional label used to look edits up.
    """

    variable: str
    mode: PathMode
    values: tuple[str, ...]
    key: str = ""

    def to_mapping(self) -> dict[str, object]:
        return {"Variable": self.variable, "Mode": self.mode.value, "Value": list(self.values), "Key": self.key}


@dataclass(frozen=True, slots=True)
class CommandDefinition:
    """Alias or shell function declared by a descriptor."""

    name: str
    definition: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class ModuleDescriptor:
    """Immutable template of an environment module.

    Examples
    --------
    >>> descriptor = decode_descriptor("Aspell-2_1-x86", {"RequiredItems": [{"Type": "FILE", "Value": "aspell.exe"}]})
    >>> descriptor.module_name.short_name, descriptor.module_type.value
    ('Aspell', 'Default')
    >>> descriptor.required_items[0].value
    'aspell.exe'
    """

    full_name: str
    module_name: ModuleName
    module_type: ModuleType = ModuleType.DEFAULT
    dependencies: tuple[DependencyRef, ...] = ()
    search_paths: tuple[SearchPath, ...] = ()
    required_items: tuple[RequiredItem, ...] = ()
    path_edits: tuple[PathEdit, ...] = ()
    aliases: tuple[CommandDefinition, ...] = ()
    functions: tuple[CommandDefinition, ...] = ()
    parameters: Mapping[str, Any] = field(default_factory=dict)
    merge_refs: tuple[str, ...] = ()
    required_modules: tuple[str, ...] = ()
    direct_unload: bool = False
    style_version: float = 0.0
    category: tuple[str, ...] = ()
    description: str = ""
    module_base: Path | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        object.__setattr__(self, "search_paths", sort_search_paths(self.search_paths))

    @property
    def short_name(self) -> str:
        return self.module_name.short_name

    @property
    def is_direct_unload(self) -> bool:
        """Meta modules always forward to a dependency and never stay loaded."""

        return self.direct_unload or self.module_type is ModuleType.META

    def depends_on(self, core_module: str) -> bool:
        return core_module in self.required_modules

    def with_patch(self, patch: ModuleDescriptor) -> ModuleDescriptor:
        """Return a copy extended by the parts declared in *patch*.

        Lists are concatenated (dependencies de-duplicated by name), parameters
        are overridden by the patch. Identity fields stay untouched.
        """

        known = {dependency.full_name for dependency in self.dependencies}
        extra_dependencies = tuple(dep for dep in patch.dependencies if dep.full_name not in known)
        return replace(
            self,
            dependencies=self.dependencies + extra_dependencies,
            search_paths=self.search_paths + patch.search_paths,
            required_items=self.required_items + patch.required_items,
            path_edits=self.path_edits + patch.path_edits,
            aliases=self.aliases + patch.aliases,
            functions=self.functions + patch.functions,
            parameters={**self.parameters, **patch.parameters},
        )

    def to_mapping(self) -> dict[str, object]:
        """Serialise the descriptor back into the document shape it was read from."""

        return {
            "ModuleType": self.module_type.value,
            "DirectUnload": self.direct_unload,
            "Dependencies": [{"Name": dep.full_name, "Optional": dep.optional} for dep in self.dependencies],
            "DefaultSearchPaths": [path.to_mapping() for path in self.search_paths if path.is_default],
            "RequiredItems": [{"Type": item.type, "Value": item.value} for item in self.required_items],
            "Paths": [edit.to_mapping() for edit in self.path_edits],
            "Aliases": {alias.name: {"Definition": alias.definition, "Description": alias.description} for alias in self.aliases},
            "Functions": {
                function.name: {"Definition": function.definition, "Description": function.description}
                for function in self.functions
            },
            "Parameters": dict(self.parameters),
            "MergeModules": list(self.merge_refs),
            "RequiredModules": list(self.required_modules),
            "StyleVersion": self.style_version,
            "Category": list(self.category),
            "Description": self.description,
        }


def sort_search_paths(paths: Iterable[SearchPath]) -> tuple[SearchPath, ...]:
    """Order *paths* by descending priority, keeping declaration order on ties.

    Examples
    --------
    >>> low, high = SearchPath("DIRECTORY", "/a", priority=1), SearchPath("DIRECTORY", "/b", priority=5)
    >>> [path.key for path in sort_search_paths([low, high])]
    ['/b', '/a']
    """

    return tuple(sorted(paths, key=lambda path: -path.priority))


def unknown_keys(data: Mapping[str, object]) -> list[str]:
    """Return the keys of *data* that descriptor decoding ignores.

    Examples
    --------
    >>> unknown_keys({"ModuleType": "Meta", "Colour": "blue"})
    ['Colour']
    """

    return sorted(key for key in data if key not in KNOWN_KEYS)


def decode_descriptor(
    full_name: str,
    data: Mapping[str, object],
    *,
    module_base: Path | None = None,
) -> ModuleDescriptor:
    """Decode a descriptor document into a :class:`ModuleDescriptor`.

    Raises
    ------
    InvalidDescriptor
        When the full name is malformed or a recognised key carries a value of
        the wrong shape.
    """

    try:
        module_name = parse_module_name(full_name)
    except ParseError as exc:
        raise InvalidDescriptor(f"Descriptor has an invalid module name: {exc}", module=full_name) from exc

    try:
        return ModuleDescriptor(
            full_name=full_name,
            module_name=module_name,
            module_type=_module_type(data.get("ModuleType", ModuleType.DEFAULT.value)),
            dependencies=tuple(_dependency(entry) for entry in _as_list(data.get("Dependencies"))),
            search_paths=tuple(_search_path(entry) for entry in _as_list(data.get("DefaultSearchPaths"))),
            required_items=tuple(_required_item(entry) for entry in _as_list(data.get("RequiredItems"))),
            path_edits=tuple(_path_edit(entry) for entry in _as_list(data.get("Paths"))),
            aliases=_commands(data.get("Aliases")),
            functions=_commands(data.get("Functions")),
            parameters=_as_mapping(data.get("Parameters"), "Parameters"),
            merge_refs=tuple(str(entry) for entry in _as_list(data.get("MergeModules"))),
            required_modules=tuple(str(entry) for entry in _as_list(data.get("RequiredModules"))),
            direct_unload=bool(data.get("DirectUnload", False)),
            style_version=float(data.get("StyleVersion", 0.0)),  # type: ignore[arg-type]
            category=tuple(str(entry) for entry in _as_list(data.get("Category"))),
            description=str(data.get("Description", "")),
            module_base=module_base,
        )
    except (TypeError, ValueError, KeyError) as exc:
        raise InvalidDescriptor(f"Descriptor of '{full_name}' is malformed: {exc}", module=full_name) from exc


def _module_type(value: object) -> ModuleType:
    for member in ModuleType:
        if str(value).lower() == member.value.lower():
            return member
    raise ValueError(f"unknown ModuleType '{value}'")


def _as_list(value: object) -> list[object]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _as_mapping(value: object, key: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(f"{key} must be a mapping")
    return value


def _dependency(entry: object) -> DependencyRef:
    if isinstance(entry, str):
        return DependencyRef(entry)
    entry = _as_mapping(entry, "Dependencies entry")
    name = entry.get("Name", entry.get("FullName"))
    if not name:
        raise KeyError("dependency without Name")
    return DependencyRef(str(name), bool(entry.get("Optional", False)))


def _search_path(entry: object) -> SearchPath:
    entry = _as_mapping(entry, "DefaultSearchPaths entry")
    path_type = str(entry["Type"]).upper()
    priority = entry.get("Priority")
    if priority is None:
        priority = DEFAULT_SEARCH_PATH_PRIORITIES.get(path_type, 10)
    return SearchPath(path_type, str(entry["Key"]), str(entry.get("SubFolder") or ""), int(priority))  # type: ignore[arg-type]


def _required_item(entry: object) -> RequiredItem:
    entry = _as_mapping(entry, "RequiredItems entry")
    return RequiredItem(str(entry["Type"]).upper(), str(entry["Value"]))


def _path_edit(entry: object) -> PathEdit:
    entry = _as_mapping(entry, "Paths entry")
    mode = PathMode(str(entry.get("Mode", PathMode.PREPEND.value)).upper())
    values = tuple(str(value) for value in _as_list(entry["Value"]))
    return PathEdit(str(entry["Variable"]), mode, values, str(entry.get("Key") or ""))


def _commands(value: object) -> tuple[CommandDefinition, ...]:
    commands: list[CommandDefinition] = []
    for name, body in _as_mapping(value, "Aliases/Functions").items():
        if isinstance(body, Mapping):
            commands.append(CommandDefinition(str(name), str(body["Definition"]), str(body.get("Description", ""))))
        else:
            commands.append(CommandDefinition(str(name), str(body)))
    return tuple(commands)
