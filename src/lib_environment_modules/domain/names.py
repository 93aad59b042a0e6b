"""Module naming grammar.

Purpose
-------
Turn a full module name such as ``NotepadPlusPlus-7_5-x64`` into a
:class:`ModuleName` value object and back. Every identity comparison in the
engine (conflict checks, meta synthesis, reference lookup) goes through this
module so the grammar lives in exactly one place.

Grammar
-------
``Name[-Version][-Architecture][-AdditionalOptions]``. Segments after the name
are matched greedily against the version, architecture and additional-options
patterns in that order. A segment that does not fit the current pattern is
retried against the next one; a pattern that was skipped is never revisited.
Consequently a version-looking token after an architecture token is read as
additional options.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from .errors import ParseError

NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9A-Za-z_]+$")
VERSION_PATTERN: Final[re.Pattern[str]] = re.compile(r"^\d+[0-9A-Za-z]*(?:_[0-9A-Za-z]+)*$")
ARCHITECTURE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(?:x64|x86)$")
OPTIONS_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9A-Za-z_]+$")

ARCHITECTURES: Final[tuple[str, ...]] = ("x64", "x86")

_OPTIONAL_FIELDS: Final[tuple[tuple[str, re.Pattern[str]], ...]] = (
    ("version", VERSION_PATTERN),
    ("architecture", ARCHITECTURE_PATTERN),
    ("additional_options", OPTIONS_PATTERN),
)


@dataclass(frozen=True, slots=True)
class ModuleName:
    """Parsed identity of an environment module.

    Examples
    --------
    >>> name = parse_module_name("Aspell-2_1-x86")
    >>> name.name, name.version, name.architecture
    ('Aspell', '2_1', 'x86')
    >>> name.major_version
    '2'
    """

    name: str
    version: str | None = None
    architecture: str | None = None
    additional_options: str | None = None

    @property
    def short_name(self) -> str:
        """Key used by the session to enforce one loaded instance per module."""

        return self.name

    @property
    def full_name(self) -> str:
        return format_module_name(self)

    @property
    def major_version(self) -> str | None:
        if self.version is None:
            return None
        return self.version.split("_", 1)[0]

    def is_compatible_with(self, requested: ModuleName) -> bool:
        """Return ``True`` when *requested* may be served by this (loaded) module.

        Fields left open in *requested* match anything; specified fields must
        match exactly, except that a version also matches its refinements
        (``2`` matches ``2_1``).

        Examples
        --------
        >>> loaded = parse_module_name("NotepadPlusPlus-7_5-x64")
        >>> loaded.is_compatible_with(parse_module_name("NotepadPlusPlus"))
        True
        >>> loaded.is_compatible_with(parse_module_name("NotepadPlusPlus-x86"))
        False
        >>> loaded.is_compatible_with(parse_module_name("NotepadPlusPlus-7-x64"))
        True
        """

        if requested.name != self.name:
            return False
        for field_name, _ in _OPTIONAL_FIELDS:
            wanted = getattr(requested, field_name)
            actual = getattr(self, field_name)
            if wanted is None or wanted == actual:
                continue
            if field_name == "version" and actual and actual.startswith(f"{wanted}_"):
                continue
            return False
        return True

    def __str__(self) -> str:
        return self.full_name


def parse_module_name(full_name: str) -> ModuleName:
    """Parse *full_name* into a :class:`ModuleName`.

    Raises
    ------
    ParseError
        When the name segment is invalid or segments remain after all optional
        patterns were consumed.

    Examples
    --------
    >>> parse_module_name("Foo-gcc")
    ModuleName(name='Foo', version=None, architecture=None, additional_options='gcc')
    >>> parse_module_name("Foo-x64-2_1").additional_options
    '2_1'
    """

    if not full_name:
        raise ParseError("Module name must not be empty", module=full_name)
    segments = full_name.split("-")
    if not NAME_PATTERN.match(segments[0]):
        raise ParseError(f"Invalid module name segment '{segments[0]}' in '{full_name}'", module=full_name)

    fields: dict[str, str] = {}
    pattern_index = 0
    for segment in segments[1:]:
        while pattern_index < len(_OPTIONAL_FIELDS) and not _OPTIONAL_FIELDS[pattern_index][1].match(segment):
            pattern_index += 1
        if pattern_index >= len(_OPTIONAL_FIELDS):
            raise ParseError(f"Unexpected segment '{segment}' in module name '{full_name}'", module=full_name)
        fields[_OPTIONAL_FIELDS[pattern_index][0]] = segment
        pattern_index += 1
    return ModuleName(segments[0], **fields)


def format_module_name(name: ModuleName) -> str:
    """Join the present fields of *name* with ``-``.

    Examples
    --------
    >>> format_module_name(ModuleName("Foo", "2_1", None, "gcc"))
    'Foo-2_1-gcc'
    """

    parts = [name.name, name.version, name.architecture, name.additional_options]
    return "-".join(part for part in parts if part)


def version_key(version: str | None) -> tuple[tuple[int, str], ...]:
    """Return a sortable key where numeric components compare numerically.

    Examples
    --------
    >>> version_key("10_2") > version_key("9_12")
    True
    >>> version_key(None)
    ()
    """

    if not version:
        return ()
    key: list[tuple[int, str]] = []
    for part in version.split("_"):
        digits = re.match(r"\d*", part).group(0)  # type: ignore[union-attr]
        key.append((int(digits) if digits else -1, part[len(digits) :]))
    return tuple(key)
