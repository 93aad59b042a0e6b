"""Environment variable mutator.

Purpose
-------
Implement the :class:`lib_environment_modules.application.ports.EnvironmentEditor`
protocol on top of a mutable mapping (``os.environ`` by default). Every edit
returns exactly what it wrote so the mount registry can undo it later.

Key behaviours
--------------
* PREPEND/APPEND join values with the platform path-list separator and return
  the joined entries (without any separator used to attach them).
* Removal cuts the recorded entries as one contiguous run out of the
  current value, together with the separator that attached them. Entries
  other tools or other modules added around them are kept, and removing a
  neighbour never invalidates another record.
* A variable whose value becomes empty is deleted.
* SET is undone only while the variable still holds the value we wrote.
"""

from __future__ import annotations

import os
from typing import MutableMapping, Sequence

from ...observability import log_debug


class EnvironmentMutator:
    """Apply and revert reversible edits on an environment mapping.

    Examples
    --------
    >>> env = {"PATH": "/usr/bin"}
    >>> mutator = EnvironmentMutator(environ=env, separator=":")
    >>> inserted = mutator.prepend("PATH", ["/opt/a", "/opt/b"])
    >>> env["PATH"], inserted
    ('/opt/a:/opt/b:/usr/bin', '/opt/a:/opt/b')
    >>> mutator.remove_prepended("PATH", inserted)
    True
    >>> env["PATH"]
    '/usr/bin'
    """

    def __init__(
        self,
        *,
        environ: MutableMapping[str, str] | None = None,
        separator: str | None = None,
    ) -> None:
        self._environ = environ if environ is not None else os.environ
        self.separator = separator or os.pathsep

    @property
    def environ(self) -> MutableMapping[str, str]:
        return self._environ

    def get(self, variable: str) -> str | None:
        return self._environ.get(variable)

    def prepend(self, variable: str, values: Sequence[str]) -> str:
        joined = self.separator.join(values)
        if not joined:
            return joined
        current = self._environ.get(variable, "")
        self._environ[variable] = f"{joined}{self.separator}{current}" if current else joined
        log_debug("environment_prepended", module=None, path=None, variable=variable, inserted=joined)
        return joined

    def append(self, variable: str, values: Sequence[str]) -> str:
        joined = self.separator.join(values)
        if not joined:
            return joined
        current = self._environ.get(variable, "")
        self._environ[variable] = f"{current}{self.separator}{joined}" if current else joined
        log_debug("environment_appended", module=None, path=None, variable=variable, inserted=joined)
        return joined

    def set(self, variable: str, value: str) -> str | None:
        prior = self._environ.get(variable)
        self._environ[variable] = value
        log_debug("environment_set", module=None, path=None, variable=variable)
        return prior

    def remove_prepended(self, variable: str, inserted: str) -> bool:
        return self._cut(variable, inserted, from_end=False)

    def remove_appended(self, variable: str, inserted: str) -> bool:
        return self._cut(variable, inserted, from_end=True)

    def restore(self, variable: str, written: str, prior: str | None) -> bool:
        if self._environ.get(variable) != written:
            log_debug("environment_restore_skipped", module=None, path=None, variable=variable)
            return False
        if prior is None:
            self._environ.pop(variable, None)
        else:
            self._environ[variable] = prior
        return True

    def _cut(self, variable: str, inserted: str, *, from_end: bool) -> bool:
        """Remove the entries of *inserted* from *variable*.

        Why
        ----
        Two modules editing a variable that started out unset attach to each
        other in load order but may be removed in any order. Working on whole
        entries keeps every record valid whatever its neighbours did.

        Returns
        -------
        bool
            ``True`` when the run of entries was found and removed.
        """

        current = self._environ.get(variable)
        needle = self._entries(inserted)
        if current is None or not needle:
            return False
        entries = current.split(self.separator)
        index = _find_run(entries, needle, from_end=from_end)
        if index < 0:
            log_debug("environment_substring_missing", module=None, path=None, variable=variable, inserted=inserted)
            return False
        del entries[index : index + len(needle)]
        if entries:
            self._environ[variable] = self.separator.join(entries)
        else:
            self._environ.pop(variable, None)
        return True

    def _entries(self, inserted: str) -> list[str]:
        joined = inserted.removeprefix(self.separator).removesuffix(self.separator)
        return joined.split(self.separator) if joined else []


def _find_run(entries: list[str], needle: list[str], *, from_end: bool) -> int:
    """Return the start of *needle* inside *entries*, or ``-1``.

    Examples
    --------
    >>> _find_run(["/b", "/a", "/b"], ["/b"], from_end=True)
    2
    >>> _find_run(["/b", "/a", "/b"], ["/a", "/b"], from_end=False)
    1
    >>> _find_run(["/a"], ["/a", "/b"], from_end=False)
    -1
    """

    last = len(entries) - len(needle)
    starts = range(last, -1, -1) if from_end else range(last + 1)
    for start in starts:
        if entries[start : start + len(needle)] == needle:
            return start
    return -1
