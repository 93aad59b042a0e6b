"""Required item predicates.

Purpose
-------
Implement :class:`lib_environment_modules.application.ports.RequiredItemHandler`
for the built-in required item types. A candidate root is accepted only when
every required item of the descriptor is satisfied.

Contents
--------
* :class:`FileItemHandler` – ``FILE``: a file exists relative to the folder.
* :class:`DirectoryItemHandler` – ``DIRECTORY``: a sub-directory exists.
* :class:`GitRemoteItemHandler` – ``GIT_REMOTE``: the folder is a git
  checkout with a remote whose URL matches the value.
* :func:`default_required_item_handlers` – registration table.
"""

from __future__ import annotations

import configparser
from pathlib import Path

from ...application.ports import RequiredItemHandler
from ...domain.descriptor import RequiredItem
from ...observability import log_debug


class FileItemHandler:
    def satisfied(self, directory: Path, item: RequiredItem) -> bool:
        return (directory / item.value).is_file()


class DirectoryItemHandler:
    def satisfied(self, directory: Path, item: RequiredItem) -> bool:
        return (directory / item.value).is_dir()


class GitRemoteItemHandler:
    """Match the ``url`` of any ``[remote "..."]`` section in ``.git/config``.

    Trailing slashes and a ``.git`` suffix are ignored on both sides so that
    ``https://host/repo`` matches ``https://host/repo.git``.

    Examples
    --------
    >>> _normalize_remote("https://example.com/tools/repo.git/")
    'https://example.com/tools/repo'
    """

    def satisfied(self, directory: Path, item: RequiredItem) -> bool:
        config_file = directory / ".git" / "config"
        if not config_file.is_file():
            return False
        parser = configparser.ConfigParser(strict=False, interpolation=None)
        try:
            parser.read(config_file, encoding="utf-8")
        except configparser.Error as exc:
            log_debug("git_config_unreadable", module=None, path=str(config_file), error=str(exc))
            return False
        wanted = _normalize_remote(item.value)
        for section in parser.sections():
            if not section.startswith("remote "):
                continue
            url = parser.get(section, "url", fallback=None)
            if url and _normalize_remote(url) == wanted:
                return True
        return False


def _normalize_remote(url: str) -> str:
    url = url.strip().rstrip("/")
    if url.endswith(".git"):
        url = url[: -len(".git")]
    return url


def default_required_item_handlers() -> dict[str, RequiredItemHandler]:
    """Return the built-in predicates keyed by required item type."""

    return {
        "FILE": FileItemHandler(),
        "DIRECTORY": DirectoryItemHandler(),
        "GIT_REMOTE": GitRemoteItemHandler(),
    }
