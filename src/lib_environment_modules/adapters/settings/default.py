"""Settings loader.

Purpose
-------
Build a :class:`lib_environment_modules.domain.settings.Settings` from the
user's configuration file and environment variables.

Precedence (lowest to highest)
------------------------------
1. Built-in defaults (cache and search path files live next to the config).
2. ``config.toml`` / ``config.json`` / ``config.yaml`` in the per-user
   configuration directory (XDG on Linux, Application Support on macOS,
   ``%APPDATA%`` on Windows), or the file named by
   ``LIB_ENVIRONMENT_MODULES_CONFIG``.
3. ``LIB_ENVIRONMENT_MODULES_<KEY>`` environment variables with scalar
   coercion (``true``/``false``, integers, ``none``).
4. ``ENVIRONMENT_MODULES_PATH`` (path-list) appended to ``module_paths``.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Any, Mapping

from ...domain.settings import Settings
from ...observability import log_debug
from ..descriptors.structured import load_mapping

ENV_PREFIX = "LIB_ENVIRONMENT_MODULES_"
MODULE_PATH_VARIABLE = "ENVIRONMENT_MODULES_PATH"
CONFIG_DIR_NAME = "lib-environment-modules"
_CONFIG_NAMES = ("config.toml", "config.json", "config.yaml", "config.yml")
_PATH_KEYS = ("cache_file", "search_path_file", "generated_path")


def user_config_dir(*, environ: Mapping[str, str] | None = None, platform: str | None = None) -> Path:
    """Return the per-user configuration directory for this platform.

    Examples
    --------
    >>> user_config_dir(environ={"XDG_CONFIG_HOME": "/tmp/xdg"}, platform="linux").as_posix()
    '/tmp/xdg/lib-environment-modules'
    """

    env = os.environ if environ is None else environ
    platform = platform or sys.platform
    if platform.startswith("win"):
        base = Path(env.get("APPDATA", Path.home() / "AppData" / "Roaming"))
    elif platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        xdg = env.get("XDG_CONFIG_HOME")
        base = Path(xdg) if xdg else Path.home() / ".config"
    return base / CONFIG_DIR_NAME


def load_settings(
    *,
    environ: Mapping[str, str] | None = None,
    config_file: Path | None = None,
    platform: str | None = None,
) -> Settings:
    """Assemble :class:`Settings` following the documented precedence."""

    env = os.environ if environ is None else environ
    config_dir = user_config_dir(environ=env, platform=platform)
    values: dict[str, Any] = {
        "cache_file": config_dir / "module_cache.json",
        "search_path_file": config_dir / "search_paths.json",
    }

    path = _config_path(env, config_dir, config_file)
    if path is not None:
        values.update(load_mapping(path))
        log_debug("settings_file_loaded", module=None, path=str(path))

    for key, raw in env.items():
        if key.startswith(ENV_PREFIX) and key != f"{ENV_PREFIX}CONFIG":
            values[key[len(ENV_PREFIX) :].lower()] = _coerce(raw)

    module_paths = _as_paths(values.get("module_paths"))
    module_paths.extend(_as_paths(env.get(MODULE_PATH_VARIABLE)))
    values["module_paths"] = tuple(dict.fromkeys(module_paths))
    for key in _PATH_KEYS:
        if values.get(key) is not None:
            values[key] = Path(str(values[key]))

    known = set(Settings.__dataclass_fields__)
    return Settings(**{key: value for key, value in values.items() if key in known})


def _config_path(env: Mapping[str, str], config_dir: Path, config_file: Path | None) -> Path | None:
    if config_file is not None:
        return Path(config_file)
    explicit = env.get(f"{ENV_PREFIX}CONFIG")
    if explicit:
        return Path(explicit)
    for name in _CONFIG_NAMES:
        candidate = config_dir / name
        if candidate.is_file():
            return candidate
    return None


def _as_paths(value: object) -> list[Path]:
    if not value:
        return []
    if isinstance(value, str):
        return [Path(part) for part in value.split(os.pathsep) if part]
    return [Path(str(part)) for part in value]  # type: ignore[union-attr]


def _coerce(value: str) -> object:
    """Coerce textual environment values to Python primitives where possible.

    Examples
    --------
    >>> _coerce('true'), _coerce('10'), _coerce('none'), _coerce('x64')
    (True, 10, None, 'x64')
    """

    lowered = value.lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    if value.isdigit() or (value.startswith("-") and value[1:].isdigit()):
        return int(value)
    return value
