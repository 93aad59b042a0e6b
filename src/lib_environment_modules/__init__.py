"""Public package surface of ``lib_environment_modules``.

Loading and unloading goes through :class:`Session`; :func:`create_session`
wires it from :class:`Settings` (see :func:`load_settings`). The naming
grammar and the error taxonomy are re-exported so shells can validate names
and catch one exception family.
"""

from __future__ import annotations

from .adapters.settings.default import load_settings
from .core import Session, create_session
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
from .domain.names import ModuleName, format_module_name, parse_module_name
from .domain.settings import Settings
from .observability import bind_session_id, get_logger

__all__ = [
    "Session",
    "Settings",
    "create_session",
    "load_settings",
    "ModuleName",
    "parse_module_name",
    "format_module_name",
    "get_logger",
    "bind_session_id",
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
