"""Structured logging helpers shared by every layer of the module engine.

Purpose
    Keep every emission of logging data predictable and contextual so that a
    session's load/unload history can be reconstructed from log records alone.

Contents
    - ``SESSION_ID``: context variable storing the active session identifier.
    - ``get_logger``: returns the shared package logger (quiet by default).
    - ``bind_session_id``: binds or clears the active session identifier.
    - ``log_debug`` / ``log_info`` / ``log_warning`` / ``log_error``: emit
      structured entries via a single private emitter.
    - ``make_event``: convenience builder for structured event payloads.

System Integration
    Used by adapters, the application services and the composition root. The
    domain layer stays free from logging concerns except for descriptor
    decoding, which reports unknown keys as warnings.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any, Final, Mapping

SESSION_ID: ContextVar[str | None] = ContextVar("lib_environment_modules_session_id", default=None)
"""Identifier of the session that is currently mounting or dismounting modules."""

_LOGGER: Final[logging.Logger] = logging.getLogger("lib_environment_modules")
_LOGGER.addHandler(logging.NullHandler())


def get_logger() -> logging.Logger:
    """Expose the package logger so applications may attach handlers.

    Why
        Leaves the library silent by default while giving host applications
        (and the CLI ``--verbose`` switch) control over handlers.
    """

    return _LOGGER


def bind_session_id(session_id: str | None) -> None:
    """Bind or clear the active session identifier.

    Examples
    --------
    >>> bind_session_id('s-1')
    >>> SESSION_ID.get()
    's-1'
    >>> bind_session_id(None)
    >>> SESSION_ID.get() is None
    True
    """

    SESSION_ID.set(session_id)


def log_debug(message: str, **fields: Any) -> None:
    """Emit a structured debug log entry that includes the session context."""

    _emit(logging.DEBUG, message, fields)


def log_info(message: str, **fields: Any) -> None:
    """Emit a structured info log entry that includes the session context."""

    _emit(logging.INFO, message, fields)


def log_warning(message: str, **fields: Any) -> None:
    """Emit a structured warning log entry that includes the session context."""

    _emit(logging.WARNING, message, fields)


def log_error(message: str, **fields: Any) -> None:
    """Emit a structured error log entry that includes the session context."""

    _emit(logging.ERROR, message, fields)


def make_event(
    module: str | None,
    path: str | None,
    payload: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a structured logging payload for module lifecycle events.

    Inputs
        module: Full name of the module the event refers to, if any.
        path: Filesystem path associated with the event, if available.
        payload: Optional mapping with extra diagnostic detail.
    Outputs
        dict[str, Any]: Data safe to unpack into :func:`log_*` helpers.

    Examples
    --------
    >>> make_event('Aspell-2_1-x86', None, {'reference_counter': 2})
    {'module': 'Aspell-2_1-x86', 'path': None, 'reference_counter': 2}
    """

    event: dict[str, Any] = {"module": module, "path": path}
    if payload:
        event |= dict(payload)
    return event


def _emit(level: int, message: str, fields: Mapping[str, Any]) -> None:
    """Send a log entry through the shared logger with contextual metadata."""

    context = {"session_id": SESSION_ID.get()}
    context.update(fields)
    _LOGGER.log(level, message, extra={"context": context})
