"""Domain-level exception hierarchy.

Purpose
-------
Expose the error taxonomy shared by adapters, the application services and
consuming shells. The hierarchy lives in the domain layer so that every outer
layer may raise and catch it without depending on another adapter.

Contents
--------
* :class:`EnvironmentModuleError` – umbrella base class.
* :class:`ParseError` – malformed module full name.
* :class:`NotFound` – descriptor, loaded instance or root directory missing.
* :class:`Conflict` – an incompatible version/architecture is already loaded.
* :class:`CircularDependency` – a dependency chain loops back onto itself.
* :class:`DependencyFailed` – a mandatory dependency could not be loaded.
* :class:`InvalidDescriptor` – a descriptor document cannot be decoded.
* :class:`InvalidModuleType` – an abstract module was requested directly.
* :class:`RemovalBlocked` – a module is still needed and cannot be removed.

System Role
-----------
All failures are local to a single load/unload call. The loader guarantees
that the session looks untouched when one of these errors escapes it.
"""

from __future__ import annotations


class EnvironmentModuleError(Exception):
    """Base type for all exceptions emitted by ``lib_environment_modules``.

    ``module`` carries the full name the failure refers to (when known) so
    shells can report it without parsing the message.
    """

    def __init__(self, message: str, *, module: str | None = None) -> None:
        super().__init__(message)
        self.module = module


class ParseError(EnvironmentModuleError):
    """Raised when a full module name does not follow the naming grammar."""


class NotFound(EnvironmentModuleError):
    """Represents a missing descriptor, loaded module or root directory.

    Recoverable: the caller usually fixes it by adding a search path or by
    rescanning the module paths.
    """


class Conflict(EnvironmentModuleError):
    """Another version or architecture with the same short name is loaded."""


class CircularDependency(EnvironmentModuleError):
    """A dependency chain requested a module that is still being loaded."""


class DependencyFailed(EnvironmentModuleError):
    """A mandatory dependency could not be satisfied.

    The original failure is available as ``__cause__``.
    """


class InvalidDescriptor(EnvironmentModuleError):
    """A descriptor file could not be parsed into a module descriptor."""


class InvalidModuleType(EnvironmentModuleError):
    """An abstract module was requested directly instead of as a dependency."""


class RemovalBlocked(EnvironmentModuleError):
    """A module is only loaded as a dependency or still referenced by others."""
