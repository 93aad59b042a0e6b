"""Shared fixtures and helpers for the test-suite."""

from .modules import ModuleSandbox, create_module_sandbox

__all__ = ["ModuleSandbox", "create_module_sandbox"]
