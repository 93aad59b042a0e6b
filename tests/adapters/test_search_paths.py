"""Built-in search path strategies."""

from __future__ import annotations

from pathlib import Path

from lib_environment_modules.adapters.search_paths.default import (
    DirectorySearchPathHandler,
    EnvironmentSearchPathHandler,
    RegistrySearchPathHandler,
    default_search_path_handlers,
)
from lib_environment_modules.domain.descriptor import SearchPath


def test_directory_handler_accepts_existing_folder(tmp_path: Path) -> None:
    handler = DirectorySearchPathHandler()
    assert handler.candidate(SearchPath("DIRECTORY", str(tmp_path))) == tmp_path
    assert handler.candidate(SearchPath("DIRECTORY", str(tmp_path / "missing"))) is None


def test_directory_handler_expands_user(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("HOME", str(tmp_path))
    (tmp_path / "tools").mkdir()
    assert DirectorySearchPathHandler().candidate(SearchPath("DIRECTORY", "~/tools")) == tmp_path / "tools"


def test_environment_handler_reads_variable(tmp_path: Path) -> None:
    handler = EnvironmentSearchPathHandler(environ={"TOOL_HOME": str(tmp_path), "EMPTY": ""})
    assert handler.candidate(SearchPath("ENVIRONMENT_VARIABLE", "TOOL_HOME")) == tmp_path
    assert handler.candidate(SearchPath("ENVIRONMENT_VARIABLE", "EMPTY")) is None
    assert handler.candidate(SearchPath("ENVIRONMENT_VARIABLE", "UNSET")) is None


def test_registry_handler_uses_table(tmp_path: Path) -> None:
    key = r"HKLM\Software\Notepad++"
    handler = RegistrySearchPathHandler(table={key: str(tmp_path)}, platform="linux")
    assert handler.candidate(SearchPath("REGISTRY", key)) == tmp_path
    assert handler.candidate(SearchPath("REGISTRY", r"HKLM\Software\Other")) is None


def test_default_handler_table() -> None:
    handlers = default_search_path_handlers(environ={}, registry={}, platform="linux")
    assert set(handlers) == {"DIRECTORY", "ENVIRONMENT_VARIABLE", "REGISTRY"}
