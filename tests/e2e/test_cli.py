"""End-to-end CLI coverage for the chained module commands.

Every invocation is one session: modules imported earlier in the chain are
visible to later commands, and ``--shell`` prints the resulting environment
changes for the host shell to evaluate.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from click.testing import CliRunner

import lib_cli_exit_tools

from lib_environment_modules import NotFound, cli
from tests.support import ModuleSandbox, create_module_sandbox
from tests.support.modules import BASE_PATH


def _runner() -> CliRunner:
    """Return a fresh CLI runner so each test starts from a clean state."""

    return CliRunner()


@pytest.fixture
def sandbox(tmp_path: Path) -> ModuleSandbox:
    sandbox = create_module_sandbox(tmp_path)
    sandbox.add_module(
        "Tool-1_0",
        Paths=[{"Variable": "PATH", "Value": "/opt/tool-1_0"}],
        Aliases={"t": "tool --fast"},
    )
    sandbox.add_module("Tool-2_0", Paths=[{"Variable": "PATH", "Value": "/opt/tool-2_0"}])
    sandbox.add_module("Plugin-1_0", Dependencies=["Tool-1_0"], Parameters={"plugin.mode": "fast"})
    return sandbox


def test_cli_import_and_list_in_one_chain(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(cli.cli, ["import", "Plugin-1_0", "list"], env=sandbox.cli_env)

    assert result.exit_code == 0, result.output
    assert "Loaded Plugin-1_0 (references: 1)" in result.output
    lines = [line.split() for line in result.output.splitlines() if "references=" in line]
    assert lines == [["Plugin-1_0", "direct", "references=1"], ["Tool-1_0", "dependency", "references=1"]]


def test_cli_posix_shell_output(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(cli.cli, ["--shell", "posix", "import", "Tool-1_0"], env=sandbox.cli_env)

    assert result.exit_code == 0, result.output
    assert f"export PATH=/opt/tool-1_0{os.pathsep}{BASE_PATH}" in result.output
    assert "alias t='tool --fast'" in result.output


def test_cli_powershell_shell_output(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(cli.cli, ["--shell", "powershell", "import", "Tool"], env=sandbox.cli_env)

    assert result.exit_code == 0, result.output
    assert f"$env:PATH = '/opt/tool-2_0{os.pathsep}{BASE_PATH}'" in result.output


def test_cli_import_then_remove_leaves_environment_untouched(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(
        cli.cli,
        ["--shell", "posix", "import", "Plugin-1_0", "remove", "Plugin-1_0"],
        env=sandbox.cli_env,
    )

    assert result.exit_code == 0, result.output
    assert "Plugin-1_0: removed (references: 0)" in result.output
    assert "export PATH" not in result.output


def test_cli_switch_and_list_available(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(
        cli.cli,
        ["import", "Tool-1_0", "switch", "Tool-1_0", "Tool-2_0", "list", "--available", "Tool*"],
        env=sandbox.cli_env,
    )

    assert result.exit_code == 0, result.output
    assert "Switched Tool-1_0 -> Tool-2_0" in result.output
    assert "(generated)" in result.output


def test_cli_search_path_commands(sandbox: ModuleSandbox) -> None:
    install = sandbox.install("tool")
    runner = _runner()

    added = runner.invoke(
        cli.cli,
        ["add-search-path", "Tool-1_0", str(install), "--priority", "5", "search-paths", "Tool-1_0"],
        env=sandbox.cli_env,
    )
    assert added.exit_code == 0, added.output
    assert "(priority 5)" in added.output
    assert f"{install} (custom)" in added.output

    removed = runner.invoke(cli.cli, ["remove-search-path", "Tool-1_0", str(install)], env=sandbox.cli_env)
    assert removed.exit_code == 0, removed.output
    assert "Removed 1 search path(s) from Tool-1_0" in removed.output


def test_cli_parameters(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(
        cli.cli,
        ["import", "Plugin-1_0", "get-parameter", "plugin.mode", "set-parameter", "plugin.mode", "slow", "get-parameter", "plugin.mode"],
        env=sandbox.cli_env,
    )

    assert result.exit_code == 0, result.output
    assert "plugin.mode[Default] = fast" in result.output
    assert "plugin.mode[Default] = slow" in result.output


def test_cli_missing_parameter_is_reported(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(cli.cli, ["get-parameter", "nothing"], env=sandbox.cli_env)

    assert result.exit_code == 1
    assert "is not set" in result.output


def test_cli_modules_path_option(sandbox: ModuleSandbox) -> None:
    env = {**sandbox.cli_env, "ENVIRONMENT_MODULES_PATH": None}
    result = _runner().invoke(
        cli.cli,
        ["--modules-path", str(sandbox.modules_dir), "rescan", "import", "Tool"],
        env=env,
    )

    assert result.exit_code == 0, result.output
    assert "module(s) available" in result.output
    assert "Loaded Tool-2_0" in result.output


def test_cli_unknown_module_fails(sandbox: ModuleSandbox) -> None:
    result = _runner().invoke(cli.cli, ["import", "Missing-1_0"], env=sandbox.cli_env)

    assert result.exit_code != 0
    assert isinstance(result.exception, NotFound)


def test_cli_info_handles_missing_metadata(monkeypatch: pytest.MonkeyPatch) -> None:
    """`cli info` must degrade gracefully when package metadata is unavailable."""

    def _raise_pkg_not_found(*_args, **_kwargs):
        raise cli.metadata.PackageNotFoundError()

    monkeypatch.setattr(cli.metadata, "metadata", _raise_pkg_not_found)
    result = _runner().invoke(cli.cli, ["info"])
    assert result.exit_code == 0
    assert "metadata unavailable" in result.output


def test_cli_main_restores_traceback_flag(sandbox: ModuleSandbox, monkeypatch: pytest.MonkeyPatch) -> None:
    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    for key, value in sandbox.cli_env.items():
        monkeypatch.setenv(key, value)

    exit_code = cli.main(["--traceback", "import", "Tool-1_0"], restore_traceback=True)

    assert exit_code == 0
    assert getattr(lib_cli_exit_tools.config, "traceback", False) == previous_traceback


def test_cli_main_returns_failure_exit_code(sandbox: ModuleSandbox, monkeypatch: pytest.MonkeyPatch) -> None:
    for key, value in sandbox.cli_env.items():
        monkeypatch.setenv(key, value)

    assert cli.main(["import", "Missing-1_0"]) != 0
