"""CLI adapter for ``lib_environment_modules`` built on ``lib_cli_exit_tools``.

Purpose
-------
Expose the session operations (import, remove, switch, search paths,
parameters) on the command line. The group is chained so that one invocation
is one session::

    lib_environment_modules --shell posix import NotepadPlusPlus list

With ``--shell posix`` or ``--shell powershell`` the resulting environment,
alias and function changes are printed as statements a host shell can
``eval``; human-readable messages then go to stderr.

Contents
--------
* :func:`cli` – root group wiring traceback, verbosity and settings.
* ``import`` / ``remove`` / ``switch`` / ``list`` – module lifecycle commands.
* ``add-search-path`` / ``remove-search-path`` / ``search-paths`` – root lookup.
* ``set-parameter`` / ``get-parameter`` / ``rescan`` / ``info`` – utilities.
* :func:`render_shell` – environment diff → shell statements.
* :func:`main` – entry point used by ``console_scripts`` registration.

System Role
-----------
Outermost layer: talks only to :mod:`lib_environment_modules.core` and lets
``lib_cli_exit_tools`` turn exceptions into exit codes.
"""

from __future__ import annotations

import dataclasses
import logging
import os
import shlex
import sys
from importlib import metadata
from pathlib import Path
from typing import Any, Final, Mapping, Optional, Sequence

import lib_cli_exit_tools
import rich_click as click

from .adapters.settings.default import load_settings
from .core import Session, create_session
from .domain.session import DEFAULT_VIRTUAL_ENV, SessionState
from .observability import get_logger

CLICK_CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
_TRACEBACK_SUMMARY_LIMIT: Final[int] = 500
_TRACEBACK_VERBOSE_LIMIT: Final[int] = 10_000

SHELL_CHOICES: Final[tuple[str, ...]] = ("none", "posix", "powershell")
SEARCH_PATH_TYPES: Final[tuple[str, ...]] = ("DIRECTORY", "ENVIRONMENT_VARIABLE", "REGISTRY")


def _resolve_version() -> str:
    try:
        return metadata.version("lib_environment_modules")
    except metadata.PackageNotFoundError:
        return "0.0.0"


@click.group(
    help="Load and unload environment modules for the current shell",
    context_settings=CLICK_CONTEXT_SETTINGS,
    chain=True,
    invoke_without_command=False,
)
@click.version_option(
    version=_resolve_version(),
    prog_name="lib_environment_modules",
    message="lib_environment_modules version %(version)s",
)
@click.option(
    "--traceback/--no-traceback",
    is_flag=True,
    default=False,
    help="Show full Python traceback on errors",
)
@click.option("--verbose", is_flag=True, default=False, help="Log engine events to stderr")
@click.option(
    "--shell",
    type=click.Choice(SHELL_CHOICES, case_sensitive=False),
    default="none",
    show_default=True,
    help="Print the resulting environment changes as statements for this shell",
)
@click.option(
    "--modules-path",
    "modules_paths",
    multiple=True,
    type=click.Path(path_type=Path, file_okay=False, dir_okay=True),
    help="Additional directory holding module units (repeatable, searched first)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(path_type=Path, exists=True, file_okay=True, dir_okay=False, readable=True),
    default=None,
    help="Settings file overriding the per-user configuration",
)
@click.pass_context
def cli(
    ctx: click.Context,
    traceback: bool,
    verbose: bool,
    shell: str,
    modules_paths: Sequence[Path],
    config_file: Optional[Path],
) -> None:
    """Root command storing global options for the chained subcommands.

    The session itself is created lazily by the first subcommand that needs
    it, so ``info`` works without any module path configured.
    """

    ctx.ensure_object(dict)
    ctx.obj["traceback"] = traceback
    ctx.obj["shell"] = shell.lower()
    ctx.obj["modules_paths"] = tuple(modules_paths)
    ctx.obj["config_file"] = config_file
    ctx.obj["session"] = None
    lib_cli_exit_tools.config.traceback = traceback
    lib_cli_exit_tools.config.traceback_force_color = traceback
    if verbose:
        _attach_stderr_handler()


@cli.result_callback()
@click.pass_context
def _emit_shell(ctx: click.Context, results: Sequence[Any], **_: Any) -> None:
    """Print the shell statements for everything the chain changed."""

    session: Session | None = ctx.obj.get("session")
    shell = ctx.obj.get("shell", "none")
    if session is None or shell == "none":
        return
    output = render_shell(shell, ctx.obj["baseline"], session.environ, session.state)
    if output:
        click.echo(output)


def _session(ctx: click.Context) -> Session:
    """Return the session of this invocation, creating it on first use."""

    obj = ctx.find_root().obj
    if obj.get("session") is None:
        environ = dict(os.environ)
        settings = load_settings(environ=environ, config_file=obj.get("config_file"))
        if obj.get("modules_paths"):
            settings = dataclasses.replace(settings, module_paths=(*obj["modules_paths"], *settings.module_paths))
        obj["baseline"] = dict(environ)
        obj["session"] = create_session(settings, environ)
    return obj["session"]


def _say(ctx: click.Context, message: str) -> None:
    """Echo *message*, keeping stdout clean when shell statements are printed."""

    click.echo(message, err=ctx.find_root().obj.get("shell", "none") != "none")


@cli.command("info", context_settings=CLICK_CONTEXT_SETTINGS)
@click.pass_context
def cli_info(ctx: click.Context) -> None:
    """Print basic distribution metadata so users can confirm installation."""

    try:
        meta = metadata.metadata("lib_environment_modules")
    except metadata.PackageNotFoundError:
        _say(ctx, "lib_environment_modules (metadata unavailable)")
        return
    _say(ctx, f"Info for {meta.get('Name', 'lib_environment_modules')}:")
    _say(ctx, f"  Version         : {meta.get('Version', _resolve_version())}")
    _say(ctx, f"  Requires-Python : {meta.get('Requires-Python', '>=3.10')}")
    summary = meta.get("Summary")
    if summary:
        _say(ctx, f"  Summary         : {summary}")


@cli.command("import", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("names", nargs=-1, required=True)
@click.pass_context
def cli_import(ctx: click.Context, names: Sequence[str]) -> None:
    """Load one or more modules (dependencies first)."""

    session = _session(ctx)
    for name in names:
        loaded = session.import_module(name)
        if loaded is None:
            _say(ctx, f"{name}: nothing to load")
            continue
        _say(ctx, f"Loaded {loaded.full_name} (references: {loaded.reference_counter})")


@cli.command("remove", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("names", nargs=-1, required=True)
@click.option("--force/--no-force", default=False, help="Also remove modules loaded only as dependencies")
@click.option("--delete/--no-delete", default=False, help="Delete the module unit directory after unloading")
@click.pass_context
def cli_remove(ctx: click.Context, names: Sequence[str], force: bool, delete: bool) -> None:
    """Unload one or more modules, releasing dependencies nobody else needs."""

    session = _session(ctx)
    for name in names:
        loaded = session.remove_module(name, force=force, delete=delete)
        state = "still loaded" if loaded.reference_counter > 0 else "removed"
        _say(ctx, f"{loaded.full_name}: {state} (references: {max(loaded.reference_counter, 0)})")


@cli.command("switch", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("old_name")
@click.argument("new_name")
@click.pass_context
def cli_switch(ctx: click.Context, old_name: str, new_name: str) -> None:
    """Replace a loaded module by another one (the old one is restored on failure)."""

    loaded = _session(ctx).switch_module(old_name, new_name)
    _say(ctx, f"Switched {old_name} -> {loaded.full_name if loaded else new_name}")


@cli.command("list", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("pattern", required=False)
@click.option("--available/--loaded", default=False, help="List installable modules instead of loaded ones")
@click.pass_context
def cli_list(ctx: click.Context, pattern: Optional[str], available: bool) -> None:
    """List loaded (default) or available modules matching a wildcard *pattern*."""

    session = _session(ctx)
    if available:
        for descriptor in session.list_available(pattern):
            generated = " (generated)" if session.repository.is_generated(descriptor.full_name) else ""
            _say(ctx, f"{descriptor.full_name:<40} {descriptor.module_type.value}{generated}")
        return
    for loaded in session.get_loaded(pattern):
        flag = "direct" if loaded.is_loaded_directly else "dependency"
        _say(ctx, f"{loaded.full_name:<40} {flag:<10} references={loaded.reference_counter}")


@cli.command("add-search-path", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("module")
@click.argument("key")
@click.option(
    "--type",
    "path_type",
    type=click.Choice(SEARCH_PATH_TYPES, case_sensitive=False),
    default="DIRECTORY",
    show_default=True,
    help="How KEY is turned into a candidate root",
)
@click.option("--sub-folder", default="", help="Folder appended to the candidate root")
@click.option("--priority", type=int, default=None, help="Higher priorities are tried first")
@click.pass_context
def cli_add_search_path(
    ctx: click.Context,
    module: str,
    key: str,
    path_type: str,
    sub_folder: str,
    priority: Optional[int],
) -> None:
    """Add a custom search path used to find the root of MODULE."""

    search_path = _session(ctx).add_search_path(module, path_type, key, sub_folder=sub_folder, priority=priority)
    _say(ctx, f"Added {search_path.type} search path '{search_path.key}' (priority {search_path.priority}) to {module}")


@cli.command("remove-search-path", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("module")
@click.argument("key")
@click.pass_context
def cli_remove_search_path(ctx: click.Context, module: str, key: str) -> None:
    """Remove the custom search paths of MODULE whose key is KEY."""

    removed = _session(ctx).remove_search_path(module, key)
    _say(ctx, f"Removed {len(removed)} search path(s) from {module}")


@cli.command("search-paths", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("module")
@click.pass_context
def cli_search_paths(ctx: click.Context, module: str) -> None:
    """Show the search paths of MODULE in the order they are tried."""

    for search_path in _session(ctx).get_search_paths(module):
        origin = "default" if search_path.is_default else "custom"
        sub_folder = f" [{search_path.sub_folder}]" if search_path.sub_folder else ""
        _say(ctx, f"{search_path.priority:>4} {search_path.type:<20} {search_path.key}{sub_folder} ({origin})")


@cli.command("set-parameter", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.argument("value")
@click.option("--virtual-env", default=DEFAULT_VIRTUAL_ENV, show_default=True, help="Parameter scope")
@click.pass_context
def cli_set_parameter(ctx: click.Context, name: str, value: str, virtual_env: str) -> None:
    """Set a session parameter (user values survive module unloads)."""

    info = _session(ctx).set_parameter(name, value, virtual_env)
    _say(ctx, f"{info.name}[{info.virtual_env}] = {info.value}")


@cli.command("get-parameter", context_settings=CLICK_CONTEXT_SETTINGS)
@click.argument("name")
@click.option("--virtual-env", default=DEFAULT_VIRTUAL_ENV, show_default=True, help="Parameter scope")
@click.pass_context
def cli_get_parameter(ctx: click.Context, name: str, virtual_env: str) -> None:
    """Print a session parameter."""

    info = _session(ctx).get_parameter(name, virtual_env)
    if info is None:
        raise click.ClickException(f"Parameter '{name}' is not set for '{virtual_env}'")
    _say(ctx, f"{info.name}[{info.virtual_env}] = {info.value}")


@cli.command("rescan", context_settings=CLICK_CONTEXT_SETTINGS)
@click.pass_context
def cli_rescan(ctx: click.Context) -> None:
    """Re-read all module units and regenerate the meta modules."""

    session = _session(ctx)
    session.rescan()
    _say(ctx, f"{len(session.repository)} module(s) available")


def render_shell(
    shell: str,
    before: Mapping[str, str],
    after: Mapping[str, str],
    state: SessionState,
) -> str:
    """Render environment, alias and function changes as *shell* statements.

    Examples
    --------
    >>> render_shell("posix", {"A": "1", "B": "2"}, {"A": "1", "C": "x y"}, SessionState())
    "unset B\\nexport C='x y'"
    >>> render_shell("powershell", {}, {"C": "it's"}, SessionState())
    "$env:C = 'it''s'"
    """

    lines: list[str] = []
    for name in sorted(set(before) | set(after)):
        if name in after and before.get(name) == after[name]:
            continue
        if name not in after:
            lines.append(f"Remove-Item Env:{name}" if shell == "powershell" else f"unset {name}")
        elif shell == "powershell":
            lines.append(f"$env:{name} = {_ps_quote(after[name])}")
        else:
            lines.append(f"export {name}={shlex.quote(after[name])}")
    for name in sorted(state.loaded_aliases):
        alias = state.active_alias(name)
        if alias is None:
            continue
        if shell == "powershell":
            lines.append(f"Set-Alias -Name {name} -Value {_ps_quote(alias.definition)}")
        else:
            lines.append(f"alias {name}={shlex.quote(alias.definition)}")
    for name in sorted(state.loaded_functions):
        function = state.active_function(name)
        if function is None:
            continue
        if shell == "powershell":
            lines.append(f"function {name} {{ {function.definition} }}")
        else:
            lines.append(f"{name}() {{ {function.definition}; }}")
    return "\n".join(lines)


def _ps_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _attach_stderr_handler() -> None:
    logger = get_logger()
    if any(getattr(handler, "_lib_environment_modules_cli", False) for handler in logger.handlers):
        return
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s %(context)s"))
    handler._lib_environment_modules_cli = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


def main(argv: Optional[Sequence[str]] = None, *, restore_traceback: bool = True) -> int:
    """Execute the CLI with shared exit handling and return the exit code."""

    previous_traceback = getattr(lib_cli_exit_tools.config, "traceback", False)
    previous_force_color = getattr(lib_cli_exit_tools.config, "traceback_force_color", False)
    try:
        try:
            return lib_cli_exit_tools.run_cli(
                cli,
                argv=list(argv) if argv is not None else None,
                prog_name="lib_environment_modules",
            )
        except BaseException as exc:  # noqa: BLE001 - funnel through shared printers
            lib_cli_exit_tools.print_exception_message(
                trace_back=lib_cli_exit_tools.config.traceback,
                length_limit=(
                    _TRACEBACK_VERBOSE_LIMIT if lib_cli_exit_tools.config.traceback else _TRACEBACK_SUMMARY_LIMIT
                ),
            )
            return lib_cli_exit_tools.get_system_exit_code(exc)
    finally:
        if restore_traceback:
            lib_cli_exit_tools.config.traceback = previous_traceback
            lib_cli_exit_tools.config.traceback_force_color = previous_force_color


if __name__ == "__main__":  # pragma: no cover - exercised via console entry point
    raise SystemExit(main(sys.argv[1:]))
