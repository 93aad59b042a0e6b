"""Reversible environment edits: entry-wise removal and SET restoration."""

from __future__ import annotations

import pytest

from lib_environment_modules.adapters.environment.default import EnvironmentMutator


def _mutator(env: dict[str, str]) -> EnvironmentMutator:
    return EnvironmentMutator(environ=env, separator=":")


def test_prepend_and_remove_restores_value_exactly() -> None:
    env = {"PATH": "/usr/bin:/bin"}
    mutator = _mutator(env)
    inserted = mutator.prepend("PATH", ["/opt/tool/bin"])
    assert env["PATH"] == "/opt/tool/bin:/usr/bin:/bin"
    assert mutator.remove_prepended("PATH", inserted)
    assert env["PATH"] == "/usr/bin:/bin"


def test_append_and_remove_restores_value_exactly() -> None:
    env = {"PATH": "/usr/bin"}
    mutator = _mutator(env)
    inserted = mutator.append("PATH", ["/opt/a", "/opt/b"])
    assert inserted == "/opt/a:/opt/b"
    assert env["PATH"] == "/usr/bin:/opt/a:/opt/b"
    mutator.remove_appended("PATH", inserted)
    assert env["PATH"] == "/usr/bin"


def test_removal_tolerates_foreign_edits() -> None:
    env = {"PATH": "/usr/bin"}
    mutator = _mutator(env)
    inserted = mutator.prepend("PATH", ["/opt/tool"])
    env["PATH"] = "/foreign:" + env["PATH"] + ":/late"
    mutator.remove_prepended("PATH", inserted)
    assert env["PATH"] == "/foreign:/usr/bin:/late"


def test_edit_on_unset_variable_is_deleted_on_removal() -> None:
    env: dict[str, str] = {}
    mutator = _mutator(env)
    inserted = mutator.prepend("TOOL_PATH", ["/opt/tool"])
    assert env["TOOL_PATH"] == "/opt/tool"
    mutator.remove_prepended("TOOL_PATH", inserted)
    assert "TOOL_PATH" not in env


def test_removal_on_initially_unset_variable_keeps_later_entries() -> None:
    env: dict[str, str] = {}
    mutator = _mutator(env)
    inserted = mutator.prepend("TOOL_PATH", ["/opt/tool"])
    env["TOOL_PATH"] = env["TOOL_PATH"] + ":/other"
    mutator.remove_prepended("TOOL_PATH", inserted)
    assert env["TOOL_PATH"] == "/other"


def test_nested_edits_unwind_in_reverse_order() -> None:
    env = {"PATH": "/usr/bin"}
    mutator = _mutator(env)
    first = mutator.prepend("PATH", ["/a"])
    second = mutator.prepend("PATH", ["/b"])
    mutator.remove_prepended("PATH", second)
    mutator.remove_prepended("PATH", first)
    assert env["PATH"] == "/usr/bin"


def test_missing_substring_reports_false() -> None:
    env = {"PATH": "/usr/bin"}
    assert _mutator(env).remove_prepended("PATH", "/nope:") is False
    assert _mutator(env).remove_appended("UNSET", ":/x") is False
    assert env == {"PATH": "/usr/bin"}


def test_set_and_restore() -> None:
    env = {"EDITOR": "vi"}
    mutator = _mutator(env)
    prior = mutator.set("EDITOR", "notepad++")
    assert prior == "vi"
    assert mutator.restore("EDITOR", "notepad++", prior)
    assert env["EDITOR"] == "vi"

    prior = mutator.set("PAGER", "less")
    assert prior is None
    assert mutator.restore("PAGER", "less", prior)
    assert "PAGER" not in env


def test_restore_skips_when_value_was_changed_since() -> None:
    env = {"EDITOR": "vi"}
    mutator = _mutator(env)
    prior = mutator.set("EDITOR", "notepad++")
    env["EDITOR"] = "emacs"
    assert mutator.restore("EDITOR", "notepad++", prior) is False
    assert env["EDITOR"] == "emacs"


def test_get_and_environ_property() -> None:
    env = {"A": "1"}
    mutator = _mutator(env)
    assert mutator.get("A") == "1"
    assert mutator.get("B") is None
    assert mutator.environ is env


@pytest.mark.parametrize("edit", ["prepend", "append"])
def test_edits_on_unset_variable_unwind_in_load_order(edit: str) -> None:
    env: dict[str, str] = {}
    mutator = _mutator(env)
    first = getattr(mutator, edit)("PYTHONPATH", ["/a"])
    second = getattr(mutator, edit)("PYTHONPATH", ["/b"])
    remove = getattr(mutator, f"remove_{edit}ed")

    assert remove("PYTHONPATH", first)
    assert env == {"PYTHONPATH": "/b"}
    assert remove("PYTHONPATH", second)
    assert env == {}



def test_empty_value_list_leaves_variable_untouched() -> None:
    env = {"PATH": "/usr/bin"}
    assert _mutator(env).prepend("PATH", []) == ""
    assert env == {"PATH": "/usr/bin"}
