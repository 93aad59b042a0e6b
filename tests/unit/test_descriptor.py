"""Descriptor decoding, search path ordering and patch merging."""

from __future__ import annotations

from pathlib import Path

import pytest

from lib_environment_modules.domain.descriptor import (
    DependencyRef,
    ModuleType,
    PathMode,
    SearchPath,
    decode_descriptor,
    sort_search_paths,
    unknown_keys,
)
from lib_environment_modules.domain.errors import InvalidDescriptor


def test_decode_full_document() -> None:
    descriptor = decode_descriptor(
        "NotepadPlusPlus-7_5-x64",
        {
            "ModuleType": "Default",
            "Dependencies": ["Aspell-2_1-x86", {"Name": "Spellcheck", "Optional": True}],
            "DefaultSearchPaths": [
                {"Type": "directory", "Key": "/opt/npp"},
                {"Type": "ENVIRONMENT_VARIABLE", "Key": "NPP_HOME", "SubFolder": "bin"},
            ],
            "RequiredItems": [{"Type": "file", "Value": "notepad++.exe"}],
            "Paths": [
                {"Variable": "PATH", "Value": "${ModuleRoot}"},
                {"Variable": "NPP_PLUGINS", "Mode": "append", "Value": ["a", "b"], "Key": "plugins"},
            ],
            "Aliases": {"npp": {"Definition": "notepad++", "Description": "editor"}, "n": "notepad++"},
            "Functions": {"edit": "notepad++ $args"},
            "Parameters": {"Theme": "dark"},
            "MergeModules": ["extra.json"],
            "StyleVersion": 2,
            "Category": ["Editor"],
            "Description": "Text editor",
        },
        module_base=Path("/modules/NotepadPlusPlus-7_5-x64"),
    )

    assert descriptor.short_name == "NotepadPlusPlus"
    assert descriptor.module_type is ModuleType.DEFAULT
    assert descriptor.dependencies == (DependencyRef("Aspell-2_1-x86"), DependencyRef("Spellcheck", True))
    assert [path.type for path in descriptor.search_paths] == ["ENVIRONMENT_VARIABLE", "DIRECTORY"]
    assert descriptor.search_paths[0].sub_folder == "bin"
    assert descriptor.required_items[0].type == "FILE"
    assert descriptor.path_edits[0].mode is PathMode.PREPEND
    assert descriptor.path_edits[1].values == ("a", "b")
    assert descriptor.path_edits[1].key == "plugins"
    assert [alias.name for alias in descriptor.aliases] == ["npp", "n"]
    assert descriptor.aliases[0].description == "editor"
    assert descriptor.functions[0].definition == "notepad++ $args"
    assert descriptor.parameters["Theme"] == "dark"
    assert descriptor.merge_refs == ("extra.json",)
    assert descriptor.style_version == 2.0
    assert descriptor.module_base == Path("/modules/NotepadPlusPlus-7_5-x64")


def test_decode_defaults_for_empty_document() -> None:
    descriptor = decode_descriptor("Tool", {})
    assert descriptor.module_type is ModuleType.DEFAULT
    assert descriptor.dependencies == ()
    assert not descriptor.is_direct_unload


def test_meta_modules_are_direct_unload() -> None:
    assert decode_descriptor("Tool", {"ModuleType": "meta"}).is_direct_unload
    assert decode_descriptor("Tool", {"DirectUnload": True}).is_direct_unload


@pytest.mark.parametrize(
    "document",
    [
        {"ModuleType": "Plugin"},
        {"Dependencies": [{"Optional": True}]},
        {"DefaultSearchPaths": [{"Type": "DIRECTORY"}]},
        {"Paths": [{"Variable": "PATH", "Mode": "REPLACE", "Value": "x"}]},
        {"Parameters": ["not", "a", "mapping"]},
        {"StyleVersion": "two"},
    ],
)
def test_decode_rejects_malformed_documents(document: dict[str, object]) -> None:
    with pytest.raises(InvalidDescriptor):
        decode_descriptor("Tool", document)


def test_decode_rejects_malformed_full_name() -> None:
    with pytest.raises(InvalidDescriptor) as excinfo:
        decode_descriptor("Tool-a-b", {})
    assert excinfo.value.module == "Tool-a-b"


def test_default_priorities_follow_search_path_type() -> None:
    descriptor = decode_descriptor(
        "Tool",
        {
            "DefaultSearchPaths": [
                {"Type": "DIRECTORY", "Key": "/a"},
                {"Type": "REGISTRY", "Key": r"HKLM\Software\Tool"},
                {"Type": "DIRECTORY", "Key": "/b", "Priority": 99},
            ]
        },
    )
    assert [(path.key, path.priority) for path in descriptor.search_paths] == [
        ("/b", 99),
        (r"HKLM\Software\Tool", 30),
        ("/a", 10),
    ]


def test_sort_search_paths_keeps_declaration_order_on_ties() -> None:
    paths = [SearchPath("DIRECTORY", key, priority=5) for key in ("/one", "/two", "/three")]
    assert [path.key for path in sort_search_paths(paths)] == ["/one", "/two", "/three"]


def test_unknown_keys() -> None:
    assert unknown_keys({"ModuleType": "Meta", "Colour": "blue", "Zebra": 1}) == ["Colour", "Zebra"]


def test_with_patch_extends_lists_and_overrides_parameters() -> None:
    base = decode_descriptor(
        "Tool",
        {"Dependencies": ["A"], "Parameters": {"Mode": "fast", "Keep": 1}, "Paths": [{"Variable": "PATH", "Value": "x"}]},
    )
    patch = decode_descriptor("Tool", {"Dependencies": ["A", "B"], "Parameters": {"Mode": "slow"}, "Aliases": {"t": "tool"}})

    merged = base.with_patch(patch)

    assert [dep.full_name for dep in merged.dependencies] == ["A", "B"]
    assert dict(merged.parameters) == {"Mode": "slow", "Keep": 1}
    assert len(merged.path_edits) == 1
    assert merged.aliases[0].name == "t"
    assert merged.full_name == "Tool"


def test_to_mapping_decodes_back_to_an_equal_descriptor() -> None:
    original = decode_descriptor(
        "Aspell-2_1-x86",
        {
            "Dependencies": [{"Name": "Dict", "Optional": True}],
            "DefaultSearchPaths": [{"Type": "DIRECTORY", "Key": "/opt/aspell", "SubFolder": "bin", "Priority": 3}],
            "RequiredItems": [{"Type": "FILE", "Value": "aspell.exe"}],
            "Paths": [{"Variable": "PATH", "Mode": "APPEND", "Value": ["${ModuleRoot}"]}],
            "Functions": {"spell": {"Definition": "aspell check", "Description": "check"}},
            "Category": ["Text"],
        },
    )
    assert decode_descriptor("Aspell-2_1-x86", original.to_mapping()) == original
