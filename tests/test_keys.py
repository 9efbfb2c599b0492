from pathlib import Path

import pytest

import gen_meson


@pytest.mark.parametrize(
    ("filename", "kind"),
    [
        ("Calculator.interface.yaml", "interface.yaml"),
        ("Calculator.errors.yaml", "errors.yaml"),
        ("Calculator.events.yaml", "events.yaml"),
        ("Dotted.Name.events.yaml", "events.yaml"),
    ],
)
def test_match_kind_recognizes_the_three_suffixes(filename: str, kind: str) -> None:
    assert gen_meson.match_kind(filename) == kind


@pytest.mark.parametrize(
    "filename",
    ["Calculator.yaml", "Calculator.interface.yml", ".errors.yaml", "README.md"],
)
def test_match_kind_rejects_other_names(filename: str) -> None:
    assert gen_meson.match_kind(filename) is None


def test_key_from_path_strips_root_and_suffix(tmp_path: Path) -> None:
    path = tmp_path / "net" / "poettering" / "Calculator.errors.yaml"

    assert gen_meson.key_from_path(tmp_path, path) == "net/poettering/Calculator"


def test_key_from_path_keeps_dots_in_the_interface_name(tmp_path: Path) -> None:
    path = tmp_path / "org" / "Foo.Bar.interface.yaml"

    assert gen_meson.key_from_path(tmp_path, path) == "org/Foo.Bar"


def test_key_from_path_top_level_file_has_no_directory(tmp_path: Path) -> None:
    assert gen_meson.key_from_path(tmp_path, tmp_path / "Foo.events.yaml") == "Foo"


def test_key_from_path_rejects_unrecognized_extension(tmp_path: Path) -> None:
    path = tmp_path / "net" / "Calculator.types.yaml"

    with pytest.raises(gen_meson.InvalidExtensionError) as exc_info:
        gen_meson.key_from_path(tmp_path, path)

    assert exc_info.value.path == path


@pytest.mark.parametrize(
    ("key", "parents"),
    [
        ("Foo", ()),
        ("net/Foo", ("net",)),
        ("xyz/openbmc_project/Example/Status", (
            "xyz",
            "xyz/openbmc_project",
            "xyz/openbmc_project/Example",
        )),
    ],
)
def test_parent_keys_of_lists_ancestors_shallowest_first(
    key: str, parents: tuple[str, ...]
) -> None:
    assert gen_meson.parent_keys_of(key) == parents


def test_directory_levels_end_with_the_key_itself() -> None:
    assert gen_meson.directory_levels("a/b/c") == ("a", "a/b", "a/b/c")


def test_output_path_joins_every_segment(tmp_path: Path) -> None:
    assert gen_meson.output_path(tmp_path, "a/b/c") == tmp_path / "a" / "b" / "c"
    assert gen_meson.output_path(tmp_path, "") == tmp_path


def test_definition_path_reverses_key_from_path(tmp_path: Path) -> None:
    path = gen_meson.definition_path(tmp_path, "net/Foo", gen_meson.KIND_EVENTS)

    assert path == tmp_path / "net" / "Foo.events.yaml"
    assert gen_meson.key_from_path(tmp_path, path) == "net/Foo"


def test_interface_arg_uses_dotted_form() -> None:
    assert (
        gen_meson.interface_arg("net/poettering/Calculator")
        == "net.poettering.Calculator"
    )


def test_parent_leaf_and_current_path_helpers() -> None:
    assert gen_meson.parent_key("net/poettering/Calculator") == "net/poettering"
    assert gen_meson.parent_key("Calculator") == ""
    assert gen_meson.leaf_name("net/poettering/Calculator") == "Calculator"
    assert gen_meson.current_path_of("") == "."
    assert gen_meson.current_path_of("net") == "net"
