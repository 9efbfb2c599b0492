import re

import gen_meson


def test_format_version_names_tool_and_version() -> None:
    assert gen_meson.format_version() == "sdbus++-gen-meson version 1.1.0"


def test_tool_version_is_dotted_triple() -> None:
    assert re.fullmatch(r"\d+\.\d+\.\d+", gen_meson.TOOL_VERSION)


def test_root_boilerplate_checks_the_same_version_string() -> None:
    lines = gen_meson.format_root_boilerplate()

    expected = f"'{gen_meson.format_version()}'"
    assert any(line.endswith(expected) and line.startswith("if ") for line in lines)
    assert "    warning('Generated meson files from wrong version of sdbus++-gen-meson.')" in lines
