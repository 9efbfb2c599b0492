import argparse
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import gen_meson  # noqa: E402


@pytest.fixture
def yaml_root(tmp_path: Path) -> Path:
    root = tmp_path / "yaml"
    root.mkdir()
    return root


@pytest.fixture
def output_root(tmp_path: Path) -> Path:
    return tmp_path / "gen"


@pytest.fixture
def make_definitions(yaml_root: Path) -> Callable[..., Path]:
    """Create empty definition files under yaml_root from relative names."""

    def _make_definitions(*relative_paths: str) -> Path:
        for relative in relative_paths:
            path = yaml_root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text("description: test\n", encoding="utf-8")
        return yaml_root

    return _make_definitions


@pytest.fixture
def make_args(yaml_root: Path, output_root: Path) -> Callable[..., argparse.Namespace]:
    def _make_args(**overrides: object) -> argparse.Namespace:
        base_args: dict[str, object] = {
            "command": "meson",
            "directory": yaml_root,
            "output": output_root,
            "tool": "sdbus++",
            "interface": None,
        }
        base_args.update(overrides)
        return argparse.Namespace(**base_args)

    return _make_args


class RecordingRunner:
    """ToolRunner double that records every invocation.

    Returns `<family> <artifact>` as stdout, or a non-zero exit for any
    artifact listed in fail_on.
    """

    def __init__(self, fail_on: tuple[str, ...] = (), returncode: int = 2):
        self.calls: list[tuple[str, ...]] = []
        self.fail_on = fail_on
        self.returncode = returncode

    def __call__(self, args: tuple[str, ...]) -> gen_meson.ToolResult:
        self.calls.append(args)
        family, artifact = args[-3], args[-2]
        if artifact in self.fail_on:
            return gen_meson.ToolResult(
                args=args, returncode=self.returncode, stdout="", stderr="boom\n"
            )
        return gen_meson.ToolResult(
            args=args, returncode=0, stdout=f"{family} {artifact}\n"
        )

    @property
    def artifacts(self) -> list[tuple[str, str]]:
        return [(call[-3], call[-2]) for call in self.calls]


@pytest.fixture
def runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def make_invoke_config(
    yaml_root: Path, tmp_path: Path
) -> Callable[..., gen_meson.InvokeConfig]:
    def _make_invoke_config(command: str, interface: str) -> gen_meson.InvokeConfig:
        return gen_meson.InvokeConfig(
            command=command,
            interface=interface,
            root_dir=yaml_root,
            output_dir=tmp_path / "out",
            tool="sdbus++",
        )

    return _make_invoke_config


@pytest.fixture
def make_runner() -> Callable[..., RecordingRunner]:
    return RecordingRunner
