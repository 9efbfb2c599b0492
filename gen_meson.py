"""Meson build generator for sdbus++ interface YAML.

Discovers `*.interface.yaml`, `*.errors.yaml` and `*.events.yaml` files,
groups them by interface key and writes a tree of meson.build files that
drive sdbus++. The same script is re-invoked by those meson.build files to
run sdbus++ for a single interface.

Usage:
    python gen_meson.py --directory yaml --output gen
    python gen_meson.py --command cpp --directory yaml --output out net/poettering/Calculator
"""

import os
import argparse
import shlex
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from collections.abc import Callable

TOOL_NAME = "sdbus++-gen-meson"
TOOL_VERSION = "1.1.0"
"""Bumped whenever the emitted meson.build text changes.

The root meson.build compares this against `--version` output so that a
stale generated tree is reported at configure time."""

DEFAULT_TOOL = "sdbus++"
DEFAULT_DIRECTORY = Path(".")
DEFAULT_OUTPUT_DIR = Path(".")


# ===--- S1 CLI config contracts ---=== #


COMMAND_MESON = "meson"
COMMAND_CPP = "cpp"
COMMAND_MARKDOWN = "markdown"
COMMAND_REGISTRY = "registry"
COMMAND_VERSION = "version"

VALID_COMMANDS = (
    COMMAND_MESON,
    COMMAND_CPP,
    COMMAND_MARKDOWN,
    COMMAND_REGISTRY,
    COMMAND_VERSION,
)
DIRECT_COMMANDS = frozenset({COMMAND_CPP, COMMAND_MARKDOWN, COMMAND_REGISTRY})


@dataclass(frozen=True)
class TreeConfig:
    root_dir: Path
    output_dir: Path


@dataclass(frozen=True)
class InvokeConfig:
    command: str
    interface: str
    root_dir: Path
    output_dir: Path
    tool: str


@dataclass(frozen=True)
class VersionConfig:
    pass


VALID_ERROR_CODES = {
    "UNKNOWN_COMMAND",
    "MISSING_INTERFACE",
    "UNEXPECTED_INTERFACE",
    "PATH_NOT_FOUND",
}


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


def format_version() -> str:
    return f"{TOOL_NAME} version {TOOL_VERSION}"


def validate_path_exists(path: Path | None, flag: str) -> Path:
    if path is None:
        raise ConfigError(
            "PATH_NOT_FOUND",
            f"{flag} is required: no path provided.",
            f"Pass the path explicitly: {flag} /path/to/yaml",
        )
    if path.is_dir():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Directory for {flag} does not exist: {path}",
        "Point --directory at the root of the YAML tree.",
    )


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=TOOL_NAME,
        description=(
            "Generate meson.build files from a directory tree containing YAML "
            "files and facilitate building the sdbus++ sources."
        ),
    )

    parser.add_argument("-c", "--command", type=str, default=COMMAND_MESON)
    parser.add_argument("-d", "--directory", type=Path, default=DEFAULT_DIRECTORY)
    parser.add_argument("-o", "--output", type=Path, default=DEFAULT_OUTPUT_DIR)
    parser.add_argument("-t", "--tool", type=str, default=DEFAULT_TOOL)
    parser.add_argument("-v", "--version", action="version", version=format_version())
    parser.add_argument("interface", nargs="?", default=None)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(
    args: argparse.Namespace,
) -> TreeConfig | InvokeConfig | VersionConfig:
    if args.command not in VALID_COMMANDS:
        raise ConfigError(
            "UNKNOWN_COMMAND",
            f"Unknown command: {args.command}",
            f"Use one of: {', '.join(VALID_COMMANDS)}.",
        )

    if args.command in DIRECT_COMMANDS:
        if not args.interface:
            raise ConfigError(
                "MISSING_INTERFACE",
                f"Command '{args.command}' requires an interface argument.",
                "Pass the interface key, e.g. net/poettering/Calculator.",
            )
        return InvokeConfig(
            command=args.command,
            interface=args.interface.strip("/"),
            root_dir=validate_path_exists(args.directory, "--directory"),
            output_dir=args.output,
            tool=args.tool,
        )

    if args.interface is not None:
        raise ConfigError(
            "UNEXPECTED_INTERFACE",
            f"Command '{args.command}' does not take an interface argument.",
            "Use --command cpp, markdown or registry for a single interface.",
        )

    if args.command == COMMAND_VERSION:
        return VersionConfig()

    return TreeConfig(
        root_dir=validate_path_exists(args.directory, "--directory"),
        output_dir=args.output,
    )


def build_config(
    argv: list[str] | None = None,
) -> TreeConfig | InvokeConfig | VersionConfig:
    return validate_config(parse_args(argv))


# ===--- Generation errors ---=== #


class GenerationError(Exception):
    """Base class for failures that abort a generation run."""


class InvalidExtensionError(GenerationError):
    def __init__(self, path: Path | str):
        super().__init__(f"Not an interface definition file: {path}")
        self.path = path


class MissingDefinitionError(GenerationError):
    def __init__(self, key: str, expected: tuple[str, ...]):
        super().__init__(
            f"Missing YAML for {key} (expected one of: {', '.join(expected)})."
        )
        self.key = key
        self.expected = expected


class NoDefinitionsFoundError(GenerationError):
    def __init__(self, root: Path):
        super().__init__(f"No interface definition files found under {root}.")
        self.root = root


class UnrecognizedKindError(GenerationError):
    def __init__(self, key: str, kind: str):
        super().__init__(f"Unknown interface type for {key}: {kind}")
        self.key = key
        self.kind = kind


class ToolInvocationError(GenerationError):
    def __init__(self, command: tuple[str, ...], returncode: int, stderr: str):
        super().__init__(f"{shlex.join(command)} failed with exit code {returncode}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


# ===--- S2 Interface keys ---=== #

# Single source of truth for the recognized definition suffixes.

KIND_INTERFACE: str = "interface.yaml"
KIND_ERRORS: str = "errors.yaml"
KIND_EVENTS: str = "events.yaml"

KIND_ORDER: tuple[str, ...] = (KIND_INTERFACE, KIND_ERRORS, KIND_EVENTS)
"""Fixed per-kind order for direct invocation (markdown is concatenated in
this order)."""

_SUFFIX_MATCH_ORDER: tuple[str, ...] = tuple(
    sorted(KIND_ORDER, key=lambda kind: (-len(kind), kind))
)

KEY_SEPARATOR = "/"
INTERFACE_SEPARATOR = "."


def match_kind(filename: str) -> str | None:
    """Return the kind suffix of filename, or None if it has none.

    Suffixes are tried longest first. A bare suffix with an empty stem (for
    example a hidden `.errors.yaml`) does not match.
    """
    for kind in _SUFFIX_MATCH_ORDER:
        suffix = f".{kind}"
        if filename.endswith(suffix) and len(filename) > len(suffix):
            return kind
    return None


def key_from_path(root: Path, file_path: Path) -> str:
    """Map a definition file to its interface key.

    `<root>/net/poettering/Calculator.errors.yaml` -> `net/poettering/Calculator`

    Raises:
        InvalidExtensionError: If the filename carries none of the three
            recognized suffixes.
        ValueError: If file_path is not located under root.
    """
    kind = match_kind(file_path.name)
    if kind is None:
        raise InvalidExtensionError(file_path)
    relative = Path(file_path).relative_to(root).as_posix()
    return relative[: -(len(kind) + 1)]


def parent_keys_of(key: str) -> tuple[str, ...]:
    """Every ancestor directory key of key, shallowest first.

    `a/b/c` -> (`a`, `a/b`). A top-level key has no ancestors.
    """
    segments = key.split(KEY_SEPARATOR)
    return tuple(
        KEY_SEPARATOR.join(segments[:depth]) for depth in range(1, len(segments))
    )


def directory_levels(key: str) -> tuple[str, ...]:
    # The key itself is a directory: its C++ outputs are built there.
    return parent_keys_of(key) + (key,)


def parent_key(key: str) -> str:
    head, _, _ = key.rpartition(KEY_SEPARATOR)
    return head


def leaf_name(key: str) -> str:
    return key.rpartition(KEY_SEPARATOR)[2]


def output_path(output_root: Path, key: str) -> Path:
    if not key:
        return Path(output_root)
    return Path(output_root).joinpath(*key.split(KEY_SEPARATOR))


def definition_path(root: Path, key: str, kind: str) -> Path:
    return output_path(root, f"{key}.{kind}")


def interface_arg(key: str) -> str:
    return key.replace(KEY_SEPARATOR, INTERFACE_SEPARATOR)


def current_path_of(dir_key: str) -> str:
    return dir_key if dir_key else "."


# ===--- S3 Interface index ---=== #


@dataclass(frozen=True)
class DefinitionFile:
    """One discovered definition file.

    Attributes:
        path: Absolute path of the file.
        relative: Posix path relative to the scan root.
        kind: One of KIND_INTERFACE, KIND_ERRORS, KIND_EVENTS.
        key: Interface key (relative path with the kind suffix stripped).
    """

    path: Path
    relative: str
    kind: str
    key: str


@dataclass
class InterfaceRecord:
    """Kinds present for one interface key, in discovery order."""

    key: str
    kinds: list[str] = field(default_factory=list)

    def add_kind(self, kind: str) -> None:
        if kind not in self.kinds:
            self.kinds.append(kind)

    def has(self, kind: str) -> bool:
        return kind in self.kinds

    @property
    def leaf(self) -> str:
        return leaf_name(self.key)

    @property
    def parent(self) -> str:
        return parent_key(self.key)


@dataclass
class InterfaceIndex:
    """Interface records keyed by interface key.

    Iteration order of `records` carries no meaning; callers go through
    sorted_keys() / directory_keys() wherever order matters.
    """

    records: dict[str, InterfaceRecord] = field(default_factory=dict)

    def add(self, definition: DefinitionFile) -> InterfaceRecord:
        record = self.records.get(definition.key)
        if record is None:
            record = InterfaceRecord(key=definition.key)
            self.records[definition.key] = record
        record.add_kind(definition.kind)
        return record

    def __len__(self) -> int:
        return len(self.records)

    def __getitem__(self, key: str) -> InterfaceRecord:
        return self.records[key]

    def sorted_keys(self) -> tuple[str, ...]:
        return tuple(sorted(self.records))

    def directory_keys(self) -> tuple[str, ...]:
        """Sorted, unique directory keys that hold generation targets.

        Every interface key (cpp target) and every interface's parent
        (markdown and registry targets). The output root is `""`.
        """
        dirs: set[str] = set()
        for key in self.records:
            dirs.add(key)
            dirs.add(parent_key(key))
        return tuple(sorted(dirs))


def make_definition_file(root: Path, path: Path) -> DefinitionFile:
    kind = match_kind(path.name)
    if kind is None:
        raise InvalidExtensionError(path)
    relative = path.relative_to(root).as_posix()
    return DefinitionFile(
        path=path.resolve(),
        relative=relative,
        kind=kind,
        key=relative[: -(len(kind) + 1)],
    )


def discover_definition_files(root: Path) -> list[DefinitionFile]:
    """Walk root and return every definition file sorted by relative path.

    Symlinked directories are not descended into, so link loops cannot
    recurse. Only regular files (or links to them) are considered.

    Raises:
        FileNotFoundError: If root is not a directory.
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Definition root does not exist: {root}")

    found: list[DefinitionFile] = []
    for dirpath, dirnames, filenames in os.walk(root, followlinks=False):
        dirnames.sort()
        for filename in filenames:
            if match_kind(filename) is None:
                continue
            path = Path(dirpath) / filename
            if not path.is_file():
                continue
            found.append(make_definition_file(root, path))

    found.sort(key=lambda definition: definition.relative)
    return found


def scan_definitions(root: Path, require_any: bool = False) -> InterfaceIndex:
    """Group every definition file under root by interface key.

    Args:
        root: Root of the YAML tree.
        require_any: Raise NoDefinitionsFoundError when nothing matched.

    Returns:
        InterfaceIndex with one record per key; kinds within a record are in
        sorted-path order.
    """
    index = InterfaceIndex()
    for definition in discover_definition_files(root):
        index.add(definition)
    if require_any and not index:
        raise NoDefinitionsFoundError(Path(root))
    return index


def lookup_interface(root: Path, key: str) -> InterfaceRecord:
    """Build the record for a single key from the files that exist.

    Raises:
        MissingDefinitionError: If none of the three definition files exist.
    """
    record = InterfaceRecord(key=key)
    for kind in KIND_ORDER:
        if definition_path(root, key, kind).is_file():
            record.add_kind(kind)
    if not record.kinds:
        raise MissingDefinitionError(
            key, tuple(f"{key}.{kind}" for kind in KIND_ORDER)
        )
    return record


# ===--- S4 Build file writer ---=== #


BUILD_FILE_NAME = "meson.build"
GENERATED_HEADER = "# Generated file; do not modify."

_INDENT = "    "


@dataclass(frozen=True)
class EmitSettings:
    """Meson identifiers written verbatim into every generated target.

    They are defined by the project that includes the generated tree; the
    generator never evaluates them.
    """

    gen_meson_prog: str = "sdbuspp_gen_meson_prog"
    tool_prog: str = "sdbusplusplus_prog"
    depend_files: str = "sdbusplusplus_depfiles"
    cpp_flag: str = "should_generate_cpp"
    markdown_flag: str = "should_generate_markdown"
    registry_flag: str = "should_generate_registry"


@dataclass(frozen=True)
class TargetOutput:
    """One custom_target output and its install destination.

    install_dir is a meson expression, or None when the output is built but
    not installed (renders as `false`).
    """

    filename: str
    install_dir: str | None


@dataclass(frozen=True)
class GenerationTarget:
    """Structured form of one `custom_target` block.

    Attributes:
        aggregate: Meson list the target is appended to, e.g.
            "generated_sources".
        key: Interface key; names the target and is the final command
            argument.
        command: Direct-mode command the target re-invokes this tool with.
        yaml_dir: YAML root relative to the meson.build holding the target.
        inputs: Definition files relative to yaml_dir, e.g.
            "net/foo.errors.yaml".
        outputs: Ordered outputs with install destinations.
        flag: Meson boolean used for both install and build_by_default.
        settings: Pass-through meson identifiers.
    """

    aggregate: str
    key: str
    command: str
    yaml_dir: str
    inputs: tuple[str, ...]
    outputs: tuple[TargetOutput, ...]
    flag: str
    settings: EmitSettings = EmitSettings()

    @property
    def output_names(self) -> tuple[str, ...]:
        return tuple(output.filename for output in self.outputs)


def meson_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def _format_list(name: str, items: list[str]) -> list[str]:
    lines = [f"{_INDENT}{name}: ["]
    lines.extend(f"{_INDENT * 2}{item}," for item in items)
    lines.append(f"{_INDENT}],")
    return lines


def format_target(target: GenerationTarget) -> list[str]:
    """Render a GenerationTarget as meson source lines.

    Output format (one blank line follows every block):
        generated_sources += custom_target(
            'net/foo__cpp'.underscorify(),
            input: [
                '../../../yaml/net/foo.errors.yaml',
            ],
            output: [
                'error.cpp',
                'error.hpp',
            ],
            depend_files: sdbusplusplus_depfiles,
            command: [
                sdbuspp_gen_meson_prog, '--command', 'cpp',
                '--output', meson.current_build_dir(),
                '--tool', sdbusplusplus_prog,
                '--directory', meson.current_source_dir() / '../../../yaml',
                'net/foo',
            ],
            install: should_generate_cpp,
            install_dir: [
                false,
                get_option('includedir') / sdbusplus_current_path,
            ],
            build_by_default: should_generate_cpp,
        )

    Raises:
        ValueError: If the target has no inputs or no outputs.
    """
    if not target.inputs or not target.outputs:
        raise ValueError(
            f"Target {target.key}__{target.command} needs inputs and outputs"
        )

    settings = target.settings
    name = meson_string(f"{target.key}__{target.command}")
    lines: list[str] = [
        f"{target.aggregate} += custom_target(",
        f"{_INDENT}{name}.underscorify(),",
    ]
    lines.extend(
        _format_list(
            "input",
            [meson_string(f"{target.yaml_dir}/{path}") for path in target.inputs],
        )
    )
    lines.extend(
        _format_list("output", [meson_string(name) for name in target.output_names])
    )
    lines.append(f"{_INDENT}depend_files: {settings.depend_files},")
    lines.append(f"{_INDENT}command: [")
    lines.extend(
        f"{_INDENT * 2}{line}"
        for line in (
            f"{settings.gen_meson_prog}, '--command', {meson_string(target.command)},",
            "'--output', meson.current_build_dir(),",
            f"'--tool', {settings.tool_prog},",
            "'--directory', meson.current_source_dir() / "
            f"{meson_string(target.yaml_dir)},",
            f"{meson_string(target.key)},",
        )
    )
    lines.append(f"{_INDENT}],")
    lines.append(f"{_INDENT}install: {target.flag},")
    lines.extend(
        _format_list(
            "install_dir",
            [
                "false" if output.install_dir is None else output.install_dir
                for output in target.outputs
            ],
        )
    )
    lines.append(f"{_INDENT}build_by_default: {target.flag},")
    lines.append(")")
    lines.append("")
    return lines


def format_subdir_link(segment: str) -> list[str]:
    return [f"subdir({meson_string(segment)})"]


def format_current_path(dir_key: str) -> list[str]:
    return ["", f"sdbusplus_current_path = {meson_string(current_path_of(dir_key))}"]


def format_root_boilerplate(settings: EmitSettings = EmitSettings()) -> list[str]:
    """Lines appended to the root meson.build after the generated header.

    Declares the aggregation lists, descends into the top-level directories
    the including project selected via `yaml_selected_subdirs`, and warns at
    configure time when the tree was generated by a different version.
    """
    expected = format_version()
    wrong_version = meson_string(
        f"Generated meson files from wrong version of {TOOL_NAME}."
    )
    expected_got = meson_string('Expected "' + expected + '", got:')
    return [
        "sdbuspp_gen_meson_ver = run_command(",
        f"{_INDENT}{settings.gen_meson_prog},",
        f"{_INDENT}'--version',",
        f"{_INDENT}check: true,",
        ").stdout().strip().split('\\n')[0]",
        "",
        f"if sdbuspp_gen_meson_ver != {meson_string(expected)}",
        f"{_INDENT}warning({wrong_version})",
        f"{_INDENT}warning(",
        f"{_INDENT * 2}{expected_got},",
        f"{_INDENT * 2}sdbuspp_gen_meson_ver,",
        f"{_INDENT})",
        "endif",
        "",
        "inst_markdown_dir = get_option('datadir') / 'doc' / meson.project_name()",
        "inst_registry_dir = get_option('datadir') / 'redfish-registry' / meson.project_name()",
        "",
        "generated_sources = []",
        "generated_markdown = []",
        "generated_registry = []",
        "",
        "foreach d : yaml_selected_subdirs",
        f"{_INDENT}subdir(d)",
        "endforeach",
        "",
        "generated_headers = []",
        "foreach s : generated_sources",
        f"{_INDENT}foreach f : s.to_list()",
        f"{_INDENT * 2}if f.full_path().endswith('.hpp')",
        f"{_INDENT * 3}generated_headers += f",
        f"{_INDENT * 2}endif",
        f"{_INDENT}endforeach",
        "endforeach",
        "",
    ]


def create_build_file(directory: Path) -> Path:
    """Create (or truncate) directory/meson.build holding only the header."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    file_path = directory / BUILD_FILE_NAME
    file_path.write_text(GENERATED_HEADER + "\n", encoding="utf-8")
    return file_path


def append_build_file(directory: Path, lines: list[str]) -> Path:
    """Append lines to an existing directory/meson.build.

    Raises:
        FileNotFoundError: If the meson.build has not been created yet.
            Appending never creates files.
    """
    file_path = Path(directory) / BUILD_FILE_NAME
    if not file_path.is_file():
        raise FileNotFoundError(f"Build file has not been created: {file_path}")
    with file_path.open("a", encoding="utf-8") as handle:
        handle.write("".join(f"{line}\n" for line in lines))
    return file_path


# ===--- S5 Target emission ---=== #

AGGREGATE_SOURCES = "generated_sources"
AGGREGATE_MARKDOWN = "generated_markdown"
AGGREGATE_REGISTRY = "generated_registry"

INSTALL_INCLUDE_DIR = "get_option('includedir') / sdbusplus_current_path"
INSTALL_MARKDOWN_DIR = "inst_markdown_dir / sdbusplus_current_path"
INSTALL_REGISTRY_DIR = "inst_registry_dir / sdbusplus_current_path"

CPP_OUTPUTS: dict[str, tuple[TargetOutput, ...]] = {
    KIND_ERRORS: (
        TargetOutput("error.cpp", None),
        TargetOutput("error.hpp", INSTALL_INCLUDE_DIR),
    ),
    KIND_EVENTS: (
        TargetOutput("event.cpp", None),
        TargetOutput("event.hpp", INSTALL_INCLUDE_DIR),
    ),
    KIND_INTERFACE: (
        TargetOutput("common.hpp", INSTALL_INCLUDE_DIR),
        TargetOutput("server.hpp", INSTALL_INCLUDE_DIR),
        TargetOutput("server.cpp", None),
        TargetOutput("aserver.hpp", INSTALL_INCLUDE_DIR),
        TargetOutput("client.hpp", INSTALL_INCLUDE_DIR),
    ),
}
"""Outputs contributed by each kind; a key's list is the concatenation for
the kinds it has, in the record's kind order."""


def relative_yaml_dir(root_dir: Path, build_dir: Path) -> str:
    """Path of the YAML root as seen from a generated meson.build directory."""
    return Path(
        os.path.relpath(Path(root_dir).resolve(), Path(build_dir).resolve())
    ).as_posix()


def _check_kinds(record: InterfaceRecord) -> None:
    for kind in record.kinds:
        if kind not in CPP_OUTPUTS:
            raise UnrecognizedKindError(record.key, kind)


def build_cpp_target(
    record: InterfaceRecord, yaml_dir: str, settings: EmitSettings = EmitSettings()
) -> GenerationTarget:
    _check_kinds(record)
    outputs: list[TargetOutput] = []
    for kind in record.kinds:
        outputs.extend(CPP_OUTPUTS[kind])
    return GenerationTarget(
        aggregate=AGGREGATE_SOURCES,
        key=record.key,
        command=COMMAND_CPP,
        yaml_dir=yaml_dir,
        inputs=tuple(f"{record.key}.{kind}" for kind in record.kinds),
        outputs=tuple(outputs),
        flag=settings.cpp_flag,
        settings=settings,
    )


def build_markdown_target(
    record: InterfaceRecord, yaml_dir: str, settings: EmitSettings = EmitSettings()
) -> GenerationTarget:
    _check_kinds(record)
    return GenerationTarget(
        aggregate=AGGREGATE_MARKDOWN,
        key=record.key,
        command=COMMAND_MARKDOWN,
        yaml_dir=yaml_dir,
        inputs=tuple(f"{record.key}.{kind}" for kind in record.kinds),
        outputs=(TargetOutput(f"{record.leaf}.md", INSTALL_MARKDOWN_DIR),),
        flag=settings.markdown_flag,
        settings=settings,
    )


def build_registry_target(
    record: InterfaceRecord, yaml_dir: str, settings: EmitSettings = EmitSettings()
) -> GenerationTarget | None:
    """Registry target for record, or None when it has no events YAML.

    Interface and errors YAML never contribute registry content.
    """
    _check_kinds(record)
    if not record.has(KIND_EVENTS):
        return None
    return GenerationTarget(
        aggregate=AGGREGATE_REGISTRY,
        key=record.key,
        command=COMMAND_REGISTRY,
        yaml_dir=yaml_dir,
        inputs=(f"{record.key}.{KIND_EVENTS}",),
        outputs=(TargetOutput(f"{record.leaf}.json", INSTALL_REGISTRY_DIR),),
        flag=settings.registry_flag,
        settings=settings,
    )


def emit_cpp_target(
    record: InterfaceRecord,
    root_dir: Path,
    output_root: Path,
    settings: EmitSettings = EmitSettings(),
) -> GenerationTarget:
    """Append the sources target to `<output_root>/<key>/meson.build`."""
    build_dir = output_path(output_root, record.key)
    target = build_cpp_target(record, relative_yaml_dir(root_dir, build_dir), settings)
    append_build_file(build_dir, format_target(target))
    return target


def emit_markdown_target(
    record: InterfaceRecord,
    root_dir: Path,
    output_root: Path,
    settings: EmitSettings = EmitSettings(),
) -> GenerationTarget:
    """Append the markdown target to the meson.build of the key's parent."""
    build_dir = output_path(output_root, record.parent)
    target = build_markdown_target(
        record, relative_yaml_dir(root_dir, build_dir), settings
    )
    append_build_file(build_dir, format_target(target))
    return target


def emit_registry_target(
    record: InterfaceRecord,
    root_dir: Path,
    output_root: Path,
    settings: EmitSettings = EmitSettings(),
) -> GenerationTarget | None:
    build_dir = output_path(output_root, record.parent)
    target = build_registry_target(
        record, relative_yaml_dir(root_dir, build_dir), settings
    )
    if target is not None:
        append_build_file(build_dir, format_target(target))
    return target


# ===--- S6 Build tree ---=== #


@dataclass(frozen=True)
class TreeWriteResult:
    """Result of writing a complete meson.build tree.

    Attributes:
        output_root: Root directory of the generated tree.
        build_files: Every meson.build written, root first, then in the
            order the directory levels were created.
        visited: Output directories whose meson.build was created by the
            directory walk (the root is not part of it).
        interfaces: Interface keys, sorted.
        targets: Every emitted target, in emission order.
        link_count: subdir() lines appended by this run.
    """

    output_root: Path
    build_files: tuple[Path, ...]
    visited: frozenset[Path]
    interfaces: tuple[str, ...]
    targets: tuple[GenerationTarget, ...]
    link_count: int = 0


def create_root_build_file(
    output_root: Path, settings: EmitSettings = EmitSettings()
) -> Path:
    create_build_file(output_root)
    return append_build_file(output_root, format_root_boilerplate(settings))


def create_directory_levels(
    key: str,
    output_root: Path,
    visited: set[Path],
    links: list[Path] | None = None,
) -> list[Path]:
    """Ensure a meson.build exists at every directory level of key.

    Levels are walked shallowest first. A level already in visited is left
    alone; a new one is recorded in visited, created, and linked from its
    parent's meson.build with `subdir('<segment>')` unless the parent is
    output_root. Top-level directories are enabled by the including project
    through `yaml_selected_subdirs` instead.

    Sibling links land in the order keys are walked (sorted full keys), not
    in sorted segment order: `x/b-c/A` links `b-c` before `x/b/B` links `b`.

    Args:
        links: When given, receives the parent meson.build path of every
            subdir() line appended.

    Returns:
        meson.build paths created by this call, in creation order.
    """
    output_root = Path(output_root)
    created: list[Path] = []
    for level in directory_levels(key):
        directory = output_path(output_root, level)
        if directory in visited:
            continue
        visited.add(directory)
        created.append(create_build_file(directory))
        if directory.parent != output_root:
            parent_file = append_build_file(
                directory.parent, format_subdir_link(leaf_name(level))
            )
            if links is not None:
                links.append(parent_file)
    return created


def insert_current_paths(index: InterfaceIndex, output_root: Path) -> list[Path]:
    # Must follow every subdir() link: the value is read by the targets
    # appended to the same file after it.
    written: list[Path] = []
    for dir_key in index.directory_keys():
        directory = output_path(output_root, dir_key)
        written.append(append_build_file(directory, format_current_path(dir_key)))
    return written


def build_tree(
    index: InterfaceIndex,
    root_dir: Path,
    output_root: Path,
    settings: EmitSettings = EmitSettings(),
    visited: set[Path] | None = None,
) -> TreeWriteResult:
    """Write the meson.build tree for every interface in index.

    Phases, each completed for all interfaces before the next starts:
    root boilerplate, directory levels and links, current-path
    declarations, then the cpp / markdown / registry targets per key.

    Args:
        index: Interfaces to generate targets for.
        root_dir: Root of the YAML tree (target inputs are relative to it).
        output_root: Directory receiving the generated tree.
        settings: Meson identifiers passed through into every target.
        visited: Directories already created in this run. A fresh set is
            used when None; the caller's set is updated in place otherwise.

    Returns:
        TreeWriteResult describing every file and target written.

    Raises:
        UnrecognizedKindError: A record carries a kind with no emitter.
        OSError: Propagated from any filesystem write.
    """
    output_root = Path(output_root)
    if visited is None:
        visited = set()

    build_files: list[Path] = [create_root_build_file(output_root, settings)]

    keys = index.sorted_keys()
    links: list[Path] = []
    for key in keys:
        build_files.extend(create_directory_levels(key, output_root, visited, links))

    insert_current_paths(index, output_root)

    targets: list[GenerationTarget] = []
    for key in keys:
        record = index[key]
        targets.append(emit_cpp_target(record, root_dir, output_root, settings))
        targets.append(emit_markdown_target(record, root_dir, output_root, settings))
        registry = emit_registry_target(record, root_dir, output_root, settings)
        if registry is not None:
            targets.append(registry)

    return TreeWriteResult(
        output_root=output_root,
        build_files=tuple(build_files),
        visited=frozenset(visited),
        interfaces=keys,
        targets=tuple(targets),
        link_count=len(links),
    )


def run_tree(config: TreeConfig) -> TreeWriteResult:
    """Scan config.root_dir and write the meson.build tree to config.output_dir."""
    print(f"Scanning: {config.root_dir}")
    index = scan_definitions(config.root_dir)
    print(f"  Interfaces: {len(index)} found")

    result = build_tree(index, config.root_dir, config.output_dir)
    print(
        f"  Written: {len(result.build_files)} build files, "
        f"{len(result.targets)} targets to {result.output_root}"
    )

    print_tree_summary(build_tree_summary(result))
    return result


# ===--- S7 Direct invocation ---=== #


@dataclass(frozen=True)
class ToolResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str = ""


ToolRunner = Callable[[tuple[str, ...]], ToolResult]


@dataclass(frozen=True)
class Artifact:
    """One sdbus++ invocation: `<family> <artifact> <interface>`."""

    family: str
    name: str
    filename: str


CPP_ARTIFACTS: dict[str, tuple[Artifact, ...]] = {
    KIND_INTERFACE: (
        Artifact("interface", "common-header", "common.hpp"),
        Artifact("interface", "server-header", "server.hpp"),
        Artifact("interface", "server-cpp", "server.cpp"),
        Artifact("interface", "client-header", "client.hpp"),
        Artifact("interface", "aserver-header", "aserver.hpp"),
    ),
    KIND_ERRORS: (
        Artifact("error", "exception-header", "error.hpp"),
        Artifact("error", "exception-cpp", "error.cpp"),
    ),
    KIND_EVENTS: (
        Artifact("event", "exception-header", "event.hpp"),
        Artifact("event", "exception-cpp", "event.cpp"),
    ),
}

MARKDOWN_FAMILIES: dict[str, str] = {
    KIND_INTERFACE: "interface",
    KIND_ERRORS: "error",
    KIND_EVENTS: "event",
}

REGISTRY_ARTIFACT = Artifact("event", "exception-registry", "")


def run_tool(args: tuple[str, ...]) -> ToolResult:
    """Run the generation tool and capture its output.

    Raises:
        OSError: The tool executable could not be started.
    """
    completed = subprocess.run(
        list(args),
        capture_output=True,
        text=True,
        check=False,
    )
    return ToolResult(
        args=tuple(args),
        returncode=completed.returncode,
        stdout=completed.stdout,
        stderr=completed.stderr,
    )


def tool_command(
    tool: str, root_dir: Path, family: str, artifact: str, key: str
) -> tuple[str, ...]:
    return (
        *shlex.split(tool),
        "-r",
        str(root_dir),
        family,
        artifact,
        interface_arg(key),
    )


def invoke_tool(runner: ToolRunner, args: tuple[str, ...]) -> str:
    result = runner(args)
    if result.returncode != 0:
        raise ToolInvocationError(args, result.returncode, result.stderr)
    return result.stdout


def run_cpp(config: InvokeConfig, runner: ToolRunner = run_tool) -> tuple[Path, ...]:
    """Generate the C++ sources for one interface.

    One tool run per artifact of each present kind, each written to its
    fixed filename in config.output_dir.

    Raises:
        MissingDefinitionError: None of the three YAML files exist.
        ToolInvocationError: The tool exited non-zero.
    """
    record = lookup_interface(config.root_dir, config.interface)
    config.output_dir.mkdir(parents=True, exist_ok=True)

    written: list[Path] = []
    for kind in KIND_ORDER:
        if not record.has(kind):
            continue
        for artifact in CPP_ARTIFACTS[kind]:
            args = tool_command(
                config.tool, config.root_dir, artifact.family, artifact.name, record.key
            )
            file_path = config.output_dir / artifact.filename
            file_path.write_text(invoke_tool(runner, args), encoding="utf-8")
            written.append(file_path)
    return tuple(written)


def run_markdown(config: InvokeConfig, runner: ToolRunner = run_tool) -> Path:
    """Generate `<leaf>.md` by concatenating the markdown of each present kind."""
    record = lookup_interface(config.root_dir, config.interface)
    config.output_dir.mkdir(parents=True, exist_ok=True)

    file_path = config.output_dir / f"{record.leaf}.md"
    file_path.write_text("", encoding="utf-8")
    for kind in KIND_ORDER:
        if not record.has(kind):
            continue
        args = tool_command(
            config.tool, config.root_dir, MARKDOWN_FAMILIES[kind], "markdown", record.key
        )
        content = invoke_tool(runner, args)
        with file_path.open("a", encoding="utf-8") as handle:
            handle.write(content)
    return file_path


def run_registry(config: InvokeConfig, runner: ToolRunner = run_tool) -> Path:
    """Generate `<leaf>.json` from the events YAML.

    Unlike the other modes the events file specifically is required; an
    interface or errors YAML alone is not enough. Nothing is written unless
    the tool succeeds.
    """
    key = config.interface
    if not definition_path(config.root_dir, key, KIND_EVENTS).is_file():
        raise MissingDefinitionError(key, (f"{key}.{KIND_EVENTS}",))

    args = tool_command(
        config.tool,
        config.root_dir,
        REGISTRY_ARTIFACT.family,
        REGISTRY_ARTIFACT.name,
        key,
    )
    content = invoke_tool(runner, args)

    config.output_dir.mkdir(parents=True, exist_ok=True)
    file_path = config.output_dir / f"{leaf_name(key)}.json"
    file_path.write_text(content, encoding="utf-8")
    return file_path


def run_invoke(
    config: InvokeConfig, runner: ToolRunner = run_tool
) -> tuple[Path, ...]:
    if config.command == COMMAND_CPP:
        return run_cpp(config, runner)
    if config.command == COMMAND_MARKDOWN:
        return (run_markdown(config, runner),)
    if config.command == COMMAND_REGISTRY:
        return (run_registry(config, runner),)
    raise ValueError(f"Not a direct command: {config.command}")


# ===--- S8 Summary report ---=== #


@dataclass(frozen=True)
class TreeSummary:
    """Counts for the post-generation console report.

    Attributes:
        output_root: Output directory as a string.
        interface_count: Number of interface keys.
        build_file_count: meson.build files written (root included).
        link_count: subdir() lines written.
        aggregate_counts: Targets per aggregate list, in
            sources / markdown / registry order.
    """

    output_root: str
    interface_count: int
    build_file_count: int
    link_count: int
    aggregate_counts: tuple[tuple[str, int], ...]


def build_tree_summary(result: TreeWriteResult) -> TreeSummary:
    counts = tuple(
        (aggregate, sum(1 for t in result.targets if t.aggregate == aggregate))
        for aggregate in (AGGREGATE_SOURCES, AGGREGATE_MARKDOWN, AGGREGATE_REGISTRY)
    )
    return TreeSummary(
        output_root=str(result.output_root),
        interface_count=len(result.interfaces),
        build_file_count=len(result.build_files),
        link_count=result.link_count,
        aggregate_counts=counts,
    )


def format_tree_summary(summary: TreeSummary) -> str:
    """Render a TreeSummary; returns a string with one trailing newline."""
    lines: list[str] = [
        f"{format_version()} tree generated:",
        "",
        f"  Output:      {summary.output_root}",
        f"  Interfaces:  {summary.interface_count:>6}",
        f"  Build files: {summary.build_file_count:>6}",
        f"  Links:       {summary.link_count:>6}",
        "",
        "  Targets:",
    ]
    for aggregate, count in summary.aggregate_counts:
        lines.append(f"    {aggregate + ':':<21}{count:>6}")
    lines.append("")
    return "\n".join(lines)


def print_tree_summary(summary: TreeSummary) -> None:
    print(format_tree_summary(summary), end="")


# ===--- Main ---=== #


def main(argv: list[str] | None = None) -> None:
    try:
        config = build_config(argv)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err

    if isinstance(config, VersionConfig):
        print(format_version())
        return

    try:
        if isinstance(config, TreeConfig):
            run_tree(config)
        else:
            run_invoke(config, run_tool)
    except ToolInvocationError as err:
        if err.stderr:
            print(err.stderr, end="", file=sys.stderr)
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(err.returncode if err.returncode > 0 else 1) from err
    except (MissingDefinitionError, NoDefinitionsFoundError, OSError) as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(1) from err
    except (InvalidExtensionError, UnrecognizedKindError, ValueError) as err:
        print(f"Internal error: {err}", file=sys.stderr)
        raise SystemExit(1) from err


if __name__ == "__main__":
    main()
