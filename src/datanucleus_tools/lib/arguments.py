"""Translate a tool invocation config into DataNucleus command-line tokens.

Each ``Operation`` maps to one tool (Enhancer or SchemaTool) and to a rule
that emits its mode-specific tokens. The shared tail (verbosity, persistence
unit, API, tool flags, input files) depends only on the tool, so forked and
in-process runs receive the exact same argument list.
"""

from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from datanucleus_tools.lib.logging_reference import LoggingReference

__all__ = [
    "DEFAULT_FILE_LIST_THRESHOLD",
    "OPERATION_RULES",
    "OPTION_DEFAULTS",
    "FileListPolicy",
    "Operation",
    "OperationRule",
    "OptionValue",
    "Tool",
    "ToolInvocationConfig",
    "TranslatedArguments",
    "read_file_list_file",
    "should_use_file_list_file",
    "system_properties",
    "translate_arguments",
    "write_file_list_file",
]

logger = logging.getLogger(__name__)

OptionValue = str | bool

DEFAULT_FILE_LIST_THRESHOLD = 32_000

OPTION_DEFAULTS: dict[str, OptionValue] = {
    "target_directory": "",
    "always_detachable": False,
    "ignore_metadata_for_missing_classes": False,
    "generate_pk": True,
    "generate_constructor": True,
    "detach_listener": False,
    "props": "",
    "ddl_file": "",
    "complete_ddl": False,
    "include_auto_start": False,
    "catalog_name": "",
    "schema_name": "",
}


class Tool(Enum):
    """External DataNucleus tools and their entry points."""

    ENHANCER = ("org.datanucleus.enhancer.DataNucleusEnhancer", "Enhancer")
    SCHEMA_TOOL = ("org.datanucleus.store.schema.SchemaTool", "SchemaTool")

    def __init__(self, entry_point: str, display_name: str) -> None:
        self.entry_point = entry_point
        self.display_name = display_name


class Operation(Enum):
    """Supported tool operations."""

    ENHANCE = "enhance"
    ENHANCE_CHECK = "enhance-check"
    SCHEMA_CREATE_DATABASE = "schema-create-database"
    SCHEMA_DELETE_SCHEMA = "schema-delete-schema"
    SCHEMA_DELETE_CREATE = "schema-delete-create"
    SCHEMA_INFO = "schema-info"
    SCHEMA_DBINFO = "schema-dbinfo"

    @property
    def tool(self) -> Tool:
        return OPERATION_RULES[self].tool


class FileListPolicy(Enum):
    """When to pass input files through a file-list side file."""

    ALWAYS = "true"
    NEVER = "false"
    AUTO = "auto"

    @classmethod
    def parse(cls, raw: str | FileListPolicy | None) -> FileListPolicy:
        """Parse a configured policy; unknown values fall back to ``AUTO``."""
        if isinstance(raw, FileListPolicy):
            return raw
        if raw is None or not raw.strip():
            return cls.AUTO
        value = raw.strip().lower()
        for member in cls:
            if member.value == value:
                return member
        logger.warning(
            "useFileListFile has unknown value %r; falling back to 'auto'", raw
        )
        return cls.AUTO


@dataclass(frozen=True)
class ToolInvocationConfig:
    """Immutable description of one tool invocation."""

    operation: Operation
    verbose: bool = False
    quiet: bool = False
    options: Mapping[str, OptionValue] = field(default_factory=dict)
    files: tuple[str, ...] = ()
    fork: bool = True
    persistence_unit_name: str = ""
    api: str = "JDO"
    properties: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Coerce the operation and freeze ``options``/``properties``.

        Raises ``ValueError`` for a blank ``api``, an unknown option name, or
        an option whose type does not match its default.
        """
        object.__setattr__(self, "operation", Operation(self.operation))
        if not self.api or not self.api.strip():
            raise ValueError("api must be non-empty")

        unknown = sorted(set(self.options) - set(OPTION_DEFAULTS))
        if unknown:
            msg = (
                f"Unknown tool option(s): {', '.join(unknown)}; "
                f"available: {', '.join(sorted(OPTION_DEFAULTS))}"
            )
            raise ValueError(msg)
        for name, value in self.options.items():
            expected = type(OPTION_DEFAULTS[name])
            if not isinstance(value, expected):
                msg = f"option {name} must be a {expected.__name__}"
                raise ValueError(msg)

        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))
        object.__setattr__(
            self,
            "properties",
            MappingProxyType({str(k): str(v) for k, v in self.properties.items()}),
        )
        object.__setattr__(self, "files", tuple(str(f) for f in self.files))

    @property
    def tool(self) -> Tool:
        return self.operation.tool

    @property
    def uses_persistence_unit(self) -> bool:
        return bool(self.persistence_unit_name and self.persistence_unit_name.strip())

    def flag(self, name: str) -> bool:
        return bool(self.options.get(name, OPTION_DEFAULTS[name]))

    def text(self, name: str) -> str:
        return str(self.options.get(name, OPTION_DEFAULTS[name])).strip()


@dataclass(frozen=True)
class OperationRule:
    """Tool plus mode-specific token emitter for an ``Operation``."""

    tool: Tool
    mode_arguments: Callable[[ToolInvocationConfig], list[str]]


@dataclass(frozen=True)
class TranslatedArguments:
    """Tool arguments and the side file written for them, if any."""

    tokens: list[str]
    file_list_file: Path | None = None


def _enhance_mode(config: ToolInvocationConfig) -> list[str]:
    target = config.text("target_directory")
    return ["-d", target] if target else []


def _enhance_check_mode(config: ToolInvocationConfig) -> list[str]:
    del config
    return ["-checkonly"]


def _create_database_mode(config: ToolInvocationConfig) -> list[str]:
    tokens = ["-createDatabase"]
    catalog = config.text("catalog_name")
    if catalog:
        tokens.extend(["-catalog", catalog])
    schema = config.text("schema_name")
    if schema:
        tokens.extend(["-schema", schema])
    return tokens


def _delete_schema_mode(config: ToolInvocationConfig) -> list[str]:
    schema = config.text("schema_name")
    if not schema:
        msg = f"schema_name is required for {Operation.SCHEMA_DELETE_SCHEMA.value}"
        raise ValueError(msg)
    return ["-deleteSchema", schema]


def _delete_create_mode(config: ToolInvocationConfig) -> list[str]:
    tokens = ["-deletecreate"]
    ddl_file = config.text("ddl_file")
    if ddl_file:
        tokens.extend(["-ddlFile", ddl_file])
    if config.flag("complete_ddl"):
        tokens.append("-completeDdl")
    if config.flag("include_auto_start"):
        tokens.append("-includeAutoStart")
    return tokens


def _fixed_mode(token: str) -> Callable[[ToolInvocationConfig], list[str]]:
    def _emit(config: ToolInvocationConfig) -> list[str]:
        del config
        return [token]

    return _emit


OPERATION_RULES: dict[Operation, OperationRule] = {
    Operation.ENHANCE: OperationRule(Tool.ENHANCER, _enhance_mode),
    Operation.ENHANCE_CHECK: OperationRule(Tool.ENHANCER, _enhance_check_mode),
    Operation.SCHEMA_CREATE_DATABASE: OperationRule(
        Tool.SCHEMA_TOOL, _create_database_mode
    ),
    Operation.SCHEMA_DELETE_SCHEMA: OperationRule(
        Tool.SCHEMA_TOOL, _delete_schema_mode
    ),
    Operation.SCHEMA_DELETE_CREATE: OperationRule(
        Tool.SCHEMA_TOOL, _delete_create_mode
    ),
    Operation.SCHEMA_INFO: OperationRule(Tool.SCHEMA_TOOL, _fixed_mode("-schemainfo")),
    Operation.SCHEMA_DBINFO: OperationRule(Tool.SCHEMA_TOOL, _fixed_mode("-dbinfo")),
}


def _absolute_files(files: Iterable[str]) -> list[str]:
    return [str(Path(f).absolute()) for f in files]


def should_use_file_list_file(
    files: Iterable[str],
    *,
    policy: FileListPolicy = FileListPolicy.AUTO,
    threshold: int = DEFAULT_FILE_LIST_THRESHOLD,
) -> bool:
    """Decide whether *files* go through a side file.

    ``AUTO`` picks the side file once the encoded file tokens (one separator
    each) exceed *threshold* bytes.
    """
    if policy is FileListPolicy.ALWAYS:
        return True
    if policy is FileListPolicy.NEVER:
        return False
    total = sum(len(f.encode("utf-8")) + 1 for f in files)
    return total > threshold


def write_file_list_file(files: Iterable[str]) -> Path:
    """Write absolute *files* to a temporary UTF-8 side file, one per line.

    The enhancer deletes the file once it has read it.
    """
    with tempfile.NamedTemporaryFile(
        mode="w",
        encoding="utf-8",
        newline="\n",
        prefix="enhancer-",
        suffix=".flf",
        delete=False,
    ) as handle:
        for path in _absolute_files(files):
            handle.write(f"{path}\n")
        file_list_file = Path(handle.name)
    logger.info("Writing fileListFile: %s", file_list_file)
    return file_list_file


def read_file_list_file(path: str | Path) -> list[str]:
    """Read a side file back; CR, LF and CRLF line endings are all accepted."""
    with open(path, encoding="utf-8", newline="") as handle:
        content = handle.read()
    return [line for line in content.splitlines() if line.strip()]


def translate_arguments(
    config: ToolInvocationConfig,
    *,
    policy: FileListPolicy = FileListPolicy.AUTO,
    threshold: int = DEFAULT_FILE_LIST_THRESHOLD,
) -> TranslatedArguments:
    """Build the ordered argument list for *config*.

    Writes the file-list side file when the policy asks for one; the
    returned ``file_list_file`` points at it.
    """
    rule = OPERATION_RULES[config.operation]
    is_enhancer = rule.tool is Tool.ENHANCER
    tokens = rule.mode_arguments(config)

    if is_enhancer and config.quiet:
        tokens.append("-q")
    elif config.verbose:
        tokens.append("-v")

    if config.uses_persistence_unit:
        tokens.extend(["-pu", config.persistence_unit_name.strip()])

    tokens.extend(["-api", config.api.strip()])

    if is_enhancer:
        if config.flag("always_detachable"):
            tokens.append("-alwaysDetachable")
        if config.flag("ignore_metadata_for_missing_classes"):
            tokens.append("-ignoreMetaDataForMissingClasses")
        if not config.flag("generate_pk"):
            tokens.extend(["-generatePK", "false"])
        if not config.flag("generate_constructor"):
            tokens.extend(["-generateConstructor", "false"])
        if config.flag("detach_listener"):
            tokens.extend(["-detachListener", "true"])
    else:
        props = config.text("props")
        if props:
            tokens.extend(["-props", props])

    file_list_file: Path | None = None
    if not config.uses_persistence_unit:
        if (
            is_enhancer
            and config.files
            and should_use_file_list_file(
                config.files, policy=policy, threshold=threshold
            )
        ):
            file_list_file = write_file_list_file(config.files)
            tokens.extend(["-flf", str(file_list_file)])
        else:
            tokens.extend(_absolute_files(config.files))

    return TranslatedArguments(tokens=tokens, file_list_file=file_list_file)


def system_properties(
    config: ToolInvocationConfig,
    logging_reference: LoggingReference | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Collect the ``-D`` properties for the tool run.

    SchemaTool runs carry the configured tool properties; a key that is also
    set in *environ* takes the environment's value. The logging reference,
    when present, comes last.
    """
    env = os.environ if environ is None else environ
    properties: dict[str, str] = {}
    if config.tool is Tool.SCHEMA_TOOL:
        for key, value in config.properties.items():
            if key in env:
                logger.warning(
                    "Property '%s' value specified in configuration will be "
                    "overridden by the environment.",
                    key,
                )
                value = env[key]
            properties[key] = value
    if logging_reference is not None:
        properties[logging_reference.property_name] = logging_reference.url
    return properties
