"""Configuration loading: CLI flags → env vars → .env file → defaults."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from datanucleus_tools.lib.arguments import (
    DEFAULT_FILE_LIST_THRESHOLD,
    OPTION_DEFAULTS,
    FileListPolicy,
    Operation,
    OptionValue,
    ToolInvocationConfig,
)
from datanucleus_tools.lib.metadata import DEFAULT_INCLUDES

logger = logging.getLogger(__name__)

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - optional dependency safety
    load_dotenv = None  # type: ignore[assignment]

__all__ = ["Config"]

_TRUTHY = ("1", "true", "yes", "on")
_FALSY = ("0", "false", "no", "off")


def _env_flag(name: str) -> bool | None:
    raw = os.environ.get(name, "").strip().lower()
    if raw in _TRUTHY:
        return True
    if raw in _FALSY:
        return False
    return None


def _env_paths(name: str) -> tuple[str, ...] | None:
    raw = os.environ.get(name, "")
    entries = tuple(p for p in raw.split(os.pathsep) if p.strip())
    return entries or None


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: expected an integer", name, raw)
        return None


def _load_env_files() -> None:
    """Load a dotenv file from the working directory, if present."""
    if load_dotenv is None:
        return
    load_dotenv(Path.cwd() / ".env", override=False)


@dataclass(frozen=True)
class Config:
    """Immutable tool-run settings."""

    metadata_directory: str = "target/classes"
    metadata_includes: str = DEFAULT_INCLUDES
    metadata_excludes: str = ""
    classpath_elements: tuple[str, ...] = ()
    plugin_artifacts: tuple[str, ...] = ()
    log4j_configuration: str = ""
    log4j2_configuration: str = ""
    jdk_log_configuration: str = ""
    verbose: bool = False
    quiet: bool = False
    fork: bool = True
    persistence_unit_name: str = ""
    api: str = "JDO"
    java_executable: str = ""
    use_file_list_file: str = FileListPolicy.AUTO.value
    file_list_threshold: int = DEFAULT_FILE_LIST_THRESHOLD
    options: Mapping[str, OptionValue] = field(default_factory=dict)
    tool_properties: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate config fields on creation.

        ``api`` must be non-blank, ``file_list_threshold`` positive, and every
        key in ``options`` a known tool option.
        """
        if not self.api.strip():
            raise ValueError("api must be non-empty")
        if self.file_list_threshold <= 0:
            raise ValueError("file_list_threshold must be > 0")
        unknown = sorted(set(self.options) - set(OPTION_DEFAULTS))
        if unknown:
            msg = (
                f"Unknown tool option(s): {', '.join(unknown)}; "
                f"available: {', '.join(sorted(OPTION_DEFAULTS))}"
            )
            raise ValueError(msg)

    @property
    def file_list_policy(self) -> FileListPolicy:
        return FileListPolicy.parse(self.use_file_list_file)

    def invocation_config(
        self,
        operation: Operation | str,
        files: Sequence[str | Path] = (),
    ) -> ToolInvocationConfig:
        """Build the per-run invocation config for *operation* and *files*."""
        return ToolInvocationConfig(
            operation=Operation(operation),
            verbose=self.verbose,
            quiet=self.quiet,
            options=dict(self.options),
            files=tuple(str(f) for f in files),
            fork=self.fork,
            persistence_unit_name=self.persistence_unit_name,
            api=self.api,
            properties=dict(self.tool_properties),
        )

    @classmethod
    def from_env(cls, overrides: Mapping[str, Any] | None = None) -> Config:
        """Build config from environment variables, then apply overrides.

        Priority: overrides (CLI flags) > env vars > .env file > defaults.
        """
        _load_env_files()

        env_values: dict[str, Any] = {
            "metadata_directory": os.environ.get("DATANUCLEUS_METADATA_DIRECTORY"),
            "metadata_includes": os.environ.get("DATANUCLEUS_METADATA_INCLUDES"),
            "metadata_excludes": os.environ.get("DATANUCLEUS_METADATA_EXCLUDES"),
            "classpath_elements": _env_paths("DATANUCLEUS_CLASSPATH"),
            "plugin_artifacts": _env_paths("DATANUCLEUS_PLUGIN_ARTIFACTS"),
            "log4j_configuration": os.environ.get("DATANUCLEUS_LOG4J_CONFIGURATION"),
            "log4j2_configuration": os.environ.get(
                "DATANUCLEUS_LOG4J2_CONFIGURATION"
            ),
            "jdk_log_configuration": os.environ.get(
                "DATANUCLEUS_JDK_LOG_CONFIGURATION"
            ),
            "verbose": _env_flag("DATANUCLEUS_VERBOSE"),
            "quiet": _env_flag("DATANUCLEUS_QUIET"),
            "fork": _env_flag("DATANUCLEUS_FORK"),
            "persistence_unit_name": os.environ.get("DATANUCLEUS_PERSISTENCE_UNIT"),
            "api": os.environ.get("DATANUCLEUS_API"),
            "java_executable": os.environ.get("DATANUCLEUS_JAVA"),
            "use_file_list_file": os.environ.get("DATANUCLEUS_USE_FILE_LIST_FILE"),
            "file_list_threshold": _env_int("DATANUCLEUS_FILE_LIST_THRESHOLD"),
        }

        merged = {k: v for k, v in env_values.items() if v is not None and v != ""}
        if overrides:
            merged.update({k: v for k, v in overrides.items() if v is not None})

        unknown = sorted(set(merged) - set(cls.__dataclass_fields__))
        if unknown:
            msg = f"Unknown config field(s): {', '.join(unknown)}"
            raise ValueError(msg)

        for key in ("classpath_elements", "plugin_artifacts"):
            if key in merged:
                merged[key] = tuple(str(p) for p in merged[key])
        return cls(**merged)
