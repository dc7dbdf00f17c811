"""Run one DataNucleus tool operation end to end.

``run_operation`` scans the metadata directory, assembles the classpath and
arguments, runs the selected invocation strategy and turns a failed run into
``ToolFailedError``. A missing metadata directory or an empty file set is a
warning and a no-op, not an error.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from datanucleus_tools.lib.arguments import (
    Operation,
    ToolInvocationConfig,
    system_properties,
    translate_arguments,
)
from datanucleus_tools.lib.classpath import build_classpath
from datanucleus_tools.lib.config import Config
from datanucleus_tools.lib.errors import ToolFailedError
from datanucleus_tools.lib.invocation import (
    ForkedInvocation,
    InProcessInvocation,
    InvocationResult,
    InvocationStrategy,
)
from datanucleus_tools.lib.logging_reference import resolve_logging_reference
from datanucleus_tools.lib.metadata import find_metadata_files

__all__ = ["build_strategy", "run_operation"]

logger = logging.getLogger(__name__)

_RULE = "--------------------"


def build_strategy(
    invocation: ToolInvocationConfig,
    classpath: list[str],
    properties: dict[str, str],
    *,
    java_executable: str = "",
) -> InvocationStrategy:
    """Return the forked or in-process strategy selected by ``invocation.fork``."""
    if invocation.fork:
        return ForkedInvocation(
            invocation.tool,
            classpath,
            properties,
            java_executable=java_executable,
        )
    return InProcessInvocation(invocation.tool, classpath, properties)


def _report_output(tool_name: str, result: InvocationResult) -> None:
    logger.debug("Exit code: %d", result.exit_code)
    logger.debug(" Standard output from the DataNucleus tool %s :", tool_name)
    if result.stdout.strip():
        logger.info("%s", result.stdout.rstrip())
    if result.stderr.strip():
        logger.error(_RULE)
        logger.error(" Standard error from the DataNucleus tool %s :", tool_name)
        logger.error(_RULE)
        logger.error("%s", result.stderr.rstrip())
        logger.error(_RULE)


def _discard_side_file(path: Path | None) -> None:
    if path is not None:
        path.unlink(missing_ok=True)


def run_operation(
    config: Config,
    operation: Operation | str,
) -> InvocationResult | None:
    """Run *operation* with *config*.

    Returns the invocation result, or ``None`` when there was nothing to do
    (metadata directory unavailable or no matching files).

    Raises:
        ClasspathResolutionError: A classpath entry cannot be canonicalized.
        InvocationError: The tool cannot be launched or loaded.
        ToolFailedError: The tool exited non-zero or raised.
        ValueError: The configuration is invalid for *operation*.
    """
    operation = Operation(operation)
    tool = operation.tool
    metadata_directory = Path(config.metadata_directory).expanduser()

    if not metadata_directory.is_dir():
        logger.warning(
            "No files to run DataNucleus tool '%s' since specified metadata "
            "directory '%s' is not available.",
            tool.entry_point,
            metadata_directory.absolute(),
        )
        return None

    try:
        files = find_metadata_files(
            metadata_directory,
            includes=config.metadata_includes,
            excludes=config.metadata_excludes,
        )
    except OSError as exc:
        logger.warning(
            "No files to run DataNucleus tool '%s' since metadata directory "
            "'%s' could not be scanned: %s",
            tool.entry_point,
            metadata_directory.absolute(),
            exc,
        )
        return None
    if not files:
        logger.warning("No files to run DataNucleus tool '%s'", tool.entry_point)
        return None

    logger.debug("Metadata Directory is : %s", metadata_directory.absolute())

    classpath = build_classpath(
        metadata_directory,
        config.plugin_artifacts,
        config.classpath_elements,
    )
    if config.verbose and not config.quiet:
        for entry in classpath:
            logger.info("  CP: %s", entry)

    invocation = config.invocation_config(operation, files)
    logging_reference = resolve_logging_reference(
        log4j=config.log4j_configuration,
        log4j2=config.log4j2_configuration,
        jdk=config.jdk_log_configuration,
    )
    properties = system_properties(invocation, logging_reference, os.environ)
    strategy = build_strategy(
        invocation,
        classpath,
        properties,
        java_executable=config.java_executable,
    )

    # The side file is written last so nothing above can strand it.
    translated = translate_arguments(
        invocation,
        policy=config.file_list_policy,
        threshold=config.file_list_threshold,
    )
    try:
        result = strategy.invoke(translated.tokens)
    except BaseException:
        _discard_side_file(translated.file_list_file)
        raise

    _report_output(tool.entry_point, result)
    if not result.success:
        _discard_side_file(translated.file_list_file)
        raise ToolFailedError(
            tool.entry_point,
            result.exit_code,
            result.stderr,
        ) from result.error
    return result
