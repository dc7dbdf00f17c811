"""CLI entry point: parse args, load config, run one tool operation."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any

from datanucleus_tools.lib.arguments import FileListPolicy, Operation
from datanucleus_tools.lib.config import Config
from datanucleus_tools.lib.errors import ToolError
from datanucleus_tools.lib.runner import run_operation


def _key_value(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        msg = f"expected KEY=VALUE, got {raw!r}"
        raise argparse.ArgumentTypeError(msg)
    return key.strip(), value


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for CLI mode."""
    parser = argparse.ArgumentParser(
        prog="datanucleus-tools",
        description="Run the DataNucleus Enhancer or SchemaTool.",
    )
    parser.add_argument(
        "operation",
        choices=[op.value for op in Operation],
        help="Tool operation to run.",
    )
    parser.add_argument(
        "--metadata-dir",
        default=None,
        help="Directory scanned for metadata files (default: target/classes).",
    )
    parser.add_argument(
        "--includes",
        default=None,
        help="Comma-separated include patterns (default: **/*.jdo, **/*.class).",
    )
    parser.add_argument(
        "--excludes",
        default=None,
        help="Comma-separated exclude patterns.",
    )
    parser.add_argument(
        "--classpath",
        action="append",
        default=None,
        help="Project classpath element (repeatable).",
    )
    parser.add_argument(
        "--artifact",
        action="append",
        default=None,
        help="Tool dependency artifact placed ahead of project entries (repeatable).",
    )
    parser.add_argument("--log4j-config", default=None, help="Log4J config.")
    parser.add_argument("--log4j2-config", default=None, help="Log4J2 config.")
    parser.add_argument(
        "--jdk-log-config", default=None, help="java.util.logging config."
    )
    parser.add_argument(
        "--fork",
        dest="fork",
        action="store_true",
        default=None,
        help="Run the tool in a child JVM (default).",
    )
    parser.add_argument(
        "--no-fork",
        dest="fork",
        action="store_false",
        help="Run the tool entry point in-process.",
    )
    parser.add_argument("--persistence-unit", default=None, help="Persistence unit.")
    parser.add_argument("--api", default=None, help="Persistence API (default: JDO).")
    parser.add_argument("--java", default=None, help="java executable to launch.")
    parser.add_argument(
        "--use-file-list-file",
        choices=[policy.value for policy in FileListPolicy],
        default=None,
        help="Pass enhancer input files through a side file.",
    )
    parser.add_argument(
        "--file-list-threshold",
        type=int,
        default=None,
        help="Byte length above which 'auto' switches to a side file.",
    )
    parser.add_argument(
        "--target-dir", default=None, help="Enhancer output directory."
    )
    parser.add_argument("--always-detachable", action="store_true")
    parser.add_argument("--ignore-metadata-for-missing-classes", action="store_true")
    parser.add_argument("--no-generate-pk", action="store_true")
    parser.add_argument("--no-generate-constructor", action="store_true")
    parser.add_argument("--detach-listener", action="store_true")
    parser.add_argument("--props", default=None, help="SchemaTool properties file.")
    parser.add_argument("--ddl-file", default=None, help="File DDL is written to.")
    parser.add_argument("--complete-ddl", action="store_true")
    parser.add_argument("--include-auto-start", action="store_true")
    parser.add_argument("--catalog", default=None, help="Catalog name.")
    parser.add_argument("--schema", default=None, help="Schema name.")
    parser.add_argument(
        "-D",
        dest="properties",
        action="append",
        type=_key_value,
        default=None,
        metavar="KEY=VALUE",
        help="SchemaTool system property (repeatable).",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=None,
        help="Ask the tool for verbose output.",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        default=None,
        help="Ask the enhancer for quiet output.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging.",
    )
    return parser


def _tool_options(args: argparse.Namespace) -> dict[str, str | bool]:
    options: dict[str, str | bool] = {}
    text_options = {
        "target_directory": args.target_dir,
        "props": args.props,
        "ddl_file": args.ddl_file,
        "catalog_name": args.catalog,
        "schema_name": args.schema,
    }
    options.update({k: v for k, v in text_options.items() if v is not None})
    if args.always_detachable:
        options["always_detachable"] = True
    if args.ignore_metadata_for_missing_classes:
        options["ignore_metadata_for_missing_classes"] = True
    if args.no_generate_pk:
        options["generate_pk"] = False
    if args.no_generate_constructor:
        options["generate_constructor"] = False
    if args.detach_listener:
        options["detach_listener"] = True
    if args.complete_ddl:
        options["complete_ddl"] = True
    if args.include_auto_start:
        options["include_auto_start"] = True
    return options


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    return {
        "metadata_directory": args.metadata_dir,
        "metadata_includes": args.includes,
        "metadata_excludes": args.excludes,
        "classpath_elements": args.classpath,
        "plugin_artifacts": args.artifact,
        "log4j_configuration": args.log4j_config,
        "log4j2_configuration": args.log4j2_config,
        "jdk_log_configuration": args.jdk_log_config,
        "verbose": args.verbose,
        "quiet": args.quiet,
        "fork": args.fork,
        "persistence_unit_name": args.persistence_unit,
        "api": args.api,
        "java_executable": args.java,
        "use_file_list_file": args.use_file_list_file,
        "file_list_threshold": args.file_list_threshold,
        "options": _tool_options(args),
        "tool_properties": dict(args.properties) if args.properties else None,
    }


def main(argv: list[str] | None = None) -> None:
    """Entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="[%(levelname)s] %(message)s",
        stream=sys.stderr,
    )

    try:
        config = Config.from_env(overrides=_overrides(args))
        result = run_operation(config, args.operation)
    except (ToolError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if result is None:
        print(f"Nothing to do for {args.operation}.")
        return
    print(f"{args.operation} completed.")


if __name__ == "__main__":
    main()
