"""Tests for datanucleus_tools.lib.arguments."""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

import pytest

from datanucleus_tools.lib.arguments import (
    FileListPolicy,
    Operation,
    Tool,
    ToolInvocationConfig,
    read_file_list_file,
    should_use_file_list_file,
    system_properties,
    translate_arguments,
    write_file_list_file,
)
from datanucleus_tools.lib.logging_reference import LoggingReference


@pytest.fixture()
def side_file_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    directory = tmp_path / "tmp"
    directory.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(directory))
    return directory


def _tokens(config: ToolInvocationConfig, **kwargs: object) -> list[str]:
    return translate_arguments(config, **kwargs).tokens  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# ToolInvocationConfig
# ---------------------------------------------------------------------------


class TestToolInvocationConfig:
    def test_operation_coerced_from_string(self) -> None:
        config = ToolInvocationConfig(operation="enhance-check")  # type: ignore[arg-type]
        assert config.operation is Operation.ENHANCE_CHECK
        assert config.tool is Tool.ENHANCER

    def test_unknown_operation_raises(self) -> None:
        with pytest.raises(ValueError):
            ToolInvocationConfig(operation="schema-validate")  # type: ignore[arg-type]

    def test_unknown_option_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown tool option"):
            ToolInvocationConfig(Operation.ENHANCE, options={"bogus": True})

    def test_option_type_checked(self) -> None:
        with pytest.raises(ValueError, match="generate_pk must be a bool"):
            ToolInvocationConfig(Operation.ENHANCE, options={"generate_pk": "no"})

    def test_blank_api_raises(self) -> None:
        with pytest.raises(ValueError, match="api must be non-empty"):
            ToolInvocationConfig(Operation.ENHANCE, api="  ")

    def test_options_are_read_only(self) -> None:
        options = {"detach_listener": True}
        config = ToolInvocationConfig(Operation.ENHANCE, options=options)
        options["detach_listener"] = False
        assert config.flag("detach_listener") is True
        with pytest.raises(TypeError):
            config.options["detach_listener"] = False  # type: ignore[index]

    def test_schema_operations_use_schema_tool(self) -> None:
        for operation in Operation:
            expected = (
                Tool.ENHANCER
                if operation in (Operation.ENHANCE, Operation.ENHANCE_CHECK)
                else Tool.SCHEMA_TOOL
            )
            assert operation.tool is expected


# ---------------------------------------------------------------------------
# Mode-specific tokens
# ---------------------------------------------------------------------------


class TestModeTokens:
    def test_enhance_has_no_selector(self) -> None:
        assert _tokens(ToolInvocationConfig(Operation.ENHANCE)) == ["-api", "JDO"]

    def test_enhance_target_directory(self) -> None:
        config = ToolInvocationConfig(
            Operation.ENHANCE, options={"target_directory": "out/classes"}
        )
        assert _tokens(config)[:2] == ["-d", "out/classes"]

    def test_enhance_check(self) -> None:
        assert _tokens(ToolInvocationConfig(Operation.ENHANCE_CHECK))[0] == "-checkonly"

    def test_create_database_with_catalog_and_schema(self) -> None:
        config = ToolInvocationConfig(
            Operation.SCHEMA_CREATE_DATABASE,
            options={"catalog_name": "cat", "schema_name": "app"},
        )
        assert _tokens(config)[:5] == [
            "-createDatabase",
            "-catalog",
            "cat",
            "-schema",
            "app",
        ]

    def test_create_database_bare(self) -> None:
        config = ToolInvocationConfig(Operation.SCHEMA_CREATE_DATABASE)
        assert _tokens(config) == ["-createDatabase", "-api", "JDO"]

    def test_delete_schema(self) -> None:
        config = ToolInvocationConfig(
            Operation.SCHEMA_DELETE_SCHEMA, options={"schema_name": "app"}
        )
        assert _tokens(config)[:2] == ["-deleteSchema", "app"]

    def test_delete_schema_requires_name(self) -> None:
        with pytest.raises(ValueError, match="schema_name is required"):
            translate_arguments(ToolInvocationConfig(Operation.SCHEMA_DELETE_SCHEMA))

    def test_delete_create_options(self) -> None:
        config = ToolInvocationConfig(
            Operation.SCHEMA_DELETE_CREATE,
            options={
                "ddl_file": "schema.ddl",
                "complete_ddl": True,
                "include_auto_start": True,
            },
        )
        assert _tokens(config)[:5] == [
            "-deletecreate",
            "-ddlFile",
            "schema.ddl",
            "-completeDdl",
            "-includeAutoStart",
        ]

    def test_info_operations(self) -> None:
        assert _tokens(ToolInvocationConfig(Operation.SCHEMA_INFO))[0] == "-schemainfo"
        assert _tokens(ToolInvocationConfig(Operation.SCHEMA_DBINFO))[0] == "-dbinfo"


# ---------------------------------------------------------------------------
# Shared tail
# ---------------------------------------------------------------------------


class TestVerbosity:
    def test_quiet_wins_for_enhancer(self) -> None:
        config = ToolInvocationConfig(Operation.ENHANCE, quiet=True, verbose=True)
        tokens = _tokens(config)
        assert "-q" in tokens
        assert "-v" not in tokens

    def test_verbose_for_enhancer(self) -> None:
        assert _tokens(ToolInvocationConfig(Operation.ENHANCE, verbose=True))[0] == "-v"

    def test_schema_tool_ignores_quiet(self) -> None:
        config = ToolInvocationConfig(Operation.SCHEMA_INFO, quiet=True, verbose=True)
        tokens = _tokens(config)
        assert "-q" not in tokens
        assert tokens[:2] == ["-schemainfo", "-v"]


class TestPersistenceUnit:
    def test_unit_suppresses_files(self, tmp_path: Path) -> None:
        files = (str(tmp_path / "a.jdo"), str(tmp_path / "b.class"))
        config = ToolInvocationConfig(
            Operation.ENHANCE, persistence_unit_name="myUnit", files=files
        )
        tokens = _tokens(config, policy=FileListPolicy.ALWAYS)
        assert tokens == ["-pu", "myUnit", "-api", "JDO"]
        assert not any(f in tokens for f in files)

    def test_blank_unit_is_ignored(self, tmp_path: Path) -> None:
        path = str(tmp_path / "a.jdo")
        config = ToolInvocationConfig(
            Operation.SCHEMA_INFO, persistence_unit_name="   ", files=(path,)
        )
        tokens = _tokens(config)
        assert "-pu" not in tokens
        assert tokens[-1] == path


class TestEnhancerFlags:
    def test_generate_pk_default_not_emitted(self) -> None:
        tokens = _tokens(ToolInvocationConfig(Operation.ENHANCE))
        assert "-generatePK" not in tokens
        assert "-generateConstructor" not in tokens

    def test_generate_pk_explicit_true_not_emitted(self) -> None:
        config = ToolInvocationConfig(Operation.ENHANCE, options={"generate_pk": True})
        assert "-generatePK" not in _tokens(config)

    def test_generate_pk_disabled(self) -> None:
        config = ToolInvocationConfig(
            Operation.ENHANCE, options={"generate_pk": False}
        )
        tokens = _tokens(config)
        idx = tokens.index("-generatePK")
        assert tokens[idx + 1] == "false"

    def test_all_flags_in_order(self) -> None:
        config = ToolInvocationConfig(
            Operation.ENHANCE,
            api="JPA",
            options={
                "always_detachable": True,
                "ignore_metadata_for_missing_classes": True,
                "generate_pk": False,
                "generate_constructor": False,
                "detach_listener": True,
            },
        )
        assert _tokens(config) == [
            "-api",
            "JPA",
            "-alwaysDetachable",
            "-ignoreMetaDataForMissingClasses",
            "-generatePK",
            "false",
            "-generateConstructor",
            "false",
            "-detachListener",
            "true",
        ]

    def test_enhancer_flags_ignored_by_schema_tool(self) -> None:
        config = ToolInvocationConfig(
            Operation.SCHEMA_INFO,
            options={"always_detachable": True, "generate_pk": False},
        )
        assert _tokens(config) == ["-schemainfo", "-api", "JDO"]

    def test_props_for_schema_tool_only(self) -> None:
        schema = ToolInvocationConfig(
            Operation.SCHEMA_DBINFO, options={"props": "ds.properties"}
        )
        assert _tokens(schema) == ["-dbinfo", "-api", "JDO", "-props", "ds.properties"]
        enhancer = ToolInvocationConfig(
            Operation.ENHANCE, options={"props": "ds.properties"}
        )
        assert "-props" not in _tokens(enhancer)


# ---------------------------------------------------------------------------
# Input files and side files
# ---------------------------------------------------------------------------


class TestFileArguments:
    def test_files_passed_individually(self, tmp_path: Path) -> None:
        files = (str(tmp_path / "a.jdo"), str(tmp_path / "b.class"))
        config = ToolInvocationConfig(Operation.ENHANCE, files=files)
        result = translate_arguments(config, policy=FileListPolicy.NEVER)
        assert result.tokens[-2:] == list(files)
        assert result.file_list_file is None

    def test_relative_files_made_absolute(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        config = ToolInvocationConfig(Operation.SCHEMA_INFO, files=("x.jdo",))
        assert _tokens(config)[-1] == str(Path.cwd() / "x.jdo")

    def test_side_file_written(self, tmp_path: Path, side_file_dir: Path) -> None:
        files = [str(tmp_path / f"C{i}.class") for i in range(3)]
        config = ToolInvocationConfig(Operation.ENHANCE, files=tuple(files))
        result = translate_arguments(config, policy=FileListPolicy.ALWAYS)

        assert result.file_list_file is not None
        assert result.tokens[-2:] == ["-flf", str(result.file_list_file)]
        assert result.file_list_file.parent == side_file_dir
        assert result.file_list_file.name.startswith("enhancer-")
        assert result.file_list_file.suffix == ".flf"
        raw = result.file_list_file.read_bytes().decode("utf-8")
        assert raw == "".join(f"{f}\n" for f in files)

    def test_schema_tool_never_uses_side_file(self, tmp_path: Path) -> None:
        files = (str(tmp_path / "a.jdo"),)
        config = ToolInvocationConfig(Operation.SCHEMA_INFO, files=files)
        result = translate_arguments(config, policy=FileListPolicy.ALWAYS)
        assert result.file_list_file is None
        assert result.tokens[-1] == files[0]

    def test_empty_file_list_is_not_an_error(self) -> None:
        config = ToolInvocationConfig(Operation.ENHANCE)
        result = translate_arguments(config, policy=FileListPolicy.ALWAYS)
        assert result.file_list_file is None
        assert result.tokens == ["-api", "JDO"]

    def test_auto_switches_above_threshold(
        self, tmp_path: Path, side_file_dir: Path
    ) -> None:
        files = tuple(str(tmp_path / f"Class{i}.class") for i in range(50))
        config = ToolInvocationConfig(Operation.ENHANCE, files=files)
        small = translate_arguments(config, threshold=10_000_000)
        assert small.file_list_file is None
        large = translate_arguments(config, threshold=100)
        assert large.file_list_file is not None
        assert "-flf" in large.tokens


class TestShouldUseFileListFile:
    def test_always_and_never(self) -> None:
        assert should_use_file_list_file([], policy=FileListPolicy.ALWAYS) is True
        assert (
            should_use_file_list_file(["x" * 10**6], policy=FileListPolicy.NEVER)
            is False
        )

    def test_auto_threshold_is_exclusive(self) -> None:
        files = ["abcd"]  # 4 bytes + 1 separator
        assert should_use_file_list_file(files, threshold=5) is False
        assert should_use_file_list_file(files, threshold=4) is True

    def test_auto_counts_utf8_bytes(self) -> None:
        files = ["é" * 10]  # 20 bytes + 1
        assert should_use_file_list_file(files, threshold=15) is True


class TestFileListPolicyParse:
    def test_known_values(self) -> None:
        assert FileListPolicy.parse("TRUE") is FileListPolicy.ALWAYS
        assert FileListPolicy.parse("false") is FileListPolicy.NEVER
        assert FileListPolicy.parse(" auto ") is FileListPolicy.AUTO
        assert FileListPolicy.parse(None) is FileListPolicy.AUTO

    def test_unknown_value_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING):
            assert FileListPolicy.parse("sometimes") is FileListPolicy.AUTO
        assert "unknown value" in caplog.text


class TestFileListFileRoundTrip:
    def test_round_trip(self, tmp_path: Path, side_file_dir: Path) -> None:
        files = [str(tmp_path / "a b" / "Ünïcode.class"), str(tmp_path / "B.jdo")]
        path = write_file_list_file(files)
        assert read_file_list_file(path) == files

    @pytest.mark.parametrize("newline", ["\n", "\r\n", "\r"])
    def test_reader_accepts_any_line_ending(
        self, tmp_path: Path, newline: str
    ) -> None:
        files = ["/a/One.class", "/b/Two.class", "/c/Three.jdo"]
        path = tmp_path / "list.flf"
        path.write_bytes(newline.join(files).encode("utf-8") + newline.encode())
        assert read_file_list_file(path) == files


# ---------------------------------------------------------------------------
# System properties
# ---------------------------------------------------------------------------


class TestSystemProperties:
    def test_schema_tool_properties_in_order(self) -> None:
        config = ToolInvocationConfig(
            Operation.SCHEMA_INFO,
            properties={"datanucleus.a": "1", "datanucleus.b": "2"},
        )
        ref = LoggingReference("log4j.configuration", "file:/cfg/log4j.properties")
        props = system_properties(config, ref, environ={})
        assert list(props.items()) == [
            ("datanucleus.a", "1"),
            ("datanucleus.b", "2"),
            ("log4j.configuration", "file:/cfg/log4j.properties"),
        ]

    def test_environment_overrides_with_warning(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        config = ToolInvocationConfig(
            Operation.SCHEMA_INFO, properties={"datanucleus.a": "from-config"}
        )
        with caplog.at_level(logging.WARNING):
            props = system_properties(config, environ={"datanucleus.a": "from-env"})
        assert props == {"datanucleus.a": "from-env"}
        assert "will be overridden" in caplog.text

    def test_enhancer_ignores_tool_properties(self) -> None:
        config = ToolInvocationConfig(
            Operation.ENHANCE, properties={"datanucleus.a": "1"}
        )
        assert system_properties(config, environ={}) == {}
