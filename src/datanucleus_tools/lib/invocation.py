"""Invocation strategies: run a DataNucleus tool forked or in-process.

``ForkedInvocation`` launches ``java -cp <classpath> -D... <entry point>``
as a child process and drains stdout/stderr with two concurrent reader
tasks so neither pipe can fill up and stall the child.

``InProcessInvocation`` imports the entry point inside an isolated import
context (classpath entries plus the interpreter's standard library only)
and calls it with the same argument list. Process-wide state it touches
(``sys.path``, ``sys.modules``, ``os.environ``) is restored on every exit
path.

Both strategies are single-use and move through ``InvocationState``.
"""

from __future__ import annotations

import abc
import asyncio
import importlib
import io
import logging
import os
import shlex
import shutil
import sys
import sysconfig
import traceback
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import ModuleType
from typing import Any

from datanucleus_tools.lib.arguments import Tool
from datanucleus_tools.lib.classpath import join_classpath
from datanucleus_tools.lib.errors import InvocationError

__all__ = [
    "ForkedInvocation",
    "InProcessInvocation",
    "InvocationResult",
    "InvocationState",
    "InvocationStrategy",
    "isolated_import_context",
    "resolve_entry_point",
    "resolve_java_executable",
    "scoped_environment",
]

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


class InvocationState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class InvocationResult:
    """Captured result of a tool invocation."""

    command: list[str]
    stdout: str
    stderr: str
    exit_code: int
    error: BaseException | None = field(default=None, compare=False)

    @property
    def success(self) -> bool:
        """Return whether the tool completed successfully."""
        return self.exit_code == 0 and self.error is None


class InvocationStrategy(abc.ABC):
    """Single-use runner for one tool invocation."""

    def __init__(
        self,
        tool: Tool,
        classpath: Sequence[str],
        properties: Mapping[str, str] | None = None,
        *,
        entry_point: str | None = None,
    ) -> None:
        self.tool = tool
        self.classpath = list(classpath)
        self.properties = dict(properties or {})
        self.entry_point = entry_point or tool.entry_point
        self.state = InvocationState.NOT_STARTED

    def invoke(self, arguments: Sequence[str]) -> InvocationResult:
        """Run the tool with *arguments* and return its captured result."""
        if self.state is not InvocationState.NOT_STARTED:
            msg = (
                f"Invocation of {self.entry_point} was already started "
                f"(state={self.state.value})."
            )
            raise RuntimeError(msg)
        self.state = InvocationState.RUNNING
        try:
            result = self._invoke(list(arguments))
        except BaseException:
            self.state = InvocationState.FAILED
            raise
        self.state = (
            InvocationState.SUCCEEDED if result.success else InvocationState.FAILED
        )
        return result

    @abc.abstractmethod
    def _invoke(self, arguments: list[str]) -> InvocationResult:
        """Run the tool; subclasses implement the execution mode."""


def resolve_java_executable(
    configured: str = "",
    environ: Mapping[str, str] | None = None,
) -> str:
    """Pick the java launcher: configured, ``$JAVA_HOME/bin/java``, then PATH."""
    if configured and configured.strip():
        return configured.strip()
    env = os.environ if environ is None else environ
    java_home = env.get("JAVA_HOME", "").strip()
    if java_home:
        name = "java.exe" if os.name == "nt" else "java"
        return str(Path(java_home) / "bin" / name)
    return shutil.which("java") or "java"


class ForkedInvocation(InvocationStrategy):
    """Run the tool as a child JVM process."""

    def __init__(
        self,
        tool: Tool,
        classpath: Sequence[str],
        properties: Mapping[str, str] | None = None,
        *,
        java_executable: str = "",
        entry_point: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(tool, classpath, properties, entry_point=entry_point)
        self.java_executable = resolve_java_executable(java_executable)
        self.env = dict(env) if env is not None else None

    def build_command(self, arguments: Sequence[str]) -> list[str]:
        """Return the full child-process command line."""
        return [
            self.java_executable,
            "-cp",
            join_classpath(self.classpath),
            *(f"-D{key}={value}" for key, value in self.properties.items()),
            self.entry_point,
            *arguments,
        ]

    def _invoke(self, arguments: list[str]) -> InvocationResult:
        command = self.build_command(arguments)
        logger.debug("Executing command line: %s", shlex.join(command))
        return asyncio.run(self._run(command))

    async def _run(self, command: list[str]) -> InvocationResult:
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.env,
            )
        except OSError as exc:
            reason = f"could not launch {command[0]!r} ({exc})"
            raise InvocationError(self.entry_point, reason) from exc

        stdout, stderr = await asyncio.gather(
            asyncio.create_task(_drain(process.stdout, "stdout")),
            asyncio.create_task(_drain(process.stderr, "stderr")),
        )
        exit_code = await process.wait()
        return InvocationResult(
            command=command,
            stdout=stdout,
            stderr=stderr,
            exit_code=exit_code,
        )


async def _drain(stream: asyncio.StreamReader | None, label: str) -> str:
    if stream is None:
        return ""
    # Chunked reads; readline() fails on lines longer than the stream limit.
    data = bytearray()
    pending = b""
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        data.extend(chunk)
        *lines, pending = (pending + chunk).split(b"\n")
        for line in lines:
            _log_line(label, line)
    if pending:
        _log_line(label, pending)
    return data.decode("utf-8", errors="replace")


def _log_line(label: str, line: bytes) -> None:
    text = line.decode("utf-8", errors="replace").rstrip("\r")
    logger.debug("[%s] %s", label, text)


def _interpreter_roots() -> tuple[tuple[str, ...], tuple[str, ...]]:
    paths = sysconfig.get_paths()
    stdlib = tuple(
        {os.path.normcase(os.path.abspath(paths[k])) for k in ("stdlib", "platstdlib")}
    )
    site = tuple(
        {os.path.normcase(os.path.abspath(paths[k])) for k in ("purelib", "platlib")}
    )
    return stdlib, site


def _is_under(path: str, roots: Sequence[str]) -> bool:
    return any(path == root or path.startswith(root + os.sep) for root in roots)


def _is_interpreter_path(
    path: str, roots: tuple[tuple[str, ...], tuple[str, ...]]
) -> bool:
    if not path:
        return False
    stdlib, site = roots
    normalized = os.path.normcase(os.path.abspath(path))
    if _is_under(normalized, site):
        return False
    if "site-packages" in normalized or "dist-packages" in normalized:
        return False
    if _is_under(normalized, stdlib):
        return True
    # The zipped standard library sits next to the stdlib directory.
    return normalized.endswith(".zip") and _is_under(
        normalized, tuple(os.path.dirname(root) for root in stdlib)
    )


def _is_interpreter_module(
    module: ModuleType | None, roots: tuple[tuple[str, ...], tuple[str, ...]]
) -> bool:
    if module is None:
        return True
    origin = getattr(module, "__file__", None)
    if origin:
        locations = [origin]
    else:
        # A namespace __path__ recomputes from its parent and may fail.
        try:
            locations = list(getattr(module, "__path__", None) or [])
        except (KeyError, AttributeError, ImportError):
            return False
    return all(_is_interpreter_path(str(loc), roots) for loc in locations)


@contextmanager
def isolated_import_context(entries: Sequence[str]) -> Iterator[None]:
    """Limit imports to *entries* plus the standard library.

    Host modules loaded from outside the standard library are hidden for the
    duration; ``sys.path`` and ``sys.modules`` are restored exactly on exit,
    which also drops anything the tool imported.
    """
    roots = _interpreter_roots()
    saved_path = list(sys.path)
    saved_modules = dict(sys.modules)
    # Decide from the full snapshot; hiding a parent first breaks its children.
    hidden = [
        name
        for name, module in saved_modules.items()
        if not _is_interpreter_module(module, roots)
    ]
    try:
        sys.path[:] = [
            *entries,
            *(p for p in saved_path if _is_interpreter_path(p, roots)),
        ]
        for name in hidden:
            sys.modules.pop(name, None)
        importlib.invalidate_caches()
        yield
    finally:
        sys.path[:] = saved_path
        sys.modules.clear()
        sys.modules.update(saved_modules)
        importlib.invalidate_caches()


@contextmanager
def scoped_environment(overrides: Mapping[str, str]) -> Iterator[None]:
    """Apply *overrides* to ``os.environ`` and restore prior values on exit."""
    saved = {key: os.environ.get(key) for key in overrides}
    os.environ.update(overrides)
    try:
        yield
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value


def resolve_entry_point(name: str) -> Callable[[list[str]], Any]:
    """Import ``package.module.Attr`` and return its ``main`` (or itself).

    Raises:
        InvocationError: If the name cannot be imported or is not callable.
    """
    module_name, _, attribute = name.rpartition(".")
    if not module_name or not attribute:
        raise InvocationError(name, "entry point must be a dotted name")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attribute)
    except Exception as exc:
        raise InvocationError(name, f"cannot load entry point ({exc})") from exc

    main = getattr(target, "main", None)
    if callable(main):
        return main
    if callable(target):
        return target
    raise InvocationError(name, "entry point is not callable")


def _system_exit_code(code: object, stderr: io.StringIO) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    stderr.write(f"{code}\n")
    return 1


class InProcessInvocation(InvocationStrategy):
    """Run the tool's entry point inside this interpreter."""

    def _invoke(self, arguments: list[str]) -> InvocationResult:
        command = [self.entry_point, *arguments]
        for entry in self.classpath:
            logger.debug("  CP: %s", entry)
        stdout = io.StringIO()
        stderr = io.StringIO()
        exit_code = 0
        error: BaseException | None = None

        with (
            isolated_import_context(self.classpath),
            scoped_environment(self.properties),
        ):
            entry_point = resolve_entry_point(self.entry_point)
            with redirect_stdout(stdout), redirect_stderr(stderr):
                try:
                    entry_point(list(arguments))
                except SystemExit as exc:
                    exit_code = _system_exit_code(exc.code, stderr)
                except Exception as exc:
                    error = exc
                    exit_code = 1
                    traceback.print_exc(file=stderr)

        return InvocationResult(
            command=command,
            stdout=stdout.getvalue(),
            stderr=stderr.getvalue(),
            exit_code=exit_code,
            error=error,
        )
