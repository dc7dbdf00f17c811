"""Typed exceptions raised while preparing or running a DataNucleus tool.

Configuration mistakes raise ``ValueError``; everything that aborts a tool
run derives from ``ToolError``.
"""

from __future__ import annotations

__all__ = [
    "ClasspathResolutionError",
    "InvocationError",
    "ToolError",
    "ToolFailedError",
]


class ToolError(RuntimeError):
    """Base for all fatal tool-run errors."""


class ClasspathResolutionError(ToolError):
    """A classpath entry could not be canonicalized."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Error while creating the canonical path for '{path}'.")


class InvocationError(ToolError):
    """The tool could not be launched or its entry point could not be found."""

    def __init__(self, tool_name: str, reason: str) -> None:
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(f"Error executing DataNucleus tool {tool_name}: {reason}")


class ToolFailedError(ToolError):
    """The tool ran but reported failure."""

    def __init__(self, tool_name: str, exit_code: int, stderr: str = "") -> None:
        self.tool_name = tool_name
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(str(self))

    def __str__(self) -> str:
        base = (
            f"The DataNucleus tool {self.tool_name} exited with a non-zero "
            f"exit code ({self.exit_code})."
        )
        detail = self.stderr.strip()
        if detail:
            return f"{base}\n{detail}"
        return base
