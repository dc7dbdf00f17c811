"""Resolve logging-configuration references into tool system properties."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

__all__ = [
    "JDK_LOGGING_PROPERTY",
    "LOG4J2_PROPERTY",
    "LOG4J_PROPERTY",
    "LoggingReference",
    "resolve_logging_reference",
    "to_url",
]

LOG4J_PROPERTY = "log4j.configuration"
LOG4J2_PROPERTY = "log4j2.configurationFile"
JDK_LOGGING_PROPERTY = "java.util.logging.config.file"

# Two or more characters, so a Windows drive letter is not a scheme.
_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]+:")


@dataclass(frozen=True)
class LoggingReference:
    """A single ``-D<property>=<url>`` logging setting for the tool."""

    property_name: str
    url: str


def to_url(value: str) -> str:
    """Turn a configured logging resource into a URL string.

    Existing paths become ``file://`` URIs, values that already carry a
    scheme are kept, anything else is prefixed with ``file:``.
    """
    raw = value.strip()
    if not raw:
        raise ValueError("logging configuration reference must be non-empty")
    try:
        path = Path(raw).expanduser()
    except RuntimeError as exc:
        msg = f"cannot expand logging configuration reference {raw!r}: {exc}"
        raise ValueError(msg) from exc
    if path.exists():
        return path.resolve().as_uri()
    if _SCHEME_PATTERN.match(raw):
        return raw
    return f"file:{raw}"


def resolve_logging_reference(
    *,
    log4j: str = "",
    log4j2: str = "",
    jdk: str = "",
) -> LoggingReference | None:
    """Pick the first configured logging scheme (log4j, log4j2, then JDK)."""
    for property_name, value in (
        (LOG4J_PROPERTY, log4j),
        (LOG4J2_PROPERTY, log4j2),
        (JDK_LOGGING_PROPERTY, jdk),
    ):
        if value and value.strip():
            return LoggingReference(property_name=property_name, url=to_url(value))
    return None
