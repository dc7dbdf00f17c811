"""Classpath assembly for DataNucleus tool runs.

Entries are ordered metadata directory first, then plugin artifacts, then
project classpath elements, so the tool's own dependencies are found before
anything the project carries. Duplicates are dropped by canonical path.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

from datanucleus_tools.lib.errors import ClasspathResolutionError

__all__ = ["build_classpath", "canonical_path", "join_classpath"]


def canonical_path(path: str | Path) -> str:
    """Return the canonical absolute form of *path*.

    Raises:
        ClasspathResolutionError: If the path cannot be resolved.
    """
    try:
        return str(Path(path).expanduser().resolve())
    except (OSError, RuntimeError) as exc:
        raise ClasspathResolutionError(str(path)) from exc


def build_classpath(
    metadata_directory: str | Path,
    artifacts: Iterable[str | Path],
    classpath_elements: Iterable[str | Path],
) -> list[str]:
    """Build an ordered, duplicate-free classpath.

    The first entry is always the absolute path of *metadata_directory*.
    Relative order within *artifacts* and within *classpath_elements* is kept.
    """
    first = str(Path(metadata_directory).expanduser().absolute())
    entries = [first]
    seen = {canonical_path(metadata_directory)}

    for raw in (*artifacts, *classpath_elements):
        entry = canonical_path(raw)
        if entry in seen:
            continue
        seen.add(entry)
        entries.append(entry)
    return entries


def join_classpath(entries: Iterable[str]) -> str:
    """Join classpath *entries* with the platform path separator."""
    return os.pathsep.join(entries)
