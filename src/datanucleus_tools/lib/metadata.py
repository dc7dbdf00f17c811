"""Metadata file discovery under a metadata directory."""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path

__all__ = ["DEFAULT_INCLUDES", "find_metadata_files", "split_patterns"]

DEFAULT_INCLUDES = "**/*.jdo, **/*.class"


def split_patterns(raw: str | None) -> list[str]:
    """Split a comma-separated pattern list, dropping blanks."""
    if not raw:
        return []
    return [part.strip().replace("\\", "/") for part in raw.split(",") if part.strip()]


def _matches(relative: str, pattern: str) -> bool:
    if fnmatchcase(relative, pattern):
        return True
    # "**/" also matches files at the top level.
    while pattern.startswith("**/"):
        pattern = pattern[3:]
        if fnmatchcase(relative, pattern):
            return True
    return False


def find_metadata_files(
    directory: Path,
    includes: str | None = DEFAULT_INCLUDES,
    excludes: str | None = None,
) -> list[Path]:
    """Return absolute paths of files under *directory* matching the patterns.

    Patterns are matched against the POSIX-style path relative to
    *directory*. Results are sorted for a stable command line.

    Raises:
        FileNotFoundError: If *directory* is not a directory.
    """
    if not directory.is_dir():
        msg = f"Not a directory: {directory}"
        raise FileNotFoundError(msg)

    include_patterns = split_patterns(includes) or split_patterns(DEFAULT_INCLUDES)
    exclude_patterns = split_patterns(excludes)
    root = directory.absolute()

    found: list[Path] = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        relative = path.relative_to(root).as_posix()
        if not any(_matches(relative, pattern) for pattern in include_patterns):
            continue
        if any(_matches(relative, pattern) for pattern in exclude_patterns):
            continue
        found.append(path)
    return found
