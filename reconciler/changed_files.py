"""
Changed Files - Decide which changed files are worth reporting on.

Generated and binary files are marked in ``.gitattributes``:

    dist/*.js linguist-generated=true
    *.png binary

Any ``.gitattributes`` between the file and the working directory can
mark it. Patterns are loaded once per directory into an IgnorePatternCache
that lives for one analysis run.
"""

import fnmatch
import logging
import re
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

GITATTRIBUTES_NAME = ".gitattributes"
IGNORING_ATTRIBUTES = {"binary", "linguist-generated=true"}

_NON_IMPL_RE = re.compile(r"(_test|\.test|\.spec|\.fixture|\.stories)\.(jsx?|tsx?|mjs)$")
_SOURCE_EXTENSIONS = {".js", ".jsx", ".mjs", ".ts", ".tsx"}


def parse_ignored_patterns(contents: str) -> list[str]:
    """
    Extract the patterns marked binary or generated from .gitattributes text.

    Raises:
        ValueError: For quoted patterns, which are not supported
    """
    patterns = []
    for line in contents.splitlines():
        if line.startswith("#") or not line.strip():
            continue
        if line.startswith('"'):
            raise ValueError(f"Quoted .gitattributes patterns are not supported: {line}")

        pattern, *attributes = line.split()
        if IGNORING_ATTRIBUTES.intersection(attributes):
            patterns.append(pattern)
    return patterns


def matches_pattern(rel_path: str, pattern: str) -> bool:
    """
    Match a path relative to a .gitattributes directory against a pattern.

    A pattern without ``/`` matches the file name at any depth. Otherwise it
    is anchored and matched segment by segment, so ``*`` never crosses ``/``
    and ``**`` stands for zero or more whole directories.
    """
    parts = rel_path.split("/")
    if "/" not in pattern:
        return fnmatch.fnmatchcase(parts[-1], pattern)
    return _match_segments(parts, pattern.lstrip("/").split("/"))


def _match_segments(parts: list[str], segments: list[str]) -> bool:
    if not segments:
        return not parts
    if segments[0] == "**":
        return any(_match_segments(parts[i:], segments[1:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatch.fnmatchcase(parts[0], segments[0]) and _match_segments(parts[1:], segments[1:])


class IgnorePatternCache:
    """Per-directory .gitattributes patterns, read at most once per run."""

    def __init__(self):
        self._patterns: dict[Path, list[str]] = {}

    def patterns_for(self, directory: Path) -> list[str]:
        if directory not in self._patterns:
            attributes = directory / GITATTRIBUTES_NAME
            if attributes.is_file():
                self._patterns[directory] = parse_ignored_patterns(
                    attributes.read_text(encoding="utf-8")
                )
                logger.debug(f"Loaded {len(self._patterns[directory])} patterns from {attributes}")
            else:
                self._patterns[directory] = []
        return self._patterns[directory]


def is_file_ignored(
    working_directory: str,
    file_path: str,
    cache: IgnorePatternCache,
) -> bool:
    """
    Check whether a file should be left out of the report.

    Files outside the working directory are always ignored.
    """
    root = Path(working_directory).resolve()
    path = Path(file_path).resolve()

    if path == root or not path.is_relative_to(root):
        return True

    directory = path.parent
    name = path.name
    while True:
        for pattern in cache.patterns_for(directory):
            if matches_pattern(name, pattern):
                return True
        if directory == root:
            return False
        name = f"{directory.name}/{name}"
        directory = directory.parent


def filter_changed_files(
    files: list[str],
    working_directory: str,
    cache: Optional[IgnorePatternCache] = None,
) -> list[str]:
    """Drop ignored files, keeping order."""
    if cache is None:
        cache = IgnorePatternCache()

    kept = []
    for file_path in files:
        if is_file_ignored(working_directory, file_path, cache):
            logger.debug(f"Ignoring {file_path}")
        else:
            kept.append(file_path)
    return kept


def is_implementation_file(path: str) -> bool:
    """True for JS/TS sources that are not tests, fixtures or stories."""
    if Path(path).suffix not in _SOURCE_EXTENSIONS:
        return False
    return not _NON_IMPL_RE.search(path)
