"""
Coverage Report - Statement coverage snapshots and uncovered lines.

Reads Istanbul ``coverage-final.json`` output (what ``jest --coverage``
writes) into a CoverageSnapshot and reduces it to the set of uncovered
source lines per file.

Only statement coverage is read. ``fnMap``/``f`` and ``branchMap``/``b``
are ignored.

Usage:
    from reconciler.coverage_report import CoverageParser, CoverageExtractor

    snapshot = CoverageParser().parse("coverage/coverage-final.json")
    uncovered = CoverageExtractor().extract(snapshot)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)

# jest running inside a macOS temp dir reports /private/var/... paths
_PRIVATE_VAR_PREFIX = "/private/var/"


@dataclass(frozen=True)
class SourcePosition:
    line: int
    column: int = 0


@dataclass(frozen=True)
class SourceRange:
    """Where a statement starts and ends in the source file."""

    start: SourcePosition
    end: SourcePosition


@dataclass
class FileCoverage:
    """Statement coverage for a single file."""

    path: str
    statements: dict[str, SourceRange] = field(default_factory=dict)
    execution_counts: dict[str, int] = field(default_factory=dict)

    def count(self, statement_id: str) -> int:
        # A statement that never got a counter was never executed
        return self.execution_counts.get(statement_id, 0)

    @property
    def statement_count(self) -> int:
        return len(self.statements)

    @property
    def covered_count(self) -> int:
        return sum(1 for sid in self.statements if self.count(sid) > 0)

    @property
    def uncovered_count(self) -> int:
        return self.statement_count - self.covered_count

    @property
    def coverage_percent(self) -> float:
        """Percent of statements executed. A file with no statements is 100%."""
        total = self.statement_count
        if total == 0:
            return 100.0
        return self.covered_count / total * 100


@dataclass
class CoverageSnapshot:
    """One coverage run, keyed by file path."""

    files: dict[str, FileCoverage] = field(default_factory=dict)

    def __contains__(self, path: str) -> bool:
        return path in self.files

    @property
    def total_statements(self) -> int:
        return sum(f.statement_count for f in self.files.values())

    @property
    def total_covered(self) -> int:
        return sum(f.covered_count for f in self.files.values())

    @property
    def coverage_percent(self) -> float:
        total = self.total_statements
        if total == 0:
            return 100.0
        return self.total_covered / total * 100


def normalize_path(path: str, repo_root: Optional[str] = None) -> str:
    """Undo the macOS /private/var prefix and make path relative to repo_root."""
    if path.startswith(_PRIVATE_VAR_PREFIX):
        path = "/var/" + path[len(_PRIVATE_VAR_PREFIX):]
    if repo_root:
        path = os.path.relpath(path, repo_root)
    return path


class CoverageParser:
    """Parse Istanbul coverage-final.json output."""

    def parse(self, json_path: str, repo_root: Optional[str] = None) -> CoverageSnapshot:
        """
        Parse a coverage-final.json file.

        Args:
            json_path: Path to coverage-final.json
            repo_root: If given, file paths are made relative to it

        Returns:
            CoverageSnapshot with per-file statement data

        Raises:
            FileNotFoundError: If json_path doesn't exist
            json.JSONDecodeError: If file is not valid JSON
            ValueError: If the data is not an Istanbul report
        """
        with open(json_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return self.parse_data(data, repo_root=repo_root)

    def parse_data(
        self,
        data: dict[str, Any],
        repo_root: Optional[str] = None,
    ) -> CoverageSnapshot:
        """Build a snapshot from an already-decoded report."""
        if not isinstance(data, dict):
            raise ValueError("coverage report must be an object keyed by file path")

        files: dict[str, FileCoverage] = {}
        for key, file_data in data.items():
            if not isinstance(file_data, dict) or "statementMap" not in file_data:
                raise ValueError(f"no statementMap for {key!r} (not an Istanbul report?)")

            path = normalize_path(key, repo_root)
            statement_map = file_data["statementMap"]
            counts = file_data.get("s", {})
            if not isinstance(statement_map, dict) or not isinstance(counts, dict):
                raise ValueError(f"statementMap and s must be objects for {path}")

            files[path] = FileCoverage(
                path=path,
                statements={
                    str(sid): self._parse_range(path, sid, loc)
                    for sid, loc in statement_map.items()
                },
                execution_counts=self._parse_counts(path, counts),
            )

        logger.debug(f"Parsed coverage for {len(files)} files")
        return CoverageSnapshot(files=files)

    def _parse_range(self, path: str, sid: str, loc: Any) -> SourceRange:
        try:
            start = loc["start"]
            end = loc.get("end") or start
            return SourceRange(
                start=SourcePosition(int(start["line"]), int(start.get("column") or 0)),
                end=SourcePosition(int(end["line"]), int(end.get("column") or 0)),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ValueError(f"invalid location for statement {sid} in {path}: {e}") from e

    def _parse_counts(self, path: str, counts: dict[str, Any]) -> dict[str, int]:
        parsed = {}
        for sid, count in counts.items():
            if isinstance(count, bool) or not isinstance(count, int):
                raise ValueError(f"invalid execution count for statement {sid} in {path}: {count!r}")
            if count < 0:
                raise ValueError(f"negative execution count for statement {sid} in {path}")
            parsed[str(sid)] = count
        return parsed


class CoverageExtractor:
    """Reduce a snapshot to uncovered line numbers per file."""

    def extract(self, snapshot: CoverageSnapshot) -> dict[str, set[int]]:
        """
        Find the start line of every statement that never ran.

        Every file in the snapshot gets an entry, even when fully covered,
        so a missing key always means the file was not instrumented.

        Multi-line statements only mark their first line.
        """
        uncovered: dict[str, set[int]] = {}
        for path, file_cov in snapshot.files.items():
            uncovered[path] = {
                loc.start.line
                for sid, loc in file_cov.statements.items()
                if file_cov.count(sid) == 0
            }
        return uncovered


def get_uncovered_lines(snapshot: CoverageSnapshot) -> dict[str, set[int]]:
    return CoverageExtractor().extract(snapshot)
