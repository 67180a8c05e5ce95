"""
Report - Runs a full analysis and renders its results.

Usage:
    from reconciler import CoverageParser, FileDiff, find_untested_lines

    parser = CoverageParser()
    result = find_untested_lines(
        base_snapshot=parser.parse("base/coverage-final.json"),
        head_snapshot=parser.parse("head/coverage-final.json"),
        files=[FileDiff("src/math.js", base_text, diff_text)],
    )
    print_annotations(result.annotations)
    print(format_summary_table(result.deltas))
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .annotations import REASONS, Annotation, AnnotationReconciler, FileInput
from .coverage_report import CoverageExtractor, CoverageSnapshot
from .delta_report import CoverageDeltaCalculator, FileDelta
from .file_changes import ContextDiffParser, DiffParseError, FileChanges

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Flag Untested Code"


@dataclass(frozen=True)
class FileDiff:
    """A changed file: its base-revision text and its diff to head."""

    path: str
    base_content: str
    diff: str


@dataclass
class AnalysisResult:
    annotations: list[Annotation] = field(default_factory=list)
    deltas: dict[str, FileDelta] = field(default_factory=dict)
    file_changes: dict[str, FileChanges] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    @property
    def by_reason(self) -> dict[str, int]:
        counts = {reason: 0 for reason in REASONS}
        for annotation in self.annotations:
            counts[annotation.reason] += 1
        return counts

    def to_dict(self) -> dict:
        return {
            "files_analyzed": len(self.file_changes),
            "total_annotations": len(self.annotations),
            "annotations": [a.to_dict() for a in self.annotations],
            "by_reason": self.by_reason,
            "deltas": {path: d.to_dict() for path, d in self.deltas.items()},
        }


def find_untested_lines(
    base_snapshot: CoverageSnapshot,
    head_snapshot: CoverageSnapshot,
    files: list[FileDiff],
    severity: str = "warning",
) -> AnalysisResult:
    """
    Main entry point: flag untested added, modified and regressed lines.

    Args:
        base_snapshot: Coverage of the base revision
        head_snapshot: Coverage of the head revision
        files: Changed implementation files, in report order
        severity: Annotation level applied to every annotation

    Returns:
        AnalysisResult with annotations, deltas and warnings

    Raises:
        DiffParseError: If any file's diff cannot be parsed
        ValueError: If the same path is listed more than once
    """
    reconciler = AnnotationReconciler(severity)
    diff_parser = ContextDiffParser()
    extractor = CoverageExtractor()

    file_changes: dict[str, FileChanges] = {}
    for file_diff in files:
        if file_diff.path in file_changes:
            raise ValueError(f"duplicate file path: {file_diff.path}")
        try:
            file_changes[file_diff.path] = diff_parser.parse(file_diff.base_content, file_diff.diff)
        except DiffParseError as e:
            raise DiffParseError(f"{file_diff.path}: {e}") from e

    annotations, warnings = reconciler.reconcile_files(
        [FileInput(path, changes) for path, changes in file_changes.items()],
        head_uncovered=extractor.extract(head_snapshot),
        base_uncovered=extractor.extract(base_snapshot),
    )

    return AnalysisResult(
        annotations=annotations,
        deltas=CoverageDeltaCalculator().compare(base_snapshot, head_snapshot),
        file_changes=file_changes,
        warnings=warnings,
    )


def format_summary_table(
    deltas: dict[str, FileDelta],
    files: Optional[list[str]] = None,
) -> str:
    """Markdown table of coverage deltas, limited to ``files`` if given."""
    lines = [
        "## Coverage deltas",
        "|file|% change|lines covered|lines uncovered|",
        "|-|-|-|-|",
    ]
    for path, delta in deltas.items():
        if files is not None and path not in files:
            continue
        lines.append(
            f"|{path}|{delta.percent_delta:.2f}|{delta.covered_delta}|{delta.uncovered_delta}|"
        )
    return "\n".join(lines)


def print_annotations(
    annotations: list[Annotation],
    source_root: Optional[str] = None,
    title: str = DEFAULT_TITLE,
) -> None:
    """Pretty-print annotations with surrounding head-file lines."""
    print(f"\n[[ {title} ]]\n")

    sources: dict[str, list[str]] = {}
    by_file: dict[str, int] = {}

    for annotation in annotations:
        by_file[annotation.path] = by_file.get(annotation.path, 0) + 1

        if annotation.path not in sources:
            sources[annotation.path] = _read_lines(annotation.path, source_root)
        lines = sources[annotation.path]

        print(f"{annotation.severity}: {annotation.path}:{annotation.start_line}")
        print(annotation.message)

        # Two lines before the range, one after
        first = max(annotation.start_line - 3, 0)
        print()
        for number, text in enumerate(lines[first:annotation.end_line + 1], first + 1):
            marker = ">" if annotation.start_line <= number <= annotation.end_line else " "
            print(f"{number}:{marker} {text}")
        print()

    if len(by_file) > 1:
        print("Issues by file\n")
        for path, count in by_file.items():
            print(f"{count} in {path}")

    print(f"{len(annotations)} total issues for {title}")


def _read_lines(path: str, source_root: Optional[str]) -> list[str]:
    actual_path = Path(source_root) / path if source_root else Path(path)
    try:
        return actual_path.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        logger.warning(f"Cannot show context for {actual_path}: {e}")
        return []
