"""
Flag Untested Code - Reconciler

Finds the lines a change left untested: added or modified lines no test
runs, and unchanged lines that were tested before the change but not after.

Core components:
- ContextDiffParser: Maps a `diff -C0` onto added/modified/unchanged lines
- CoverageParser: Reads Istanbul coverage-final.json output
- CoverageExtractor: Uncovered statement lines per file
- CoverageDeltaCalculator: Per-file coverage change between two runs
- AnnotationReconciler: Joins all of the above into line-range annotations

Usage:
    from reconciler import find_untested_lines

    result = find_untested_lines(base_snapshot, head_snapshot, files)
    for a in result.annotations:
        print(f"{a.path}:{a.start_line}-{a.end_line} {a.message}")
"""

from .annotations import (
    ADDED_UNTESTED,
    MODIFIED_UNTESTED,
    REGRESSED_UNTESTED,
    Annotation,
    AnnotationReconciler,
    FileInput,
)
from .changed_files import (
    IgnorePatternCache,
    filter_changed_files,
    is_file_ignored,
    is_implementation_file,
    matches_pattern,
)
from .coverage_report import (
    CoverageExtractor,
    CoverageParser,
    CoverageSnapshot,
    FileCoverage,
    SourcePosition,
    SourceRange,
    get_uncovered_lines,
)
from .delta_report import CoverageDeltaCalculator, FileDelta, compare_reports
from .file_changes import ContextDiffParser, DiffParseError, FileChanges, compute_file_changes
from .report import (
    AnalysisResult,
    FileDiff,
    find_untested_lines,
    format_summary_table,
    print_annotations,
)

__all__ = [
    # Main entry point
    "find_untested_lines",
    "print_annotations",
    "format_summary_table",
    "AnalysisResult",
    "FileDiff",
    # Diff parsing
    "ContextDiffParser",
    "DiffParseError",
    "FileChanges",
    "compute_file_changes",
    # Coverage
    "CoverageParser",
    "CoverageExtractor",
    "CoverageSnapshot",
    "FileCoverage",
    "SourcePosition",
    "SourceRange",
    "get_uncovered_lines",
    "CoverageDeltaCalculator",
    "FileDelta",
    "compare_reports",
    # Annotations
    "Annotation",
    "AnnotationReconciler",
    "FileInput",
    "ADDED_UNTESTED",
    "MODIFIED_UNTESTED",
    "REGRESSED_UNTESTED",
    # Changed files
    "IgnorePatternCache",
    "filter_changed_files",
    "is_file_ignored",
    "is_implementation_file",
    "matches_pattern",
]
