"""
Annotations - Joins diff changes with two coverage runs.

For each changed file we look at the head run's uncovered lines and ask
why each one matters:

- added_untested: the line is new and no test runs it
- modified_untested: the line was rewritten and no test runs it
- regressed_untested: the line did not change, a test used to run it,
  and now none does

Consecutive lines with the same reason are merged into one annotation.
"""

import logging
from dataclasses import dataclass, replace
from functools import reduce
from typing import Optional

from .file_changes import FileChanges

logger = logging.getLogger(__name__)

ADDED_UNTESTED = "added_untested"
MODIFIED_UNTESTED = "modified_untested"
REGRESSED_UNTESTED = "regressed_untested"

REASONS = (ADDED_UNTESTED, MODIFIED_UNTESTED, REGRESSED_UNTESTED)
SEVERITIES = ("warning", "failure")

# (one line, several lines)
MESSAGES = {
    ADDED_UNTESTED: (
        "This line was added but is untested.",
        "These lines were added but are untested.",
    ),
    MODIFIED_UNTESTED: (
        "This line was modified but is untested.",
        "These lines were modified but are untested.",
    ),
    REGRESSED_UNTESTED: (
        "This unchanged line is no longer being tested.",
        "These unchanged lines are no longer being tested.",
    ),
}


@dataclass(frozen=True)
class Annotation:
    """A range of head-revision lines flagged for review."""

    path: str
    start_line: int
    end_line: int  # inclusive
    severity: str
    reason: str

    @property
    def message(self) -> str:
        single, plural = MESSAGES[self.reason]
        return plural if self.end_line > self.start_line else single

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "start_line": self.start_line,
            "end_line": self.end_line,
            "severity": self.severity,
            "reason": self.reason,
            "message": self.message,
        }


@dataclass(frozen=True)
class FileInput:
    """Everything the reconciler needs to know about one changed file."""

    path: str
    changes: FileChanges


class AnnotationReconciler:
    """Classify uncovered head lines and merge them into annotations."""

    def __init__(self, severity: str = "warning"):
        if severity not in SEVERITIES:
            raise ValueError(f"severity must be one of {SEVERITIES}, got {severity!r}")
        self.severity = severity

    def classify(
        self,
        changes: FileChanges,
        head_uncovered: set[int],
        base_uncovered: Optional[set[int]],
    ) -> dict[int, str]:
        """
        Map head line -> reason for every line worth flagging.

        With ``base_uncovered=None`` (file not in the base run) no line can
        have regressed, since none was known to be tested.
        """
        hits: dict[int, str] = {}

        for line in changes.added & head_uncovered:
            hits[line] = ADDED_UNTESTED

        for line in changes.modified & head_uncovered:
            hits.setdefault(line, MODIFIED_UNTESTED)

        if base_uncovered is not None:
            for base_line, head_line in changes.unchanged_line_mappings:
                if base_line not in base_uncovered and head_line in head_uncovered:
                    hits.setdefault(head_line, REGRESSED_UNTESTED)

        return hits

    def reconcile(
        self,
        path: str,
        changes: FileChanges,
        head_uncovered: set[int],
        base_uncovered: Optional[set[int]],
    ) -> list[Annotation]:
        """Annotations for one file, in ascending line order."""
        hits = self.classify(changes, head_uncovered, base_uncovered)

        def fold(merged: tuple[Annotation, ...], hit: tuple[int, str]) -> tuple[Annotation, ...]:
            line, reason = hit
            if merged:
                last = merged[-1]
                if last.reason == reason and last.end_line + 1 == line:
                    return merged[:-1] + (replace(last, end_line=line),)
            return merged + (Annotation(path, line, line, self.severity, reason),)

        return list(reduce(fold, sorted(hits.items()), ()))

    def reconcile_files(
        self,
        files: list[FileInput],
        head_uncovered: dict[str, set[int]],
        base_uncovered: dict[str, set[int]],
    ) -> tuple[list[Annotation], list[str]]:
        """
        Reconcile several files, keeping the caller's file order.

        Returns:
            Tuple of (annotations, warnings). Files the head run never
            instrumented are skipped with a warning.
        """
        annotations: list[Annotation] = []
        warnings: list[str] = []

        for file_input in files:
            path = file_input.path
            if path not in head_uncovered:
                warnings.append(f"No head coverage for {path}, skipping")
                logger.warning(f"No head coverage for {path}, skipping")
                continue

            base_lines = base_uncovered.get(path)
            if base_lines is None:
                logger.debug(f"{path} not in base coverage, treating it as new")

            annotations.extend(
                self.reconcile(path, file_input.changes, head_uncovered[path], base_lines)
            )

        return annotations, warnings
