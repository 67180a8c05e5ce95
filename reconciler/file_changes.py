"""
File Changes - Maps a context diff onto head/base line numbers.

coverage.py and Istanbul report line numbers for the revision they ran
against. To compare the base run with the head run we need to know, for
every line of the head file, whether it is new, rewritten, or the same
line as some base line that just moved.

This module reads the output of ``diff -C0 base head`` and produces:
1. The head lines that were added
2. The head lines that were modified
3. A (base_line, head_line) pair for every line that did not change

Usage:
    from reconciler.file_changes import compute_file_changes

    changes = compute_file_changes(base_text, diff_text)
    for base_line, head_line in changes.unchanged_line_mappings:
        ...

Example:
    >>> changes = compute_file_changes("a\\nb\\n", diff_adding_line_3)
    >>> sorted(changes.added), changes.unchanged_line_mappings
    ([3], ((1, 1), (2, 2)))
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

SECTION_DELIMITER = "***************"


class DiffParseError(ValueError):
    """A context diff could not be mapped onto line numbers."""


@dataclass(frozen=True)
class LineRange:
    """An inclusive range of lines from a diff section header."""

    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start + 1

    def lines(self) -> range:
        return range(self.start, self.end + 1)


@dataclass(frozen=True)
class FileChanges:
    """Line-level changes between the base and head revision of one file."""

    added: frozenset[int]  # head lines
    modified: frozenset[int]  # head lines
    unchanged_line_mappings: tuple[tuple[int, int], ...]  # (base_line, head_line)

    def to_dict(self) -> dict:
        return {
            "added": sorted(self.added),
            "modified": sorted(self.modified),
            "unchanged_line_mappings": [list(pair) for pair in self.unchanged_line_mappings],
        }


@dataclass
class DiffSection:
    """One hunk of a context diff."""

    before: LineRange
    after: LineRange
    before_lines: list[str]
    after_lines: list[str]

    @property
    def kind(self) -> str:
        if not self.before_lines:
            return "add"
        if not self.after_lines:
            return "delete"
        return "modify"


class ContextDiffParser:
    """Parse ``diff -C0`` output into FileChanges."""

    _BEFORE_RE = re.compile(r"^\*\*\* (\d+)(,(\d+))? \*\*\*\*$")
    _AFTER_RE = re.compile(r"^--- (\d+)(,(\d+))? ----$")

    def parse(self, base: str, diff: str) -> FileChanges:
        """
        Compute added, modified and unchanged lines.

        Args:
            base: Contents of the file at the base revision
            diff: Context diff (zero context lines) from base to head

        Returns:
            FileChanges keyed by head line numbers

        Raises:
            DiffParseError: If a section header is malformed or out of sequence
        """
        added: list[int] = []
        modified: list[int] = []
        mappings: list[tuple[int, int]] = []

        base_line = 1
        head_line = 1

        for section in self.split_sections(diff):
            # For an empty range diff prints the line *before* the range, so
            # the line named by an addition's before header is itself unchanged.
            gap_end = section.before.start
            if section.kind == "add":
                gap_end += 1

            while base_line < gap_end:
                mappings.append((base_line, head_line))
                base_line += 1
                head_line += 1

            if section.kind != "delete" and section.after.start != head_line:
                raise DiffParseError(
                    f"section '--- {section.after.start} ----' does not line up "
                    f"with head line {head_line}"
                )

            if section.kind == "add":
                head_line += len(section.after)
                added.extend(section.after.lines())
            elif section.kind == "delete":
                base_line += len(section.before)
            else:
                base_line += len(section.before)
                head_line += len(section.after)
                modified.extend(section.after.lines())

        # Untouched tail of the file. Only "\n" ends a line for diff.
        base_line_count = base.count("\n") + (1 if base and not base.endswith("\n") else 0)
        while base_line <= base_line_count:
            mappings.append((base_line, head_line))
            base_line += 1
            head_line += 1

        logger.debug(
            f"{len(added)} added, {len(modified)} modified, "
            f"{len(mappings)} unchanged lines"
        )

        return FileChanges(
            added=frozenset(added),
            modified=frozenset(modified),
            unchanged_line_mappings=tuple(mappings),
        )

    def split_sections(self, diff: str) -> list[DiffSection]:
        """
        Split a diff into sections, skipping the leading filename section.

        Raises:
            DiffParseError: If the text is not a context diff (e.g. unified
                ``@@`` output or an error message captured instead of a diff)
        """
        chunks: list[list[str]] = [[]]
        for line in diff.split("\n"):
            if line == SECTION_DELIMITER:
                chunks.append([])
            else:
                chunks[-1].append(line)

        for line in chunks[0]:
            if line and not line.startswith(("*** ", "--- ")):
                raise DiffParseError(f"not a context diff: unexpected line {line!r}")

        if len(chunks) == 1 and diff.strip():
            raise DiffParseError("not a context diff: no '***************' sections")

        return [self._parse_section(chunk) for chunk in chunks[1:]]

    def _parse_section(self, lines: list[str]) -> DiffSection:
        """Parse the headers and bodies of a single section."""
        # Drop blank padding and "\ No newline at end of file" markers.
        # A blank *content* line still carries its "! " / "+ " prefix.
        lines = [line for line in lines if line and not line.startswith("\\")]
        if not lines:
            raise DiffParseError("empty diff section")

        before = self._parse_range(lines[0], self._BEFORE_RE)

        after_index: Optional[int] = None
        for i, line in enumerate(lines[1:], 1):
            if self._AFTER_RE.match(line):
                after_index = i
                break
        if after_index is None:
            raise DiffParseError(f"no '--- ----' header after '{lines[0]}'")

        after = self._parse_range(lines[after_index], self._AFTER_RE)

        return DiffSection(
            before=before,
            after=after,
            before_lines=lines[1:after_index],
            after_lines=lines[after_index + 1:],
        )

    def _parse_range(self, header: str, pattern: re.Pattern) -> LineRange:
        match = pattern.match(header)
        if not match:
            raise DiffParseError(f"invalid section header: {header!r}")

        start = int(match.group(1))
        end = int(match.group(3)) if match.group(3) else start
        if end < start:
            raise DiffParseError(f"range ends before it starts: {header!r}")
        return LineRange(start, end)


def compute_file_changes(base: str, diff: str) -> FileChanges:
    """Shortcut for ``ContextDiffParser().parse(base, diff)``."""
    return ContextDiffParser().parse(base, diff)
