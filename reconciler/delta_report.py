"""Per-file statement coverage deltas between a base and a head run."""

import logging
from dataclasses import dataclass

from .coverage_report import CoverageSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileDelta:
    """How coverage of one file moved from base to head."""

    percent_delta: float  # percentage points, head - base
    covered_delta: int
    uncovered_delta: int

    def to_dict(self) -> dict:
        return {
            "percent_delta": round(self.percent_delta, 2),
            "covered_delta": self.covered_delta,
            "uncovered_delta": self.uncovered_delta,
        }


class CoverageDeltaCalculator:
    """Compare two snapshots file by file."""

    def compare(
        self,
        base: CoverageSnapshot,
        head: CoverageSnapshot,
    ) -> dict[str, FileDelta]:
        """
        Compute deltas for files present in both snapshots.

        Files only in one snapshot (new or deleted files) are left out.
        Files with no statements count as 100% covered.
        """
        deltas: dict[str, FileDelta] = {}

        for path, base_cov in base.files.items():
            head_cov = head.files.get(path)
            if head_cov is None:
                continue

            deltas[path] = FileDelta(
                percent_delta=head_cov.coverage_percent - base_cov.coverage_percent,
                covered_delta=head_cov.covered_count - base_cov.covered_count,
                uncovered_delta=head_cov.uncovered_count - base_cov.uncovered_count,
            )

        logger.debug(f"Computed coverage deltas for {len(deltas)} files")
        return deltas


def compare_reports(base: CoverageSnapshot, head: CoverageSnapshot) -> dict[str, FileDelta]:
    return CoverageDeltaCalculator().compare(base, head)
