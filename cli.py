"""
Flag Untested CLI

Compares the coverage of a base and a head run and flags changed lines
that are not tested:

    flag-untested base/coverage-final.json head/coverage-final.json \\
        src/math.js src/parse.js \\
        --base-root /tmp/base-checkout --diff-dir /tmp/diffs

For every FILE, ``<diff-dir>/<FILE>.diff`` holds ``diff -C0`` output from
the base copy ``<base-root>/<FILE>`` to the working copy.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def _load_file_diffs(args, files: list[str]) -> tuple[list, list[str]]:
    """Read base copies and diffs for each file."""
    from reconciler.report import FileDiff

    file_diffs = []
    warnings = []
    for file_path in files:
        diff_path = Path(args.diff_dir) / f"{file_path}.diff"
        if not diff_path.exists():
            warnings.append(f"Diff not found: {diff_path}")
            logger.warning(f"Diff not found: {diff_path}")
            continue

        # No base copy means the file is new
        base_path = Path(args.base_root) / file_path
        base_content = ""
        if base_path.exists():
            base_content = base_path.read_text(encoding="utf-8", errors="replace")

        file_diffs.append(FileDiff(
            path=file_path,
            base_content=base_content,
            diff=diff_path.read_text(encoding="utf-8", errors="replace"),
        ))
    return file_diffs, warnings


def cmd_report(args):
    """Flag untested added, modified and regressed lines."""
    from reconciler.changed_files import (
        IgnorePatternCache,
        filter_changed_files,
        is_implementation_file,
    )
    from reconciler.coverage_report import CoverageParser
    from reconciler.file_changes import DiffParseError
    from reconciler.report import find_untested_lines, format_summary_table, print_annotations

    for coverage_json in (args.base_coverage, args.head_coverage):
        if not Path(coverage_json).exists():
            logger.error(f"Coverage file not found: {coverage_json}")
            return 1

    try:
        parser = CoverageParser()
        base_snapshot = parser.parse(args.base_coverage, repo_root=args.repo_root)
        head_snapshot = parser.parse(args.head_coverage, repo_root=args.repo_root)
    except (json.JSONDecodeError, ValueError) as e:
        logger.error(f"Failed to parse coverage file: {e}")
        return 1

    files = args.files
    if args.working_directory:
        files = filter_changed_files(files, args.working_directory, IgnorePatternCache())
    files = [f for f in files if is_implementation_file(f)]

    if not files:
        print("No implementation files changed")
        return 0

    file_diffs, warnings = _load_file_diffs(args, files)

    try:
        result = find_untested_lines(
            base_snapshot,
            head_snapshot,
            file_diffs,
            severity=args.annotation_level,
        )
    except DiffParseError as e:
        logger.error(f"Failed to parse diff: {e}")
        return 1
    except ValueError as e:
        logger.error(str(e))
        return 1
    warnings.extend(result.warnings)

    summary = format_summary_table(result.deltas, files)

    if args.format == "json":
        data = result.to_dict()
        data["warnings"] = sorted(warnings)
        print(json.dumps(data, indent=2))
    else:
        print_annotations(result.annotations, source_root=args.repo_root)
        print()
        print(summary)

        if warnings and args.verbose:
            print(f"\nWarnings ({len(warnings)}):")
            for w in warnings:
                print(f"  - {w}")

    if args.summary:
        Path(args.summary).write_text(summary + "\n", encoding="utf-8")
        if args.format != "json":
            print(f"\nWrote coverage summary to {args.summary}")

    if args.annotation_level == "failure" and result.annotations:
        return 2
    return 0


def main():
    parser = argparse.ArgumentParser(
        prog="flag-untested",
        description="Flag changed lines that are not covered by tests"
    )
    parser.add_argument("base_coverage", help="coverage-final.json from the base revision")
    parser.add_argument("head_coverage", help="coverage-final.json from the head revision")
    parser.add_argument("files", nargs="+", help="Changed files, relative to the repo root")
    parser.add_argument("--base-root", required=True, help="Directory holding base-revision copies of FILES")
    parser.add_argument("--diff-dir", required=True, help="Directory holding <FILE>.diff (diff -C0 output)")
    parser.add_argument("--repo-root", help="Make coverage paths relative to this directory")
    parser.add_argument("--working-directory", help="Skip files outside it or marked binary/generated in .gitattributes")
    parser.add_argument("--annotation-level", choices=["warning", "failure"], default="warning")
    parser.add_argument("--format", choices=["text", "json"], default="text")
    parser.add_argument("--summary", help="Write the coverage delta table (markdown) to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show warnings")
    parser.set_defaults(func=cmd_report)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
