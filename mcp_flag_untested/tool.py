"""
MCP Tool Handler for flag_untested.annotations

Wraps the reconciler engine to provide an MCP-compatible interface.
Accepts each coverage-final.json as inline JSON or artifact reference.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

# Import from the engine (sibling package)
from reconciler.annotations import REASONS, REGRESSED_UNTESTED, SEVERITIES, Annotation
from reconciler.coverage_report import CoverageParser, CoverageSnapshot
from reconciler.file_changes import DiffParseError
from reconciler.report import FileDiff, find_untested_lines, format_summary_table

FAIL_ON_CHOICES = ("none", "any", "regressed")


def handle(
    request: dict[str, Any],
    *,
    artifact_resolver: Optional[Callable[[str], bytes]] = None,
) -> dict[str, Any]:
    """
    MCP tool handler for flag_untested.annotations.

    Args:
        request: Request dict matching the request schema.
        artifact_resolver: Optional callable to resolve artifact_id -> bytes.
            If not provided, falls back to locator-as-path.

    Returns:
        Response dict matching the response schema.
    """
    try:
        # 1. Load both coverage snapshots
        base_snapshot = _load_snapshot(
            request["base_coverage"],
            artifact_resolver=artifact_resolver,
        )
        head_snapshot = _load_snapshot(
            request["head_coverage"],
            artifact_resolver=artifact_resolver,
        )
    except KeyError as e:
        return _error_response(f"Missing required field: {e}")
    except FileNotFoundError as e:
        return _error_response(f"Coverage file not found: {e}")
    except json.JSONDecodeError as e:
        return _error_response(f"Invalid JSON in coverage data: {e}")
    except ValueError as e:
        return _error_response(str(e))

    # 2. Validate options
    severity = request.get("annotation_level", "warning")
    if severity not in SEVERITIES:
        return _error_response(f"annotation_level must be one of {SEVERITIES}")
    fail_on = request.get("fail_on", "none")
    if fail_on not in FAIL_ON_CHOICES:
        return _error_response(f"fail_on must be one of {FAIL_ON_CHOICES}")
    limit = request.get("limit")
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int)):
        return _error_response(f"limit must be an integer, got {limit!r}")

    try:
        files = _load_files(request.get("files", []))
    except ValueError as e:
        return _error_response(str(e))

    # 3. Reconcile
    try:
        analysis = find_untested_lines(base_snapshot, head_snapshot, files, severity)
    except DiffParseError as e:
        return _error_response(f"Invalid diff: {e}")
    except ValueError as e:
        return _error_response(str(e))

    # 4. Compute exit code BEFORE limit so gating sees every annotation
    exit_code = _compute_exit_code(analysis.annotations, fail_on)

    # 5. Build result, limiting only the listed annotations
    result = analysis.to_dict()
    if limit and limit > 0:
        result["annotations"] = result["annotations"][:limit]

    response: dict[str, Any] = {
        "exit_code": exit_code,
        "result": result,
        "warnings": sorted(analysis.warnings),
    }

    # 6. Add text output if requested
    if request.get("format") == "text":
        paths = [f.path for f in files]
        response["text"] = _format_text_output(result, analysis.deltas, paths)

    return response


def _load_snapshot(
    coverage: Any,
    *,
    artifact_resolver: Optional[Callable[[str], bytes]] = None,
) -> CoverageSnapshot:
    """
    Load a snapshot from inline data or an artifact reference.

    Args:
        coverage: Either a parsed coverage-final.json dict or an artifact reference.
        artifact_resolver: Optional callable to resolve artifact_id -> bytes.

    Raises:
        ValueError: If coverage format is invalid.
        FileNotFoundError: If locator path doesn't exist.
        json.JSONDecodeError: If content is not valid JSON.
    """
    if not isinstance(coverage, dict):
        raise ValueError("coverage must be an object")

    parser = CoverageParser()

    if "artifact_id" in coverage:
        if artifact_resolver is not None:
            raw = artifact_resolver(coverage["artifact_id"])
            return parser.parse_data(json.loads(raw.decode("utf-8")))

        locator = coverage.get("locator")
        if not locator:
            raise ValueError(
                "artifact reference requires either artifact_resolver or locator"
            )
        return parser.parse(locator)

    return parser.parse_data(coverage)


def _load_files(entries: Any) -> list[FileDiff]:
    """Turn request file entries into FileDiffs."""
    if not isinstance(entries, list):
        raise ValueError("files must be a list")

    files = []
    for entry in entries:
        if not isinstance(entry, dict) or "path" not in entry or "diff" not in entry:
            raise ValueError("each file needs 'path' and 'diff'")
        files.append(FileDiff(
            path=entry["path"],
            base_content=entry.get("base_content", ""),
            diff=entry["diff"],
        ))
    return files


def _compute_exit_code(annotations: list[Annotation], fail_on: str) -> int:
    """
    Compute exit code based on annotations and threshold.

    Args:
        annotations: Every annotation found (before limit).
        fail_on: Threshold setting ("none", "any", "regressed").

    Returns:
        0 = success, 2 = threshold met.
    """
    if fail_on == "none":
        return 0

    if fail_on == "any" and annotations:
        return 2

    if fail_on == "regressed" and any(a.reason == REGRESSED_UNTESTED for a in annotations):
        return 2

    return 0


def _format_text_output(
    result: dict[str, Any],
    deltas: dict,
    paths: list[str],
) -> str:
    """Format human-readable text output."""
    lines = []
    lines.append("=" * 60)
    lines.append("flag-untested")
    lines.append("=" * 60)
    lines.append(f"Files analyzed: {result['files_analyzed']}")
    lines.append(f"Untested ranges: {result['total_annotations']}")

    by_reason = result.get("by_reason", {})
    for reason in REASONS:
        if by_reason.get(reason, 0) > 0:
            lines.append(f"  {reason}: {by_reason[reason]}")
    lines.append("")

    for a in result["annotations"]:
        lines.append(f"  {a['path']}:{a['start_line']}-{a['end_line']} {a['message']}")

    if result["annotations"]:
        lines.append("")
    lines.append(format_summary_table(deltas, paths))

    return "\n".join(lines)


def _error_response(message: str) -> dict[str, Any]:
    """Build an error response."""
    return {
        "exit_code": 1,
        "result": {
            "files_analyzed": 0,
            "total_annotations": 0,
            "annotations": [],
            "by_reason": {reason: 0 for reason in REASONS},
            "deltas": {},
        },
        "warnings": [message],
    }
