"""Tests for reconciler.annotations module."""

import pytest

from reconciler.annotations import (
    ADDED_UNTESTED,
    MODIFIED_UNTESTED,
    REGRESSED_UNTESTED,
    Annotation,
    AnnotationReconciler,
    FileInput,
)
from reconciler.file_changes import FileChanges


def _changes(added=(), modified=(), mappings=()):
    return FileChanges(
        added=frozenset(added),
        modified=frozenset(modified),
        unchanged_line_mappings=tuple(mappings),
    )


def _ranges(annotations):
    return [(a.start_line, a.end_line, a.reason) for a in annotations]


class TestClassify:
    """Tests for AnnotationReconciler.classify."""

    def test_added_untested(self):
        """Test added lines that never ran are flagged."""
        hits = AnnotationReconciler().classify(_changes(added=[3, 4]), {4, 9}, set())
        assert hits == {4: ADDED_UNTESTED}

    def test_modified_untested(self):
        """Test modified lines that never ran are flagged."""
        hits = AnnotationReconciler().classify(_changes(modified=[2]), {2}, set())
        assert hits == {2: MODIFIED_UNTESTED}

    def test_regression(self):
        """Test an unchanged line covered in base but not head is flagged."""
        changes = _changes(mappings=[(4, 4), (5, 5), (6, 6)])
        hits = AnnotationReconciler().classify(changes, head_uncovered={5}, base_uncovered=set())
        assert hits == {5: REGRESSED_UNTESTED}

    def test_already_untested_not_regression(self):
        """Test a line untested in both runs is not flagged."""
        changes = _changes(mappings=[(5, 5)])
        hits = AnnotationReconciler().classify(changes, head_uncovered={5}, base_uncovered={5})
        assert hits == {}

    def test_regression_follows_moved_line(self):
        """Test regression checks the base line the head line came from."""
        # base line 3 moved to head line 5; base line 5 was untested
        changes = _changes(added=[1, 2], mappings=[(3, 5)])
        hits = AnnotationReconciler().classify(changes, head_uncovered={5}, base_uncovered={5})
        assert hits == {5: REGRESSED_UNTESTED}

    def test_no_base_coverage_skips_regression(self):
        """Test a file missing from the base run cannot regress."""
        changes = _changes(added=[1], mappings=[(1, 2)])
        hits = AnnotationReconciler().classify(changes, {1, 2}, base_uncovered=None)
        assert hits == {1: ADDED_UNTESTED}

    def test_added_wins_over_modified(self):
        """Test priority order when sets overlap."""
        changes = _changes(added=[7], modified=[7])
        hits = AnnotationReconciler().classify(changes, {7}, set())
        assert hits == {7: ADDED_UNTESTED}


class TestReconcile:
    """Tests for merging hits into annotations."""

    def test_merge_consecutive_lines(self):
        """Test {10,11,12,20} added and untested gives two ranges."""
        changes = _changes(added=[10, 11, 12, 20])
        annotations = AnnotationReconciler().reconcile("a.js", changes, {10, 11, 12, 20}, set())

        assert _ranges(annotations) == [
            (10, 12, ADDED_UNTESTED),
            (20, 20, ADDED_UNTESTED),
        ]

    def test_different_reasons_not_merged(self):
        """Test adjacent lines with different reasons stay separate."""
        changes = _changes(added=[3], modified=[4], mappings=[(5, 5)])
        annotations = AnnotationReconciler().reconcile("a.js", changes, {3, 4, 5}, set())

        assert _ranges(annotations) == [
            (3, 3, ADDED_UNTESTED),
            (4, 4, MODIFIED_UNTESTED),
            (5, 5, REGRESSED_UNTESTED),
        ]

    def test_ascending_order_across_reasons(self):
        """Test a regression above an added line comes first."""
        changes = _changes(added=[8, 9], mappings=[(1, 1), (2, 2)])
        annotations = AnnotationReconciler().reconcile("a.js", changes, {2, 8, 9}, set())

        assert _ranges(annotations) == [
            (2, 2, REGRESSED_UNTESTED),
            (8, 9, ADDED_UNTESTED),
        ]

    def test_regression_scenario(self):
        """Test base line 5 covered, unchanged, head line 5 uncovered."""
        changes = _changes(mappings=[(i, i) for i in range(1, 8)])
        annotations = AnnotationReconciler("failure").reconcile("a.js", changes, {5}, {1})

        assert annotations == [Annotation("a.js", 5, 5, "failure", REGRESSED_UNTESTED)]

    def test_nothing_uncovered(self):
        """Test a fully covered head gives no annotations."""
        changes = _changes(added=[1, 2], modified=[3])
        assert AnnotationReconciler().reconcile("a.js", changes, set(), set()) == []

    def test_severity_applied(self):
        """Test severity comes from configuration."""
        annotations = AnnotationReconciler("failure").reconcile(
            "a.js", _changes(added=[1]), {1}, set()
        )
        assert annotations[0].severity == "failure"

    def test_invalid_severity(self):
        """Test unknown severities are rejected."""
        with pytest.raises(ValueError, match="severity"):
            AnnotationReconciler("error")


class TestReconcileFiles:
    """Tests for multi-file reconciliation."""

    def test_caller_file_order(self):
        """Test output follows the order files were given in."""
        files = [
            FileInput("z.js", _changes(added=[1])),
            FileInput("a.js", _changes(added=[1])),
        ]
        uncovered = {"a.js": {1}, "z.js": {1}}

        annotations, warnings = AnnotationReconciler().reconcile_files(files, uncovered, uncovered)

        assert [a.path for a in annotations] == ["z.js", "a.js"]
        assert warnings == []

    def test_missing_head_coverage_warns(self):
        """Test a file the head run never saw is skipped with a warning."""
        files = [
            FileInput("gone.js", _changes(added=[1])),
            FileInput("a.js", _changes(added=[1])),
        ]

        annotations, warnings = AnnotationReconciler().reconcile_files(
            files, head_uncovered={"a.js": {1}}, base_uncovered={"a.js": set()}
        )

        assert [a.path for a in annotations] == ["a.js"]
        assert warnings == ["No head coverage for gone.js, skipping"]

    def test_new_file_still_flags_added(self):
        """Test a file only in the head run still gets added annotations."""
        files = [FileInput("new.js", _changes(added=[1, 2, 3]))]

        annotations, warnings = AnnotationReconciler().reconcile_files(
            files, head_uncovered={"new.js": {2, 3}}, base_uncovered={}
        )

        assert _ranges(annotations) == [(2, 3, ADDED_UNTESTED)]
        assert warnings == []


class TestAnnotation:
    """Tests for the Annotation value."""

    def test_single_line_message(self):
        """Test one-line annotations use singular wording."""
        a = Annotation("a.js", 4, 4, "warning", ADDED_UNTESTED)
        assert a.message == "This line was added but is untested."

    def test_multi_line_message(self):
        """Test ranges use plural wording."""
        a = Annotation("a.js", 4, 6, "warning", REGRESSED_UNTESTED)
        assert a.message == "These unchanged lines are no longer being tested."

    def test_to_dict(self):
        """Test serialization includes the message."""
        a = Annotation("a.js", 2, 3, "failure", MODIFIED_UNTESTED)
        assert a.to_dict() == {
            "path": "a.js",
            "start_line": 2,
            "end_line": 3,
            "severity": "failure",
            "reason": MODIFIED_UNTESTED,
            "message": "These lines were modified but are untested.",
        }

    def test_frozen(self):
        """Test annotations cannot be changed after construction."""
        a = Annotation("a.js", 1, 1, "warning", ADDED_UNTESTED)
        with pytest.raises(AttributeError):
            a.end_line = 2
