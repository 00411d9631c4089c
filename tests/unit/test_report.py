"""Tests for the analyze and verify reports."""

from __future__ import annotations

from pathlib import Path

import pytest

from sisid.ledger.models import DELETED
from sisid.ledger.store import get_session
from sisid.populate.report import (
    build_scope_report,
    example_identifiers,
    percentage,
    sample_linked_enrollments,
    sample_users_without_pseudonym,
)
from sisid.populate.runner import run_update

STUDENTS = ["StudentEnrollment"]


@pytest.mark.parametrize(
    ("part", "whole", "expected"),
    [(0, 0, 0), (5, 0, 0), (1, 4, 25.0), (1, 3, 33.3), (2, 3, 66.7), (4, 4, 100.0)],
)
def test_percentage(part: int, whole: int, expected: float) -> None:
    assert percentage(part, whole) == expected


def test_example_identifiers() -> None:
    assert example_identifiers("Canvas-%05d") == [
        (1, "Canvas-00001"),
        (123, "Canvas-00123"),
        (9999, "Canvas-09999"),
        (123456, "Canvas-123456"),
    ]


@pytest.fixture
def mixed_scope(canvas):
    """Three students: no pseudonym, pseudonym without SIS id, fully linked."""
    root = canvas.root_account()
    course = canvas.course(root)

    bare = canvas.user(user_id=1, name="Bare", email="bare@x.edu")
    canvas.enrollment(bare, course)

    partial = canvas.user(user_id=2, name="Partial")
    canvas.pseudonym(partial, root)
    canvas.enrollment(partial, course)
    canvas.enrollment(partial, canvas.course(root, name="Second"))

    done = canvas.user(user_id=3, name="Done")
    pseudonym = canvas.pseudonym(done, root, sis_user_id="LEGACY-3")
    canvas.enrollment(done, course, sis_pseudonym=pseudonym)

    # Out of scope, must not be counted
    canvas.enrollment(bare, course, workflow_state=DELETED)
    canvas.enrollment(done, course, enrollment_type="TeacherEnrollment")
    return root


class TestScopeReport:
    def test_counts_before_update(self, mixed_scope, db_path: Path) -> None:
        with get_session(db_path) as session:
            report = build_scope_report(session, STUDENTS)

        assert report.total_enrollments == 4
        assert report.unique_users == 3
        assert report.users_with_pseudonym == 2
        assert report.users_without_pseudonym == 1
        assert report.users_with_sis_user_id == 1
        assert report.users_without_sis_user_id == 2
        assert report.linked_enrollments == 1
        assert report.unlinked_enrollments == 3
        assert report.sis_user_id_percentage == 33.3
        assert report.linked_percentage == 25.0

    def test_counts_after_update(self, mixed_scope, db_path: Path) -> None:
        run_update(db_path, pattern="Canvas-%05d", enrollment_types=STUDENTS)

        with get_session(db_path) as session:
            report = build_scope_report(session, STUDENTS)

        assert report.users_with_pseudonym == 3
        assert report.users_with_sis_user_id == 3
        assert report.linked_enrollments == 4
        assert report.sis_user_id_percentage == 100.0
        assert report.linked_percentage == 100.0

    def test_empty_scope(self, db_path: Path) -> None:
        with get_session(db_path) as session:
            report = build_scope_report(session, STUDENTS)

        assert report.total_enrollments == 0
        assert report.sis_user_id_percentage == 0
        assert report.linked_percentage == 0
        assert report.to_dict()["unlinked_enrollments"] == 0


class TestSamples:
    def test_users_without_pseudonym(self, mixed_scope, db_path: Path) -> None:
        with get_session(db_path) as session:
            samples = sample_users_without_pseudonym(session, STUDENTS)

        assert [(s.user_id, s.name, s.email) for s in samples] == [(1, "Bare", "bare@x.edu")]

    def test_users_without_pseudonym_limit(self, canvas, db_path: Path) -> None:
        root = canvas.root_account()
        course = canvas.course(root)
        for user_id in range(1, 9):
            canvas.enrollment(canvas.user(user_id=user_id), course)

        with get_session(db_path) as session:
            samples = sample_users_without_pseudonym(session, STUDENTS)

        assert [s.user_id for s in samples] == [1, 2, 3, 4, 5]

    def test_linked_enrollments(self, mixed_scope, db_path: Path) -> None:
        with get_session(db_path) as session:
            samples = sample_linked_enrollments(session, STUDENTS)

        assert [(s.user_id, s.user_name, s.sis_user_id) for s in samples] == [
            (3, "Done", "LEGACY-3")
        ]
