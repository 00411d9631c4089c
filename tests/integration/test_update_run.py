"""Integration tests for full update runs."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

from sisid.ledger.models import (
    Enrollment,
    PopulationRun,
    Pseudonym,
    RunMode,
    RunStatus,
    User,
)
from sisid.ledger.queries import get_last_population_run, get_population_runs
from sisid.ledger.store import get_session
from sisid.populate.reconcile import Outcome, ReconcileResult
from sisid.populate.runner import run_update

PATTERN = "Canvas-%05d"
STUDENTS = ["StudentEnrollment"]


def seed_students(db_path: Path, course_id: int, count: int) -> None:
    """Bulk-create users with one student enrollment each."""
    with get_session(db_path) as session:
        for user_id in range(1, count + 1):
            session.add(User(id=user_id, name=f"Student {user_id}"))
        session.flush()
        for user_id in range(1, count + 1):
            session.add(Enrollment(user_id=user_id, course_id=course_id))
        session.commit()


class TestRunUpdate:
    def test_single_enrollment_end_to_end(self, canvas, db_path: Path) -> None:
        root = canvas.root_account()
        course = canvas.course(root)
        user = canvas.user(user_id=1, email="u1@x.edu")
        enrollment = canvas.enrollment(user, course)

        result = run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)

        assert result.total == 1
        assert (result.stats.created, result.stats.updated, result.stats.linked) == (1, 0, 1)
        assert (result.stats.skipped, result.stats.failed) == (0, 0)

        with get_session(db_path) as session:
            [pseudonym] = session.exec(select(Pseudonym)).all()
            assert pseudonym.unique_id == "u1@x.edu"
            assert pseudonym.sis_user_id == "Canvas-00001"
            assert session.get(Enrollment, enrollment.id).sis_pseudonym_id == pseudonym.id

    def test_second_run_is_idempotent(self, canvas, db_path: Path) -> None:
        root = canvas.root_account()
        course = canvas.course(root)
        for user_id in (1, 2, 3):
            canvas.enrollment(canvas.user(user_id=user_id, email=f"u{user_id}@x.edu"), course)

        first = run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)
        second = run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)

        assert first.stats.created == 3
        assert second.stats.to_dict() == {
            "created": 0,
            "updated": 0,
            "linked": 0,
            "skipped": 0,
            "failed": 0,
            "processed": 3,
            "error_count": 0,
            "errors": [],
        }

    def test_failures_do_not_stop_the_run(self, canvas, db_path: Path) -> None:
        root = canvas.root_account()
        course = canvas.course(root)
        holder = canvas.user(user_id=1)
        canvas.pseudonym(holder, root, sis_user_id="Canvas-00002")
        conflicted = canvas.user(user_id=2)
        canvas.pseudonym(conflicted, root)
        canvas.enrollment(conflicted, course)
        canvas.enrollment(canvas.user(user_id=3, email="u3@x.edu"), course)

        result = run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)

        assert result.stats.skipped == 1
        assert result.stats.created == 1
        assert result.stats.linked == 1
        assert result.stats.errors == [
            "Conflict: sis_user_id 'Canvas-00002' already exists for user 2"
        ]

    def test_callbacks(self, canvas, db_path: Path) -> None:
        root = canvas.root_account()
        course = canvas.course(root)
        seed_students(db_path, course.id, 250)
        starts: list[int] = []
        results: list[ReconcileResult] = []
        progress: list[tuple[int, int]] = []

        run_update(
            db_path,
            pattern=PATTERN,
            enrollment_types=STUDENTS,
            batch_size=64,
            on_start=starts.append,
            on_result=results.append,
            on_progress=lambda current, total: progress.append((current, total)),
        )

        assert starts == [250]
        assert len(results) == 250
        assert all(r.outcomes == [Outcome.CREATED, Outcome.LINKED] for r in results)
        assert progress == [(100, 250), (200, 250)]


class TestRunTracking:
    def test_completed_run_is_recorded(self, canvas, db_path: Path) -> None:
        root = canvas.root_account()
        course = canvas.course(root)
        canvas.enrollment(canvas.user(user_id=1), course)

        result = run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)

        run = get_last_population_run(db_path)
        assert run is not None
        assert run.id == result.run_id
        assert run.mode == RunMode.UPDATE
        assert run.status == RunStatus.COMPLETED
        assert run.pattern == PATTERN
        assert (run.created_count, run.linked_count) == (1, 1)

    def test_runs_listed_most_recent_first(self, db_path: Path) -> None:
        first = run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)
        second = run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)

        runs = get_population_runs(db_path, mode=RunMode.UPDATE)

        assert [r.id for r in runs] == [second.run_id, first.run_id]
        assert get_population_runs(db_path, mode=RunMode.ROLLBACK) == []

    def test_scope_failure_marks_run_failed(self, db_path: Path, monkeypatch) -> None:
        def unavailable(*args, **kwargs):
            raise OperationalError("SELECT count(*)", {}, Exception("database is locked"))

        monkeypatch.setattr("sisid.populate.runner.count_enrollments", unavailable)

        with pytest.raises(OperationalError):
            run_update(db_path, pattern=PATTERN, enrollment_types=STUDENTS)

        with get_session(db_path) as session:
            [run] = session.exec(select(PopulationRun)).all()
            assert run.status == RunStatus.FAILED
            assert "database is locked" in run.error_message
