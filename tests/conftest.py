"""Shared fixtures: a migrated temporary database and a Canvas record factory."""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest

from sisid.ledger.models import ACTIVE, Account, Course, Enrollment, Pseudonym, User
from sisid.ledger.store import get_session, reset_engine, run_migrations


class CanvasFactory:
    """Create committed Canvas records in the test database.

    Returned objects are detached but fully loaded, so their ids and
    attributes can be read after the session closes.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path

    def _add(self, record):
        with get_session(self.db_path) as session:
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    def root_account(self, name: str = "Root Account") -> Account:
        return self._add(Account(name=name))

    def course(self, root_account: Account, name: str = "Course 101") -> Course:
        return self._add(
            Course(name=name, account_id=root_account.id, root_account_id=root_account.id)
        )

    def user(self, user_id: int | None = None, name: str = "Test User", email: str | None = None) -> User:
        return self._add(User(id=user_id, name=name, email=email))

    def pseudonym(
        self,
        user: User,
        account: Account,
        unique_id: str | None = None,
        sis_user_id: str | None = None,
        workflow_state: str = ACTIVE,
    ) -> Pseudonym:
        return self._add(
            Pseudonym(
                user_id=user.id,
                account_id=account.id,
                unique_id=unique_id or f"login{user.id}@example.edu",
                sis_user_id=sis_user_id,
                workflow_state=workflow_state,
            )
        )

    def enrollment(
        self,
        user: User,
        course: Course,
        enrollment_type: str = "StudentEnrollment",
        workflow_state: str = ACTIVE,
        sis_pseudonym: Pseudonym | None = None,
    ) -> Enrollment:
        return self._add(
            Enrollment(
                user_id=user.id,
                course_id=course.id,
                type=enrollment_type,
                workflow_state=workflow_state,
                sis_pseudonym_id=sis_pseudonym.id if sis_pseudonym else None,
            )
        )


@pytest.fixture
def db_path(tmp_path: Path) -> Generator[Path]:
    """Create a temporary database with migrations applied."""
    path = tmp_path / "test_canvas.db"
    result = run_migrations(path, backup=False)
    assert result["status"] == "success", result
    reset_engine()
    yield path
    reset_engine()


@pytest.fixture
def canvas(db_path: Path) -> CanvasFactory:
    """Factory for Canvas records in the temporary database."""
    return CanvasFactory(db_path)
