"""SQLModel models for the canvas-sisid database.

Canvas records: Account, Course, User, Pseudonym, Enrollment.
Run tracking: PopulationRun, one row per mutating run (update or rollback).
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel

ACTIVE = "active"
DELETED = "deleted"


def _utcnow() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


# =============================================================================
# Canvas records
# =============================================================================


class Account(SQLModel, table=True):
    """Canvas account.

    A root account has root_account_id = None. Pseudonyms are always scoped
    to a root account.
    """

    __tablename__ = "account"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    root_account_id: int | None = Field(default=None, foreign_key="account.id", index=True)
    workflow_state: str = Field(default=ACTIVE)


class Course(SQLModel, table=True):
    """Canvas course, owned by an account and scoped to a root account."""

    __tablename__ = "course"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    account_id: int = Field(foreign_key="account.id", index=True)
    root_account_id: int | None = Field(default=None, foreign_key="account.id", index=True)
    workflow_state: str = Field(default="available")


class User(SQLModel, table=True):
    """A Canvas user. May hold zero or more pseudonyms."""

    __tablename__ = "user"

    id: int | None = Field(default=None, primary_key=True)
    name: str
    email: str | None = Field(default=None)
    workflow_state: str = Field(default="registered")


class Pseudonym(SQLModel, table=True):
    """A login for a user within one root account.

    sis_user_id is unique per account (not globally). Multiple pseudonyms
    without a sis_user_id may coexist in the same account.
    """

    __tablename__ = "pseudonym"
    __table_args__ = (
        UniqueConstraint("account_id", "sis_user_id", name="uq_pseudonym_account_sis_user_id"),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    account_id: int = Field(foreign_key="account.id", index=True)
    unique_id: str = Field(index=True)
    sis_user_id: str | None = Field(default=None, index=True)
    workflow_state: str = Field(default=ACTIVE)
    crypted_password: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.workflow_state == ACTIVE


class Enrollment(SQLModel, table=True):
    """A user's membership in a course.

    type is the Canvas role category (StudentEnrollment, TeacherEnrollment, ...).
    sis_pseudonym_id, once set, points at a pseudonym of the same user.
    """

    __tablename__ = "enrollment"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    course_id: int = Field(foreign_key="course.id", index=True)
    type: str = Field(default="StudentEnrollment", index=True)
    workflow_state: str = Field(default=ACTIVE, index=True)
    sis_pseudonym_id: int | None = Field(default=None, foreign_key="pseudonym.id", index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


# =============================================================================
# Run tracking
# =============================================================================


class RunMode(str, Enum):
    """Mode of a mutating run."""

    UPDATE = "update"
    ROLLBACK = "rollback"


class RunStatus(str, Enum):
    """Status of a population run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class PopulationRun(SQLModel, table=True):
    """Track individual update and rollback runs with summary counts."""

    __tablename__ = "population_run"

    id: int | None = Field(default=None, primary_key=True)
    mode: RunMode = Field(default=RunMode.UPDATE)
    status: RunStatus = Field(default=RunStatus.RUNNING)
    pattern: str
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = Field(default=None)
    error_message: str | None = Field(default=None)

    # Summary counts
    created_count: int = Field(default=0)
    updated_count: int = Field(default=0)
    linked_count: int = Field(default=0)
    skipped_count: int = Field(default=0)
    failed_count: int = Field(default=0)
    error_count: int = Field(default=0)

    def mark_completed(
        self,
        created_count: int = 0,
        updated_count: int = 0,
        linked_count: int = 0,
        skipped_count: int = 0,
        failed_count: int = 0,
        error_count: int = 0,
    ) -> None:
        """Mark the run as completed with counts."""
        self.completed_at = _utcnow()
        self.status = RunStatus.COMPLETED
        self.created_count = created_count
        self.updated_count = updated_count
        self.linked_count = linked_count
        self.skipped_count = skipped_count
        self.failed_count = failed_count
        self.error_count = error_count

    def mark_failed(self, error_message: str) -> None:
        """Mark the run as failed with error message."""
        self.completed_at = _utcnow()
        self.status = RunStatus.FAILED
        self.error_message = error_message

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "mode": self.mode.value,
            "status": self.status.value,
            "pattern": self.pattern,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "error_message": self.error_message,
            "created_count": self.created_count,
            "updated_count": self.updated_count,
            "linked_count": self.linked_count,
            "skipped_count": self.skipped_count,
            "failed_count": self.failed_count,
            "error_count": self.error_count,
        }
