"""Per-enrollment reconciliation.

For one enrollment, make sure that:
- the user has an active pseudonym in the course's root account,
- that pseudonym carries a sis_user_id generated from the pattern,
- the enrollment's sis_pseudonym_id points at it.

reconcile() never raises for problems with a single record. It returns a
ReconcileResult describing what happened; RunStats.record() folds results
into run totals. Rendering results is left to the caller.

Running reconcile() again on an already reconciled enrollment is a no-op:
existing sis_user_id values are never overwritten and links that already
hold are not rewritten.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sqlalchemy import inspect
from sqlmodel import Session

from sisid.ledger.models import Course, Enrollment, Pseudonym, User
from sisid.ledger.queries import find_active_pseudonym, sis_user_id_taken
from sisid.ledger.validation import save
from sisid.populate.identifiers import (
    format_sis_user_id,
    generate_temporary_password,
    login_handle,
)

logger = logging.getLogger(__name__)

# Diagnostics are capped so one pathological record cannot flood the summary.
MAX_MESSAGE_LENGTH = 255
MAX_RECORDED_ERRORS = 1000


class SisIdError(Exception):
    """Base exception for canvas-sisid operations."""

    pass


class MissingRecordError(SisIdError):
    """Raised when a record an enrollment depends on is missing."""

    def __init__(self, record_type: str, record_id: int | None) -> None:
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} {record_id} not found")


class Outcome(str, Enum):
    """What reconcile() did to one enrollment."""

    CREATED = "created"
    UPDATED = "updated"
    LINKED = "linked"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def marker(self) -> str:
        """Single-letter progress marker (C, U, L, S, F)."""
        return self.value[0].upper()


@dataclass
class ReconcileResult:
    """Outcomes and diagnostics for a single enrollment.

    An enrollment can produce more than one outcome, e.g. CREATED then LINKED,
    or UPDATED then FAILED when the link could not be saved. An empty
    outcome list means nothing needed to change.
    """

    enrollment_id: int | None
    outcomes: list[Outcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    pseudonym_id: int | None = None

    @property
    def changed(self) -> bool:
        return any(o in (Outcome.CREATED, Outcome.UPDATED, Outcome.LINKED) for o in self.outcomes)

    @property
    def markers(self) -> str:
        return "".join(o.marker for o in self.outcomes)

    def add(self, outcome: Outcome, error: str | None = None) -> None:
        self.outcomes.append(outcome)
        if error is not None:
            self.errors.append(truncate_message(error))


@dataclass
class RunStats:
    """Run totals accumulated from ReconcileResults.

    errors keeps at most MAX_RECORDED_ERRORS messages; error_count keeps
    counting past that.
    """

    created: int = 0
    updated: int = 0
    linked: int = 0
    skipped: int = 0
    failed: int = 0
    processed: int = 0
    errors: list[str] = field(default_factory=list)
    error_count: int = 0

    def record(self, result: ReconcileResult) -> None:
        """Fold one enrollment's result into the totals."""
        self.processed += 1
        for outcome in result.outcomes:
            if outcome is Outcome.CREATED:
                self.created += 1
            elif outcome is Outcome.UPDATED:
                self.updated += 1
            elif outcome is Outcome.LINKED:
                self.linked += 1
            elif outcome is Outcome.SKIPPED:
                self.skipped += 1
            elif outcome is Outcome.FAILED:
                self.failed += 1
        for error in result.errors:
            self.error_count += 1
            if len(self.errors) < MAX_RECORDED_ERRORS:
                self.errors.append(error)

    def merge(self, other: RunStats) -> RunStats:
        """Return the sum of two accumulators."""
        merged = RunStats(
            created=self.created + other.created,
            updated=self.updated + other.updated,
            linked=self.linked + other.linked,
            skipped=self.skipped + other.skipped,
            failed=self.failed + other.failed,
            processed=self.processed + other.processed,
            error_count=self.error_count + other.error_count,
        )
        merged.errors = (self.errors + other.errors)[:MAX_RECORDED_ERRORS]
        return merged

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "created": self.created,
            "updated": self.updated,
            "linked": self.linked,
            "skipped": self.skipped,
            "failed": self.failed,
            "processed": self.processed,
            "error_count": self.error_count,
            "errors": list(self.errors),
        }


def truncate_message(message: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Shorten a diagnostic to limit characters, marking the cut with '...'."""
    if len(message) <= limit:
        return message
    return message[: limit - 3] + "..."


def reconcile(session: Session, enrollment: Enrollment, pattern: str) -> ReconcileResult:
    """Reconcile one enrollment against its user's pseudonym.

    Args:
        session: Database session. Each save commits.
        enrollment: The in-scope enrollment to process.
        pattern: printf-style sis_user_id pattern, e.g. "Canvas-%05d".

    Returns:
        ReconcileResult with the outcomes and any diagnostics.
    """
    enrollment_id = _identity(enrollment)
    result = ReconcileResult(enrollment_id=enrollment_id)

    try:
        _reconcile(session, enrollment, pattern, result)
    except Exception as e:
        session.rollback()
        logger.debug("Error processing enrollment %s", enrollment_id, exc_info=True)
        result.add(Outcome.FAILED, f"Error processing enrollment {enrollment_id}: {e}")

    return result


def _identity(enrollment: Enrollment) -> int | None:
    """Primary key without triggering a reload of an expired instance."""
    identity = inspect(enrollment).identity
    if identity:
        return identity[0]
    return enrollment.id


def _reconcile(
    session: Session,
    enrollment: Enrollment,
    pattern: str,
    result: ReconcileResult,
) -> None:
    user = session.get(User, enrollment.user_id)
    if user is None:
        raise MissingRecordError("User", enrollment.user_id)

    course = session.get(Course, enrollment.course_id)
    if course is None:
        raise MissingRecordError("Course", enrollment.course_id)

    root_account_id = course.root_account_id
    if root_account_id is None:
        raise MissingRecordError("Root account for course", course.id)

    assert user.id is not None
    pseudonym = find_active_pseudonym(session, user.id, root_account_id)

    if pseudonym is None:
        pseudonym = _create_pseudonym(session, user, root_account_id, pattern, result)
        if pseudonym is None:
            return
    elif not _ensure_sis_user_id(session, pseudonym, user.id, pattern, result):
        return

    result.pseudonym_id = pseudonym.id
    _link_enrollment(session, enrollment, pseudonym, result)


def _create_pseudonym(
    session: Session,
    user: User,
    account_id: int,
    pattern: str,
    result: ReconcileResult,
) -> Pseudonym | None:
    """Create an active pseudonym with a generated sis_user_id."""
    assert user.id is not None
    user_id = user.id
    pseudonym = Pseudonym(
        user_id=user_id,
        account_id=account_id,
        unique_id=login_handle(user_id, user.email),
        sis_user_id=format_sis_user_id(pattern, user_id),
        crypted_password=generate_temporary_password(),
    )

    saved = save(session, pseudonym)
    if not saved.ok:
        logger.info("Failed to create pseudonym for user %s: %s", user_id, saved.message)
        result.add(
            Outcome.FAILED,
            f"Failed to create pseudonym for user {user_id}: {saved.message}",
        )
        return None

    logger.debug(
        "Created pseudonym %s for user %s in account %s", pseudonym.id, user_id, account_id
    )
    result.add(Outcome.CREATED)
    return pseudonym


def _ensure_sis_user_id(
    session: Session,
    pseudonym: Pseudonym,
    user_id: int,
    pattern: str,
    result: ReconcileResult,
) -> bool:
    """Give an existing pseudonym a sis_user_id unless it already has one.

    Returns:
        True when the enrollment should go on to be linked.
    """
    if pseudonym.sis_user_id is not None:
        return True

    new_sis_id = format_sis_user_id(pattern, user_id)

    if sis_user_id_taken(session, pseudonym.account_id, new_sis_id, exclude_id=pseudonym.id):
        logger.info(
            "sis_user_id '%s' already exists in account %s, skipping user %s",
            new_sis_id,
            pseudonym.account_id,
            user_id,
        )
        result.add(
            Outcome.SKIPPED,
            f"Conflict: sis_user_id '{new_sis_id}' already exists for user {user_id}",
        )
        return False

    pseudonym_id = pseudonym.id
    pseudonym.sis_user_id = new_sis_id
    saved = save(session, pseudonym)
    if not saved.ok:
        logger.info("Failed to update pseudonym %s: %s", pseudonym_id, saved.message)
        result.add(
            Outcome.FAILED,
            f"Failed to update pseudonym {pseudonym_id}: {saved.message}",
        )
        return False

    logger.debug("Set sis_user_id '%s' on pseudonym %s", new_sis_id, pseudonym_id)
    result.add(Outcome.UPDATED)
    return True


def _link_enrollment(
    session: Session,
    enrollment: Enrollment,
    pseudonym: Pseudonym,
    result: ReconcileResult,
) -> None:
    """Point the enrollment at the pseudonym if it does not already."""
    if enrollment.sis_pseudonym_id == pseudonym.id:
        return

    enrollment_id = enrollment.id
    enrollment.sis_pseudonym_id = pseudonym.id
    saved = save(session, enrollment)
    if not saved.ok:
        logger.info("Failed to link enrollment %s: %s", enrollment_id, saved.message)
        result.add(
            Outcome.FAILED,
            f"Failed to link enrollment {enrollment_id}: {saved.message}",
        )
        return

    result.add(Outcome.LINKED)
