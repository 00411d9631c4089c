"""Validated saves for pseudonyms and enrollments.

save() is the only write path the reconciliation engine uses. It runs the
record's validations, commits on success and reports failure as a list of
messages instead of raising, so one bad record never stops a batch.
Each save commits its own transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel

from sisid.ledger.models import Enrollment, Pseudonym
from sisid.ledger.queries import sis_user_id_taken, unique_id_taken

logger = logging.getLogger(__name__)

UNIQUE_ID_MAX_LENGTH = 100
SIS_USER_ID_MAX_LENGTH = 255


@dataclass
class SaveResult:
    """Outcome of a save: ok, or the validation messages that rejected it."""

    ok: bool
    errors: list[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return ", ".join(self.errors)


def validate_pseudonym(session: Session, pseudonym: Pseudonym) -> list[str]:
    """Return validation messages for a pseudonym (empty when valid)."""
    errors: list[str] = []

    unique_id = (pseudonym.unique_id or "").strip()
    if not unique_id:
        errors.append("Unique ID can't be blank")
    elif len(unique_id) > UNIQUE_ID_MAX_LENGTH:
        errors.append(f"Unique ID is too long (maximum is {UNIQUE_ID_MAX_LENGTH} characters)")
    elif pseudonym.is_active and unique_id_taken(
        session, pseudonym.account_id, unique_id, exclude_id=pseudonym.id
    ):
        errors.append("Unique ID has already been taken")

    if pseudonym.sis_user_id is not None:
        if not pseudonym.sis_user_id.strip():
            errors.append("SIS User ID can't be blank")
        elif len(pseudonym.sis_user_id) > SIS_USER_ID_MAX_LENGTH:
            errors.append(
                f"SIS User ID is too long (maximum is {SIS_USER_ID_MAX_LENGTH} characters)"
            )
        elif sis_user_id_taken(
            session, pseudonym.account_id, pseudonym.sis_user_id, exclude_id=pseudonym.id
        ):
            errors.append(f"SIS User ID '{pseudonym.sis_user_id}' is already in use")

    return errors


def validate_enrollment(session: Session, enrollment: Enrollment) -> list[str]:
    """Return validation messages for an enrollment (empty when valid)."""
    errors: list[str] = []

    if enrollment.sis_pseudonym_id is not None:
        pseudonym = session.get(Pseudonym, enrollment.sis_pseudonym_id)
        if pseudonym is None:
            errors.append(f"SIS pseudonym {enrollment.sis_pseudonym_id} does not exist")
        elif pseudonym.user_id != enrollment.user_id:
            errors.append("SIS pseudonym must belong to the enrolled user")

    return errors


def validate_record(session: Session, record: SQLModel) -> list[str]:
    """Dispatch to the validator for the record's type."""
    if isinstance(record, Pseudonym):
        return validate_pseudonym(session, record)
    if isinstance(record, Enrollment):
        return validate_enrollment(session, record)
    return []


def save(session: Session, record: SQLModel, *, validate: bool = True) -> SaveResult:
    """Validate, then commit a new or modified record.

    On failure the session is rolled back, which discards the pending
    changes on the record (and expunges it if it was new).

    Args:
        session: Database session.
        record: Pseudonym or Enrollment to persist.
        validate: Run model validations first. Rollback skips them.

    Returns:
        SaveResult with ok=True, or ok=False and the validation messages.
    """
    if validate:
        # Autoflush would push the pending change before the uniqueness
        # queries run and make them see the record itself.
        with session.no_autoflush:
            errors = validate_record(session, record)
        if errors:
            logger.debug("Validation failed for %r: %s", record, errors)
            session.rollback()
            return SaveResult(ok=False, errors=errors)

    if hasattr(record, "updated_at"):
        record.updated_at = datetime.now(UTC)

    session.add(record)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        logger.debug("Integrity error saving %r: %s", record, e)
        return SaveResult(ok=False, errors=[_integrity_message(e)])

    return SaveResult(ok=True)


def _integrity_message(error: IntegrityError) -> str:
    detail = str(error.orig) if error.orig is not None else str(error)
    if "sis_user_id" in detail:
        return "SIS User ID is already in use"
    return f"Database constraint violated: {detail}"
