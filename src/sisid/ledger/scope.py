"""Scope resolution: which enrollments a run works on.

Filters are plain predicate functions returning SQL expressions so they can
be combined freely. The reports, the update runner and the tests all build
their queries from these same predicates.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any

from sqlalchemy import and_, func
from sqlmodel import Session, select

from sisid.ledger.models import ACTIVE, Enrollment, Pseudonym

DEFAULT_BATCH_SIZE = 1000


# --- Predicates ---


def enrollment_is_active() -> Any:
    return Enrollment.workflow_state == ACTIVE


def enrollment_type_in(enrollment_types: Sequence[str]) -> Any:
    return Enrollment.type.in_(list(enrollment_types))  # type: ignore[attr-defined]


def enrollment_in_scope(enrollment_types: Sequence[str]) -> Any:
    """Active enrollments of the given types."""
    return and_(enrollment_is_active(), enrollment_type_in(enrollment_types))


def enrollment_is_linked() -> Any:
    return Enrollment.sis_pseudonym_id.is_not(None)  # type: ignore[union-attr]


def pseudonym_is_active() -> Any:
    return Pseudonym.workflow_state == ACTIVE


def pseudonym_has_sis_user_id() -> Any:
    return Pseudonym.sis_user_id.is_not(None)  # type: ignore[union-attr]


def user_has_active_pseudonym() -> Any:
    """The enrollment's user holds an active pseudonym in any account."""
    return (
        select(Pseudonym.id)
        .where(Pseudonym.user_id == Enrollment.user_id, pseudonym_is_active())
        .exists()
    )


def user_has_sis_user_id() -> Any:
    """The enrollment's user holds an active pseudonym carrying a sis_user_id."""
    return (
        select(Pseudonym.id)
        .where(
            Pseudonym.user_id == Enrollment.user_id,
            pseudonym_is_active(),
            pseudonym_has_sis_user_id(),
        )
        .exists()
    )


# --- Resolution ---


def count_enrollments(session: Session, enrollment_types: Sequence[str], *extra: Any) -> int:
    """Count in-scope enrollments, optionally narrowed by extra predicates."""
    stmt = select(func.count()).select_from(Enrollment).where(
        enrollment_in_scope(enrollment_types), *extra
    )
    return session.exec(stmt).one()


def count_users(session: Session, enrollment_types: Sequence[str], *extra: Any) -> int:
    """Count distinct users with an in-scope enrollment."""
    stmt = select(func.count(func.distinct(Enrollment.user_id))).where(
        enrollment_in_scope(enrollment_types), *extra
    )
    return session.exec(stmt).one()


def iter_enrollment_batches(
    session: Session,
    enrollment_types: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Iterator[list[Enrollment]]:
    """Yield in-scope enrollments in id order, batch_size at a time.

    Uses keyset pagination (id > last seen id), so records modified while a
    batch is being processed do not shift later pages.
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    last_id = 0
    while True:
        stmt = (
            select(Enrollment)
            .where(enrollment_in_scope(enrollment_types), Enrollment.id > last_id)  # type: ignore[operator]
            .order_by(Enrollment.id)
            .limit(batch_size)
        )
        batch = list(session.exec(stmt).all())
        if not batch:
            return

        next_last_id = batch[-1].id
        assert next_last_id is not None
        yield batch
        last_id = next_last_id

        if len(batch) < batch_size:
            return
