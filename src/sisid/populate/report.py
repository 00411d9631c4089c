"""Read-only reports for analyze and verify.

Both modes build the same ScopeReport from the same predicates, so the
numbers before and after an update run can be compared directly.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import func
from sqlmodel import Session, select

from sisid.ledger.models import Enrollment, Pseudonym, User
from sisid.ledger.scope import (
    count_enrollments,
    count_users,
    enrollment_in_scope,
    enrollment_is_linked,
    user_has_active_pseudonym,
    user_has_sis_user_id,
)
from sisid.populate.identifiers import EXAMPLE_USER_IDS, format_sis_user_id

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 5


def percentage(part: int, whole: int) -> float:
    """Return part/whole as a percentage rounded to one decimal, 0 when whole is 0."""
    if whole == 0:
        return 0
    return round(part / whole * 100, 1)


@dataclass
class ScopeReport:
    """Aggregate state of the in-scope enrollments and their users."""

    enrollment_types: list[str]
    total_enrollments: int
    unique_users: int
    users_with_pseudonym: int
    users_with_sis_user_id: int
    linked_enrollments: int

    @property
    def users_without_pseudonym(self) -> int:
        return self.unique_users - self.users_with_pseudonym

    @property
    def users_without_sis_user_id(self) -> int:
        return self.unique_users - self.users_with_sis_user_id

    @property
    def unlinked_enrollments(self) -> int:
        return self.total_enrollments - self.linked_enrollments

    @property
    def sis_user_id_percentage(self) -> float:
        return percentage(self.users_with_sis_user_id, self.unique_users)

    @property
    def linked_percentage(self) -> float:
        return percentage(self.linked_enrollments, self.total_enrollments)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "enrollment_types": list(self.enrollment_types),
            "total_enrollments": self.total_enrollments,
            "unique_users": self.unique_users,
            "users_with_pseudonym": self.users_with_pseudonym,
            "users_without_pseudonym": self.users_without_pseudonym,
            "users_with_sis_user_id": self.users_with_sis_user_id,
            "users_without_sis_user_id": self.users_without_sis_user_id,
            "linked_enrollments": self.linked_enrollments,
            "unlinked_enrollments": self.unlinked_enrollments,
            "sis_user_id_percentage": self.sis_user_id_percentage,
            "linked_percentage": self.linked_percentage,
        }


@dataclass
class UserSample:
    user_id: int
    name: str
    email: str | None


@dataclass
class LinkedSample:
    enrollment_id: int
    user_id: int
    user_name: str
    sis_user_id: str | None


def build_scope_report(session: Session, enrollment_types: Sequence[str]) -> ScopeReport:
    """Count enrollments, users, pseudonyms and links for the scope."""
    report = ScopeReport(
        enrollment_types=list(enrollment_types),
        total_enrollments=count_enrollments(session, enrollment_types),
        unique_users=count_users(session, enrollment_types),
        users_with_pseudonym=count_users(session, enrollment_types, user_has_active_pseudonym()),
        users_with_sis_user_id=count_users(session, enrollment_types, user_has_sis_user_id()),
        linked_enrollments=count_enrollments(session, enrollment_types, enrollment_is_linked()),
    )
    logger.debug("Scope report: %s", report.to_dict())
    return report


def sample_users_without_pseudonym(
    session: Session,
    enrollment_types: Sequence[str],
    limit: int = SAMPLE_SIZE,
) -> list[UserSample]:
    """First users (by id) in scope who hold no active pseudonym."""
    in_scope_without = (
        select(Enrollment.user_id)
        .where(enrollment_in_scope(enrollment_types), ~user_has_active_pseudonym())
        .distinct()
    )
    stmt = (
        select(User)
        .where(User.id.in_(in_scope_without))  # type: ignore[union-attr]
        .order_by(User.id)
        .limit(limit)
    )
    return [
        UserSample(user_id=user.id, name=user.name, email=user.email)  # type: ignore[arg-type]
        for user in session.exec(stmt).all()
    ]


def sample_linked_enrollments(
    session: Session,
    enrollment_types: Sequence[str],
    limit: int = SAMPLE_SIZE,
) -> list[LinkedSample]:
    """Random linked enrollments in scope, with the linked pseudonym's SIS id."""
    stmt = (
        select(Enrollment, User, Pseudonym)
        .join(User, Enrollment.user_id == User.id)  # type: ignore[arg-type]
        .outerjoin(Pseudonym, Enrollment.sis_pseudonym_id == Pseudonym.id)  # type: ignore[arg-type]
        .where(enrollment_in_scope(enrollment_types), enrollment_is_linked())
        .order_by(func.random())
        .limit(limit)
    )
    return [
        LinkedSample(
            enrollment_id=enrollment.id,  # type: ignore[arg-type]
            user_id=enrollment.user_id,
            user_name=user.name,
            sis_user_id=pseudonym.sis_user_id if pseudonym else None,
        )
        for enrollment, user, pseudonym in session.exec(stmt).all()
    ]


def example_identifiers(
    pattern: str,
    user_ids: Sequence[int] = EXAMPLE_USER_IDS,
) -> list[tuple[int, str]]:
    """Show what the pattern generates for a few sample user ids."""
    return [(user_id, format_sis_user_id(pattern, user_id)) for user_id in user_ids]
