"""Lookup queries against the Canvas tables.

These are the reads the reconciliation engine and the validators depend on.
Everything here is read-only.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import Session, select

from sisid.ledger.models import PopulationRun, Pseudonym, RunMode
from sisid.ledger.scope import pseudonym_is_active
from sisid.ledger.store import get_session

if TYPE_CHECKING:
    from pathlib import Path


def find_active_pseudonym(session: Session, user_id: int, account_id: int) -> Pseudonym | None:
    """Find the user's active pseudonym in an account.

    Canvas does not stop a user from holding two active pseudonyms in the
    same account. When that happens the lowest id wins, so repeated runs
    always pick the same one.
    """
    stmt = (
        select(Pseudonym)
        .where(
            Pseudonym.user_id == user_id,
            Pseudonym.account_id == account_id,
            pseudonym_is_active(),
        )
        .order_by(Pseudonym.id)
        .limit(1)
    )
    return session.exec(stmt).first()


def sis_user_id_taken(
    session: Session,
    account_id: int,
    sis_user_id: str,
    exclude_id: int | None = None,
) -> bool:
    """Check whether another pseudonym in the account already has sis_user_id.

    Matches pseudonyms in any workflow state: the database constraint on
    (account_id, sis_user_id) covers deleted pseudonyms too.
    """
    stmt = select(Pseudonym.id).where(
        Pseudonym.account_id == account_id,
        Pseudonym.sis_user_id == sis_user_id,
    )
    if exclude_id is not None:
        stmt = stmt.where(Pseudonym.id != exclude_id)
    return session.exec(stmt.limit(1)).first() is not None


def unique_id_taken(
    session: Session,
    account_id: int,
    unique_id: str,
    exclude_id: int | None = None,
) -> bool:
    """Check whether another active pseudonym in the account uses this login.

    Logins are compared case-insensitively, as Canvas does.
    """
    stmt = select(Pseudonym.id).where(
        Pseudonym.account_id == account_id,
        func.lower(Pseudonym.unique_id) == unique_id.lower(),
        pseudonym_is_active(),
    )
    if exclude_id is not None:
        stmt = stmt.where(Pseudonym.id != exclude_id)
    return session.exec(stmt.limit(1)).first() is not None


def get_last_population_run(
    db_path: Path | str,
    mode: RunMode | None = None,
) -> PopulationRun | None:
    """Get the most recent population run, optionally of a given mode."""
    runs = get_population_runs(db_path, limit=1, mode=mode)
    return runs[0] if runs else None


def get_population_runs(
    db_path: Path | str,
    limit: int = 10,
    mode: RunMode | None = None,
) -> list[PopulationRun]:
    """Get recent population runs, most recent first."""
    with get_session(db_path) as session:
        stmt = select(PopulationRun)
        if mode:
            stmt = stmt.where(PopulationRun.mode == mode)
        stmt = stmt.order_by(PopulationRun.started_at.desc(), PopulationRun.id.desc()).limit(limit)  # type: ignore[attr-defined,union-attr]
        return list(session.exec(stmt).all())
