"""Rollback: clear generated sis_user_id values.

A pseudonym is considered generated when it is active and its sis_user_id
starts with the literal prefix of the pattern ("Canvas-" for
"Canvas-%05d"). Rollback runs in two phases so the operator sees what will
change before anything does:

1. preview_rollback() counts and samples the matching pseudonyms.
2. apply_rollback() clears sis_user_id on them, batch by batch, without
   validation. Failures on single pseudonyms are counted and skipped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from sisid.ledger.models import PopulationRun, Pseudonym, RunMode
from sisid.ledger.scope import DEFAULT_BATCH_SIZE, pseudonym_is_active
from sisid.ledger.store import get_session
from sisid.ledger.validation import save
from sisid.populate.identifiers import pattern_prefix
from sisid.populate.reconcile import SisIdError, truncate_message

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

ROLLBACK_DELAY_SECONDS = 5
SAMPLE_SIZE = 5


class RollbackRefusedError(SisIdError):
    """Raised when the pattern's prefix would match every sis_user_id."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        super().__init__(
            f"Pattern '{pattern}' has no literal prefix; rollback would clear "
            "every sis_user_id. Use a pattern such as 'Canvas-%05d'."
        )


@dataclass
class RollbackPreview:
    """What a rollback would touch."""

    prefix: str
    count: int
    sample: list[Pseudonym] = field(default_factory=list)


@dataclass
class RollbackResult:
    """Result of applying a rollback."""

    run_id: int
    prefix: str
    cleared: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert result to dictionary for serialization."""
        return {
            "run_id": self.run_id,
            "prefix": self.prefix,
            "cleared": self.cleared,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def generated_sis_user_id(prefix: str) -> Any:
    """Predicate: active pseudonym whose sis_user_id starts with prefix."""
    return (
        pseudonym_is_active()
        & Pseudonym.sis_user_id.startswith(prefix, autoescape=True)  # type: ignore[union-attr]
    )


def rollback_prefix(pattern: str) -> str:
    """Return the pattern's prefix, refusing patterns without one."""
    prefix = pattern_prefix(pattern)
    if not prefix:
        raise RollbackRefusedError(pattern)
    return prefix


def preview_rollback(
    session: Session,
    pattern: str,
    sample_size: int = SAMPLE_SIZE,
) -> RollbackPreview:
    """Count and sample the pseudonyms a rollback would clear."""
    prefix = rollback_prefix(pattern)
    count = session.exec(
        select(func.count()).select_from(Pseudonym).where(generated_sis_user_id(prefix))
    ).one()
    sample = list(
        session.exec(
            select(Pseudonym)
            .where(generated_sis_user_id(prefix))
            .order_by(Pseudonym.id)
            .limit(sample_size)
        ).all()
    )
    return RollbackPreview(prefix=prefix, count=count, sample=sample)


def _iter_matching_batches(
    session: Session, prefix: str, batch_size: int
) -> Iterator[list[Pseudonym]]:
    last_id = 0
    while True:
        stmt = (
            select(Pseudonym)
            .where(generated_sis_user_id(prefix), Pseudonym.id > last_id)  # type: ignore[operator]
            .order_by(Pseudonym.id)
            .limit(batch_size)
        )
        batch = list(session.exec(stmt).all())
        if not batch:
            return
        next_last_id = batch[-1].id
        assert next_last_id is not None
        yield batch
        last_id = next_last_id


def clear_sis_user_ids(
    session: Session,
    prefix: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_cleared: Callable[[int], None] | None = None,
) -> tuple[int, int, list[str]]:
    """Clear sis_user_id on matching pseudonyms.

    Returns:
        Tuple of (cleared, failed, error messages).
    """
    cleared = 0
    failed = 0
    errors: list[str] = []

    for batch in _iter_matching_batches(session, prefix, batch_size):
        ids = [p.id for p in batch]
        for pseudonym_id, pseudonym in zip(ids, batch, strict=True):
            try:
                pseudonym.sis_user_id = None
                saved = save(session, pseudonym, validate=False)
            except SQLAlchemyError as e:
                session.rollback()
                failed += 1
                errors.append(truncate_message(f"Failed to clear pseudonym {pseudonym_id}: {e}"))
                continue

            if saved.ok:
                cleared += 1
                if on_cleared:
                    on_cleared(cleared)
            else:
                failed += 1
                errors.append(
                    truncate_message(f"Failed to clear pseudonym {pseudonym_id}: {saved.message}")
                )

    return cleared, failed, errors


def apply_rollback(
    db_path: Path | str,
    pattern: str,
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_cleared: Callable[[int], None] | None = None,
) -> RollbackResult:
    """Clear generated sis_user_id values and record the run.

    Args:
        db_path: Path to the SQLite database.
        pattern: sis_user_id pattern whose prefix selects the pseudonyms.
        batch_size: Pseudonyms loaded per batch.
        on_cleared: Called with the running count after each cleared pseudonym.

    Returns:
        RollbackResult with cleared and failed counts.

    Raises:
        RollbackRefusedError: If the pattern has no literal prefix.
    """
    prefix = rollback_prefix(pattern)

    with get_session(db_path) as session:
        run = PopulationRun(mode=RunMode.ROLLBACK, pattern=pattern)
        session.add(run)
        session.commit()
        session.refresh(run)
        assert run.id is not None
        run_id: int = run.id

        try:
            cleared, failed, errors = clear_sis_user_ids(
                session, prefix, batch_size=batch_size, on_cleared=on_cleared
            )
            run.mark_completed(
                updated_count=cleared,
                failed_count=failed,
                error_count=len(errors),
            )
            session.add(run)
            session.commit()
        except Exception as e:
            session.rollback()
            run.mark_failed(f"Unexpected error: {e}")
            session.add(run)
            session.commit()
            logger.warning("Rollback run %s failed: %s", run_id, run.to_dict())
            raise

    result = RollbackResult(
        run_id=run_id, prefix=prefix, cleared=cleared, failed=failed, errors=errors
    )
    logger.info("Rollback run %s complete: %s", run_id, result.to_dict())
    return result
