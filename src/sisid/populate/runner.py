"""Update run: reconcile every in-scope enrollment, batch by batch.

Each run is recorded in population_run. Failures on single enrollments are
counted and the run continues. A failure to resolve the scope itself (e.g.
the database is unavailable) marks the run failed and is re-raised.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlmodel import Session

from sisid.ledger.models import PopulationRun, RunMode
from sisid.ledger.scope import DEFAULT_BATCH_SIZE, count_enrollments, iter_enrollment_batches
from sisid.ledger.store import get_session
from sisid.populate.reconcile import ReconcileResult, RunStats, reconcile

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 100

ResultCallback = Callable[[ReconcileResult], None]
ProgressCallback = Callable[[int, int], None]


@dataclass
class UpdateResult:
    """Result of an update run."""

    run_id: int
    total: int
    stats: RunStats


def run_update(
    db_path: Path | str,
    pattern: str,
    enrollment_types: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
    on_start: Callable[[int], None] | None = None,
    on_result: ResultCallback | None = None,
    on_progress: ProgressCallback | None = None,
) -> UpdateResult:
    """Reconcile all active enrollments of the given types.

    Args:
        db_path: Path to the SQLite database.
        pattern: sis_user_id pattern, e.g. "Canvas-%05d".
        enrollment_types: Enrollment types in scope.
        batch_size: Enrollments loaded per batch.
        on_start: Called once with the total number of enrollments.
        on_result: Called with each enrollment's ReconcileResult.
        on_progress: Called with (processed, total) every PROGRESS_EVERY records.

    Returns:
        UpdateResult with the run id, total and accumulated stats.
    """
    with get_session(db_path) as session:
        run = PopulationRun(mode=RunMode.UPDATE, pattern=pattern)
        session.add(run)
        session.commit()
        session.refresh(run)
        assert run.id is not None  # After commit, id is guaranteed to be set
        run_id: int = run.id

        try:
            total = count_enrollments(session, enrollment_types)
            logger.info(
                "Update run %s: %d enrollments, pattern %r, batch size %d",
                run_id,
                total,
                pattern,
                batch_size,
            )
            if on_start:
                on_start(total)

            stats = reconcile_enrollments(
                session,
                pattern,
                enrollment_types,
                batch_size=batch_size,
                total=total,
                on_result=on_result,
                on_progress=on_progress,
            )

            run.mark_completed(
                created_count=stats.created,
                updated_count=stats.updated,
                linked_count=stats.linked,
                skipped_count=stats.skipped,
                failed_count=stats.failed,
                error_count=stats.error_count,
            )
            session.add(run)
            session.commit()
            logger.info("Update run %s complete: %s", run_id, stats.to_dict())

            return UpdateResult(run_id=run_id, total=total, stats=stats)

        except Exception as e:
            session.rollback()
            run.mark_failed(f"Unexpected error: {e}")
            session.add(run)
            session.commit()
            logger.warning("Update run %s failed: %s", run_id, run.to_dict())
            raise


def reconcile_enrollments(
    session: Session,
    pattern: str,
    enrollment_types: Sequence[str],
    batch_size: int = DEFAULT_BATCH_SIZE,
    total: int | None = None,
    on_result: ResultCallback | None = None,
    on_progress: ProgressCallback | None = None,
) -> RunStats:
    """Reconcile in-scope enrollments using an existing session."""
    stats = RunStats()

    for batch in iter_enrollment_batches(session, enrollment_types, batch_size):
        logger.debug("Processing batch of %d enrollments", len(batch))
        for enrollment in batch:
            result = reconcile(session, enrollment, pattern)
            stats.record(result)
            if on_result:
                on_result(result)

            if on_progress and total and stats.processed % PROGRESS_EVERY == 0:
                on_progress(stats.processed, total)

    return stats
