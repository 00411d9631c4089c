"""Tests for rollback of generated SIS user IDs."""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, SQLModel, select

from sisid.ledger.models import DELETED, PopulationRun, Pseudonym, RunMode, RunStatus
from sisid.ledger.store import get_session
from sisid.ledger.validation import SaveResult, save
from sisid.populate.rollback import (
    RollbackRefusedError,
    apply_rollback,
    preview_rollback,
    rollback_prefix,
)


def sis_user_ids(db_path: Path) -> dict[int, str | None]:
    with get_session(db_path) as session:
        return {p.id: p.sis_user_id for p in session.exec(select(Pseudonym)).all()}


@pytest.fixture
def seeded(canvas):
    """Pseudonyms with generated, foreign and inactive sis_user_id values."""
    root = canvas.root_account()
    pseudonyms = {}
    for user_id, sis_user_id, state in [
        (1, "SIS-000001", "active"),
        (2, "SIS-000002", "active"),
        (3, "Canvas-00003", "active"),
        (4, "SIS-000004", DELETED),
        (5, None, "active"),
        (6, "SISX00006", "active"),
    ]:
        user = canvas.user(user_id=user_id)
        pseudonyms[user_id] = canvas.pseudonym(
            user, root, sis_user_id=sis_user_id, workflow_state=state
        )
    return pseudonyms


class TestRollbackPrefix:
    def test_prefix(self) -> None:
        assert rollback_prefix("SIS-%06d") == "SIS-"

    def test_refuses_pattern_without_prefix(self) -> None:
        with pytest.raises(RollbackRefusedError):
            rollback_prefix("%05d")


class TestPreview:
    def test_counts_only_active_matches(self, seeded, db_path: Path) -> None:
        with get_session(db_path) as session:
            preview = preview_rollback(session, "SIS-%06d")
            sample = [p.sis_user_id for p in preview.sample]

        assert preview.prefix == "SIS-"
        assert preview.count == 2
        assert sample == ["SIS-000001", "SIS-000002"]

    def test_no_matches(self, seeded, db_path: Path) -> None:
        with get_session(db_path) as session:
            preview = preview_rollback(session, "Nope-%d")

        assert preview.count == 0
        assert preview.sample == []

    def test_wildcards_in_prefix_are_literal(self, canvas, db_path: Path) -> None:
        root = canvas.root_account()
        canvas.pseudonym(canvas.user(user_id=1), root, sis_user_id="S_00001")
        canvas.pseudonym(canvas.user(user_id=2), root, sis_user_id="SX00002")

        with get_session(db_path) as session:
            preview = preview_rollback(session, "S_%05d")
            sample = [p.sis_user_id for p in preview.sample]

        assert sample == ["S_00001"]


class TestApplyRollback:
    def test_clears_only_matching_active_pseudonyms(self, seeded, db_path: Path) -> None:
        result = apply_rollback(db_path, "SIS-%06d", batch_size=1)

        assert result.cleared == 2
        assert result.failed == 0
        after = sis_user_ids(db_path)
        assert after[seeded[1].id] is None
        assert after[seeded[2].id] is None
        assert after[seeded[3].id] == "Canvas-00003"
        assert after[seeded[4].id] == "SIS-000004"
        assert after[seeded[6].id] == "SISX00006"

    def test_zero_matches(self, seeded, db_path: Path) -> None:
        before = sis_user_ids(db_path)

        result = apply_rollback(db_path, "Nope-%d")

        assert result.cleared == 0
        assert sis_user_ids(db_path) == before

    def test_reports_progress(self, seeded, db_path: Path) -> None:
        seen: list[int] = []

        apply_rollback(db_path, "SIS-%06d", on_cleared=seen.append)

        assert seen == [1, 2]

    def test_records_run(self, seeded, db_path: Path) -> None:
        result = apply_rollback(db_path, "SIS-%06d")

        with get_session(db_path) as session:
            run = session.get(PopulationRun, result.run_id)
            assert run.mode == RunMode.ROLLBACK
            assert run.status == RunStatus.COMPLETED
            assert run.updated_count == 2

    def test_logs_result(self, seeded, db_path: Path, caplog) -> None:
        with caplog.at_level("INFO", logger="sisid.populate.rollback"):
            result = apply_rollback(db_path, "SIS-%06d")

        assert result.to_dict() == {
            "run_id": result.run_id,
            "prefix": "SIS-",
            "cleared": 2,
            "failed": 0,
            "errors": [],
        }
        assert f"Rollback run {result.run_id} complete" in caplog.text
        assert "'cleared': 2" in caplog.text

    def test_refuses_empty_prefix(self, seeded, db_path: Path) -> None:
        with pytest.raises(RollbackRefusedError):
            apply_rollback(db_path, "%06d")

        assert sis_user_ids(db_path)[seeded[1].id] == "SIS-000001"


class TestRollbackFailures:
    def test_failed_clear_is_counted_and_skipped(
        self, seeded, db_path: Path, monkeypatch
    ) -> None:
        stuck_id = seeded[1].id

        def reject_first(session: Session, record: SQLModel, **kwargs) -> SaveResult:
            if record.id == stuck_id:
                session.rollback()
                return SaveResult(ok=False, errors=["record is locked"])
            return save(session, record, **kwargs)

        monkeypatch.setattr("sisid.populate.rollback.save", reject_first)

        result = apply_rollback(db_path, "SIS-%06d", batch_size=10)

        assert result.cleared == 1
        assert result.failed == 1
        assert result.errors == [f"Failed to clear pseudonym {stuck_id}: record is locked"]
        after = sis_user_ids(db_path)
        assert after[stuck_id] == "SIS-000001"
        assert after[seeded[2].id] is None

    def test_database_error_is_counted_and_skipped(
        self, seeded, db_path: Path, monkeypatch
    ) -> None:
        stuck_id = seeded[1].id

        def fail_first(session: Session, record: SQLModel, **kwargs) -> SaveResult:
            if record.id == stuck_id:
                raise OperationalError("UPDATE pseudonym", {}, Exception("disk I/O error"))
            return save(session, record, **kwargs)

        monkeypatch.setattr("sisid.populate.rollback.save", fail_first)

        result = apply_rollback(db_path, "SIS-%06d", batch_size=1)

        assert (result.cleared, result.failed) == (1, 1)
        assert result.errors[0].startswith(f"Failed to clear pseudonym {stuck_id}:")
        assert "disk I/O error" in result.errors[0]
        after = sis_user_ids(db_path)
        assert after[stuck_id] == "SIS-000001"
        assert after[seeded[2].id] is None

        with get_session(db_path) as session:
            run = session.get(PopulationRun, result.run_id)
            assert run.status == RunStatus.COMPLETED
            assert (run.updated_count, run.failed_count) == (1, 1)
