"""Populate commands for canvas-sisid CLI.

Commands:
- sisid update: Create pseudonyms, set SIS user IDs, link enrollments
- sisid analyze: Report the current state
- sisid verify: Report the state after an update
- sisid rollback: Remove generated SIS user IDs

Record-level failures are reported in the summary and never change the
exit status. Configuration and database errors exit with status 1.
"""

from __future__ import annotations

import logging
import time

import typer
from sqlalchemy.exc import SQLAlchemyError

from sisid.cli.output import (
    cli_error,
    cli_warning,
    print_errors,
    print_footer,
    print_header,
    print_progress,
    print_section,
    print_summary,
)
from sisid.config.errors import ConfigurationError
from sisid.config.settings import Settings, load_settings
from sisid.ledger.store import get_session
from sisid.populate.reconcile import ReconcileResult
from sisid.populate.report import (
    build_scope_report,
    example_identifiers,
    sample_linked_enrollments,
    sample_users_without_pseudonym,
)
from sisid.populate.rollback import (
    ROLLBACK_DELAY_SECONDS,
    apply_rollback,
    preview_rollback,
)
from sisid.populate.runner import run_update

ROLLBACK_DOT_EVERY = 100


def _load_settings(mode: str | None = None) -> Settings:
    """Load and validate settings for a mode, and check the database exists."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        cli_error(str(e))

    errors = settings.validate(mode)
    if errors:
        cli_error("Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors))

    logging.basicConfig(
        level=logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    sisid_logger = logging.getLogger("sisid")
    if sisid_logger.level == logging.NOTSET:
        sisid_logger.setLevel(settings.log_level_number)

    if not settings.db_path.exists():
        cli_error(f"Database not found at {settings.db_path}. Run 'sisid db migrate' first.")

    return settings


def update() -> None:
    """Create pseudonyms, set SIS user IDs and link enrollments (default).

    Safe to re-run: pseudonyms that already have a sis_user_id keep it, and
    enrollments already linked are left alone.
    \b
    Legend: C=Created, U=Updated, L=Linked, S=Skipped (conflict), F=Failed
    """
    settings = _load_settings()

    print_header("UPDATE MODE")

    def on_start(total: int) -> None:
        typer.echo(f"Processing {total} enrollments...")
        typer.echo(f"Pattern: {settings.pattern}")
        typer.echo(f"Batch size: {settings.batch_size}")
        typer.echo()
        typer.echo("Legend: C=Created, U=Updated, L=Linked, S=Skipped, F=Failed")
        typer.echo()

    def on_result(result: ReconcileResult) -> None:
        if result.markers:
            typer.echo(result.markers, nl=False)

    try:
        result = run_update(
            settings.db_path,
            pattern=settings.pattern,
            enrollment_types=settings.enrollment_types,
            batch_size=settings.batch_size,
            on_start=on_start,
            on_result=on_result,
            on_progress=print_progress,
        )
    except SQLAlchemyError as e:
        cli_error(f"Database error: {e}")

    typer.echo()
    print_summary(result.stats)


def analyze() -> None:
    """Report enrollments, pseudonyms and links without changing anything."""
    settings = _load_settings()

    print_header("ANALYSIS MODE")
    typer.echo("Analyzing enrolled users and pseudonyms...")
    typer.echo()

    types = settings.enrollment_types
    try:
        with get_session(settings.db_path) as session:
            report = build_scope_report(session, types)
            samples = (
                sample_users_without_pseudonym(session, types)
                if report.users_without_pseudonym > 0
                else []
            )
    except SQLAlchemyError as e:
        cli_error(f"Database error: {e}")

    print_section("Enrollment Statistics")
    typer.echo(f"Total active enrollments ({', '.join(types)}): {report.total_enrollments}")
    typer.echo(f"Unique users enrolled: {report.unique_users}")
    typer.echo()

    print_section("Pseudonym Status")
    typer.echo(f"Users WITH pseudonyms: {report.users_with_pseudonym}")
    typer.echo(f"Users WITHOUT pseudonyms: {report.users_without_pseudonym}")
    typer.echo()

    print_section("SIS User ID Status")
    typer.echo(f"Users WITH sis_user_id: {report.users_with_sis_user_id}")
    typer.echo(f"Users WITHOUT sis_user_id: {report.users_without_sis_user_id}")
    typer.echo()

    print_section("Enrollment Linkage Status")
    typer.echo(f"Enrollments linked to sis_pseudonym: {report.linked_enrollments}")
    typer.echo(f"Enrollments NOT linked: {report.unlinked_enrollments}")
    typer.echo()

    if samples:
        print_section(f"Sample users WITHOUT pseudonyms (first {len(samples)})")
        for sample in samples:
            typer.echo(f"  User ID: {sample.user_id}, Name: {sample.name}, Email: {sample.email}")
        typer.echo()

    print_section(f"Example SIS IDs that will be generated (pattern: '{settings.pattern}')")
    for user_id, sis_user_id in example_identifiers(settings.pattern):
        typer.echo(f"  User ID {user_id} -> '{sis_user_id}'")

    print_footer()


def verify() -> None:
    """Report SIS ID coverage and enrollment links after an update."""
    settings = _load_settings()

    print_header("VERIFICATION MODE")
    typer.echo("Verifying results...")
    typer.echo()

    types = settings.enrollment_types
    try:
        with get_session(settings.db_path) as session:
            report = build_scope_report(session, types)
            samples = (
                sample_linked_enrollments(session, types) if report.linked_enrollments > 0 else []
            )
    except SQLAlchemyError as e:
        cli_error(f"Database error: {e}")

    print_section("Verification Results")
    typer.echo(f"Total enrollments: {report.total_enrollments}")
    typer.echo(f"Unique users: {report.unique_users}")
    typer.echo(
        f"Users with sis_user_id: {report.users_with_sis_user_id}/{report.unique_users} "
        f"({report.sis_user_id_percentage}%)"
    )
    typer.echo(
        f"Enrollments linked to sis_pseudonym: "
        f"{report.linked_enrollments}/{report.total_enrollments} "
        f"({report.linked_percentage}%)"
    )
    typer.echo()

    if samples:
        print_section(f"Sample results ({len(samples)} random)")
        for sample in samples:
            typer.echo(
                f"  User {sample.user_id} ({sample.user_name}): SIS ID = '{sample.sis_user_id}'"
            )

    print_footer()


def rollback() -> None:
    """Remove sis_user_id values generated from the current pattern.

    Clears sis_user_id on every active pseudonym whose value starts with the
    pattern's literal prefix (e.g. "Canvas-" for Canvas-%05d). Waits a few
    seconds before changing anything; press Ctrl+C to cancel.
    """
    settings = _load_settings("rollback")

    print_header("ROLLBACK MODE")

    try:
        with get_session(settings.db_path) as session:
            preview = preview_rollback(session, settings.pattern)
            sample_lines = [
                f"  User {p.user_id} ({p.unique_id}): sis_user_id = '{p.sis_user_id}'"
                for p in preview.sample
            ]
    except SQLAlchemyError as e:
        cli_error(f"Database error: {e}")

    typer.echo(f"This will remove sis_user_id values matching pattern: {preview.prefix}*")
    typer.echo()

    if preview.count == 0:
        typer.echo(f"No pseudonyms found matching pattern '{preview.prefix}%'.")
        print_footer()
        return

    typer.echo(f"Found {preview.count} pseudonyms with sis_user_id matching pattern.")
    typer.echo()
    print_section(f"Sample (first {len(sample_lines)})")
    for line in sample_lines:
        typer.echo(line)
    typer.echo()

    cli_warning(f"This will remove sis_user_id from {preview.count} pseudonyms!")
    typer.echo(
        f"Press Ctrl+C now to cancel, or wait {ROLLBACK_DELAY_SECONDS} seconds to continue..."
    )
    time.sleep(ROLLBACK_DELAY_SECONDS)

    def on_cleared(count: int) -> None:
        if count % ROLLBACK_DOT_EVERY == 0:
            typer.echo(".", nl=False)

    try:
        result = apply_rollback(
            settings.db_path,
            settings.pattern,
            batch_size=settings.batch_size,
            on_cleared=on_cleared,
        )
    except SQLAlchemyError as e:
        cli_error(f"Database error: {e}")

    typer.echo()
    typer.echo("Rollback complete!")
    typer.echo(f"Updated: {result.cleared}, Failed: {result.failed}")
    print_errors(result.errors)

    print_footer()
