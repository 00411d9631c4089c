"""CLI output utilities for canvas-sisid.

Provides consistent error, success, and warning messages, plus the banners
and summaries shared by the populate commands.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Never

import typer

if TYPE_CHECKING:
    from sisid.populate.reconcile import RunStats

RULE_WIDTH = 70
SUMMARY_ERROR_LIMIT = 10


def cli_error(message: str, exit_code: int = 1) -> Never:
    """Print error message to stderr and exit."""
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    raise typer.Exit(exit_code)


def cli_success(message: str) -> None:
    """Print success message."""
    typer.secho(message, fg=typer.colors.GREEN)


def cli_warning(message: str) -> None:
    """Print warning message."""
    typer.secho(f"Warning: {message}", fg=typer.colors.YELLOW, err=True)


def print_header(mode: str) -> None:
    typer.echo()
    typer.echo("=" * RULE_WIDTH)
    typer.echo("SIS User ID Population")
    typer.echo("=" * RULE_WIDTH)
    typer.echo(f"Mode: {mode}")
    typer.echo(f"Timestamp: {datetime.now().astimezone().isoformat(timespec='seconds')}")
    typer.echo("=" * RULE_WIDTH)
    typer.echo()


def print_footer() -> None:
    typer.echo()
    typer.echo("=" * RULE_WIDTH)
    cli_success("Complete!")
    typer.echo("=" * RULE_WIDTH)
    typer.echo()


def print_section(title: str) -> None:
    typer.echo(f"{title}:")
    typer.echo("-" * RULE_WIDTH)


def print_progress(current: int, total: int) -> None:
    """Print a timestamped progress line."""
    percent = round(current / total * 100, 1) if total else 0
    timestamp = datetime.now().strftime("%H:%M:%S")
    typer.echo(f"\n[{timestamp}] Progress: {current}/{total} ({percent}%)")


def print_errors(errors: list[str], total: int | None = None) -> None:
    """Print the first SUMMARY_ERROR_LIMIT errors and how many were left out."""
    if not errors:
        return
    total = len(errors) if total is None else total

    typer.echo()
    print_section(f"Errors (first {SUMMARY_ERROR_LIMIT})")
    for error in errors[:SUMMARY_ERROR_LIMIT]:
        typer.echo(f"  - {error}")
    if total > SUMMARY_ERROR_LIMIT:
        typer.echo(f"  ... and {total - SUMMARY_ERROR_LIMIT} more")


def print_summary(stats: RunStats) -> None:
    """Print the totals of an update run."""
    typer.echo()
    typer.echo("=" * RULE_WIDTH)
    typer.echo("UPDATE SUMMARY")
    typer.echo("=" * RULE_WIDTH)
    typer.echo(f"Pseudonyms created: {stats.created}")
    typer.echo(f"Pseudonyms updated with sis_user_id: {stats.updated}")
    typer.echo(f"Enrollments linked to sis_pseudonym: {stats.linked}")
    typer.echo(f"Skipped (conflicts): {stats.skipped}")
    if stats.failed:
        typer.secho(f"Failed: {stats.failed}", fg=typer.colors.RED)
    else:
        typer.echo(f"Failed: {stats.failed}")
    typer.echo("=" * RULE_WIDTH)

    print_errors(stats.errors, stats.error_count)

    print_footer()
