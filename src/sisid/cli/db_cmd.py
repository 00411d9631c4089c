"""Database command group for canvas-sisid CLI.

Commands:
- sisid db migrate: Run pending migrations
- sisid db status: Show migration status, database info and the last run
"""

from __future__ import annotations

import typer

from sisid.cli.output import cli_error
from sisid.config.errors import ConfigurationError
from sisid.config.settings import load_settings
from sisid.ledger.queries import get_last_population_run
from sisid.ledger.store import get_db_info, get_migration_status, run_migrations

app = typer.Typer(
    name="db",
    help="""Database operations for canvas-sisid.

The database is a local SQLite file (~/.local/share/sisid/canvas.db by
default, or $SISID_DB_PATH). Run 'sisid db migrate' after first install and
after updates to ensure the schema is current.
""",
    no_args_is_help=True,
)


def _get_db_path() -> str:
    """Get the database path from settings."""
    try:
        return str(load_settings().db_path)
    except ConfigurationError as e:
        cli_error(str(e))


@app.command("migrate")
def db_migrate(
    no_backup: bool = typer.Option(
        False,
        "--no-backup",
        help="Skip automatic backup before migration.",
    ),
) -> None:
    """Run pending database migrations.

    A backup is created automatically before migration (unless --no-backup).
    """
    db_path = _get_db_path()

    typer.echo(f"Database: {db_path}")

    result = run_migrations(db_path, backup=not no_backup)

    if result["status"] == "up_to_date":
        typer.secho("Database is up to date.", fg=typer.colors.GREEN)
        return

    if result["status"] == "success":
        applied = result.get("applied", [])
        typer.secho(f"Applied {len(applied)} migration(s):", fg=typer.colors.GREEN)
        for rev in applied:
            typer.echo(f"  - {rev}")

        if "backup_path" in result:
            typer.echo(f"Backup created: {result['backup_path']}")

        typer.echo(f"Current revision: {result.get('current_revision', 'unknown')}")
    else:
        typer.secho("Migration failed!", fg=typer.colors.RED, err=True)
        if "error" in result:
            typer.echo(f"Error: {result['error']}", err=True)
        if "backup_available" in result:
            typer.echo(f"Backup available at: {result['backup_available']}")
        raise typer.Exit(1)


@app.command("status")
def db_status() -> None:
    """Show database, migration and last-run status."""
    db_path = _get_db_path()

    db_info = get_db_info(db_path)

    typer.echo("Database Information:")
    typer.echo(f"  Path: {db_info['path']}")
    typer.echo(f"  Exists: {db_info['exists']}")

    if db_info["exists"]:
        size_bytes = db_info.get("size_bytes", 0)
        size_kb = int(size_bytes) / 1024 if isinstance(size_bytes, int) else 0
        typer.echo(f"  Size: {size_kb:.1f} KB")
        typer.echo(f"  Tables: {db_info.get('tables', '(none)')}")
        typer.echo(f"  Journal mode: {db_info.get('journal_mode', 'unknown')}")
        typer.echo(f"  Foreign keys: {db_info.get('foreign_keys', 'unknown')}")

    typer.echo()

    migration_status = get_migration_status(db_path)

    typer.echo("Migration Status:")
    typer.echo(f"  Head revision: {migration_status['head_revision']}")
    typer.echo(f"  Current revision: {migration_status['current_revision']}")

    pending_raw = migration_status.get("pending_revisions", [])
    pending: list[str] = pending_raw if isinstance(pending_raw, list) else []
    if pending:
        typer.secho(f"  Pending migrations: {len(pending)}", fg=typer.colors.YELLOW)
        for rev in pending:
            typer.echo(f"    - {rev}")
        return

    typer.secho("  Status: Up to date", fg=typer.colors.GREEN)

    last_run = get_last_population_run(db_path)
    typer.echo()
    typer.echo("Last Run:")
    if last_run is None:
        typer.echo("  (none)")
        return
    typer.echo(f"  Mode: {last_run.mode.value}")
    typer.echo(f"  Status: {last_run.status.value}")
    typer.echo(f"  Pattern: {last_run.pattern}")
    typer.echo(f"  Started: {last_run.started_at.isoformat()}")
    typer.echo(
        f"  Created: {last_run.created_count}, Updated: {last_run.updated_count}, "
        f"Linked: {last_run.linked_count}, Skipped: {last_run.skipped_count}, "
        f"Failed: {last_run.failed_count}"
    )
    if last_run.error_message:
        typer.echo(f"  Error: {last_run.error_message}")
