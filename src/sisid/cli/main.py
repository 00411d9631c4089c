"""Main CLI application for canvas-sisid.

Provides the root Typer application with version flag, verbose logging and
the four run modes. Running with no mode runs update.
"""

from __future__ import annotations

import logging

import typer

from sisid import __version__

# Create main application
app: typer.Typer = typer.Typer(
    name="sisid",
    add_completion=False,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"canvas-sisid (sisid) version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Enable verbose/debug output."""
    if value:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("sisid").setLevel(logging.DEBUG)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug output.",
        callback=verbose_callback,
        is_eager=True,
    ),
) -> None:
    """canvas-sisid: give every enrolled user a SIS user ID.

    For each active enrollment of the configured types, make sure the user
    has an active pseudonym in the course's root account, that the pseudonym
    carries a generated sis_user_id, and that the enrollment is linked to it.
    \b
    Modes:
      update     Create pseudonyms, set SIS IDs, link enrollments (default)
      analyze    Report the current state, change nothing
      verify     Report the state after an update, change nothing
      rollback   Remove generated sis_user_id values
    \b
    Configuration (environment or ~/.config/sisid/config.toml):
      PATTERN=Canvas-%05d                  sis_user_id pattern
      BATCH_SIZE=1000                      records per batch
      ENROLLMENT_TYPES=StudentEnrollment   comma-separated types
      SISID_DB_PATH=...                    database location
    """
    if ctx.invoked_subcommand is None:
        ctx.invoke(populate_cmd.update)


# Import and register commands
# These imports are at the bottom to avoid circular imports
from sisid.cli import config_cmd, db_cmd, populate_cmd  # noqa: E402

app.command("update")(populate_cmd.update)
app.command("analyze")(populate_cmd.analyze)
app.command("verify")(populate_cmd.verify)
app.command("rollback")(populate_cmd.rollback)

app.add_typer(config_cmd.app, name="config")
app.add_typer(db_cmd.app, name="db")


if __name__ == "__main__":
    app()
