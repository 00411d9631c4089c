"""Config command group for canvas-sisid CLI.

Commands:
- sisid config show: Display the effective configuration
"""

from __future__ import annotations

import typer

from sisid.cli.output import cli_error
from sisid.config.errors import ConfigurationError
from sisid.config.settings import get_default_config_path, load_settings

app = typer.Typer(
    name="config",
    help="""Inspect canvas-sisid configuration.

Settings come from ~/.config/sisid/config.toml (or $SISID_CONFIG) and are
overridden by the environment: PATTERN, BATCH_SIZE, ENROLLMENT_TYPES,
SISID_DB_PATH, SISID_LOG_LEVEL.
""",
    no_args_is_help=True,
)


@app.command("show")
def config_show() -> None:
    """Display the effective configuration and any validation problems."""
    try:
        settings = load_settings()
    except ConfigurationError as e:
        cli_error(str(e))

    typer.echo("Current configuration:")
    if settings.config_path:
        typer.echo(f"  Config file:      {settings.config_path}")
    else:
        typer.echo(f"  Config file:      (none, looked for {get_default_config_path()})")
    typer.echo(f"  Pattern:          {settings.pattern}")
    typer.echo(f"  Batch size:       {settings.batch_size}")
    typer.echo(f"  Enrollment types: {', '.join(settings.enrollment_types)}")
    typer.echo(f"  Database:         {settings.db_path}")
    typer.echo(f"  Log level:        {settings.log_level}")

    errors = settings.validate()
    if errors:
        typer.echo()
        for error in errors:
            typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
