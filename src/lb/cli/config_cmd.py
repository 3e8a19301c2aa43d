"""Config command group for lms-batch CLI.

Commands:
- lb config show: Display effective configuration
"""

from __future__ import annotations

import typer

from lb.cli.output import cli_error, cli_warning
from lb.config.settings import ConfigError, load_settings

app = typer.Typer(
    name="config",
    help="""Inspect lms-batch configuration.

Configuration is read from environment variables only. Secrets (AUTH_KEY,
CLIENT_SECRET, CREATOR_PASSWORD) are never displayed.
""",
    no_args_is_help=True,
)


@app.command("show")
def config_show() -> None:
    """Display the effective configuration.

    Shows every setting after defaults are applied, and any validation
    problems that would stop 'lb enroll' from running.
    """
    try:
        settings = load_settings()
    except ConfigError as e:
        cli_error(str(e))

    typer.echo("Current configuration:")
    for key, value in settings.to_display_dict().items():
        typer.echo(f"  {key + ':':<28}{value}")

    errors = settings.validate()
    if errors:
        typer.echo()
        for error in errors:
            cli_warning(error)
        raise typer.Exit(1)
