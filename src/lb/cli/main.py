"""Main CLI application for lms-batch.

Provides the root Typer application with version and verbose flags.
"""

from __future__ import annotations

import logging

import typer

from lb import __version__
from lb.cli.output import configure_logging

# Create main application
app: typer.Typer = typer.Typer(
    name="lb",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"lms-batch (lb) version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Enable verbose/debug output."""
    if value:
        configure_logging(logging.DEBUG)
        logging.getLogger("lb").setLevel(logging.DEBUG)


@app.callback()
def main(
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
    """lms-batch: bulk operations against a Sunbird-style LMS.

    Enroll learners into the courses of their learner profiles from a CSV
    roster, and write a per-course status report.
    \b
    Configuration comes from environment variables (BASE_URL, AUTH_KEY,
    CLIENT_ID, CLIENT_SECRET, CREATOR_USERNAME, CREATOR_PASSWORD, ...).
    \b
    Getting Started:
      1. lb config show    Check the effective configuration
      2. lb enroll         Enroll everyone in the roster CSV
    """
    pass


# Import and register commands
# These imports are at the bottom to avoid circular imports
from lb.cli import config_cmd, enroll_cmd  # noqa: E402

app.add_typer(config_cmd.app, name="config")
app.command("enroll")(enroll_cmd.enroll)


if __name__ == "__main__":
    app()
