"""Enroll command for lms-batch CLI.

Reads the learner roster, enrolls every learner into the courses of their
learner profiles, and writes the enrollment status report.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import typer

from lb.api.auth import authenticate
from lb.api.client import LmsAuthenticationError, LmsClient, LmsClientError
from lb.cli.output import cli_error, cli_success, cli_warning, configure_logging
from lb.config.settings import ConfigError, Settings, load_settings
from lb.enrollment.orchestrator import EnrollmentOrchestrator
from lb.enrollment.report import write_report
from lb.enrollment.roster import RosterError, load_enrollment_records

if TYPE_CHECKING:
    from lb.enrollment.models import EnrollmentRecord, EnrollmentResult, EnrollmentStats

logger = logging.getLogger(__name__)


async def run_enrollment(
    settings: Settings, records: list[EnrollmentRecord]
) -> tuple[list[EnrollmentResult], EnrollmentStats]:
    """Authenticate and run the orchestrator over all records."""
    async with LmsClient(settings) as client:
        session = await authenticate(settings, client)
        orchestrator = EnrollmentOrchestrator.from_settings(client, session, settings)
        results = await orchestrator.run(records)
    return results, orchestrator.stats


def enroll() -> None:
    """Enroll learners from the roster CSV into their learner profiles' courses.

    The roster is read from LEARNER_CSV_PATH and must have 'email' and
    'learner_profile_code' columns. A profile code cell may hold several
    comma-separated codes.
    \b
    The report is written to REPORTS_DIR/enrollment-status.csv with one row
    per user, learner profile, and course.
    \b
    Tuning (environment):
      ENROLLMENT_BATCH_SIZE       Roster rows processed concurrently (default 5)
      COURSE_BATCH_SIZE           Concurrent enrollments per profile (default 1)
      ENROLL_USER_WAIT_INTERVAL   Pause after each user, in ms (default 0)
    """
    try:
        settings = load_settings()
    except ConfigError as e:
        cli_error(str(e))

    errors = settings.validate()
    if errors:
        cli_error("Configuration errors:\n" + "\n".join(f"  - {e}" for e in errors))

    configure_logging(settings.logging_level)

    try:
        records = load_enrollment_records(settings.learner_csv_path)
    except RosterError as e:
        cli_error(str(e))

    typer.echo(f"Enrolling {len(records)} roster row(s) from {settings.learner_csv_path}...")

    try:
        results, stats = asyncio.run(run_enrollment(settings, records))
    except LmsAuthenticationError as e:
        cli_error(f"Authentication failed: {e}")
    except LmsClientError as e:
        cli_error(f"LMS API error: {e}")
    except Exception as e:
        logger.exception("Enrollment run failed")
        cli_error(f"Enrollment run failed: {e}")

    try:
        write_report(settings.report_path, results)
    except OSError as e:
        cli_error(f"Could not write report to {settings.report_path}: {e}")

    cli_success("Finished processing all enrollments.")
    typer.echo(f"  Successful: {stats.success_count}")
    typer.echo(f"  Failed:     {stats.failure_count}")
    typer.echo(f"  Report:     {settings.report_path}")

    if stats.failure_count:
        cli_warning(f"{stats.failure_count} enrollment(s) failed. See the report for details.")
