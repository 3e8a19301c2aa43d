"""Enrollment status report writer."""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from lb.enrollment.models import REPORT_HEADERS, EnrollmentResult

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


def write_report(path: Path, results: Iterable[EnrollmentResult]) -> int:
    """Write results to a CSV report, creating the parent directory if needed.

    Fields containing commas or quotes are quoted with inner quotes doubled.

    Returns:
        Number of result rows written (excluding the header).
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        writer.writerow(REPORT_HEADERS)
        for result in results:
            writer.writerow(result.as_row())
            count += 1

    logger.info("Wrote %d result row(s) to %s", count, path)
    return count
