"""Roster input for bulk enrollment.

Reads the learner CSV and converts data rows into EnrollmentRecords.
"""

from __future__ import annotations

import csv
import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING

from lb.enrollment.models import EnrollmentRecord

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

EMAIL_HEADER = "email"
PROFILE_CODE_HEADER = "learner_profile_code"
REQUIRED_HEADERS = (PROFILE_CODE_HEADER, EMAIL_HEADER)


class RosterError(Exception):
    """Raised when the roster file cannot be used."""

    pass


def read_roster(path: Path) -> list[list[str]]:
    """Read a CSV file into a list of string rows.

    Raises:
        RosterError: If the file is missing, unreadable, or has no header row.
    """
    try:
        with path.open(newline="", encoding="utf-8-sig") as f:
            rows = list(csv.reader(f))
    except FileNotFoundError:
        raise RosterError(f"Roster file not found: {path}") from None
    except (OSError, UnicodeDecodeError, csv.Error) as e:
        raise RosterError(f"Could not read roster file {path}: {e}") from e

    if not rows:
        raise RosterError(f"Roster file {path} has no header row")
    return rows


def validate_headers(headers: Sequence[str], required: Iterable[str] = REQUIRED_HEADERS) -> None:
    """Ensure every required header is present.

    Raises:
        RosterError: Naming all missing headers.
    """
    missing = [h for h in required if h not in headers]
    if missing:
        raise RosterError(f"Missing required headers: {', '.join(missing)}")


def parse_learner_profile_codes(cell: str | None) -> list[str]:
    """Split a learner_profile_code cell into codes.

    Double quotes are removed, the cell is split on commas, and each code is
    trimmed. Empty codes are dropped; order and duplicates are kept.
    """
    if not cell:
        return []
    return [code.strip() for code in cell.replace('"', "").split(",") if code.strip()]


def rows_to_records(rows: Sequence[Sequence[str]]) -> list[EnrollmentRecord]:
    """Convert header + data rows into records.

    Cells map to headers by position. Missing trailing cells read as empty.
    """
    headers = [h.strip() for h in rows[0]]
    validate_headers(headers)

    records: list[EnrollmentRecord] = []
    for row in rows[1:]:
        values = {header: row[i] if i < len(row) else "" for i, header in enumerate(headers)}
        records.append(
            EnrollmentRecord(
                email=(values.get(EMAIL_HEADER) or "").strip(),
                learner_profile_codes=tuple(
                    parse_learner_profile_codes(values.get(PROFILE_CODE_HEADER))
                ),
                row=values,
            )
        )
    return records


def load_enrollment_records(path: Path) -> list[EnrollmentRecord]:
    """Read and validate the roster, returning one record per data row."""
    records = rows_to_records(read_roster(path))
    logger.info("Loaded %d roster row(s) from %s", len(records), path)
    return records
