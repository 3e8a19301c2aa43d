"""Data models for bulk enrollment.

EnrollmentRecord: one normalized roster row.
EnrollmentResult: one outcome per (user, learner profile, course) attempt.
EnrollmentLedger: in-memory record of enrollments completed this run.
EnrollmentStats: running success/failure counters.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

NONE_VALUE = "none"

REPORT_HEADERS = ("userId", "learnerProfile", "courseCode", "enrollmentStatus", "reason")


class EnrollmentStatus(str, Enum):
    """Outcome of an enrollment attempt."""

    SUCCESS = "Success"
    FAILURE = "Failure"
    SKIPPED = "Skipped"  # Expected condition; not counted in stats


@dataclass(frozen=True)
class EnrollmentRecord:
    """A roster row after normalization.

    ``row`` keeps the raw cells keyed by trimmed header, for diagnostics only.
    """

    email: str
    learner_profile_codes: tuple[str, ...]
    row: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)


@dataclass(frozen=True)
class EnrollmentResult:
    """Outcome of one (user, learner profile, course) triple."""

    user_id: str
    learner_profile: str
    course_code: str
    status: EnrollmentStatus
    reason: str = NONE_VALUE

    @classmethod
    def success(cls, user_id: str, learner_profile: str, course_code: str) -> EnrollmentResult:
        return cls(user_id, learner_profile, course_code, EnrollmentStatus.SUCCESS, NONE_VALUE)

    @classmethod
    def failure(
        cls,
        user_id: str,
        reason: str,
        learner_profile: str = NONE_VALUE,
        course_code: str = NONE_VALUE,
    ) -> EnrollmentResult:
        return cls(user_id, learner_profile, course_code, EnrollmentStatus.FAILURE, reason)

    @classmethod
    def skipped(
        cls,
        user_id: str,
        reason: str,
        learner_profile: str = NONE_VALUE,
        course_code: str = NONE_VALUE,
    ) -> EnrollmentResult:
        return cls(user_id, learner_profile, course_code, EnrollmentStatus.SKIPPED, reason)

    def as_row(self) -> list[str]:
        """Return the result as a report row, in REPORT_HEADERS order."""
        return [self.user_id, self.learner_profile, self.course_code, self.status.value, self.reason]


@dataclass
class EnrollmentLedger:
    """Course nodes each user was enrolled into during this run, keyed by email.

    Entries are only added after the LMS accepted an enrollment.
    """

    _enrollments: dict[str, set[str]] = field(default_factory=dict)

    def ensure(self, email: str) -> None:
        """Create an empty entry for email unless one already exists."""
        self._enrollments.setdefault(email, set())

    def has(self, email: str, node_id: str) -> bool:
        return node_id in self._enrollments.get(email, ())

    def record(self, email: str, node_id: str) -> None:
        self._enrollments.setdefault(email, set()).add(node_id)

    def __contains__(self, email: object) -> bool:
        return email in self._enrollments


@dataclass
class EnrollmentStats:
    """Running counters for a run. Skipped results are never counted."""

    success_count: int = 0
    failure_count: int = 0

    def record_failure(self, count: int = 1) -> None:
        self.failure_count += count

    def record_results(self, results: Iterable[EnrollmentResult]) -> None:
        """Add the Success and Failure results to the counters."""
        successes = failures = 0
        for result in results:
            if result.status is EnrollmentStatus.SUCCESS:
                successes += 1
            elif result.status is EnrollmentStatus.FAILURE:
                failures += 1
        self.success_count += successes
        self.failure_count += failures

    def summary(self) -> str:
        return f"Successful course enrollments: {self.success_count}, Failure: {self.failure_count}"
