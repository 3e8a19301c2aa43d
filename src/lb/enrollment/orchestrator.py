"""Bulk enrollment orchestrator.

Drives the enrollment pipeline for a roster:

    batch of records -> per-user pipeline -> per-profile pipeline -> per-course attempt

Batches run one after another. Users within a batch and learner profiles
within a user run concurrently. Course attempts within a profile are capped
by course_batch_size.

Every layer converts failures into EnrollmentResults, so a single bad row,
profile, or course never aborts its siblings. The shared ledger and stats
are only mutated between awaits, so concurrent tasks cannot interleave a
read-modify-write on them.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from lb.api.client import extract_error_message
from lb.enrollment.models import (
    EnrollmentLedger,
    EnrollmentRecord,
    EnrollmentResult,
    EnrollmentStats,
    EnrollmentStatus,
)

if TYPE_CHECKING:
    from lb.api.auth import Session
    from lb.api.client import LmsClient, UserIdentity
    from lb.config.settings import Settings

logger = logging.getLogger(__name__)

MISSING_EMAIL = "Username/Email input is missing"
MISSING_PROFILE_CODE = "Learner Profile code input is missing"
PROFILE_NOT_FOUND = "Learner profile does not exist"
NO_COURSES_IN_PROFILE = "No courses found in learner profile"
NO_VALID_COURSES = "No valid courses found for learner profile"
ALREADY_ENROLLED = "User has already enrolled to this course"
NO_BATCH_FOUND = "No batch found for course"

ALREADY_ENROLLED_MARKER = "user has already enrolled"


def classify_enrollment_error(message: str) -> EnrollmentStatus:
    """Classify a rejected enrollment by its upstream message.

    The LMS exposes no error code for duplicate enrollments, so the known
    "user has already enrolled" message is treated as Skipped and everything
    else as Failure.
    """
    if ALREADY_ENROLLED_MARKER in message.lower():
        return EnrollmentStatus.SKIPPED
    return EnrollmentStatus.FAILURE


def _reraise_if_fatal(outcome: object) -> None:
    # gather(return_exceptions=True) also returns cancellations; those must not become results.
    if isinstance(outcome, BaseException) and not isinstance(outcome, Exception):
        raise outcome


class EnrollmentOrchestrator:
    """Runs bulk enrollment for a list of roster records.

    A single orchestrator owns the ledger and stats for one run. Calling
    run() again on the same orchestrator reuses the ledger, so courses
    already enrolled are skipped instead of resubmitted.
    """

    def __init__(
        self,
        client: LmsClient,
        session: Session,
        *,
        enrollment_batch_size: int = 5,
        course_batch_size: int = 1,
        enroll_user_wait_interval: int = 0,
        ledger: EnrollmentLedger | None = None,
        stats: EnrollmentStats | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            client: LMS client used for all upstream calls.
            session: Authenticated admin session passed to every call.
            enrollment_batch_size: Roster rows processed concurrently per batch.
            course_batch_size: Maximum in-flight course attempts per learner profile.
            enroll_user_wait_interval: Pause after each user pipeline, in milliseconds.
            ledger: Existing ledger to continue from; a new one is created by default.
            stats: Existing counters to continue from; new ones are created by default.

        Raises:
            ValueError: If a batch size is not a positive integer or the wait is negative.
        """
        if enrollment_batch_size <= 0:
            raise ValueError(f"enrollment_batch_size must be positive, got {enrollment_batch_size}")
        if course_batch_size <= 0:
            raise ValueError(f"course_batch_size must be positive, got {course_batch_size}")
        if enroll_user_wait_interval < 0:
            raise ValueError(
                f"enroll_user_wait_interval must not be negative, got {enroll_user_wait_interval}"
            )

        self._client = client
        self._session = session
        self.enrollment_batch_size = enrollment_batch_size
        self.course_batch_size = course_batch_size
        self.enroll_user_wait_interval = enroll_user_wait_interval
        self.ledger = ledger if ledger is not None else EnrollmentLedger()
        self.stats = stats if stats is not None else EnrollmentStats()

    @classmethod
    def from_settings(
        cls, client: LmsClient, session: Session, settings: Settings
    ) -> EnrollmentOrchestrator:
        return cls(
            client,
            session,
            enrollment_batch_size=settings.enrollment_batch_size,
            course_batch_size=settings.course_batch_size,
            enroll_user_wait_interval=settings.enroll_user_wait_interval,
        )

    # -------------------------------------------------------------------------
    # Batched driver
    # -------------------------------------------------------------------------

    async def run(self, records: Sequence[EnrollmentRecord]) -> list[EnrollmentResult]:
        """Process all records in sequential batches.

        Returns:
            Results in roster order; at least one per record.
        """
        started = time.perf_counter()
        total_batches = math.ceil(len(records) / self.enrollment_batch_size)

        results: list[EnrollmentResult] = []
        for index, start in enumerate(range(0, len(records), self.enrollment_batch_size), start=1):
            batch = records[start : start + self.enrollment_batch_size]
            logger.info("Processing batch %d of %d", index, total_batches)
            results.extend(await self.process_batch(batch))

        logger.info("Total enrollment process took %.2fs", time.perf_counter() - started)
        logger.info("Final Status: %s", self.stats.summary())
        return results

    async def process_batch(self, batch: Sequence[EnrollmentRecord]) -> list[EnrollmentResult]:
        """Run every record's pipeline concurrently and collect all outcomes."""
        outcomes = await asyncio.gather(
            *(self.process_user(record) for record in batch),
            return_exceptions=True,
        )

        results: list[EnrollmentResult] = []
        for record, outcome in zip(batch, outcomes, strict=True):
            _reraise_if_fatal(outcome)
            if isinstance(outcome, Exception):
                logger.error("Batch processing failed for %s: %s", record.email or "unknown", outcome)
                results.append(
                    EnrollmentResult.failure(
                        record.email or "unknown", f"Batch processing failed: {outcome}"
                    )
                )
            else:
                results.extend(outcome)
        return results

    # -------------------------------------------------------------------------
    # Per-user pipeline
    # -------------------------------------------------------------------------

    async def process_user(self, record: EnrollmentRecord) -> list[EnrollmentResult]:
        """Produce all results for one roster record.

        Always waits enroll_user_wait_interval before returning, to throttle
        the request rate across users.
        """
        email = record.email.strip()
        started = time.perf_counter()
        if not email or not record.learner_profile_codes:
            logger.warning("Incomplete roster row: %s", dict(record.row))
        try:
            return await self._process_user(email, record.learner_profile_codes)
        finally:
            logger.info("User: %s => %s", email, self.stats.summary())
            logger.debug(
                "Enrollment process for user %s took %.2fs", email, time.perf_counter() - started
            )
            await asyncio.sleep(self.enroll_user_wait_interval / 1000)

    async def _process_user(
        self, email: str, codes: Sequence[str]
    ) -> list[EnrollmentResult]:
        if not email:
            self.stats.record_failure()
            return [EnrollmentResult.failure(email, MISSING_EMAIL)]

        if not codes:
            self.stats.record_failure()
            return [EnrollmentResult.failure(email, MISSING_PROFILE_CODE)]

        try:
            identity = await self._client.resolve_user(self._session, email)
        except Exception as e:
            message = extract_error_message(e, "Failed to process enrollments")
            logger.error("Error processing enrollments for %s: %s", email, message)
            # One underlying failure, reported once per requested profile.
            self.stats.record_failure()
            return [EnrollmentResult.failure(email, message, learner_profile=code) for code in codes]

        self.ledger.ensure(email)

        outcomes = await asyncio.gather(
            *(self.process_profile(email, identity, code) for code in codes),
            return_exceptions=True,
        )

        results: list[EnrollmentResult] = []
        for code, outcome in zip(codes, outcomes, strict=True):
            _reraise_if_fatal(outcome)
            if isinstance(outcome, Exception):
                message = extract_error_message(outcome, type(outcome).__name__)
                logger.error("Profile %s failed for %s: %s", code, email, message)
                results.append(
                    EnrollmentResult.failure(
                        email, f"Profile processing failed: {message}", learner_profile=code
                    )
                )
            else:
                results.extend(outcome)

        self.stats.record_results(results)
        return results

    # -------------------------------------------------------------------------
    # Per-profile pipeline
    # -------------------------------------------------------------------------

    async def process_profile(
        self, email: str, identity: UserIdentity, code: str
    ) -> list[EnrollmentResult]:
        """Enroll a resolved user into every live course of a learner profile.

        Missing profiles or courses are reported as Skipped. Lookup errors
        propagate to the per-user pipeline.
        """
        profile_id = await self._client.search_learner_profile(self._session, code)
        if not profile_id:
            logger.info("Learner profile %s does not exist", code)
            return [EnrollmentResult.skipped(email, PROFILE_NOT_FOUND, learner_profile=code)]

        node_ids = await self._client.get_profile_courses(self._session, profile_id)
        if not node_ids:
            logger.info("No courses found in learner profile %s", code)
            return [EnrollmentResult.skipped(email, NO_COURSES_IN_PROFILE, learner_profile=code)]

        course_codes = await self._client.get_course_codes(self._session, node_ids)
        if not course_codes:
            logger.info("No valid courses found for learner profile %s", code)
            return [EnrollmentResult.skipped(email, NO_VALID_COURSES, learner_profile=code)]

        limiter = asyncio.Semaphore(self.course_batch_size)

        async def attempt(node_id: str, course_code: str) -> EnrollmentResult:
            async with limiter:
                return await self.process_course(email, identity, code, node_id, course_code)

        nodes = list(course_codes.items())
        outcomes = await asyncio.gather(
            *(attempt(node_id, course_code) for node_id, course_code in nodes),
            return_exceptions=True,
        )

        results: list[EnrollmentResult] = []
        for (_node_id, course_code), outcome in zip(nodes, outcomes, strict=True):
            _reraise_if_fatal(outcome)
            if isinstance(outcome, Exception):
                message = extract_error_message(outcome, type(outcome).__name__)
                results.append(
                    EnrollmentResult.failure(
                        email,
                        f"Enrollment failed: {message}",
                        learner_profile=code,
                        course_code=course_code,
                    )
                )
            else:
                results.append(outcome)
        return results

    # -------------------------------------------------------------------------
    # Per-course attempt
    # -------------------------------------------------------------------------

    async def process_course(
        self,
        email: str,
        identity: UserIdentity,
        profile_code: str,
        node_id: str,
        course_code: str,
    ) -> EnrollmentResult:
        """Attempt one enrollment, skipping courses already enrolled this run."""
        if self.ledger.has(email, node_id):
            logger.info("    User %s already enrolled in course %s", email, course_code)
            return EnrollmentResult.skipped(
                email, ALREADY_ENROLLED, learner_profile=profile_code, course_code=course_code
            )

        try:
            batch_id = await self._client.get_active_batch(self._session, node_id)
            if not batch_id:
                logger.info("    No batch found for course %s", course_code)
                return EnrollmentResult.failure(
                    email, NO_BATCH_FOUND, learner_profile=profile_code, course_code=course_code
                )

            await self._client.enroll(self._session, node_id, batch_id, identity)
        except Exception as e:
            message = extract_error_message(e, "Failed to enroll to the course")
            logger.warning("    Failed to enroll %s in course %s: %s", email, course_code, message)
            return EnrollmentResult(
                user_id=email,
                learner_profile=profile_code,
                course_code=course_code,
                status=classify_enrollment_error(message),
                reason=message,
            )

        self.ledger.record(email, node_id)
        logger.info("    Enrolled %s in course %s, batch %s", email, course_code, batch_id)
        return EnrollmentResult.success(email, profile_code, course_code)
