"""Settings for lms-batch.

All configuration is sourced from environment variables. Secrets (auth key,
client secret, creator password) are held in memory only and are masked
whenever settings are displayed.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_BASE_URL = "https://dev-fmps.sunbirded.org"
DEFAULT_CHANNEL_ID = "01429195271738982411"
DEFAULT_LEARNER_CSV_PATH = Path("data") / "user-learner-profile.csv"
DEFAULT_REPORTS_DIR = Path("reports")

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(Exception):
    """Raised when an environment value cannot be parsed."""

    pass


@dataclass
class Settings:
    """Runtime configuration for lms-batch."""

    base_url: str = DEFAULT_BASE_URL
    api_auth_key: str = field(default="", repr=False)
    client_id: str = ""
    client_secret: str = field(default="", repr=False)
    grant_type: str = "password"
    creator_username: str = ""
    creator_password: str = field(default="", repr=False)
    channel_id: str = DEFAULT_CHANNEL_ID

    # Enrollment tuning
    enroll_user_wait_interval: int = 0  # milliseconds
    enrollment_batch_size: int = 5
    course_batch_size: int = 1

    learner_csv_path: Path = DEFAULT_LEARNER_CSV_PATH
    reports_dir: Path = DEFAULT_REPORTS_DIR
    http_timeout: float = 30.0
    log_level: str = "INFO"

    def validate(self) -> list[str]:
        """Validate settings and return list of errors."""
        errors: list[str] = []

        if not self.base_url.startswith(("http://", "https://")):
            errors.append(f"BASE_URL must start with http:// or https:// (got {self.base_url!r})")

        if self.enrollment_batch_size <= 0:
            errors.append(
                f"ENROLLMENT_BATCH_SIZE must be a positive integer (got {self.enrollment_batch_size})"
            )

        if self.course_batch_size <= 0:
            errors.append(
                f"COURSE_BATCH_SIZE must be a positive integer (got {self.course_batch_size})"
            )

        if self.enroll_user_wait_interval < 0:
            errors.append(
                "ENROLL_USER_WAIT_INTERVAL must not be negative "
                f"(got {self.enroll_user_wait_interval})"
            )

        if self.http_timeout <= 0:
            errors.append(f"HTTP_TIMEOUT must be positive (got {self.http_timeout})")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            errors.append(
                f"LOG_LEVEL must be one of {', '.join(VALID_LOG_LEVELS)} (got {self.log_level!r})"
            )

        return errors

    @property
    def report_path(self) -> Path:
        """Location of the enrollment status report."""
        return self.reports_dir / "enrollment-status.csv"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)

    def to_display_dict(self) -> dict[str, str]:
        """Return settings as display strings with secrets masked."""
        return {
            "base_url": self.base_url,
            "api_auth_key": _mask(self.api_auth_key),
            "client_id": self.client_id or "(not set)",
            "client_secret": _mask(self.client_secret),
            "grant_type": self.grant_type,
            "creator_username": self.creator_username or "(not set)",
            "channel_id": self.channel_id,
            "enroll_user_wait_interval": f"{self.enroll_user_wait_interval} ms",
            "enrollment_batch_size": str(self.enrollment_batch_size),
            "course_batch_size": str(self.course_batch_size),
            "learner_csv_path": str(self.learner_csv_path),
            "reports_dir": str(self.reports_dir),
            "http_timeout": f"{self.http_timeout:g} s",
            "log_level": self.log_level.upper(),
        }


def _mask(secret: str) -> str:
    return "********" if secret else "(not set)"


def _get_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got {raw!r})") from None


def _get_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number (got {raw!r})") from None


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Load settings from environment variables.

    Unset or empty variables fall back to their defaults.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        Settings object.

    Raises:
        ConfigError: If a numeric variable holds a non-numeric value.
    """
    env = os.environ if environ is None else environ

    return Settings(
        base_url=(env.get("BASE_URL") or DEFAULT_BASE_URL).rstrip("/"),
        api_auth_key=env.get("AUTH_KEY", ""),
        client_id=env.get("CLIENT_ID", ""),
        client_secret=env.get("CLIENT_SECRET", ""),
        grant_type=env.get("GRANT_TYPE") or "password",
        creator_username=env.get("CREATOR_USERNAME", ""),
        creator_password=env.get("CREATOR_PASSWORD", ""),
        channel_id=env.get("CHANNEL_ID") or DEFAULT_CHANNEL_ID,
        enroll_user_wait_interval=_get_int(env, "ENROLL_USER_WAIT_INTERVAL", 0),
        enrollment_batch_size=_get_int(env, "ENROLLMENT_BATCH_SIZE", 5),
        course_batch_size=_get_int(env, "COURSE_BATCH_SIZE", 1),
        learner_csv_path=Path(env.get("LEARNER_CSV_PATH") or DEFAULT_LEARNER_CSV_PATH),
        reports_dir=Path(env.get("REPORTS_DIR") or DEFAULT_REPORTS_DIR),
        http_timeout=_get_float(env, "HTTP_TIMEOUT", 30.0),
        log_level=env.get("LOG_LEVEL") or "INFO",
    )
