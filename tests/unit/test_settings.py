"""Unit tests for settings loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from lb.config.settings import (
    DEFAULT_BASE_URL,
    DEFAULT_CHANNEL_ID,
    ConfigError,
    Settings,
    load_settings,
)


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self):
        settings = load_settings({})

        assert settings.base_url == DEFAULT_BASE_URL
        assert settings.channel_id == DEFAULT_CHANNEL_ID
        assert settings.grant_type == "password"
        assert settings.api_auth_key == ""
        assert settings.enroll_user_wait_interval == 0
        assert settings.enrollment_batch_size == 5
        assert settings.course_batch_size == 1
        assert settings.report_path == Path("reports") / "enrollment-status.csv"
        assert settings.validate() == []

    def test_environment_overrides(self):
        settings = load_settings(
            {
                "BASE_URL": "https://lms.example.org/",
                "AUTH_KEY": "key",
                "CHANNEL_ID": "org-1",
                "ENROLL_USER_WAIT_INTERVAL": "250",
                "ENROLLMENT_BATCH_SIZE": "10",
                "COURSE_BATCH_SIZE": "3",
                "LEARNER_CSV_PATH": "/tmp/roster.csv",
                "REPORTS_DIR": "/tmp/out",
            }
        )

        assert settings.base_url == "https://lms.example.org"
        assert settings.api_auth_key == "key"
        assert settings.channel_id == "org-1"
        assert settings.enroll_user_wait_interval == 250
        assert settings.enrollment_batch_size == 10
        assert settings.course_batch_size == 3
        assert settings.learner_csv_path == Path("/tmp/roster.csv")
        assert settings.report_path == Path("/tmp/out/enrollment-status.csv")

    def test_non_integer_rejected(self):
        with pytest.raises(ConfigError) as exc_info:
            load_settings({"ENROLLMENT_BATCH_SIZE": "five"})

        assert "ENROLLMENT_BATCH_SIZE" in str(exc_info.value)


class TestValidate:
    """Tests for Settings.validate."""

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_batch_sizes(self, size: int):
        errors = Settings(enrollment_batch_size=size, course_batch_size=size).validate()

        assert any("ENROLLMENT_BATCH_SIZE" in e for e in errors)
        assert any("COURSE_BATCH_SIZE" in e for e in errors)

    def test_negative_wait_interval(self):
        errors = Settings(enroll_user_wait_interval=-5).validate()

        assert any("ENROLL_USER_WAIT_INTERVAL" in e for e in errors)

    def test_bad_base_url_and_log_level(self):
        errors = Settings(base_url="lms.example.org", log_level="chatty").validate()

        assert len(errors) == 2


class TestDisplay:
    """Tests for masked display output."""

    def test_secrets_masked(self):
        settings = Settings(api_auth_key="top-secret", client_secret="also-secret")

        shown = settings.to_display_dict()

        assert shown["api_auth_key"] == "********"
        assert shown["client_secret"] == "********"
        assert "top-secret" not in repr(settings)
