"""lms-batch: bulk enrollment tooling for Sunbird-style LMS instances."""

__version__ = "0.1.0"
