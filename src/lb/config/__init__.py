"""Configuration for lms-batch."""
