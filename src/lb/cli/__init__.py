"""Command line interface for lms-batch."""
