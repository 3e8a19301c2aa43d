"""Bulk enrollment: roster parsing, orchestration, and reporting."""
