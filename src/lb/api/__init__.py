"""Upstream LMS API access for lms-batch."""
