"""Reporting module for output comparison and run reports."""

from reporting.diff import DiffReporter, MismatchError, normalize_text
from reporting.report import RunReporter

__all__ = [
    "DiffReporter",
    "MismatchError",
    "RunReporter",
    "normalize_text",
]
