"""Submission validation package."""

from cashbook.validation.validator import (
    SubmissionValidationError,
    SubmissionValidator,
    format_rupiah,
)

__all__ = ["SubmissionValidationError", "SubmissionValidator", "format_rupiah"]
