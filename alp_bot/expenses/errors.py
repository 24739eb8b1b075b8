"""Exceptions for the expense entry workflow.

Validation errors are local and always recoverable: the user corrects the
draft and tries again. Submission errors come from the backend and leave the
draft exactly as it was.
"""

from __future__ import annotations

from enum import Enum


class ValidationRule(str, Enum):
    MISSING_DATE = "missing_date"
    MISSING_VENDOR = "missing_vendor"
    MISSING_PAYMENT_METHOD = "missing_payment_method"
    NO_VALID_POSITIONS = "no_valid_positions"
    MISSING_WHOLE_OBJECT = "missing_whole_object"
    UNALLOCATED_POSITIONS = "unallocated_positions"


class ExpenseError(Exception):
    """Base exception for expense workflow errors."""
    pass


class DraftValidationError(ExpenseError):
    """A draft fails one specific submission rule."""

    def __init__(self, rule: ValidationRule, message: str):
        super().__init__(message)
        self.rule = rule
        self.message = message


class InvalidNumberError(ExpenseError, ValueError):
    """Raised in strict mode when quantity or price input is not a number."""

    def __init__(self, field: str, raw_value):
        super().__init__(f"'{raw_value}' is not a valid number for {field}")
        self.field = field
        self.raw_value = raw_value


class PositionNotFoundError(ExpenseError, KeyError):
    """No position with the given id exists in the draft."""

    def __str__(self):
        return f"Position {self.args[0]!r} not found"


class SubmissionError(ExpenseError):
    """The backend rejected the invoice or could not be reached."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.message = message
        self.status = status


class SubmissionInProgressError(SubmissionError):
    """A second submit arrived while the first is still running."""

    def __init__(self):
        super().__init__("A submission is already in progress")


class InvalidAmountError(ExpenseError, ValueError):
    """A funding amount is not a number at or above the minimum."""

    def __init__(self, raw_value, minimum):
        super().__init__(f"Amount must be at least {minimum}, got '{raw_value}'")
        self.raw_value = raw_value
        self.minimum = minimum
