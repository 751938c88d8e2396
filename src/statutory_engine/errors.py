"""Exceptions raised by the statutory deduction engine."""

from __future__ import annotations

from uuid import UUID


class StatutoryEngineError(Exception):
    """Base class for engine errors."""


class InvalidRuleData(StatutoryEngineError):
    """Raised when reference rule data is malformed.

    Covers inverted validity windows, overlapping bands, unusable
    income-tax schedules and contradictory relief definitions. These are
    configuration defects that would produce wrong amounts, so they are
    surfaced to the operator instead of being skipped.
    """

    def __init__(self, message: str, rule_id: UUID | str | None = None):
        self.rule_id = rule_id
        self.message = message
        if rule_id is not None:
            message = f"{message} (rule {rule_id})"
        super().__init__(message)
