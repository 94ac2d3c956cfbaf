"""Payroll error taxonomy.

Every error raised by the services derives from ``PayrollError`` so that
callers (the batch runner, the HTTP layer) can tell domain failures apart
from infrastructure failures.
"""

from __future__ import annotations

from typing import Any


class PayrollError(Exception):
    """Base class for payroll domain errors."""


class ValidationError(PayrollError):
    """Invalid input: bad dates, non-positive amounts, conflicting basis."""


class NotFoundError(PayrollError):
    """A referenced period, employee, ledger or component does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class InvalidStateTransition(PayrollError):
    """Raised when an illegal ledger or period status change is attempted."""

    def __init__(
        self,
        entity: str,
        current: str | None,
        attempted: str,
        reason: str | None = None,
    ):
        self.entity = entity
        self.current = current
        self.attempted = attempted
        self.reason = reason
        msg = f"Invalid {entity} transition from '{current}' to '{attempted}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class DuplicateLedgerError(PayrollError):
    """Employee already has a ledger for this period."""

    def __init__(self, employee_id: int, period_id: int):
        self.employee_id = employee_id
        self.period_id = period_id
        super().__init__(
            f"Employee {employee_id} already has a ledger for period {period_id}"
        )


class CalculationError(PayrollError):
    """Negative net pay or missing basis data."""


class PeriodNotReadyError(PayrollError):
    """Attempt to close a period that still has unresolved ledgers."""

    def __init__(self, period_id: int, unresolved: dict[str, int]):
        self.period_id = period_id
        self.unresolved = unresolved
        detail = ", ".join(f"{count} {status}" for status, count in sorted(unresolved.items()))
        super().__init__(f"Period {period_id} has unresolved ledgers: {detail}")
