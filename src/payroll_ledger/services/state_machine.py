"""Ledger and period state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_ledger.exceptions import InvalidStateTransition


class LedgerStatus(str, Enum):
    """Payroll ledger status values."""

    PENDING = "PENDING"
    CALCULATED = "CALCULATED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class PeriodStatus(str, Enum):
    """Payroll period status values."""

    OPEN = "OPEN"
    PROCESSING = "PROCESSING"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class AuditAction(str, Enum):
    """Audit trail actions."""

    CREATED = "CREATED"
    CALCULATED = "CALCULATED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    UPDATED = "UPDATED"


class PaymentMethod(str, Enum):
    """Accepted payment methods."""

    BANK_TRANSFER = "BANK_TRANSFER"
    CHECK = "CHECK"
    CASH = "CASH"
    OTHER = "OTHER"


class LedgerStateMachine:
    """State machine for ledger status transitions.

    Allowed transitions:
    - PENDING → CALCULATED (engine only)
    - CALCULATED → CALCULATED (recalculation)
    - CALCULATED → APPROVED
    - APPROVED → PAID
    - CALCULATED | APPROVED → REJECTED
    - PENDING | CALCULATED | APPROVED → CANCELLED
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        LedgerStatus.PENDING: [LedgerStatus.CALCULATED, LedgerStatus.CANCELLED],
        LedgerStatus.CALCULATED: [
            LedgerStatus.CALCULATED,
            LedgerStatus.APPROVED,
            LedgerStatus.REJECTED,
            LedgerStatus.CANCELLED,
        ],
        LedgerStatus.APPROVED: [
            LedgerStatus.PAID,
            LedgerStatus.REJECTED,
            LedgerStatus.CANCELLED,
        ],
        LedgerStatus.PAID: [],  # Terminal state
        LedgerStatus.REJECTED: [],  # Terminal state
        LedgerStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses where recalculation is allowed
    CALCULATION_ALLOWED = {
        LedgerStatus.PENDING,
        LedgerStatus.CALCULATED,
    }

    # Statuses where net = gross - deductions - taxes must hold
    AMOUNTS_FINAL = {
        LedgerStatus.CALCULATED,
        LedgerStatus.APPROVED,
        LedgerStatus.PAID,
    }

    # Statuses that carry approver fields
    APPROVAL_RECORDED = {
        LedgerStatus.APPROVED,
        LedgerStatus.PAID,
    }

    TERMINAL = {
        LedgerStatus.PAID,
        LedgerStatus.REJECTED,
        LedgerStatus.CANCELLED,
    }

    # Statuses that let a period close
    RESOLVED = {
        LedgerStatus.APPROVED,
        LedgerStatus.PAID,
        LedgerStatus.REJECTED,
        LedgerStatus.CANCELLED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidStateTransition if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransition(
                "ledger", _value(from_status), _value(to_status), reason
            )

    @classmethod
    def can_calculate(cls, status: str) -> bool:
        """Check if calculation/recalculation is allowed in this status."""
        return status in cls.CALCULATION_ALLOWED

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def records_approval(cls, status: str) -> bool:
        """Check if approved_by/approved_at must be set in this status."""
        return status in cls.APPROVAL_RECORDED

    @classmethod
    def is_resolved(cls, status: str) -> bool:
        """Check if the ledger no longer blocks its period from closing."""
        return status in cls.RESOLVED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])


class PeriodStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - OPEN → PROCESSING
    - PROCESSING → CLOSED
    - OPEN | PROCESSING → CANCELLED
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodStatus.OPEN: [PeriodStatus.PROCESSING, PeriodStatus.CANCELLED],
        PeriodStatus.PROCESSING: [PeriodStatus.CLOSED, PeriodStatus.CANCELLED],
        PeriodStatus.CLOSED: [],
        PeriodStatus.CANCELLED: [],
    }

    # Statuses in which ledgers may be calculated
    CALCULATION_ALLOWED = {
        PeriodStatus.OPEN,
        PeriodStatus.PROCESSING,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransition(
                "period", _value(from_status), _value(to_status), reason
            )

    @classmethod
    def can_calculate(cls, status: str) -> bool:
        return status in cls.CALCULATION_ALLOWED


def _value(status: str | None) -> str | None:
    return status.value if isinstance(status, Enum) else status
